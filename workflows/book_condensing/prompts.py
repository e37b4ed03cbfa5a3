"""Prompts for the book condensing workflow.

System prompts are static so they can be cached; everything run-specific goes
in the user message.
"""

from .schemas import MAX_GUIDE_TIMELINE, GlobalGuide, GuideAggregate

GUIDE_MAP_SYSTEM = """You are a literary analyst building a reference guide to a long book, one section at a time.

For the section you are given, record:
- characters: canonical name, other names used for them, and a one or two sentence description
- locations: places that matter to the story or argument
- terms: invented words, concepts or objects a reader must recognise
- timeline: the key events of this section in the order they happen
- themes: recurring ideas, as short phrases
- style: the narrative voice, tone and register

Only include what appears in this section. Be concise; prefer fewer, well-chosen entries."""

GUIDE_MAP_USER = """Section {position} of {total}.

<section>
{text}
</section>"""

GUIDE_POLISH_SYSTEM = f"""You are editing a reference guide assembled from per-section notes on one book.

Produce a single consistent guide:
- merge duplicate characters, locations and terms (keep every alias)
- resolve conflicting descriptions in favour of the later, fuller one
- keep the timeline in story order with at most {MAX_GUIDE_TIMELINE} events, numbered from 1
- keep themes distinct and the style description to a few sentences

Do not invent anything that is not in the notes."""

GUIDE_POLISH_USER = """Notes assembled from {partials} sections:

<notes>
{notes}
</notes>"""

CHAPTER_STAGE_SYSTEM = """You are condensing a long book section by section. Rewrite the section you are given as a condensed version that keeps the author's own voice and style, as if the author had written a shorter edition.

Rules:
- keep the narrative, dialogue and descriptions that carry meaning; remove redundancy
- reading the condensed section should convey what reading the original would
- use the reference guide to keep names, places and terms consistent
- continue naturally from the previous section; do not repeat it
- structure the result as PARAGRAPH items, with at most 2 KEY_POINT items placed right after the paragraph they relate to
- KEY_POINT types: QUOTE (memorable line; set reference to who said it), INSIGHT (lesson or idea), MOMENT (turning point). Only QUOTE carries a reference
- give the section a short title"""

CHAPTER_STAGE_USER = """Aim for about {budget} tokens of output.

<guide>
{guide}
</guide>

<previous_section>
{previous}
</previous_section>

<section>
{text}
</section>"""

NO_PREVIOUS_SECTION = "(This is the first section of the book.)"


def guide_map_prompt(text: str, position: int, total: int) -> str:
    return GUIDE_MAP_USER.format(position=position + 1, total=total, text=text)


def guide_polish_prompt(aggregate: GuideAggregate) -> str:
    return GUIDE_POLISH_USER.format(
        partials=aggregate.partial_count,
        notes=aggregate.model_dump_json(indent=2, exclude={"partial_count"}),
    )


def chapter_stage_prompt(guide: GlobalGuide, previous: str, text: str, budget: int) -> str:
    return CHAPTER_STAGE_USER.format(
        budget=budget,
        guide=guide.to_prompt(),
        previous=previous or NO_PREVIOUS_SECTION,
        text=text,
    )
