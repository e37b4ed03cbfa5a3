"""
Pydantic schemas for structured oracle outputs.

PartialGuide is requested once per coarse chunk; GlobalGuide is the merged,
polished digest every chapter stage reads; StageOutput is the condensed
result of one fine chunk.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Hard per-field caps on a partial guide
MAX_PARTIAL_CHARACTERS = 25
MAX_PARTIAL_LOCATIONS = 20
MAX_PARTIAL_TERMS = 25
MAX_PARTIAL_TIMELINE = 30
MAX_PARTIAL_THEMES = 10

# Cap on the polished guide's timeline
MAX_GUIDE_TIMELINE = 60


# =============================================================================
# Guide
# =============================================================================


class Character(BaseModel):
    name: str = Field(min_length=1, description="Canonical name used throughout the book")
    aliases: list[str] = Field(
        default_factory=list,
        description="Other names or epithets for the same person",
    )
    description: str = Field(default="", description="Role and defining traits, one or two sentences")


class Location(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(default="")


class Term(BaseModel):
    term: str = Field(min_length=1, description="Concept, object or invented word")
    definition: str = Field(default="")


class TimelineEvent(BaseModel):
    order: int = Field(ge=0, description="Chronological position within the covered text")
    event: str = Field(min_length=1)


def _truncate(items: list, limit: int) -> list:
    return items[:limit]


def _entry(name: str, detail: str) -> str:
    return f"- {name}: {detail}" if detail else f"- {name}"


class PartialGuide(BaseModel):
    """Digest of one coarse chunk, bounded per field."""

    characters: list[Character] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    terms: list[Term] = Field(default_factory=list)
    timeline: list[TimelineEvent] = Field(
        default_factory=list,
        description="Key events in chronological (story) order",
    )
    themes: list[str] = Field(default_factory=list)
    style: str = Field(default="", description="Narrative voice, tone and register of the text")

    @field_validator("characters")
    @classmethod
    def _cap_characters(cls, v):
        return _truncate(v, MAX_PARTIAL_CHARACTERS)

    @field_validator("locations")
    @classmethod
    def _cap_locations(cls, v):
        return _truncate(v, MAX_PARTIAL_LOCATIONS)

    @field_validator("terms")
    @classmethod
    def _cap_terms(cls, v):
        return _truncate(v, MAX_PARTIAL_TERMS)

    @field_validator("timeline")
    @classmethod
    def _cap_timeline(cls, v):
        return _truncate(v, MAX_PARTIAL_TIMELINE)

    @field_validator("themes")
    @classmethod
    def _cap_themes(cls, v):
        return _truncate([t for t in v if t.strip()], MAX_PARTIAL_THEMES)

    def is_empty(self) -> bool:
        return not (
            self.characters
            or self.locations
            or self.terms
            or self.timeline
            or self.themes
            or self.style.strip()
        )


class GuideAggregate(BaseModel):
    """Raw concatenation of every partial guide, before deduplication.

    Unlike PartialGuide and GlobalGuide it carries no caps.
    """

    characters: list[Character] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    terms: list[Term] = Field(default_factory=list)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    style: str = Field(default="")
    partial_count: int = Field(default=0, ge=0)


class GlobalGuide(BaseModel):
    """Document-wide digest kept consistent across every chapter stage."""

    characters: list[Character] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    terms: list[Term] = Field(default_factory=list)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    style: str = Field(default="")

    @field_validator("timeline")
    @classmethod
    def _cap_timeline(cls, v):
        ordered = sorted(v, key=lambda e: e.order)
        return _truncate(ordered, MAX_GUIDE_TIMELINE)

    def is_empty(self) -> bool:
        return not (self.characters or self.locations or self.terms or self.timeline or self.themes)

    def to_prompt(self) -> str:
        """Compact plain-text rendering used inside chapter-stage prompts."""
        lines = []
        if self.style:
            lines.append(f"Style: {self.style}")
        if self.characters:
            lines.append("Characters:")
            for c in self.characters:
                aka = f" (also: {', '.join(c.aliases)})" if c.aliases else ""
                lines.append(_entry(f"{c.name}{aka}", c.description))
        if self.locations:
            lines.append("Locations:")
            lines.extend(_entry(loc.name, loc.description) for loc in self.locations)
        if self.terms:
            lines.append("Terms:")
            lines.extend(_entry(t.term, t.definition) for t in self.terms)
        if self.timeline:
            lines.append("Timeline:")
            lines.extend(f"{e.order}. {e.event}" for e in self.timeline)
        if self.themes:
            lines.append(f"Themes: {', '.join(self.themes)}")
        return "\n".join(lines)


# =============================================================================
# Chapter stage output
# =============================================================================


ContentType = Literal["PARAGRAPH", "KEY_POINT"]
KeyPointType = Literal["QUOTE", "INSIGHT", "MOMENT"]


class ContentItem(BaseModel):
    """One paragraph or key point of a condensed chapter.

    ``reference`` (who said it) is mandatory for QUOTE key points and must be
    absent everywhere else.
    """

    type: ContentType
    text: str = Field(min_length=1)
    key_point_type: Optional[KeyPointType] = Field(
        default=None,
        description="Only for KEY_POINT items",
    )
    reference: Optional[str] = Field(
        default=None,
        description="Speaker or source. Only for QUOTE key points, where it is required",
    )

    @model_validator(mode="after")
    def _check_key_point_fields(self):
        if self.type == "PARAGRAPH":
            if self.key_point_type is not None:
                raise ValueError("PARAGRAPH items cannot carry key_point_type")
            if self.reference is not None:
                raise ValueError("PARAGRAPH items cannot carry a reference")
            return self

        if self.key_point_type is None:
            raise ValueError("KEY_POINT items require key_point_type")
        if self.key_point_type == "QUOTE":
            if not (self.reference and self.reference.strip()):
                raise ValueError("QUOTE key points require a non-empty reference")
        elif self.reference is not None:
            raise ValueError(f"{self.key_point_type} key points cannot carry a reference")
        return self


class StageOutput(BaseModel):
    """Condensed, structurally tagged rendering of one chunk."""

    title: str = Field(min_length=1, description="Short title for this section of the book")
    content: list[ContentItem] = Field(min_length=1)

    def plain_text(self) -> str:
        return "\n\n".join(item.text for item in self.content)

    def to_payload(self) -> dict:
        """Serialized form with inapplicable fields left out, not nulled."""
        return self.model_dump(exclude_none=True)
