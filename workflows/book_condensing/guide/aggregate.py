"""Reduce step of the guide builder: pure, order-preserving concatenation."""

from typing import Sequence

from ..schemas import GuideAggregate, PartialGuide, TimelineEvent


def aggregate_partials(partials: Sequence[PartialGuide]) -> GuideAggregate:
    """Merge partial guides in chunk order without any deduplication.

    List fields are concatenated. Each partial's timeline is sorted by its
    own ``order`` and appended, and the combined timeline is renumbered
    1..N. The first non-empty style wins.
    """
    aggregate = GuideAggregate(partial_count=len(partials))
    order = 0

    for partial in partials:
        aggregate.characters.extend(partial.characters)
        aggregate.locations.extend(partial.locations)
        aggregate.terms.extend(partial.terms)
        aggregate.themes.extend(partial.themes)

        for event in sorted(partial.timeline, key=lambda e: e.order):
            order += 1
            aggregate.timeline.append(TimelineEvent(order=order, event=event.event))

        if not aggregate.style and partial.style.strip():
            aggregate.style = partial.style.strip()

    return aggregate
