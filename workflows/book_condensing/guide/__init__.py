"""Guide builder: map over coarse chunks, aggregate, polish."""

from .aggregate import aggregate_partials
from .builder import GuideBuilder, read_final_guide

__all__ = ["GuideBuilder", "aggregate_partials", "read_final_guide"]
