"""
Shared testing utilities.

- fake_oracle: scripted oracle double recording every request
- sample_text: deterministic book-like documents
"""

from .fake_oracle import DEFAULT, FakeOracle
from .sample_text import sample_book, sample_sentence, unbroken_text

__all__ = [
    # fake_oracle
    "FakeOracle",
    "DEFAULT",
    # sample_text
    "sample_book",
    "sample_sentence",
    "unbroken_text",
]
