"""
Tests for the tiktoken-backed tokenizer and its offset index.
"""

from workflows.shared.token_utils import (
    FALLBACK_ENCODING,
    Tokenizer,
    estimate_tokens_fast,
    get_tokenizer,
)


class TestTokenizer:
    def test_count_matches_encode(self, tokenizer):
        text = "The traveller crossed the river at dusk."
        assert tokenizer.count(text) == len(tokenizer.encode(text))
        assert tokenizer.count(text) > 0

    def test_empty_text(self, tokenizer):
        assert tokenizer.count("") == 0
        assert tokenizer.encode("") == []

    def test_decode_round_trip(self, tokenizer):
        text = "Mara remembered a letter sealed in green wax!"
        assert tokenizer.decode(tokenizer.encode(text)) == text

    def test_deterministic(self):
        text = "Her brother questioned the road north of the village?"
        assert Tokenizer("gpt-4o-mini").encode(text) == Tokenizer("gpt-4o-mini").encode(text)

    def test_special_tokens_are_plain_text(self, tokenizer):
        # Must not raise on text that looks like a special token
        assert tokenizer.count("before <|endoftext|> after") > 3

    def test_unknown_model_falls_back(self):
        tokenizer = Tokenizer("no-such-model-anywhere")
        assert tokenizer.encoding_name == FALLBACK_ENCODING
        assert tokenizer.count("hello world") > 0

    def test_shared_instance(self):
        assert get_tokenizer("gpt-4o-mini") is get_tokenizer("gpt-4o-mini")


class TestTokenIndex:
    def test_offsets_line_up_with_text(self, tokenizer, book_text):
        index = tokenizer.index(book_text)
        assert len(index) == tokenizer.count(book_text)
        assert index.char_at(0) == 0
        assert index.char_at(len(index)) == len(book_text)

        # Offsets are non-decreasing
        offsets = [index.char_at(i) for i in range(len(index))]
        assert offsets == sorted(offsets)

    def test_token_at_inverts_char_at(self, tokenizer, book_text):
        index = tokenizer.index(book_text)
        for pos in (0, 1, 17, len(index) // 2, len(index) - 1):
            assert index.token_at(index.char_at(pos)) == pos

    def test_token_at_covers_inner_characters(self, tokenizer):
        text = "antidisestablishmentarianism is long"
        index = tokenizer.index(text)
        token = index.token_at(5)
        assert index.char_at(token) <= 5 < index.char_at(token + 1)

    def test_out_of_range(self, tokenizer):
        index = tokenizer.index("short text")
        assert index.char_at(-3) == 0
        assert index.char_at(10_000) == len("short text")
        assert index.token_at(10_000) == len(index)


class TestTail:
    def test_tail_is_suffix(self, tokenizer, book_text):
        tail = tokenizer.tail(book_text, 50)
        assert book_text.endswith(tail)
        assert 45 <= tokenizer.count(tail) <= 55

    def test_short_text_returned_whole(self, tokenizer):
        assert tokenizer.tail("a few words", 600) == "a few words"

    def test_zero_tokens(self, tokenizer):
        assert tokenizer.tail("anything", 0) == ""


class TestEstimateTokensFast:
    def test_rough_estimate(self):
        assert estimate_tokens_fast("") == 0
        assert estimate_tokens_fast("x" * 400, with_safety_margin=False) == 100
        assert estimate_tokens_fast("x" * 400) > 100
