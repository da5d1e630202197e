import re

import pytest

from services.stream_decoder import decode_stream
from services.text_formatter import format_chunk, format_tokens, normalize_text


def test_fixture_tokens_produce_exact_text():
    assert format_tokens(["Hello.", " World", "!"]) == "Hello. World!"


def test_blank_tokens_are_dropped():
    assert format_chunk("Hello", "   ") == "Hello"
    assert format_chunk("Hello", "") == "Hello"


def test_paragraph_break_after_sentence_end():
    assert format_chunk("Done.", "Next") == "Done.\n\nNext"
    assert format_chunk("Really?", "Yes") == "Really?\n\nYes"


def test_no_second_paragraph_break():
    assert format_chunk("Done.\n\n", "Next") == "Done.\n\nNext"


def test_word_spacing_between_alphanumerics():
    assert format_chunk("Hello", "world") == "Hello world"
    assert format_chunk("room", "42") == "room 42"


def test_no_space_after_space_or_punctuation():
    assert format_chunk("Hello ", "world") == "Hello world"
    assert format_chunk("Hello,", "world") == "Hello,world"
    assert format_chunk("wait;", "what") == "wait;what"


def test_plain_concatenation_otherwise():
    assert format_chunk("", "Hello") == "Hello"
    assert format_chunk("Hello", "'s") == "Hello's"
    assert format_chunk("Done.", "next") == "Done.next"


SENTENCES = "Sure, I can help. First tell me more about the trip, then we plan it."


@pytest.mark.parametrize(
    "cut", [i for i in range(1, len(SENTENCES)) if " " in (SENTENCES[i - 1], SENTENCES[i])]
)
def test_split_at_whitespace_matches_whole_string(cut):
    whole = format_tokens([SENTENCES])
    chunked = format_tokens([SENTENCES[:cut], SENTENCES[cut:]])

    assert whole == SENTENCES
    assert chunked == whole, f"split at {cut} changed the text"
    assert normalize_text(chunked) == normalize_text(whole)


def test_word_by_word_stream_matches_whole_string():
    words = re.findall(r"\s*\S+", SENTENCES)

    assert len(words) > 10
    assert format_tokens(words) == format_tokens([SENTENCES])


def test_chunked_and_whole_agree_on_simple_sentences():
    tokens = ["Sure.", "Here", "it", "is."]

    assert format_tokens(tokens) == normalize_text("Sure.Here it is.") == "Sure.\n\nHere it is."


def test_decoded_stream_reassembles():
    body = [b"data: The\ndata:  quick\n", b"data: brown fox.\ndata: It\ndata:  ran.\ndata: [DONE]\n"]

    assert format_tokens(decode_stream(body)) == "The quick brown fox.\n\nIt ran."


def test_normalize_collapses_whitespace():
    assert normalize_text("Hello   world \t again") == "Hello world again"


def test_normalize_spaces_tight_commas():
    assert normalize_text("one,two,three") == "one, two, three"
    assert normalize_text('he said,"hi"') == 'he said,"hi"'


def test_normalize_breaks_joined_sentences():
    assert normalize_text("Done.Next one!Yes") == "Done.\n\nNext one!\n\nYes"


@pytest.mark.parametrize(
    "text",
    [
        "",
        "Hello.World",
        "a,,b",
        "A.\n\nB",
        "Line one.\n\n\nLine two",
        "end. \n\n Next",
        "U.S.A is big",
        "x\ny",
        'Sure! {"type":"calendar","title":"Lunch","start":"2024-01-01T12:00:00Z"}',
        "tabs\t\tand  spaces,everywhere.Really",
    ],
)
def test_normalize_is_idempotent(text):
    once = normalize_text(text)

    assert normalize_text(once) == once
