"""Tests for sentence-based text chunking."""
import pytest

from study_assistant import config
from study_assistant.rag.chunker import TextChunker, chunk_text

LECTURE = (
    "Photosynthesis converts light energy into chemical energy. "
    "It happens in the chloroplasts of plant cells! "
    "Why does this matter? "
    "Because almost every food chain starts with it. "
    "The light reactions produce ATP and NADPH. "
    "The Calvin cycle then fixes carbon dioxide into sugars... "
    "Without it, atmospheric oxygen would not exist."
)


def test_example_document_chunks_on_sentence_boundaries():
    """Test the three-sentence example splits into one chunk per sentence."""
    text = "The cat sat. The dog ran. Cats and dogs are pets."

    assert chunk_text(text, max_chunk_size=20) == [
        "The cat sat",
        "The dog ran",
        "Cats and dogs are pets",
    ]


def test_empty_text_yields_no_chunks():
    """Test that chunking nothing returns nothing."""
    assert chunk_text("", max_chunk_size=100) == []


def test_punctuation_and_whitespace_only_yields_no_chunks():
    """Test that input without sentence content is dropped."""
    assert chunk_text(" ... !!! ??? \n ", max_chunk_size=100) == []


def test_sentences_are_packed_together_when_they_fit():
    """Test that short sentences share a chunk joined by '. '."""
    text = "One. Two! Three? Four."

    assert chunk_text(text, max_chunk_size=100) == ["One. Two. Three. Four"]


def test_overlong_sentence_is_kept_whole():
    """Test that a sentence longer than the limit is not truncated."""
    long_sentence = "word " * 60
    text = f"Short one. {long_sentence}. Another short one."

    chunks = chunk_text(text, max_chunk_size=50)

    assert chunks == ["Short one", long_sentence.strip(), "Another short one"]
    assert len(chunks[1]) > 50


def test_chunks_respect_limit_unless_single_sentence():
    """Test that only single-sentence chunks may exceed the limit."""
    chunker = TextChunker(max_chunk_size=60)
    sentences = chunker.split_sentences(LECTURE)

    for chunk in chunker.chunk_text(LECTURE):
        assert len(chunk) <= 60 or chunk in sentences


def test_chunks_preserve_every_sentence_in_order():
    """Test that rejoining the chunks reproduces the original sentences."""
    chunker = TextChunker(max_chunk_size=80)
    chunks = chunker.chunk_text(LECTURE)

    rejoined = ". ".join(chunks).split(". ")

    assert rejoined == chunker.split_sentences(LECTURE)


def test_repeated_terminators_count_as_one_boundary():
    """Test that '...' '!!' and '?!' do not produce empty sentences."""
    chunker = TextChunker(max_chunk_size=1000)

    assert chunker.split_sentences("Wait... What?! Yes!!") == ["Wait", "What", "Yes"]


def test_chunking_is_deterministic():
    """Test that the same input always gives the same chunks."""
    chunker = TextChunker(max_chunk_size=70)

    assert chunker.chunk_text(LECTURE) == chunker.chunk_text(LECTURE)
    assert chunk_text(LECTURE, 70) == chunker.chunk_text(LECTURE)


def test_default_chunk_size_comes_from_config():
    """Test that the default limit is the configured chunk size."""
    assert TextChunker().max_chunk_size == config.CHUNK_SIZE


@pytest.mark.parametrize("size", [0, -5])
def test_non_positive_chunk_size_is_rejected(size):
    """Test that a chunk size below 1 raises ValueError."""
    with pytest.raises(ValueError):
        TextChunker(max_chunk_size=size)
