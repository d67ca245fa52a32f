import pytest

from cvprep.errors import MalformedArtifact
from cvprep.serialization import read_text_lines, save_to_jsonl
from cvprep.testing.dummies import dummy_cut, dummy_supervision
from cvprep.text import (
    build_word_table,
    normalize_whitespace,
    write_supervision_ids,
    write_supervision_texts,
    write_transcript_words,
    write_word_table,
)


@pytest.mark.parametrize(
    ["text", "expected"],
    [
        ("hello world", "hello world"),
        ("hello\tworld", "hello world"),
        ("hello   \t  world", "hello world"),
        ("a  b  c", "a b c"),
    ],
)
def test_normalize_whitespace(text, expected):
    assert normalize_whitespace(text) == expected


def test_build_word_table():
    table = build_word_table(["world", "hello", "world", ""])
    assert table == [
        "<eps> 0",
        "!SIL 1",
        "<SPOKEN_NOISE> 2",
        "<UNK> 3",
        "hello 4",
        "world 5",
        "#0 6",
        "<s> 7",
        "</s> 8",
    ]


@pytest.mark.parametrize("word", ["<s>", "</s>"])
def test_build_word_table_rejects_sentence_boundary_symbols(word):
    with pytest.raises(MalformedArtifact):
        build_word_table(["hello", word])


def test_write_supervision_ids(tmp_path):
    supervisions = tmp_path / "cv-en_supervisions_dev.jsonl.gz"
    save_to_jsonl([dummy_supervision(idx, "dev") for idx in range(3)], supervisions)
    output = tmp_path / "cv-en_dev_ids"
    assert write_supervision_ids(supervisions, output) == 3
    assert list(read_text_lines(output)) == [
        "dev-sup-0000",
        "dev-sup-0001",
        "dev-sup-0002",
    ]


def test_write_supervision_texts_concatenates_and_strips_quotes(tmp_path):
    train = tmp_path / "train.jsonl.gz"
    invalidated = tmp_path / "invalidated.jsonl.gz"
    save_to_jsonl([dummy_supervision(0, text='say "hi"')], train)
    save_to_jsonl([dummy_supervision(1, text="bye")], invalidated)
    output = tmp_path / "text"
    assert write_supervision_texts([train, invalidated], output) == 2
    assert list(read_text_lines(output)) == ["say hi", "bye"]


def test_write_supervision_texts_fails_without_transcripts(tmp_path):
    empty = tmp_path / "empty.jsonl.gz"
    save_to_jsonl([], empty)
    with pytest.raises(MalformedArtifact):
        write_supervision_texts([empty], tmp_path / "text")


def test_write_transcript_words(tmp_path):
    cuts = tmp_path / "cv-en_cuts_train.jsonl.gz"
    save_to_jsonl([dummy_cut(idx) for idx in range(3)], cuts)
    output = tmp_path / "transcript_words.txt"
    assert write_transcript_words(cuts, output) == 3
    assert list(read_text_lines(output)) == [
        "hello world",
        "good morning",
        "the quick brown fox",
    ]


def test_write_transcript_words_requires_supervision_text(tmp_path):
    cut = dummy_cut(0)
    cut["supervisions"] = []
    cuts = tmp_path / "cuts.jsonl.gz"
    save_to_jsonl([cut], cuts)
    with pytest.raises(MalformedArtifact):
        write_transcript_words(cuts, tmp_path / "transcript_words.txt")


def test_write_word_table(tmp_path):
    transcript = tmp_path / "transcript_words.txt"
    transcript.write_text("b a\na c\n")
    words = tmp_path / "words.txt"
    assert write_word_table(transcript, words) == 10
    lines = list(read_text_lines(words))
    assert lines[0] == "<eps> 0"
    assert lines[4:7] == ["a 4", "b 5", "c 6"]
    assert lines[-1] == "</s> 9"
