"""
Small text-processing steps that glue the external tools together:
extracting ids and transcripts from manifests and building the word symbol table.
"""
import logging
import re
from pathlib import Path
from typing import Iterable, Iterator, List

from tqdm.auto import tqdm

from cvprep.errors import MalformedArtifact
from cvprep.serialization import load_jsonl, read_text_lines, write_text_lines
from cvprep.utils import Pathlike

# Symbols that are always present in the word table, besides the words of the transcript.
EXTRA_WORDS = ("!SIL", "<SPOKEN_NOISE>", "<UNK>")
RESERVED_WORDS = ("<s>", "</s>")

_WHITESPACE = re.compile(r"[ \t]+")


def normalize_whitespace(text: str) -> str:
    """Turns tabs into spaces and squeezes repeated spaces, so that space only appears once."""
    return _WHITESPACE.sub(" ", text.strip("\n"))


def iter_supervision_field(path: Pathlike, field: str) -> Iterator[str]:
    for item in load_jsonl(path):
        value = item.get(field)
        if value is None:
            raise MalformedArtifact(f"Supervision without '{field}' in {path}: {item}")
        yield str(value).replace('"', "")


def iter_cut_texts(path: Pathlike) -> Iterator[str]:
    """Yields the text of the first supervision of every cut in ``path``."""
    for cut in load_jsonl(path):
        supervisions = cut.get("supervisions") or []
        if not supervisions or supervisions[0].get("text") is None:
            raise MalformedArtifact(
                f"Cut '{cut.get('id')}' in {path} has no supervision text."
            )
        yield supervisions[0]["text"].replace('"', "")


def write_supervision_ids(supervisions: Pathlike, output: Pathlike) -> int:
    """Writes the id of every supervision in ``supervisions`` to ``output``, one per line."""
    num_ids = write_text_lines(iter_supervision_field(supervisions, "id"), output)
    logging.info(f"Wrote {num_ids} ids from {supervisions} to {output}")
    return num_ids


def write_supervision_texts(
    supervisions: Iterable[Pathlike], output: Pathlike
) -> int:
    """Concatenates the transcripts of all ``supervisions`` manifests into ``output``."""
    num_lines = 0
    for idx, path in enumerate(supervisions):
        num_lines += write_text_lines(
            tqdm(
                iter_supervision_field(path, "text"),
                desc=f"Reading {Path(path).name}",
            ),
            output,
            append=idx > 0,
        )
    if num_lines == 0:
        raise MalformedArtifact(f"No transcripts were found for {output}.")
    return num_lines


def write_transcript_words(cuts: Pathlike, output: Pathlike) -> int:
    """Extracts the transcript of every cut in ``cuts`` into ``output`` with normalized spacing."""
    num_lines = write_text_lines(
        (
            normalize_whitespace(text)
            for text in tqdm(iter_cut_texts(cuts), desc=f"Reading {Path(cuts).name}")
        ),
        output,
    )
    if num_lines == 0:
        raise MalformedArtifact(f"No transcripts were found in {cuts}.")
    return num_lines


def build_word_table(words: Iterable[str]) -> List[str]:
    """
    Builds the word symbol table: ``<eps>`` is 0, then the sorted unique words
    (plus ``!SIL``, ``<SPOKEN_NOISE>`` and ``<UNK>``) are numbered from 1, followed by
    the disambiguation symbol ``#0`` and the sentence boundary symbols ``<s>`` and ``</s>``.
    """
    vocab = sorted(set(w for w in words if w) | set(EXTRA_WORDS))
    for word in RESERVED_WORDS:
        if word in vocab:
            raise MalformedArtifact(f"{word} is in the vocabulary!")
    table = ["<eps> 0"]
    table.extend(f"{word} {idx}" for idx, word in enumerate(vocab, start=1))
    num_words = len(vocab)
    table.append(f"#0 {num_words + 1}")
    table.append(f"<s> {num_words + 2}")
    table.append(f"</s> {num_words + 3}")
    return table


def write_word_table(transcript: Pathlike, output: Pathlike) -> int:
    words = (
        word for line in read_text_lines(transcript) for word in line.split(" ")
    )
    table = build_word_table(words)
    write_text_lines(table, output)
    logging.info(f"Wrote {len(table)} symbols to {output}")
    return len(table)

