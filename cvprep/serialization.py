import gzip
import json
from pathlib import Path
from typing import Any, Dict, Generator, Iterable

import yaml

from cvprep.utils import Pathlike, is_module_available


def open_best(path: Pathlike, mode: str = "r"):
    """
    Auto-determine the best way to open the input path.
    Paths ending with ``.gz`` are transparently (de)compressed with gzip.
    """
    if str(path).endswith(".gz"):
        if "t" not in mode and "b" not in mode:
            # Opening as bytes not requested explicitly, use "t" to tell gzip to handle unicode.
            mode = mode + "t"
        return gzip.open(path, mode, encoding="utf-8" if "t" in mode else None)
    return open(path, mode, encoding="utf-8")


def extension_contains(ext: str, path: Pathlike) -> bool:
    return any(ext == sfx for sfx in Path(path).suffixes)


class InvalidPathExtension(ValueError):
    pass


def save_to_yaml(data: Any, path: Pathlike) -> None:
    with open_best(path, "w") as f:
        try:
            # When pyyaml is installed with C extensions, it can speed up the (de)serialization noticeably
            yaml.dump(data, stream=f, Dumper=yaml.CSafeDumper, sort_keys=False)
        except AttributeError:
            yaml.dump(data, stream=f, Dumper=yaml.SafeDumper, sort_keys=False)


def load_yaml(path: Pathlike) -> dict:
    with open_best(path, "r") as f:
        try:
            # When pyyaml is installed with C extensions, it can speed up the (de)serialization noticeably
            return yaml.load(stream=f, Loader=yaml.CSafeLoader)
        except AttributeError:
            return yaml.load(stream=f, Loader=yaml.SafeLoader)


if is_module_available("orjson"):
    import orjson

    def decode_json_line(line):
        try:
            return orjson.loads(line)
        except orjson.JSONDecodeError:
            return json.loads(line)

else:
    decode_json_line = json.loads


def save_to_jsonl(data: Iterable[Dict[str, Any]], path: Pathlike) -> None:
    """Save the data to a JSONL file. Will use GZip to compress it if the path ends with a ``.gz`` extension."""
    with open_best(path, "w") as f:
        for item in data:
            print(json.dumps(item, ensure_ascii=False), file=f)


def load_jsonl(path: Pathlike) -> Generator[Dict[str, Any], None, None]:
    """Load a JSONL file lazily, one item per line. Also supports compressed JSONL with a ``.gz`` extension."""
    with open_best(path, "r") as f:
        for line in f:
            if not line.strip():
                continue
            # The temporary variable helps fail fast
            ret = decode_json_line(line)
            yield ret


def count_jsonl_items(path: Pathlike) -> int:
    with open_best(path, "r") as f:
        return sum(1 for line in f if line.strip())


class SequentialJsonlWriter:
    """
    SequentialJsonlWriter allows to store the manifests one by one,
    without the necessity of storing the whole manifest in-memory.
    Supports writing to JSONL format (``.jsonl``), with optional gzip
    compression (``.jsonl.gz``).

    Example:

        >>> with SequentialJsonlWriter('cuts.jsonl.gz') as writer:
        ...     for item in load_jsonl('other_cuts.jsonl.gz'):
        ...         writer.write(item)
    """

    def __init__(self, path: Pathlike) -> None:
        self.path = path
        self.file = None
        self.num_written = 0
        if not extension_contains(".jsonl", self.path):
            raise InvalidPathExtension(
                f"SequentialJsonlWriter supports only JSONL format (one JSON item per line), "
                f"but path='{path}'."
            )

    def __enter__(self) -> "SequentialJsonlWriter":
        self._maybe_open()
        return self

    def __exit__(self, *args, **kwargs) -> None:
        self.close()

    def _maybe_open(self):
        if self.file is None:
            self.file = open_best(self.path, "w")

    def close(self):
        if self.file is not None:
            self.file.close()
            self.file = None

    def write(self, manifest: Dict[str, Any], flush: bool = False) -> None:
        """
        Serializes a manifest item to JSON and stores it in a JSONL file.

        :param manifest: the manifest item (a dict) to be written.
        :param flush: should we flush the file after writing (ensures the changes
            are synced with the disk and not just buffered for later writing).
        """
        self._maybe_open()
        print(json.dumps(manifest, ensure_ascii=False), file=self.file)
        self.num_written += 1
        if flush:
            self.file.flush()


def read_text_lines(path: Pathlike, strip: bool = True) -> Generator[str, None, None]:
    with open_best(path, "r") as f:
        for line in f:
            yield line.strip() if strip else line.rstrip("\n")


def write_text_lines(lines: Iterable[str], path: Pathlike, append: bool = False) -> int:
    num_lines = 0
    with open_best(path, "a" if append else "w") as f:
        for line in lines:
            print(line, file=f)
            num_lines += 1
    return num_lines
