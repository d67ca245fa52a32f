import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from tqdm.auto import tqdm

from cvprep.errors import MissingShard, MissingUpstreamArtifact
from cvprep.serialization import (
    SequentialJsonlWriter,
    count_jsonl_items,
    extension_contains,
    load_jsonl,
)
from cvprep.utils import Pathlike, split_indices, tmp_path_for

JSONL_GZ = ".jsonl.gz"


@dataclass(frozen=True)
class ShardSet:
    """
    The result of :func:`split_manifest`: ``num_shards`` manifests named
    ``<prefix>.<idx>.jsonl.gz`` inside ``shard_dir``, where ``idx`` is 1-based
    and zero-padded to ``len(str(num_shards))`` digits.
    """

    shard_dir: Path
    prefix: str
    num_shards: int
    num_items: int

    @property
    def paths(self) -> List[Path]:
        return [
            shard_path(self.shard_dir, self.prefix, idx, self.num_shards)
            for idx in range(1, self.num_shards + 1)
        ]

    def __len__(self) -> int:
        return self.num_shards


def manifest_prefix(manifest: Pathlike) -> str:
    """``cv-en_cuts_train_raw.jsonl.gz`` -> ``cv-en_cuts_train_raw``"""
    name = Path(manifest).name
    for suffix in (JSONL_GZ, ".jsonl"):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return Path(manifest).stem


def shard_path(shard_dir: Pathlike, prefix: str, idx: int, num_shards: int) -> Path:
    num_digits = len(str(num_shards))
    return Path(shard_dir) / f"{prefix}.{str(idx).zfill(num_digits)}{JSONL_GZ}"


def split_manifest(
    manifest: Pathlike, output_dir: Pathlike, num_splits: int
) -> ShardSet:
    """
    Split a JSONL manifest into ``num_splits`` contiguous, order-preserving parts
    and save them as separate manifests in ``output_dir``.
    No randomness is involved: the same input and ``num_splits`` always give the same shards.

    The manifest is streamed twice (once to count the items, once to write them),
    so it never has to fit in memory.
    When ``num_splits`` is larger than the number of items, the trailing shards are empty,
    so that the shard count is always equal to ``num_splits``.

    :param manifest: path to a ``.jsonl`` or ``.jsonl.gz`` manifest.
    :param output_dir: where the shards are written.
    :param num_splits: how many shards to create.
    :return: a :class:`ShardSet` describing the shards.
    """
    manifest = Path(manifest)
    if num_splits < 1:
        raise ValueError(f"num_splits must be a positive integer (got: {num_splits})")
    if not manifest.is_file():
        raise MissingUpstreamArtifact(manifest, hint="cannot split a missing manifest")
    if not extension_contains(".jsonl", manifest):
        raise ValueError(f"Only JSONL manifests can be split (got: '{manifest}')")

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = manifest_prefix(manifest)

    num_items = count_jsonl_items(manifest)
    logging.info(
        f"Splitting {manifest} ({num_items} items) into {num_splits} pieces in {output_dir}"
    )
    ranges = split_indices(num_items, num_splits)
    items = load_jsonl(manifest)
    for idx, (begin, end) in enumerate(
        tqdm(ranges, desc="Writing shards", disable=num_splits < 2), start=1
    ):
        path = shard_path(output_dir, prefix, idx, num_splits)
        tmp_path = tmp_path_for(path)
        try:
            with SequentialJsonlWriter(tmp_path) as writer:
                for _ in range(end - begin):
                    writer.write(next(items))
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    return ShardSet(
        shard_dir=output_dir, prefix=prefix, num_shards=num_splits, num_items=num_items
    )


def discover_shards(shard_dir: Pathlike, prefix: str) -> List[Path]:
    """
    Finds the manifests named ``<prefix>.<digits>.jsonl.gz`` in ``shard_dir``,
    sorted by their numeric index.
    """
    shard_dir = Path(shard_dir)
    if not shard_dir.is_dir():
        return []
    pattern = re.compile(rf"^{re.escape(prefix)}\.(\d+){re.escape(JSONL_GZ)}$")
    found = []
    for path in shard_dir.iterdir():
        match = pattern.match(path.name)
        if match is not None and path.is_file():
            found.append((int(match.group(1)), path))
    return [path for _, path in sorted(found)]


def shard_index(path: Pathlike) -> int:
    return int(Path(path).name.split(".")[-3])


def combine_shards(
    shard_dir: Pathlike,
    prefix: str,
    output_manifest: Pathlike,
    expected: int,
    strict: bool = True,
) -> Path:
    """
    Merge the shard manifests ``<prefix>.<idx>.jsonl.gz`` found in ``shard_dir``
    into ``output_manifest``, in shard order.

    When the number of discovered shards is different than ``expected``:
    in strict mode, a :class:`~cvprep.errors.MissingShard` is raised and nothing is written;
    otherwise a warning is emitted and the shards that exist are merged.

    The output is first written to a temporary file, so an interrupted merge
    never leaves a truncated ``output_manifest`` behind.
    """
    shards = discover_shards(shard_dir, prefix)
    if len(shards) != expected:
        present = {shard_index(p) for p in shards}
        missing = [idx for idx in range(1, expected + 1) if idx not in present]
        if strict or not shards:
            raise MissingShard(
                shard_dir, expected=expected, found=len(shards), missing=missing
            )
        logging.warning(
            f"Expected {expected} shards matching '{prefix}.*{JSONL_GZ}' in {shard_dir}, "
            f"but found {len(shards)}; combining the available ones "
            f"(missing {len(missing)} indices, e.g. {missing[:5]})."
        )
    return combine_manifests(shards, output_manifest)


def combine_manifests(manifests: Iterable[Pathlike], output_manifest: Pathlike) -> Path:
    """Concatenate JSONL manifests into ``output_manifest``, keeping their order."""
    manifests = [Path(m) for m in manifests]
    for m in manifests:
        if not m.is_file():
            raise MissingUpstreamArtifact(m)
    output_manifest = Path(output_manifest)
    output_manifest.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = tmp_path_for(output_manifest)
    try:
        with SequentialJsonlWriter(tmp_path) as writer:
            for m in tqdm(
                manifests, desc="Combining manifests", disable=len(manifests) < 2
            ):
                for item in load_jsonl(m):
                    writer.write(item)
        os.replace(tmp_path, output_manifest)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    logging.info(
        f"Combined {len(manifests)} manifests ({writer.num_written} items) into {output_manifest}"
    )
    return output_manifest

