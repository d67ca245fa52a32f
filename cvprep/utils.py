import os
from pathlib import Path
from typing import List, Union

Pathlike = Union[Path, str]


def split_indices(num_items: int, num_splits: int) -> List[List[int]]:
    """
    Computes ``[begin, end)`` index ranges that split ``num_items`` items into ``num_splits``
    contiguous parts, without needing the items in memory.
    When ``num_items`` is not divisible by ``num_splits``, the first parts are one element longer.
    When ``num_splits`` is larger than ``num_items``, the trailing parts are empty.
    """
    if num_splits < 1:
        raise ValueError(f"num_splits must be a positive integer (got: {num_splits})")
    chunk_size = num_items // num_splits
    num_shifts = num_items % num_splits
    # Non-equally sized splits; need to shift the indices like:
    # [0, 10] -> [0, 11]    (begin_shift=0, end_shift=1)
    # [10, 20] -> [11, 22]  (begin_shift=1, end_shift=2)
    # [20, 30] -> [22, 32]  (begin_shift=2, end_shift=2)
    # for num_items=32 and num_splits=3
    end_shifts = list(range(1, num_shifts + 1)) + [num_shifts] * (
        num_splits - num_shifts
    )
    begin_shifts = [0] + end_shifts[:-1]
    return [
        [i * chunk_size + begin_shift, (i + 1) * chunk_size + end_shift]
        for i, begin_shift, end_shift in zip(
            range(num_splits), begin_shifts, end_shifts
        )
    ]


def is_module_available(*modules: str) -> bool:
    r"""Returns if a top-level module with :attr:`name` exists *without**
    importing it. This is generally safer than try-catch block around a
    `import X`.
    """
    import importlib.util

    return all(importlib.util.find_spec(m) is not None for m in modules)


def tmp_path_for(path: Pathlike) -> Path:
    """Sibling path used while ``path`` is being written; keeps the original suffixes."""
    path = Path(path)
    return path.with_name(f".tmp.{os.getpid()}.{path.name}")
