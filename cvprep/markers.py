"""
Completion markers record which units of work have already finished,
so that re-running the pipeline skips them.

A marker is identified by a deterministic string built from the unit's
namespace (the directory it writes to, relative to the data directory),
stage name, language, dataset variant and parameters, e.g.::

    en/fbank/cv-en_train_split_1000/.split.en.train.done
    en/lang_bpe_500/lm/.arpa.en.order=4.vocab=500.done

The :class:`FileMarkerStore` keeps them as hidden files next to the artifacts
they describe; :class:`InMemoryMarkerStore` is a drop-in replacement for tests.
"""
import logging
import os
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from cvprep.serialization import save_to_yaml
from cvprep.utils import Pathlike, tmp_path_for

MARKER_SUFFIX = ".done"
# Placeholder for a missing language when a variant follows it.
NO_LANGUAGE = "-"

Params = Tuple[Tuple[str, Any], ...]


def _check_component(name: str, value: str) -> str:
    if not value:
        raise ValueError(f"Marker {name} cannot be empty.")
    invalid = value == NO_LANGUAGE or value != value.strip()
    if invalid or any(c in value for c in "/.="):
        raise ValueError(
            f"Invalid marker {name}: '{value}' (it cannot be '{NO_LANGUAGE}', "
            f"contain any of '/.=' or surrounding whitespace)."
        )
    return value


def _normalize_params(params: Union[None, Mapping[str, Any], Iterable]) -> Params:
    if params is None:
        return ()
    if isinstance(params, Mapping):
        params = params.items()
    return tuple(sorted((str(k), v) for k, v in params))


def make_marker_id(
    namespace: Pathlike,
    stage: str,
    language: Optional[str] = None,
    variant: Optional[str] = None,
    params: Union[None, Mapping[str, Any], Iterable] = None,
) -> str:
    """
    Derives the marker id of a unit of work. The same identity always yields the same id,
    and distinct identities never share one.

    :param namespace: relative directory (POSIX style) in which the marker is kept.
    :param stage: stage-local name of the unit (e.g. ``"split"``).
    :param language: optional language code.
    :param variant: optional dataset variant.
    :param params: optional mapping of extra parameters (e.g. ``{"vocab": 500}``),
        rendered as ``key=value`` sorted by key.
    """
    namespace = PurePosixPath(Path(namespace).as_posix())
    if namespace.is_absolute() or ".." in namespace.parts:
        raise ValueError(
            f"Marker namespace must be a relative path (got: '{namespace}')."
        )
    fields = [_check_component("stage", stage)]
    if language is not None:
        fields.append(_check_component("language", language))
    elif variant is not None:
        fields.append(NO_LANGUAGE)
    if variant is not None:
        fields.append(_check_component("variant", str(variant)))
    for key, value in _normalize_params(params):
        _check_component("parameter name", key)
        _check_component("parameter value", str(value))
        fields.append(f"{key}={value}")
    name = "." + ".".join(fields) + MARKER_SUFFIX
    if str(namespace) in ("", "."):
        return name
    return f"{namespace}/{name}"


@dataclass(frozen=True)
class UnitOfWork:
    """
    An atomic, idempotent task. ``inputs`` must exist before it runs,
    ``outputs`` must exist after it ran, otherwise it is not marked as completed.
    Paths are absolute or relative to the current working directory.
    """

    namespace: str
    stage: str
    language: Optional[str] = None
    variant: Optional[str] = None
    params: Params = ()
    inputs: Tuple[Path, ...] = field(default=(), compare=False)
    outputs: Tuple[Path, ...] = field(default=(), compare=False)

    @property
    def marker_id(self) -> str:
        return make_marker_id(
            self.namespace, self.stage, self.language, self.variant, self.params
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "language": self.language,
            "variant": None if self.variant is None else str(self.variant),
            "params": {k: v for k, v in self.params},
        }

    def __str__(self) -> str:
        return self.marker_id


def unit(
    namespace: Pathlike,
    stage: str,
    language: Optional[str] = None,
    variant: Optional[str] = None,
    params: Union[None, Mapping[str, Any], Iterable] = None,
    inputs: Iterable[Pathlike] = (),
    outputs: Iterable[Pathlike] = (),
) -> UnitOfWork:
    """Convenience constructor for :class:`UnitOfWork` that normalizes its arguments."""
    return UnitOfWork(
        namespace=Path(namespace).as_posix(),
        stage=stage,
        language=language,
        variant=None if variant is None else str(variant),
        params=_normalize_params(params),
        inputs=tuple(Path(p) for p in inputs),
        outputs=tuple(Path(p) for p in outputs),
    )


class MarkerStore(metaclass=ABCMeta):
    """
    Key-value store of completion markers.

    New stores are expected to define the following methods:

    * ``exists(marker_id)`` which tells whether the unit was completed.
    * ``mark(marker_id, unit)`` which records the completion; it must be idempotent
      and must not leave a marker behind when it fails.
    * ``invalidate(marker_id)`` which removes the marker (returns ``False`` if there was none).
    * ``list()`` which returns the ids of all markers, sorted.
    """

    @abstractmethod
    def exists(self, marker_id: str) -> bool:
        ...

    @abstractmethod
    def mark(self, marker_id: str, unit: Optional[UnitOfWork] = None) -> None:
        ...

    @abstractmethod
    def invalidate(self, marker_id: str) -> bool:
        ...

    @abstractmethod
    def list(self) -> List[str]:
        ...

    def __contains__(self, marker_id: str) -> bool:
        return self.exists(marker_id)


class FileMarkerStore(MarkerStore):
    """Keeps markers as hidden files under ``root`` (normally the data directory)."""

    def __init__(self, root: Pathlike) -> None:
        self.root = Path(root)

    def path(self, marker_id: str) -> Path:
        return self.root / marker_id

    def exists(self, marker_id: str) -> bool:
        return self.path(marker_id).is_file()

    def mark(self, marker_id: str, unit: Optional[UnitOfWork] = None) -> None:
        path = self.path(marker_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        record = {
            "marker": marker_id,
            "completed_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
        if unit is not None:
            record.update(unit.describe())
        tmp_path = tmp_path_for(path)
        try:
            save_to_yaml(record, tmp_path)
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        logging.debug(f"Marked as completed: {marker_id}")

    def invalidate(self, marker_id: str) -> bool:
        path = self.path(marker_id)
        if not path.is_file():
            return False
        path.unlink()
        logging.info(f"Invalidated marker: {marker_id}")
        return True

    def list(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob(f".*{MARKER_SUFFIX}")
            if p.is_file() and not p.name.startswith(".tmp.")
        )


class InMemoryMarkerStore(MarkerStore):
    """Mimics :class:`FileMarkerStore` but doesn't perform any I/O."""

    def __init__(self, marker_ids: Iterable[str] = ()) -> None:
        self.markers: Dict[str, Optional[UnitOfWork]] = {m: None for m in marker_ids}

    def exists(self, marker_id: str) -> bool:
        return marker_id in self.markers

    def mark(self, marker_id: str, unit: Optional[UnitOfWork] = None) -> None:
        self.markers[marker_id] = unit

    def invalidate(self, marker_id: str) -> bool:
        return self.markers.pop(marker_id, False) is not False

    def list(self) -> List[str]:
        return sorted(self.markers)
