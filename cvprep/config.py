from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from cvprep.errors import ConfigurationError
from cvprep.serialization import load_yaml, save_to_yaml
from cvprep.utils import Pathlike

DEFAULT_RELEASE = "cv-corpus-17.0-2024-03-15"

# Script-based languages that are word-segmented and modelled with characters.
CHARACTER_MODE_LANGUAGES = ("yue", "zh-HK", "zh-TW", "zh-CN")

# Character-mode languages for which a word segmenter exists.
WORD_SEGMENTED_LANGUAGES = ("yue", "zh-HK")


class DatasetVariant(str, Enum):
    """
    Partitions of a CommonVoice release that the pipeline may process.
    ``TRAIN`` is always processed, the other two are opt-in.
    """

    TRAIN = "train"
    VALIDATED = "validated"
    INVALIDATED = "invalidated"

    def __str__(self) -> str:
        return self.value


class LanguageMode(str, Enum):
    CHARACTER = "char"
    SUBWORD = "bpe"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LanguageProfile:
    language: str
    mode: LanguageMode
    has_word_segmenter: bool = False

    @property
    def ngram_orders(self) -> Tuple[int, ...]:
        # 3-gram is used to build HLG; 4-gram is used for LM rescoring.
        if self.mode == LanguageMode.CHARACTER:
            return (3,)
        return (3, 4)

    @property
    def graph_ngram_order(self) -> int:
        return 3


def language_profile(language: str) -> LanguageProfile:
    """Resolves the processing mode of ``language``; the result only depends on the language code."""
    if language in CHARACTER_MODE_LANGUAGES:
        return LanguageProfile(
            language=language,
            mode=LanguageMode.CHARACTER,
            has_word_segmenter=language in WORD_SEGMENTED_LANGUAGES,
        )
    return LanguageProfile(language=language, mode=LanguageMode.SUBWORD)


@dataclass
class GlobalConfig:
    """
    All the parameters the pipeline is run with.
    Call :meth:`validate` before using it; :func:`cvprep.pipeline.run_pipeline` does it for you.
    """

    language: str
    num_workers: int = 24
    # Split the train cuts into this number of pieces to avoid OOM during feature extraction.
    num_splits: int = 1000
    use_validated: bool = False
    use_invalidated: bool = False
    perturb_speed: bool = False
    vocab_sizes: List[int] = field(default_factory=lambda: [500])
    # Defaults to ``recipe_dir/data``, which is where the recipe scripts write to.
    data_dir: Optional[Path] = None
    dl_dir: Path = Path("download")
    release: str = DEFAULT_RELEASE
    recipe_dir: Path = Path(".")
    batch_duration: float = 200.0
    strict_combine: bool = True
    download_commonvoice: bool = False

    def __post_init__(self):
        for name in ("data_dir", "dl_dir", "recipe_dir"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, Path(value))
        if self.data_dir is None:
            self.data_dir = self.recipe_dir / "data"
        if isinstance(self.vocab_sizes, tuple):
            self.vocab_sizes = list(self.vocab_sizes)

    @property
    def profile(self) -> LanguageProfile:
        return language_profile(self.language)

    @property
    def variants(self) -> List[DatasetVariant]:
        """Enabled dataset variants in processing order."""
        variants = [DatasetVariant.TRAIN]
        if self.use_validated:
            variants.append(DatasetVariant.VALIDATED)
        if self.use_invalidated:
            variants.append(DatasetVariant.INVALIDATED)
        return variants

    def validate(self) -> "GlobalConfig":
        if not isinstance(self.language, str) or not self.language.strip():
            raise ConfigurationError("language code is required and cannot be empty.")
        if self.language == "-" or any(c in self.language for c in "/.= \t"):
            raise ConfigurationError(
                f"Invalid language code: '{self.language}' (it cannot be '-' "
                f"or contain path separators, dots, '=' or whitespace)."
            )
        for name in ("num_workers", "num_splits"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    f"{name} must be a positive integer (got: {value!r})."
                )
        for name in (
            "use_validated",
            "use_invalidated",
            "perturb_speed",
            "strict_combine",
            "download_commonvoice",
        ):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(
                    f"{name} must be a boolean (got: {getattr(self, name)!r})."
                )
        if not self.vocab_sizes:
            raise ConfigurationError("vocab_sizes must contain at least one value.")
        for size in self.vocab_sizes:
            if isinstance(size, bool) or not isinstance(size, int) or size < 1:
                raise ConfigurationError(
                    f"vocab_sizes must contain positive integers (got: {size!r})."
                )
        if len(set(self.vocab_sizes)) != len(self.vocab_sizes):
            raise ConfigurationError(
                f"vocab_sizes cannot contain duplicates (got: {self.vocab_sizes})."
            )
        if not self.release:
            raise ConfigurationError("release cannot be empty.")
        duration = self.batch_duration
        if not isinstance(duration, (int, float)) or duration <= 0:
            raise ConfigurationError(
                f"batch_duration must be positive (got: {self.batch_duration!r})."
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name in ("data_dir", "dl_dir", "recipe_dir"):
            data[name] = str(data[name])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        if "language" not in data:
            raise ConfigurationError("language code is required and cannot be empty.")
        return cls(**data)

    def to_yaml(self, path: Pathlike) -> None:
        save_to_yaml(self.to_dict(), path)

    @classmethod
    def from_yaml(
        cls, path: Pathlike, overrides: Optional[Dict[str, Any]] = None
    ) -> "GlobalConfig":
        data = load_yaml(path) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Expected a mapping at the top level of {path} (got: {type(data).__name__})."
            )
        data.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return cls.from_dict(data)
