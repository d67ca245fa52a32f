"""
Naming of every artifact the pipeline reads or writes.

All paths are derived from the data directory, the language code and,
where relevant, the dataset variant, vocabulary size or n-gram order::

    data/manifests/                       MUSAN manifests (shared across languages)
    data/fbank/                           MUSAN features (shared across languages)
    data/<lang>/manifests/                CommonVoice manifests
    data/<lang>/fbank/                    CommonVoice cuts and features
    data/<lang>/fbank/cv-<lang>_<variant>_split_<N>/
    data/<lang>/lang_char/                character-mode lexicon, LM and graphs
    data/<lang>/lang_bpe_<size>/          subword-mode lexicon, LM and graphs
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cvprep.config import DatasetVariant, GlobalConfig, LanguageMode

Variant = Union[DatasetVariant, str]


@dataclass(frozen=True)
class ArtifactLayout:
    data_dir: Path
    language: str
    num_splits: int = 1000

    @staticmethod
    def from_config(config: GlobalConfig) -> "ArtifactLayout":
        return ArtifactLayout(
            data_dir=Path(config.data_dir),
            language=config.language,
            num_splits=config.num_splits,
        )

    @property
    def prefix(self) -> str:
        return f"cv-{self.language}"

    # Shared, language-independent artifacts.

    @property
    def shared_manifests_dir(self) -> Path:
        return self.data_dir / "manifests"

    @property
    def shared_fbank_dir(self) -> Path:
        return self.data_dir / "fbank"

    @property
    def musan_cuts(self) -> Path:
        return self.shared_fbank_dir / "musan_cuts.jsonl.gz"

    # Per-language artifacts.

    @property
    def lang_root(self) -> Path:
        return self.data_dir / self.language

    @property
    def manifests_dir(self) -> Path:
        return self.lang_root / "manifests"

    @property
    def fbank_dir(self) -> Path:
        return self.lang_root / "fbank"

    def supervisions(self, part: Variant) -> Path:
        return self.manifests_dir / f"{self.prefix}_supervisions_{part}.jsonl.gz"

    def recordings(self, part: Variant) -> Path:
        return self.manifests_dir / f"{self.prefix}_recordings_{part}.jsonl.gz"

    def cut_ids(self, part: str) -> Path:
        return self.manifests_dir / f"{self.prefix}_{part}_ids"

    def raw_cuts(self, part: Variant) -> Path:
        return self.fbank_dir / f"{self.prefix}_cuts_{part}_raw.jsonl.gz"

    def cuts(self, part: Variant) -> Path:
        return self.fbank_dir / f"{self.prefix}_cuts_{part}.jsonl.gz"

    def split_dir(self, variant: Variant) -> Path:
        return self.fbank_dir / f"{self.prefix}_{variant}_split_{self.num_splits}"

    def raw_shard_prefix(self, variant: Variant) -> str:
        """File name prefix of the shards written by the split stage."""
        return f"{self.prefix}_cuts_{variant}_raw"

    def shard_prefix(self, variant: Variant) -> str:
        """File name prefix of the per-shard feature manifests written by feature extraction."""
        return f"{self.prefix}_cuts_{variant}"

    # Lexicon, LM and decoding graph artifacts.

    def lang_dir(self, mode: LanguageMode, vocab_size: Optional[int] = None) -> Path:
        if mode == LanguageMode.CHARACTER:
            return self.lang_root / "lang_char"
        if vocab_size is None:
            raise ValueError("Subword lang directories require a vocab_size.")
        return self.lang_root / f"lang_bpe_{vocab_size}"

    @staticmethod
    def lm_dir(lang_dir: Path) -> Path:
        return lang_dir / "lm"
