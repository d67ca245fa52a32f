from abc import ABCMeta, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

from cvprep.utils import Pathlike


class Toolkit(metaclass=ABCMeta):
    """
    The external programs the pipeline delegates its heavy lifting to.
    Every method blocks until the tool finishes and raises
    :class:`~cvprep.errors.ExternalToolFailure` when it does not succeed.

    The pipeline treats them as black boxes: it only decides when they run,
    and checks that the files they are supposed to produce exist afterwards.
    """

    def check(self) -> None:
        """Verifies that the tools can be run at all; raises ConfigurationError otherwise."""
        pass

    # Corpora and manifests.

    @abstractmethod
    def download_corpus(
        self,
        corpus: str,
        target_dir: Pathlike,
        languages: Sequence[str] = (),
        release: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    def prepare_manifests(
        self,
        corpus: str,
        corpus_dir: Pathlike,
        output_dir: Pathlike,
        language: Optional[str] = None,
        splits: Sequence[str] = (),
        num_jobs: int = 1,
    ) -> None:
        ...

    @abstractmethod
    def preprocess_manifests(
        self, language: str, dataset: Optional[str] = None
    ) -> None:
        ...

    # Features.

    @abstractmethod
    def compute_fbank_dev_test(self, language: str) -> None:
        ...

    @abstractmethod
    def compute_fbank_splits(
        self,
        language: str,
        subset: str,
        num_workers: int,
        batch_duration: float,
        num_splits: int,
        perturb_speed: bool,
        start: int = 0,
    ) -> None:
        ...

    @abstractmethod
    def compute_fbank_musan(self) -> None:
        ...

    # Lexicon.

    @abstractmethod
    def segment_words(self, language: str, input_file: Path, output_dir: Path) -> None:
        ...

    @abstractmethod
    def prepare_char_lang(self, lang_dir: Path) -> None:
        ...

    @abstractmethod
    def train_bpe(self, lang_dir: Path, vocab_size: int, transcript: Path) -> None:
        ...

    @abstractmethod
    def prepare_bpe_lang(self, lang_dir: Path) -> None:
        ...

    @abstractmethod
    def validate_bpe_lexicon(self, lexicon: Path, bpe_model: Path) -> None:
        ...

    @abstractmethod
    def convert_to_openfst(self, src: Path, dst: Path) -> None:
        ...

    # Language models and decoding graphs.

    @abstractmethod
    def estimate_ngram(self, order: int, text: Path, lm: Path) -> None:
        ...

    @abstractmethod
    def arpa_to_fst(self, words: Path, order: int, arpa: Path, fst: Path) -> None:
        ...

    @abstractmethod
    def prepare_lang_fst(self, lang_dir: Path, ngram_g: Path) -> None:
        ...

    @abstractmethod
    def compile_hlg(self, lang_dir: Path, lm: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def compile_lg(self, lang_dir: Path, lm: Optional[str] = None) -> None:
        ...
