import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from cvprep.errors import ConfigurationError, ExternalToolFailure
from cvprep.tools.base import Toolkit
from cvprep.tools.env import python_executable, require_executables, tool_env
from cvprep.utils import Pathlike, tmp_path_for

# Which script segments the transcripts of a character-mode language into words.
WORD_SEGMENTERS = {
    "yue": "local/word_segment_yue.py",
    "zh-HK": "local/word_segment_yue.py",
}


def _abs(path: Pathlike) -> str:
    return str(Path(path).resolve())


def _flag(value: bool) -> str:
    return "true" if value else "false"


class ShellToolkit(Toolkit):
    """
    Runs the tools as sub-processes: the ``lhotse`` CLI for corpora and manifests,
    the recipe's ``local/`` and ``shared/`` scripts for everything else,
    and ``kaldilm`` for converting ARPA LMs to FSTs.

    Scripts are executed with ``recipe_dir`` as the working directory;
    the recipe scripts read and write ``data/`` relative to it.
    When ``data_dir`` is given, :meth:`check` makes sure that it is that directory.
    """

    def __init__(
        self,
        recipe_dir: Pathlike = ".",
        python: Optional[str] = None,
        data_dir: Optional[Pathlike] = None,
    ) -> None:
        self.recipe_dir = Path(recipe_dir)
        self.python = python or python_executable()
        self.data_dir = None if data_dir is None else Path(data_dir)

    def check(self) -> None:
        if not self.recipe_dir.is_dir():
            raise ConfigurationError(f"No such recipe directory: {self.recipe_dir}")
        recipe_data_dir = self.recipe_dir / "data"
        if (
            self.data_dir is not None
            and self.data_dir.resolve() != recipe_data_dir.resolve()
        ):
            raise ConfigurationError(
                f"The recipe scripts write to {recipe_data_dir}, "
                f"but the data directory is {self.data_dir}. "
                f"Leave data_dir unset or point it to {recipe_data_dir}."
            )
        require_executables(["ffmpeg", "lhotse"])

    def run(self, command: Sequence[str], stdout: Optional[Path] = None) -> None:
        """
        Runs ``command`` and waits for it to finish.
        When ``stdout`` is given, the output is captured into that file, which only appears
        when the command succeeds.
        """
        command = [str(c) for c in command]
        printable = shlex.join(command) + (f" > {stdout}" if stdout else "")
        logging.info(f"Running: {printable}")
        env = tool_env(self.recipe_dir)
        try:
            if stdout is None:
                proc = subprocess.run(command, cwd=self.recipe_dir, env=env)
            else:
                stdout = Path(stdout)
                stdout.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = tmp_path_for(stdout)
                try:
                    with open(tmp_path, "w") as f:
                        proc = subprocess.run(
                            command, cwd=self.recipe_dir, env=env, stdout=f
                        )
                    if proc.returncode == 0:
                        os.replace(tmp_path, stdout)
                finally:
                    if tmp_path.exists():
                        tmp_path.unlink()
        except OSError as e:
            raise ExternalToolFailure(printable, reason=str(e)) from e
        if proc.returncode != 0:
            raise ExternalToolFailure(printable, returncode=proc.returncode)

    def script(self, name: str, *args) -> List[str]:
        return [self.python, name, *[str(a) for a in args]]

    def download_corpus(
        self,
        corpus: str,
        target_dir: Pathlike,
        languages: Sequence[str] = (),
        release: Optional[str] = None,
    ) -> None:
        command = ["lhotse", "download", corpus]
        for lang in languages:
            command += ["--languages", lang]
        if release is not None:
            command += ["--release", release]
        self.run(command + [_abs(target_dir)])

    def prepare_manifests(
        self,
        corpus: str,
        corpus_dir: Pathlike,
        output_dir: Pathlike,
        language: Optional[str] = None,
        splits: Sequence[str] = (),
        num_jobs: int = 1,
    ) -> None:
        command = ["lhotse", "prepare", corpus]
        for split in splits:
            command += ["--split", split]
        if language is not None:
            command += ["--language", language, "-j", num_jobs]
        self.run(command + [_abs(corpus_dir), _abs(output_dir)])

    def preprocess_manifests(
        self, language: str, dataset: Optional[str] = None
    ) -> None:
        args = ["--language", language]
        if dataset is not None:
            args += ["--dataset", dataset]
        self.run(self.script("local/preprocess_commonvoice.py", *args))

    def compute_fbank_dev_test(self, language: str) -> None:
        self.run(
            self.script(
                "local/compute_fbank_commonvoice_dev_test.py", "--language", language
            )
        )

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
        args = []
        if subset != "train":
            args += ["--subset", subset]
        args += [
            "--num-workers",
            num_workers,
            "--batch-duration",
            batch_duration,
            "--start",
            start,
            "--num-splits",
            num_splits,
            "--language",
            language,
            "--perturb-speed",
            _flag(perturb_speed),
        ]
        self.run(self.script("local/compute_fbank_commonvoice_splits.py", *args))

    def compute_fbank_musan(self) -> None:
        self.run(self.script("local/compute_fbank_musan.py"))

    def segment_words(self, language: str, input_file: Path, output_dir: Path) -> None:
        if language not in WORD_SEGMENTERS:
            raise ConfigurationError(
                f"Word segmentation for '{language}' is not implemented yet."
            )
        self.run(
            self.script(
                WORD_SEGMENTERS[language],
                "--input-file",
                _abs(input_file),
                "--output-dir",
                _abs(output_dir),
                "--lang",
                language,
            )
        )

    def prepare_char_lang(self, lang_dir: Path) -> None:
        self.run(self.script("local/prepare_char.py", "--lang-dir", _abs(lang_dir)))

    def train_bpe(self, lang_dir: Path, vocab_size: int, transcript: Path) -> None:
        self.run(
            self.script(
                "local/train_bpe_model.py",
                "--lang-dir",
                _abs(lang_dir),
                "--vocab-size",
                vocab_size,
                "--transcript",
                _abs(transcript),
            )
        )

    def prepare_bpe_lang(self, lang_dir: Path) -> None:
        self.run(self.script("local/prepare_lang_bpe.py", "--lang-dir", _abs(lang_dir)))

    def validate_bpe_lexicon(self, lexicon: Path, bpe_model: Path) -> None:
        self.run(
            self.script(
                "local/validate_bpe_lexicon.py",
                "--lexicon",
                _abs(lexicon),
                "--bpe-model",
                _abs(bpe_model),
            )
        )

    def convert_to_openfst(self, src: Path, dst: Path) -> None:
        self.run(
            self.script(
                "shared/convert-k2-to-openfst.py",
                "--olabels",
                "aux_labels",
                _abs(src),
                _abs(dst),
            )
        )

    def estimate_ngram(self, order: int, text: Path, lm: Path) -> None:
        self.run(
            self.script(
                "shared/make_kn_lm.py",
                "-ngram-order",
                order,
                "-text",
                _abs(text),
                "-lm",
                _abs(lm),
            )
        )

    def arpa_to_fst(self, words: Path, order: int, arpa: Path, fst: Path) -> None:
        self.run(
            [
                self.python,
                "-m",
                "kaldilm",
                f"--read-symbol-table={_abs(words)}",
                "--disambig-symbol=#0",
                f"--max-order={order}",
                _abs(arpa),
            ],
            stdout=fst,
        )

    def prepare_lang_fst(self, lang_dir: Path, ngram_g: Path) -> None:
        self.run(
            self.script(
                "local/prepare_lang_fst.py",
                "--lang-dir",
                _abs(lang_dir),
                "--ngram-G",
                _abs(ngram_g),
            )
        )

    def compile_hlg(self, lang_dir: Path, lm: Optional[str] = None) -> None:
        args = ["--lang-dir", _abs(lang_dir)]
        if lm is not None:
            args += ["--lm", lm]
        self.run(self.script("local/compile_hlg.py", *args))

    def compile_lg(self, lang_dir: Path, lm: Optional[str] = None) -> None:
        args = ["--lang-dir", _abs(lang_dir)]
        if lm is not None:
            args += ["--lm", lm]
        self.run(self.script("local/compile_lg.py", *args))
