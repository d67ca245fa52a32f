"""
Lexicon, n-gram LM and decoding graph preparation.

Languages written with a logographic script (see
:data:`~cvprep.config.CHARACTER_MODE_LANGUAGES`) are modelled with characters and
get a single ``lang_char`` directory; all the other languages get a BPE model and a
``lang_bpe_<vocab_size>`` directory for every configured vocabulary size.
The two flavours are implemented by :class:`CharLangBuilder` and :class:`BpeLangBuilder`.
"""
import logging
import shutil
from abc import ABCMeta, abstractmethod
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional

from cvprep.config import DatasetVariant, LanguageMode
from cvprep.errors import ConfigurationError
from cvprep.layout import ArtifactLayout
from cvprep.stages.base import PIPELINE, StageContext
from cvprep.text import (
    write_supervision_texts,
    write_transcript_words,
    write_word_table,
)


class LangBuilder(metaclass=ABCMeta):
    mode: LanguageMode

    def __init__(self, ctx: StageContext) -> None:
        self.ctx = ctx
        self.tools = ctx.tools
        self.language = ctx.config.language

    @property
    @abstractmethod
    def lang_dirs(self) -> List[Path]:
        ...

    @abstractmethod
    def prepare_lang(self) -> None:
        ...

    @abstractmethod
    def prepare_lm(self) -> None:
        ...

    @abstractmethod
    def compile_hlg(self) -> None:
        ...

    @abstractmethod
    def compile_lg(self) -> None:
        ...

    def build_ngram(
        self,
        lang_dir: Path,
        order: int,
        arpa: Path,
        fst: Path,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Estimates an ARPA n-gram LM on the transcripts and converts it to an FST in text format."""
        lm_dir = ArtifactLayout.lm_dir(lang_dir)
        lm_dir.mkdir(parents=True, exist_ok=True)
        params = {**(params or {}), "order": order}
        transcript = lang_dir / "transcript_words.txt"
        self.ctx.run_unit(
            self.ctx.unit(
                lm_dir, "arpa", params=params, inputs=[transcript], outputs=[arpa]
            ),
            partial(self.tools.estimate_ngram, order, transcript, arpa),
        )
        words = lang_dir / "words.txt"
        self.ctx.run_unit(
            self.ctx.unit(
                lm_dir, "G", params=params, inputs=[words, arpa], outputs=[fst]
            ),
            partial(self.tools.arpa_to_fst, words, order, arpa, fst),
        )


class CharLangBuilder(LangBuilder):
    mode = LanguageMode.CHARACTER

    @property
    def lang_dir(self) -> Path:
        return self.ctx.layout.lang_dir(self.mode)

    @property
    def lang_dirs(self) -> List[Path]:
        return [self.lang_dir]

    @property
    def lm_dir(self) -> Path:
        return ArtifactLayout.lm_dir(self.lang_dir)

    def source_variants(self) -> List[DatasetVariant]:
        """The variants whose transcripts the lexicon and the LMs are built from."""
        cfg = self.ctx.config
        if cfg.use_validated:
            variants = [DatasetVariant.VALIDATED]
        else:
            variants = [DatasetVariant.TRAIN]
        if cfg.use_invalidated:
            variants.append(DatasetVariant.INVALIDATED)
        return variants

    def text_sources(self) -> List[Path]:
        return [self.ctx.layout.supervisions(v) for v in self.source_variants()]

    @property
    def params(self) -> Dict[str, Any]:
        # Every unit downstream of the transcripts depends on where they came from.
        return {"sources": "-".join(v.value for v in self.source_variants())}

    def g_name(self, order: int) -> str:
        return f"G_{order}_gram_char"

    def prepare_lang(self) -> None:
        if not self.ctx.profile.has_word_segmenter:
            raise ConfigurationError(
                f"Word segmentation for '{self.language}' is not implemented yet; "
                f"cannot prepare {self.lang_dir}."
            )
        lang_dir = self.lang_dir
        lang_dir.mkdir(parents=True, exist_ok=True)
        # The raw transcripts, before word segmentation.
        raw_text = lang_dir / "_text"
        transcript = lang_dir / "transcript_words.txt"
        text = lang_dir / "text"

        sources = self.text_sources()
        self.ctx.run_unit(
            self.ctx.unit(
                lang_dir,
                "text",
                params=self.params,
                inputs=sources,
                outputs=[raw_text],
            ),
            partial(write_supervision_texts, sources, raw_text),
        )
        self.ctx.run_unit(
            self.ctx.unit(
                lang_dir,
                "segment",
                params=self.params,
                inputs=[raw_text],
                outputs=[transcript, text],
            ),
            partial(self.segment, raw_text, transcript, text),
        )
        self.ctx.run_unit(
            self.ctx.unit(
                lang_dir,
                "char-lexicon",
                params=self.params,
                inputs=[text],
                outputs=[lang_dir / "tokens.txt"],
            ),
            partial(self.tools.prepare_char_lang, lang_dir),
        )

    def segment(self, raw_text: Path, transcript: Path, text: Path) -> None:
        # Produces transcript_words.txt and words.txt in the lang dir.
        self.tools.segment_words(self.language, raw_text, self.lang_dir)
        if transcript.is_file():
            shutil.copyfile(transcript, text)

    def prepare_lm(self) -> None:
        for order in self.ctx.profile.ngram_orders:
            fst = self.lm_dir / f"{self.g_name(order)}.fst.txt"
            self.build_ngram(
                self.lang_dir,
                order,
                arpa=self.lm_dir / f"{order}gram.unpruned.arpa",
                fst=fst,
                params=self.params,
            )
            self.ctx.run_unit(
                self.ctx.unit(
                    self.lm_dir,
                    "lang-fst",
                    params={**self.params, "order": order},
                    inputs=[fst],
                    outputs=[self.lm_dir / "HLG.fst"],
                ),
                partial(self.tools.prepare_lang_fst, self.lang_dir, fst),
            )

    def _compile(self, graph: str, compile_fn) -> None:
        order = self.ctx.profile.graph_ngram_order
        self.ctx.run_unit(
            self.ctx.unit(
                self.lm_dir,
                graph,
                params={**self.params, "order": order},
                inputs=[self.lm_dir / f"{self.g_name(order)}.fst.txt"],
                outputs=[self.lm_dir / f"{graph}_{order}.fst"],
            ),
            partial(compile_fn, self.lang_dir, lm=self.g_name(order)),
        )

    def compile_hlg(self) -> None:
        self._compile("HLG", self.tools.compile_hlg)

    def compile_lg(self) -> None:
        self._compile("LG", self.tools.compile_lg)


class BpeLangBuilder(LangBuilder):
    mode = LanguageMode.SUBWORD

    @property
    def vocab_sizes(self) -> List[int]:
        return list(self.ctx.config.vocab_sizes)

    def lang_dir(self, vocab_size: int) -> Path:
        return self.ctx.layout.lang_dir(self.mode, vocab_size)

    @property
    def lang_dirs(self) -> List[Path]:
        return [self.lang_dir(size) for size in self.vocab_sizes]

    def prepare_lang(self) -> None:
        for vocab_size in self.vocab_sizes:
            self.prepare_vocab(vocab_size)

    def prepare_vocab(self, vocab_size: int) -> None:
        ctx = self.ctx
        lang_dir = self.lang_dir(vocab_size)
        lang_dir.mkdir(parents=True, exist_ok=True)
        params = {"vocab": vocab_size}
        cuts = ctx.layout.cuts(DatasetVariant.TRAIN)
        transcript = lang_dir / "transcript_words.txt"
        words = lang_dir / "words.txt"
        bpe_model = lang_dir / "bpe.model"
        lexicon = lang_dir / "lexicon.txt"

        logging.info(f"Generate data for BPE training in {lang_dir}")
        ctx.run_unit(
            ctx.unit(
                lang_dir,
                "transcript",
                params=params,
                inputs=[cuts],
                outputs=[transcript],
            ),
            partial(write_transcript_words, cuts, transcript),
        )
        ctx.run_unit(
            ctx.unit(
                lang_dir, "words", params=params, inputs=[transcript], outputs=[words]
            ),
            partial(write_word_table, transcript, words),
        )
        ctx.run_unit(
            ctx.unit(
                lang_dir,
                "bpe-model",
                params=params,
                inputs=[transcript],
                outputs=[bpe_model],
            ),
            partial(self.tools.train_bpe, lang_dir, vocab_size, transcript),
        )
        ctx.run_unit(
            ctx.unit(
                lang_dir,
                "bpe-lexicon",
                params=params,
                inputs=[bpe_model, words],
                outputs=[lexicon, lang_dir / "L.pt", lang_dir / "L_disambig.pt"],
            ),
            partial(self.prepare_lexicon, lang_dir, lexicon, bpe_model),
        )
        for name in ("L", "L_disambig"):
            src, dst = lang_dir / f"{name}.pt", lang_dir / f"{name}.fst"
            ctx.run_unit(
                ctx.unit(
                    lang_dir,
                    f"{name}-fst",
                    params=params,
                    inputs=[src],
                    outputs=[dst],
                ),
                partial(self.tools.convert_to_openfst, src, dst),
            )

    def prepare_lexicon(self, lang_dir: Path, lexicon: Path, bpe_model: Path) -> None:
        self.tools.prepare_bpe_lang(lang_dir)
        logging.info(f"Validating {lexicon}")
        self.tools.validate_bpe_lexicon(lexicon, bpe_model)

    def prepare_lm(self) -> None:
        # 3-gram is used in building HLG, 4-gram is used for LM rescoring.
        for vocab_size in self.vocab_sizes:
            lang_dir = self.lang_dir(vocab_size)
            lm_dir = ArtifactLayout.lm_dir(lang_dir)
            for order in self.ctx.profile.ngram_orders:
                self.build_ngram(
                    lang_dir,
                    order,
                    arpa=lm_dir / f"{order}gram.arpa",
                    fst=lm_dir / f"G_{order}_gram.fst.txt",
                    params={"vocab": vocab_size},
                )

    def _compile(self, graph: str, compile_fn) -> None:
        order = self.ctx.profile.graph_ngram_order
        for vocab_size in self.vocab_sizes:
            lang_dir = self.lang_dir(vocab_size)
            lm_dir = ArtifactLayout.lm_dir(lang_dir)
            self.ctx.run_unit(
                self.ctx.unit(
                    lang_dir,
                    graph,
                    params={"vocab": vocab_size},
                    inputs=[
                        lang_dir / "L_disambig.pt",
                        lm_dir / f"G_{order}_gram.fst.txt",
                    ],
                    outputs=[lang_dir / f"{graph}.pt"],
                ),
                partial(compile_fn, lang_dir),
            )

    def compile_hlg(self) -> None:
        # If this runs out of memory, compile_hlg_using_openfst.py is an alternative.
        self._compile("HLG", self.tools.compile_hlg)

    def compile_lg(self) -> None:
        self._compile("LG", self.tools.compile_lg)


def lang_builder(ctx: StageContext) -> LangBuilder:
    if ctx.profile.mode == LanguageMode.CHARACTER:
        return CharLangBuilder(ctx)
    return BpeLangBuilder(ctx)


@PIPELINE.stage(9, "lang", "Prepare char/BPE based lang")
def prepare_lang(ctx: StageContext) -> None:
    builder = lang_builder(ctx)
    logging.info(f"Preparing {builder.mode} based lang in {builder.lang_dirs}")
    builder.prepare_lang()


@PIPELINE.stage(10, "lm", "Prepare G")
def prepare_lm(ctx: StageContext) -> None:
    lang_builder(ctx).prepare_lm()


@PIPELINE.stage(11, "hlg", "Compile HLG")
def compile_hlg(ctx: StageContext) -> None:
    lang_builder(ctx).compile_hlg()


@PIPELINE.stage(12, "lg", "Compile LG")
def compile_lg(ctx: StageContext) -> None:
    # LG is used by fast_beam_search decoding of RNN-T models.
    lang_builder(ctx).compile_lg()
