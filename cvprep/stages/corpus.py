import logging
from functools import partial
from pathlib import Path

from cvprep.config import DatasetVariant
from cvprep.stages.base import PIPELINE, StageContext
from cvprep.text import write_supervision_ids

# The parts that ``lhotse prepare commonvoice`` produces for the primary variant.
PRIMARY_PARTS = ("train", "dev", "test")


def commonvoice_dir(ctx: StageContext) -> Path:
    """``$dl_dir/$release``: the directory that holds one sub-directory per language."""
    return ctx.config.dl_dir / ctx.config.release


def musan_dir(ctx: StageContext) -> Path:
    return ctx.config.dl_dir / "musan"


def parts_of(variant: DatasetVariant):
    if variant == DatasetVariant.TRAIN:
        return PRIMARY_PARTS
    return (variant.value,)


def _maybe_download(ctx: StageContext, corpus: str, present: Path, **kwargs) -> None:
    if present.exists():
        # Pre-downloaded (or symlinked) corpora are used as they are.
        logging.info(f"Found {present}, not downloading {corpus}.")
        return
    ctx.tools.download_corpus(corpus, ctx.config.dl_dir, **kwargs)


@PIPELINE.stage(0, "download", "Download data")
def download(ctx: StageContext) -> None:
    cfg = ctx.config
    logging.info(f"dl_dir: {cfg.dl_dir}")
    if cfg.download_commonvoice:
        clips = commonvoice_dir(ctx) / cfg.language / "clips"
        ctx.run_unit(
            ctx.unit(
                ctx.layout.lang_root,
                "download",
                params={"release": cfg.release.replace(".", "_")},
                outputs=[clips],
            ),
            partial(
                _maybe_download,
                ctx,
                "commonvoice",
                clips,
                languages=[cfg.language],
                release=cfg.release,
            ),
        )
    ctx.run_unit(
        ctx.unit(
            ctx.layout.data_dir,
            "download-musan",
            language=None,
            outputs=[musan_dir(ctx)],
        ),
        partial(_maybe_download, ctx, "musan", musan_dir(ctx)),
    )


@PIPELINE.stage(1, "manifests", "Prepare CommonVoice manifest")
def prepare_manifests(ctx: StageContext) -> None:
    cfg, layout = ctx.config, ctx.layout
    layout.manifests_dir.mkdir(parents=True, exist_ok=True)
    for variant in cfg.variants:
        parts = parts_of(variant)
        if variant != DatasetVariant.TRAIN:
            logging.info(f"Also prepare {variant} data")
        ctx.run_unit(
            ctx.unit(
                layout.manifests_dir,
                "manifests",
                variant=variant,
                inputs=[commonvoice_dir(ctx) / cfg.language],
                outputs=[layout.supervisions(p) for p in parts]
                + [layout.recordings(p) for p in parts],
            ),
            partial(
                ctx.tools.prepare_manifests,
                "commonvoice",
                commonvoice_dir(ctx),
                layout.manifests_dir,
                language=cfg.language,
                splits=parts,
                num_jobs=cfg.num_workers,
            ),
        )

    if cfg.use_validated:
        # The validated set includes dev and test utterances;
        # their ids are needed later to exclude them from training.
        logging.info("Getting cut ids from dev/test sets for later use")
        for part in ("dev", "test"):
            ctx.run_unit(
                ctx.unit(
                    layout.manifests_dir,
                    "cut-ids",
                    params={"part": part},
                    inputs=[layout.supervisions(part)],
                    outputs=[layout.cut_ids(part)],
                ),
                partial(
                    write_supervision_ids,
                    layout.supervisions(part),
                    layout.cut_ids(part),
                ),
            )


@PIPELINE.stage(2, "musan-manifests", "Prepare musan manifest")
def prepare_musan_manifests(ctx: StageContext) -> None:
    layout = ctx.layout
    layout.shared_manifests_dir.mkdir(parents=True, exist_ok=True)
    ctx.run_unit(
        ctx.unit(
            layout.shared_manifests_dir,
            "musan",
            language=None,
            inputs=[musan_dir(ctx)],
        ),
        partial(
            ctx.tools.prepare_manifests,
            "musan",
            musan_dir(ctx),
            layout.shared_manifests_dir,
        ),
    )
