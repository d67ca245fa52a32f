import logging
from functools import partial

from cvprep.config import DatasetVariant
from cvprep.manipulation import combine_shards, shard_path, split_manifest
from cvprep.stages.base import PIPELINE, StageContext
from cvprep.stages.corpus import parts_of


@PIPELINE.stage(3, "preprocess", "Preprocess CommonVoice manifest")
def preprocess(ctx: StageContext) -> None:
    cfg, layout = ctx.config, ctx.layout
    layout.fbank_dir.mkdir(parents=True, exist_ok=True)
    for variant in cfg.variants:
        parts = parts_of(variant)
        ctx.run_unit(
            ctx.unit(
                layout.fbank_dir,
                "preprocess",
                variant=variant,
                inputs=[layout.supervisions(p) for p in parts]
                + [layout.recordings(p) for p in parts],
                outputs=[layout.raw_cuts(p) for p in parts],
            ),
            partial(
                ctx.tools.preprocess_manifests,
                cfg.language,
                dataset=None if variant == DatasetVariant.TRAIN else variant.value,
            ),
        )


@PIPELINE.stage(4, "fbank-dev-test", "Compute fbank for dev and test subsets")
def compute_fbank_dev_test(ctx: StageContext) -> None:
    layout = ctx.layout
    ctx.run_unit(
        ctx.unit(
            layout.fbank_dir,
            "fbank-dev-test",
            inputs=[layout.raw_cuts("dev"), layout.raw_cuts("test")],
            outputs=[layout.cuts("dev"), layout.cuts("test")],
        ),
        partial(ctx.tools.compute_fbank_dev_test, ctx.config.language),
    )


@PIPELINE.stage(5, "split", "Split train subset into N pieces")
def split(ctx: StageContext) -> None:
    cfg, layout = ctx.config, ctx.layout
    for variant in cfg.variants:
        split_dir = layout.split_dir(variant)
        prefix = layout.raw_shard_prefix(variant)
        ctx.run_unit(
            ctx.unit(
                split_dir,
                "split",
                variant=variant,
                inputs=[layout.raw_cuts(variant)],
                outputs=[
                    shard_path(split_dir, prefix, idx, cfg.num_splits)
                    for idx in range(1, cfg.num_splits + 1)
                ],
            ),
            partial(
                split_manifest,
                layout.raw_cuts(variant),
                split_dir,
                cfg.num_splits,
            ),
        )


@PIPELINE.stage(6, "fbank-train", "Compute features for train subset")
def compute_fbank_train(ctx: StageContext) -> None:
    cfg, layout = ctx.config, ctx.layout
    for variant in cfg.variants:
        split_dir = layout.split_dir(variant)
        prefix = layout.shard_prefix(variant)
        ctx.run_unit(
            ctx.unit(
                layout.fbank_dir,
                "fbank",
                variant=variant,
                inputs=[split_dir],
                outputs=[
                    shard_path(split_dir, prefix, idx, cfg.num_splits)
                    for idx in range(1, cfg.num_splits + 1)
                ],
            ),
            partial(
                ctx.tools.compute_fbank_splits,
                cfg.language,
                subset=variant.value,
                num_workers=cfg.num_workers,
                batch_duration=cfg.batch_duration,
                num_splits=cfg.num_splits,
                perturb_speed=cfg.perturb_speed,
                start=0,
            ),
        )


@PIPELINE.stage(7, "combine", "Combine features for train")
def combine(ctx: StageContext) -> None:
    cfg, layout = ctx.config, ctx.layout
    for variant in cfg.variants:
        if not cfg.strict_combine:
            logging.info(f"Combining the {variant} shards leniently.")
        ctx.run_unit(
            ctx.unit(
                layout.fbank_dir,
                "combine",
                variant=variant,
                inputs=[layout.split_dir(variant)],
                outputs=[layout.cuts(variant)],
            ),
            partial(
                combine_shards,
                layout.split_dir(variant),
                layout.shard_prefix(variant),
                layout.cuts(variant),
                expected=cfg.num_splits,
                strict=cfg.strict_combine,
            ),
        )


@PIPELINE.stage(8, "fbank-musan", "Compute fbank for musan")
def compute_fbank_musan(ctx: StageContext) -> None:
    layout = ctx.layout
    layout.shared_fbank_dir.mkdir(parents=True, exist_ok=True)
    ctx.run_unit(
        ctx.unit(
            layout.shared_fbank_dir,
            "fbank-musan",
            language=None,
            inputs=[layout.shared_manifests_dir],
            outputs=[layout.musan_cuts],
        ),
        ctx.tools.compute_fbank_musan,
    )
