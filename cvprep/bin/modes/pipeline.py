import sys
from typing import List, Optional

import click

from cvprep.bin.modes.cli_base import cli
from cvprep.config import DEFAULT_RELEASE, GlobalConfig, language_profile
from cvprep.errors import ConfigurationError
from cvprep.pipeline import ExitStatus, run_pipeline
from cvprep.utils import Pathlike

__all__ = ["run", "stages"]


@cli.command(context_settings=dict(show_default=True))
@click.argument("stage", type=int)
@click.argument("language")
@click.option("--stop-stage", type=int, default=100, help="Last stage to run.")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file with the pipeline configuration; "
    "the options given on the command line take precedence over it.",
)
@click.option(
    "-j",
    "--num-workers",
    type=int,
    help="Number of parallel workers for manifest preparation and feature extraction [default: 24].",
)
@click.option(
    "--num-splits",
    type=int,
    help="Split the train cuts into this number of pieces "
    "to avoid OOM during feature extraction [default: 1000].",
)
@click.option(
    "--use-validated/--no-use-validated",
    default=None,
    help="Also process the validated set (it includes dev and test utterances).",
)
@click.option(
    "--use-invalidated/--no-use-invalidated",
    default=None,
    help="Also process the invalidated set.",
)
@click.option(
    "--perturb-speed/--no-perturb-speed",
    default=None,
    help="Apply speed perturbation when extracting the train features.",
)
@click.option(
    "--vocab-size",
    "vocab_sizes",
    type=int,
    multiple=True,
    help="BPE vocabulary size; can be given multiple times [default: 500].",
)
@click.option(
    "--data-dir",
    type=click.Path(),
    help="Output directory; the recipe scripts require it to be RECIPE_DIR/data "
    "[default: RECIPE_DIR/data].",
)
@click.option(
    "--dl-dir",
    type=click.Path(),
    help="Where the corpora are downloaded to [default: download].",
)
@click.option(
    "--release", type=str, help=f"CommonVoice release [default: {DEFAULT_RELEASE}]."
)
@click.option(
    "--recipe-dir",
    type=click.Path(),
    help="Directory with the local/ and shared/ recipe scripts [default: .].",
)
@click.option(
    "--batch-duration",
    type=float,
    help="Batch duration (in seconds) for feature extraction [default: 200].",
)
@click.option(
    "--strict-combine/--lenient-combine",
    default=None,
    help="Fail when feature shards are missing instead of combining the available ones "
    "[default: strict].",
)
@click.option(
    "--download-commonvoice/--no-download-commonvoice",
    default=None,
    help="Download the CommonVoice release in stage 0 (it is big; "
    "by default it is expected to be in DL_DIR already).",
)
def run(
    stage: int,
    language: str,
    stop_stage: int,
    config_path: Optional[Pathlike],
    num_workers: Optional[int],
    num_splits: Optional[int],
    use_validated: Optional[bool],
    use_invalidated: Optional[bool],
    perturb_speed: Optional[bool],
    vocab_sizes: List[int],
    data_dir: Optional[Pathlike],
    dl_dir: Optional[Pathlike],
    release: Optional[str],
    recipe_dir: Optional[Pathlike],
    batch_duration: Optional[float],
    strict_combine: Optional[bool],
    download_commonvoice: Optional[bool],
):
    """
    Run the CommonVoice data preparation stages STAGE to --stop-stage for LANGUAGE.

    Units of work completed in a previous run are skipped. Exits with 0 on success,
    1 when a stage fails and 2 when the configuration is invalid.

    \b
    Stages:
      0: Download data
      1: Prepare CommonVoice manifest
      2: Prepare musan manifest
      3: Preprocess CommonVoice manifest
      4: Compute fbank for dev and test subsets
      5: Split train subset into N pieces
      6: Compute features for train subset
      7: Combine features for train
      8: Compute fbank for musan
      9: Prepare char/BPE based lang
      10: Prepare G
      11: Compile HLG
      12: Compile LG
    """
    overrides = dict(
        language=language,
        num_workers=num_workers,
        num_splits=num_splits,
        use_validated=use_validated,
        use_invalidated=use_invalidated,
        perturb_speed=perturb_speed,
        vocab_sizes=list(vocab_sizes) or None,
        data_dir=data_dir,
        dl_dir=dl_dir,
        release=release,
        recipe_dir=recipe_dir,
        batch_duration=batch_duration,
        strict_combine=strict_combine,
        download_commonvoice=download_commonvoice,
    )
    try:
        if config_path is not None:
            config = GlobalConfig.from_yaml(config_path, overrides=overrides)
        else:
            config = GlobalConfig.from_dict(
                {k: v for k, v in overrides.items() if v is not None}
            )
    except ConfigurationError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(int(ExitStatus.CONFIG_ERROR))

    report = run_pipeline(stage, stop_stage, config)
    if report.exit_status == ExitStatus.CONFIG_ERROR:
        click.echo(f"Invalid configuration: {report.error}", err=True)
    elif report.exit_status == ExitStatus.STAGE_FAILED:
        click.echo(str(report.error), err=True)
    sys.exit(int(report.exit_status))


@cli.command()
@click.argument("language")
def stages(language: str):
    """Print the stages of the pipeline and how LANGUAGE is going to be processed."""
    from tabulate import tabulate

    from cvprep.stages import PIPELINE

    profile = language_profile(language)
    click.echo(
        f"Language '{language}' is modelled with {profile.mode} units "
        f"(n-gram orders: {', '.join(map(str, profile.ngram_orders))})."
    )
    click.echo(
        tabulate(
            [[s.index, s.name, s.description] for s in PIPELINE],
            headers=["Stage", "Name", "Description"],
        )
    )
