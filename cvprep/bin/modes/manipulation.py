from pathlib import Path

import click

from cvprep.bin.modes.cli_base import cli
from cvprep.utils import Pathlike

__all__ = ["split", "combine"]


@cli.command()
@click.argument("num_splits", type=int)
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False))
@click.argument("output_dir", type=click.Path())
def split(num_splits: int, manifest: Pathlike, output_dir: Pathlike):
    """
    Split MANIFEST into NUM_SPLITS contiguous parts and save them as separate manifests in OUTPUT_DIR.

    The parts are named like MANIFEST with a 1-based, zero-padded index inserted before the
    ".jsonl.gz" suffix, e.g. "cuts.0001.jsonl.gz" for 1000 splits.
    """
    from cvprep.manipulation import split_manifest

    shards = split_manifest(Path(manifest), Path(output_dir), num_splits)
    click.echo(
        f"Wrote {shards.num_items} items into {shards.num_shards} pieces in {output_dir}"
    )


@cli.command()
@click.argument("manifests", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.argument("output_manifest", type=click.Path())
def combine(manifests: Pathlike, output_manifest: Pathlike):
    """Load MANIFESTS, combine them into a single one, and write it to OUTPUT_MANIFEST."""
    from cvprep.manipulation import combine_manifests

    combine_manifests(manifests, output_manifest)
