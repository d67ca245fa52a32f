from typing import List

import click

from cvprep.bin.modes.cli_base import cli
from cvprep.markers import FileMarkerStore
from cvprep.utils import Pathlike

__all__ = ["markers"]


@cli.group()
def markers():
    """Group of commands used to inspect and reset the completion markers."""
    pass


@markers.command(name="list")
@click.argument("data_dir", type=click.Path(exists=True, file_okay=False))
def list_markers(data_dir: Pathlike):
    """List the completed units of work recorded in DATA_DIR, grouped by directory."""
    from cytoolz import groupby
    from tabulate import tabulate

    store = FileMarkerStore(data_dir)
    by_dir = groupby(
        lambda marker_id: marker_id.rpartition("/")[0] or ".", store.list()
    )
    if not by_dir:
        click.echo(f"No markers found in {data_dir}")
        return
    rows = []
    for directory in sorted(by_dir):
        for marker_id in by_dir[directory]:
            rows.append([directory, marker_id.rpartition("/")[2]])
    click.echo(tabulate(rows, headers=["Directory", "Marker"]))


@markers.command()
@click.argument("data_dir", type=click.Path(exists=True, file_okay=False))
@click.argument("marker_ids", nargs=-1, required=True)
def invalidate(data_dir: Pathlike, marker_ids: List[str]):
    """
    Delete the markers MARKER_IDS (as printed by "cvprep markers list", relative to DATA_DIR),
    so that the next run repeats these units of work. Downstream markers are left untouched.
    """
    store = FileMarkerStore(data_dir)
    missing = [m for m in marker_ids if not store.invalidate(m)]
    for marker_id in missing:
        click.echo(f"No such marker: {marker_id}", err=True)
    if missing:
        raise SystemExit(1)
