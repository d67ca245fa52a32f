import logging

import click

__all__ = ["cli"]


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Print debug messages.")
def cli(verbose: bool):
    """
    The shell entry point to cvprep, a resumable data preparation pipeline for CommonVoice ASR recipes.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(filename)s:%(lineno)d] %(message)s",
        level=logging.DEBUG if verbose else logging.INFO,
    )
