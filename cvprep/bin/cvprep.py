#!/usr/bin/env python3
"""
Use this script like: cvprep run 0 en --stop-stage 12
"""

# Note: we import all the CLI modes here so they get auto-registered
#       in the main CLI entry-point. Then, setuptools is told to
#       invoke the "cli()" method from this script.
from cvprep.bin.modes import *

if __name__ == "__main__":
    cli()
