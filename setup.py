import os
import sys
from pathlib import Path
from subprocess import DEVNULL, PIPE, run

from setuptools import find_packages, setup

project_root = Path(__file__).parent

# !!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!! #
# NOTE: REMEMBER TO UPDATE THE VERSION FILE WHEN RELEASING                           #
# !!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!!! #
VERSION = open(project_root / "VERSION").read().strip()
IS_DEV_VERSION = not bool(
    os.environ.get("CVPREP_PREPARING_RELEASE", False)
)  # False = public release, True = otherwise


if sys.version_info < (3, 8):
    print("Python 3.7 and older are not supported by cvprep.")
    sys.exit(-1)


def discover_cvprep_version() -> str:
    """
    Determines the current version from the VERSION file.
    When development version is detected, it queries git for the commit hash
    to append it as a local version identifier.

    The determined version is written into project_root / 'cvprep' / 'version.py'
    during setup and read from there when cvprep is imported.
    """

    version = VERSION
    if not IS_DEV_VERSION:
        # This is a PyPI public release -- return a clean version string.
        return version

    version = version + ".dev"

    # This is not a PyPI release -- try to read the git commit
    try:
        git_commit = (
            run(
                ["git", "rev-parse", "--short", "HEAD"],
                check=True,
                stdout=PIPE,
                stderr=DEVNULL,
            )
            .stdout.decode()
            .strip()
        )
        dirty_commit = (
            len(
                run(
                    ["git", "diff", "--shortstat"],
                    check=True,
                    stdout=PIPE,
                    stderr=DEVNULL,
                )
                .stdout.decode()
                .strip()
            )
            > 0
        )
        git_commit = git_commit + ".dirty" if dirty_commit else git_commit + ".clean"
        source_version = f"+git.{git_commit}"
    except Exception:
        source_version = "+unknownsource"
    # See the format:
    # https://packaging.python.org/guides/distributing-packages-using-setuptools/#local-version-identifiers
    version = version + source_version

    return version


def mark_cvprep_version(version: str) -> None:
    (project_root / "cvprep" / "version.py").write_text(f'__version__ = "{version}"')


CVPREP_VERSION = discover_cvprep_version()
mark_cvprep_version(CVPREP_VERSION)


install_requires = [
    "click>=7.1.1",
    "cytoolz>=0.10.1",
    "pyyaml>=5.3.1",
    "tabulate>=0.8.1",
    "tqdm",
]

tests_require = [
    "pytest>=7.1.3",
    "pytest-cov>=4.0.0",
    "flake8>=5.0.4",
    "black>=22.3.0",
    "isort>=5.10.1",
]
orjson_requires = ["orjson>=3.6.6"]
dev_requires = sorted(tests_require + orjson_requires)
all_requires = sorted(dev_requires)

setup(
    name="cvprep",
    version=CVPREP_VERSION,
    python_requires=">=3.8.0",
    description="Resumable data preparation pipeline for CommonVoice speech recognition recipes.",
    author="The cvprep Development Team",
    long_description=(project_root / "README.md").read_text(encoding="utf-8"),
    long_description_content_type="text/markdown",
    license="Apache-2.0 License",
    packages=find_packages(exclude=["test", "test.*"]),
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "cvprep=cvprep.bin.cvprep:cli",
        ]
    },
    install_requires=install_requires,
    extras_require={
        "orjson": orjson_requires,
        "tests": tests_require,
        "dev": dev_requires,
        "all": all_requires,
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Intended Audience :: Science/Research",
        "Operating System :: POSIX :: Linux",
        "License :: OSI Approved :: Apache Software License",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
)
