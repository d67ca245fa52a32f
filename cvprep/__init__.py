from .config import DatasetVariant, GlobalConfig, LanguageMode, language_profile
from .errors import (
    ConfigurationError,
    ExternalToolFailure,
    MalformedArtifact,
    MissingShard,
    MissingUpstreamArtifact,
    PipelineError,
    StageFailure,
)
from .layout import ArtifactLayout
from .manipulation import (
    combine_manifests,
    combine_shards,
    discover_shards,
    split_manifest,
)
from .markers import FileMarkerStore, InMemoryMarkerStore, MarkerStore, make_marker_id
from .pipeline import ExitStatus, PipelineReport, run_pipeline
from .stages import PIPELINE

try:
    # Try to get the version (should be created during running pip install / python setup.py ...)
    from .version import __version__
except ImportError:
    # Use a default placeholder when the version is unavailable...
    from os import environ as _environ
    from pathlib import Path as _Path

    _base_version_path = _Path(__file__).parent.parent / "VERSION"
    if _base_version_path.is_file():
        _base_version = _base_version_path.read_text().strip()
        _dev_marker = ""
        if not _environ.get("CVPREP_PREPARING_RELEASE", False):
            _dev_marker = ".dev"
        __version__ = f"{_base_version}{_dev_marker}+missing.version.file"
    else:
        __version__ = f"0.0.0+unknown.version"
