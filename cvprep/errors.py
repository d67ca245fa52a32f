from pathlib import Path
from typing import List, Optional, Sequence, Union

from cvprep.utils import Pathlike


class PipelineError(Exception):
    """Base class for all errors raised by the pipeline when a unit of work cannot complete."""

    pass


class ConfigurationError(PipelineError, ValueError):
    pass


class MissingUpstreamArtifact(PipelineError):
    def __init__(self, path: Pathlike, hint: Optional[str] = None) -> None:
        self.path = Path(path)
        msg = f"Required artifact is missing: {self.path}"
        if hint:
            msg = f"{msg} ({hint})"
        super().__init__(msg)


class ExternalToolFailure(PipelineError):
    def __init__(
        self,
        command: Union[str, Sequence[str]],
        returncode: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.command = command if isinstance(command, str) else " ".join(command)
        self.returncode = returncode
        msg = f"External tool failed: '{self.command}'"
        if returncode is not None:
            msg = f"{msg} (exit code {returncode})"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class MissingShard(PipelineError):
    def __init__(
        self, shard_dir: Pathlike, expected: int, found: int, missing: List[int]
    ) -> None:
        self.shard_dir = Path(shard_dir)
        self.expected = expected
        self.found = found
        self.missing = missing
        preview = ", ".join(str(idx) for idx in missing[:10])
        if len(missing) > 10:
            preview += ", ..."
        super().__init__(
            f"Expected {expected} shards in {self.shard_dir} but found {found} "
            f"(missing indices: {preview})"
        )


class MalformedArtifact(PipelineError):
    pass


class StageFailure(PipelineError):
    def __init__(self, index: int, description: str, cause: BaseException) -> None:
        self.index = index
        self.description = description
        self.cause = cause
        super().__init__(f"Stage {index} ({description}) failed: {cause}")
