import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from cvprep.config import GlobalConfig, LanguageProfile
from cvprep.errors import ExternalToolFailure, MissingUpstreamArtifact
from cvprep.layout import ArtifactLayout
from cvprep.markers import MarkerStore, UnitOfWork, unit
from cvprep.tools.base import Toolkit


@dataclass
class StageResult:
    """Marker ids of the units of work a stage ran, and of those it skipped because they were complete."""

    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass
class StageContext:
    """Everything a stage body needs: the configuration, where things go, the tools and the markers."""

    config: GlobalConfig
    layout: ArtifactLayout
    tools: Toolkit
    markers: MarkerStore
    result: StageResult = field(default_factory=StageResult)

    @property
    def profile(self) -> LanguageProfile:
        return self.config.profile

    def unit(self, directory: Path, stage: str, **kwargs) -> UnitOfWork:
        """
        Creates a unit of work whose marker lives in ``directory``
        (which has to be inside the data directory).
        The language is filled in from the configuration unless given explicitly.
        """
        namespace = Path(directory).relative_to(self.layout.data_dir)
        kwargs.setdefault("language", self.config.language)
        return unit(namespace, stage, **kwargs)

    def run_unit(self, work: UnitOfWork, action: Callable[[], None]) -> bool:
        """
        Runs ``action`` unless ``work`` was already completed.
        The unit is marked as completed only after ``action`` returned
        and all of the unit's outputs exist.

        :return: ``True`` when the action ran, ``False`` when it was skipped.
        """
        marker_id = work.marker_id
        if self.markers.exists(marker_id):
            logging.info(f"Skipping {marker_id} (already completed).")
            self.result.skipped.append(marker_id)
            return False
        for path in work.inputs:
            if not path.exists():
                raise MissingUpstreamArtifact(
                    path, hint=f"required by {marker_id}; did an earlier stage run?"
                )
        logging.debug(f"Running {marker_id}")
        action()
        missing = [str(p) for p in work.outputs if not p.exists()]
        if missing:
            preview = ", ".join(missing[:5])
            if len(missing) > 5:
                preview += f" and {len(missing) - 5} more"
            raise ExternalToolFailure(
                marker_id, reason=f"it finished without producing {preview}"
            )
        self.markers.mark(marker_id, work)
        self.result.executed.append(marker_id)
        return True


StageBody = Callable[[StageContext], None]


@dataclass(frozen=True)
class Stage:
    index: int
    name: str
    description: str
    body: StageBody = field(compare=False, repr=False)

    def run(self, ctx: StageContext) -> StageResult:
        ctx.result = StageResult()
        self.body(ctx)
        return ctx.result


class StageGraph:
    """
    An ordered collection of stages. Stages are registered with a decorator::

        >>> graph = StageGraph()
        >>> @graph.stage(0, "download", "Download data")
        ... def download(ctx: StageContext) -> None:
        ...     ...

    Iteration always yields the stages sorted by their index.
    """

    def __init__(self) -> None:
        self._stages: Dict[int, Stage] = {}

    def add(self, stage: Stage) -> Stage:
        if stage.index < 0:
            raise ValueError(f"Stage index must be non-negative (got: {stage.index})")
        if stage.index in self._stages:
            raise ValueError(
                f"Stage {stage.index} is already registered "
                f"('{self._stages[stage.index].name}')."
            )
        self._stages[stage.index] = stage
        return stage

    def stage(
        self, index: int, name: str, description: str
    ) -> Callable[[StageBody], StageBody]:
        def _register(body: StageBody) -> StageBody:
            self.add(Stage(index=index, name=name, description=description, body=body))
            return body

        return _register

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._stages[idx] for idx in sorted(self._stages))

    def __len__(self) -> int:
        return len(self._stages)

    def __getitem__(self, index: int) -> Stage:
        return self._stages[index]

    def get(self, index: int) -> Optional[Stage]:
        return self._stages.get(index)

    def select(self, start_stage: int, stop_stage: int) -> List[Stage]:
        """Stages with ``start_stage <= index <= stop_stage``, in increasing index order."""
        return [s for s in self if start_stage <= s.index <= stop_stage]


# The stages of the CommonVoice recipe register themselves here when
# ``cvprep.stages`` is imported.
PIPELINE = StageGraph()
