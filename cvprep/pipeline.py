import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional

from cvprep.config import GlobalConfig
from cvprep.errors import ConfigurationError, StageFailure
from cvprep.layout import ArtifactLayout
from cvprep.markers import FileMarkerStore, MarkerStore
from cvprep.stages import PIPELINE, StageContext, StageGraph, StageResult
from cvprep.tools.base import Toolkit


class ExitStatus(IntEnum):
    SUCCESS = 0
    STAGE_FAILED = 1
    CONFIG_ERROR = 2


@dataclass
class PipelineReport:
    exit_status: ExitStatus = ExitStatus.SUCCESS
    executed_stages: List[int] = field(default_factory=list)
    failed_stage: Optional[int] = None
    error: Optional[Exception] = None
    results: Dict[int, StageResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.exit_status == ExitStatus.SUCCESS


def run_pipeline(
    start_stage: int,
    stop_stage: int,
    config: GlobalConfig,
    tools: Optional[Toolkit] = None,
    markers: Optional[MarkerStore] = None,
    graph: StageGraph = PIPELINE,
) -> PipelineReport:
    """
    Runs every stage of ``graph`` whose index is within ``[start_stage, stop_stage]``,
    in increasing index order. Units of work that were completed in an earlier run
    are skipped.

    The first stage that raises stops the run: the error is logged and reported
    through the returned :class:`PipelineReport`, and no later stage is started.
    ``KeyboardInterrupt`` is not caught.

    :param start_stage: index of the first stage to run.
    :param stop_stage: index of the last stage to run.
    :param config: the pipeline configuration; it is validated before anything runs.
    :param tools: the external tools; by default, :class:`~cvprep.tools.ShellToolkit`
        is used with the configured recipe directory.
    :param markers: where completion markers are kept;
        by default, hidden files inside the data directory.
    :param graph: the stages to choose from.
    """
    report = PipelineReport()
    try:
        config.validate()
        if start_stage < 0 or stop_stage < 0:
            raise ConfigurationError(
                f"Stage indices must be non-negative "
                f"(got: stage={start_stage}, stop_stage={stop_stage})."
            )
        if start_stage > stop_stage:
            raise ConfigurationError(
                f"stage ({start_stage}) cannot be larger than stop_stage ({stop_stage})."
            )
        if tools is None:
            from cvprep.tools import ShellToolkit

            tools = ShellToolkit(
                recipe_dir=config.recipe_dir, data_dir=config.data_dir
            )
        tools.check()
    except ConfigurationError as e:
        logging.error(f"Invalid configuration: {e}")
        report.exit_status = ExitStatus.CONFIG_ERROR
        report.error = e
        return report

    if markers is None:
        markers = FileMarkerStore(config.data_dir)

    logging.info(f"Running stages {start_stage} to {stop_stage} for {config.language}")
    logging.info(f"dl_dir: {config.dl_dir}, data_dir: {config.data_dir}")

    ctx = StageContext(
        config=config,
        layout=ArtifactLayout.from_config(config),
        tools=tools,
        markers=markers,
    )
    for stage in graph.select(start_stage, stop_stage):
        logging.info(f"Stage {stage.index}: {stage.description}")
        try:
            result = stage.run(ctx)
        except Exception as e:
            failure = StageFailure(stage.index, stage.description, e)
            logging.exception(str(failure))
            report.exit_status = ExitStatus.STAGE_FAILED
            report.failed_stage = stage.index
            report.error = failure
            report.results[stage.index] = ctx.result
            return report
        report.executed_stages.append(stage.index)
        report.results[stage.index] = result
        logging.info(
            f"Stage {stage.index} finished: {len(result.executed)} units executed, "
            f"{len(result.skipped)} skipped."
        )

    logging.info("Done.")
    return report
