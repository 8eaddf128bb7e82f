"""Mascot MS/MS ion search of a peak list as a poll-able task.

The task runs synchronously on the thread calling `run()`. Other threads may poll `status`,
`finished_percentage`, `task_description` and `error_message` and may call `cancel()`.
"""

import logging
import os
import threading
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum

from mascotsearch.centroiding import Centroider, LocalMaxCentroider
from mascotsearch.constants.keys import ConfigKeys, EventNames
from mascotsearch.correlation import ResultCorrelator, identifications_to_df
from mascotsearch.data import Identification, PeakList
from mascotsearch.exceptions import CustomError
from mascotsearch.export import ExportFile, SpectrumExporter
from mascotsearch.reporting import reporting
from mascotsearch.results import ResultFetcher, ResultFileParser
from mascotsearch.submission import SubmissionClient, SubmissionTemplate
from mascotsearch.workflow.config import Config, load_default_config

logger = logging.getLogger()

IDENTIFICATIONS_FILE_NAME = "identifications.tsv"


class TaskStatus(Enum):
    WAITING = "waiting"
    PROCESSING = "processing"
    FINISHED = "finished"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.FINISHED, TaskStatus.ERROR, TaskStatus.CANCELED)


@dataclass(frozen=True)
class TaskState:
    """Snapshot of the task state. Replaced as a whole, never mutated."""

    status: TaskStatus = TaskStatus.WAITING
    finished_rows: int = 0
    total_rows: int = 0
    error_message: str | None = None
    details: str | None = None


class MascotSearchTask:
    # the server reports progress in percent
    TOTAL_ROWS = 100

    def __init__(
        self,
        peak_list: PeakList,
        config: Config | None = None,
        centroider: Centroider | None = None,
        result_parser: ResultFileParser | None = None,
    ) -> None:
        """Search the fragmentation spectra of a peak list and annotate its rows with the identifications.

        Parameters
        ----------

        peak_list : PeakList
            Rows are annotated in place. The row order must not change while the task is running.

        config : Config, optional
            Search configuration, defaults to `load_default_config()`.

        centroider : Centroider, optional
            Peak detection for profile mode scans, defaults to `LocalMaxCentroider`.

        result_parser : ResultFileParser, optional
            Parser for the downloaded result file, defaults to `MascotDatParser`.

        """
        self.peak_list = peak_list
        self._config = config if config is not None else load_default_config()
        self._centroider = centroider
        self._result_parser = result_parser

        self._state = TaskState()
        self._cancel_requested = threading.Event()
        self._reporter: reporting.Pipeline | None = None
        self.matches: list[tuple[int, Identification]] = []

    @property
    def config(self) -> Config:
        return self._config

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def status(self) -> TaskStatus:
        return self._state.status

    @property
    def error_message(self) -> str | None:
        return self._state.error_message

    @property
    def finished_percentage(self) -> float:
        state = self._state
        if state.total_rows == 0:
            return 0.0
        return state.finished_rows / state.total_rows

    @property
    def task_description(self) -> str:
        details = self._state.details
        if details is None:
            return f"MS/MS identification of {self.peak_list.name}"
        return f"MS/MS identification of {self.peak_list.name} ({details})"

    @property
    def created_objects(self) -> None:
        """Identifications are added to the peak list rows, no new objects are created."""
        return None

    def cancel(self) -> None:
        """Request cancellation. Takes effect before the next row is exported or the next response line is read."""
        self._cancel_requested.set()

    def is_canceled(self) -> bool:
        return self._cancel_requested.is_set()

    def _publish(self, **changes) -> None:
        # only the thread executing run() writes the state
        if self._state.status.is_terminal:
            return
        self._state = replace(self._state, **changes)

    def _set_progress(self, value: int) -> None:
        self._publish(finished_rows=value)
        if self._reporter is not None:
            self._reporter.log_event(EventNames.PROGRESS, {"progress": value})

    def _init_reporter(self) -> reporting.Pipeline:
        general = self._config[ConfigKeys.GENERAL]
        output_directory = general[ConfigKeys.OUTPUT_DIRECTORY]

        backends = [
            reporting.LogBackend(
                path=output_directory, log_level=general[ConfigKeys.LOG_LEVEL]
            )
        ]
        if output_directory is not None:
            backends.append(reporting.JSONLBackend(path=output_directory))
        return reporting.Pipeline(backends=backends)

    def run(self) -> None:
        if self._state.status != TaskStatus.WAITING:
            logger.warning(
                f"Task '{self.task_description}' has already been started, create a new task to search again."
            )
            return

        self._publish(status=TaskStatus.PROCESSING, total_rows=self.TOTAL_ROWS)

        try:
            self._reporter = self._init_reporter()
            with self._reporter:
                final_status = self._search()
                if final_status == TaskStatus.FINISHED:
                    self._reporter.log_string(
                        f"Finished {self.task_description}", verbosity="progress"
                    )
                self._reporter.log_event(
                    EventNames.STATUS, {"status": final_status.value}
                )
        except CustomError as e:
            logger.error(e)
            self._publish(status=TaskStatus.ERROR, error_message=str(e))
            return
        except Exception as e:
            logger.info(traceback.format_exc())
            logger.error(e)
            self._publish(
                status=TaskStatus.ERROR, error_message=str(e) or type(e).__name__
            )
            return

        self._publish(status=final_status, details=None)

    @contextmanager
    def _section(self, name: str):
        self._publish(details=name)
        self._reporter.log_event(EventNames.SECTION_START, {"name": name})
        yield
        self._reporter.log_event(EventNames.SECTION_STOP, {"name": name})

    def _search(self) -> TaskStatus:
        server = self._config[ConfigKeys.SERVER]
        export_config = self._config[ConfigKeys.EXPORT]
        timeout = server[ConfigKeys.TIMEOUT]
        output_directory = self._config[ConfigKeys.GENERAL][ConfigKeys.OUTPUT_DIRECTORY]

        centroider = self._centroider
        if centroider is None:
            centroider = LocalMaxCentroider(
                self._config[ConfigKeys.CENTROIDING][ConfigKeys.NOISE_LEVEL]
            )
        exporter = SpectrumExporter(export_config[ConfigKeys.TITLE_MARKER], centroider)
        client = SubmissionClient(
            server[ConfigKeys.SUBMIT_URL],
            SubmissionTemplate(
                dict(self._config[ConfigKeys.SEARCH]), server[ConfigKeys.BOUNDARY]
            ),
            timeout=timeout,
            is_canceled=self.is_canceled,
            on_progress=self._set_progress,
        )
        fetcher = ResultFetcher(
            server[ConfigKeys.INSTALL_URL], parser=self._result_parser, timeout=timeout
        )
        correlator = ResultCorrelator(
            self.peak_list, export_config[ConfigKeys.TITLE_MARKER]
        )

        with ExportFile(prefix=export_config[ConfigKeys.TEMP_PREFIX]) as export_file:
            with self._section("exporting spectra"):
                self._reporter.log_string(
                    f"Writing temporary MGF file {export_file.path}"
                )
                for row_index, row in enumerate(self.peak_list.rows):
                    if self.is_canceled():
                        return TaskStatus.CANCELED
                    unit = exporter.export(row_index, row)
                    if unit is not None:
                        export_file.write(unit)

                if export_file.n_units == 0:
                    self._reporter.log_string(
                        f"No MS/MS spectra found in {self.peak_list.name}",
                        verbosity="warning",
                    )
                self._reporter.log_string(
                    f"Exported {export_file.n_units} of {len(self.peak_list.rows)} rows"
                )

            with self._section("searching"):
                descriptor = client.submit(export_file)
            if descriptor is None:
                return TaskStatus.CANCELED

        with self._section("fetching results"):
            result_set = fetcher.fetch(descriptor)

        with self._section("mapping identifications"):
            self.matches = correlator.correlate(result_set)

            if output_directory is not None:
                path = os.path.join(output_directory, IDENTIFICATIONS_FILE_NAME)
                identifications_to_df(self.matches).to_csv(path, sep="\t", index=False)
                self._reporter.log_string(f"Wrote identifications to {path}")

        return TaskStatus.FINISHED
