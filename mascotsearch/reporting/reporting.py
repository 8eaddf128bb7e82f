"""Logging setup and the event pipeline of a search task.

Messages go to the standard python logger, events of a running task additionally to `events.jsonl`
in the output directory so that a frontend can follow the search.
"""

import json
import logging
import os
import time
import traceback
import typing
from datetime import datetime, timedelta

# set once init_logging has configured the root logger
__is_initiated__ = False

LOG_FILE_NAME = "log.txt"

# between INFO (20) and WARNING (30), used for milestones of a search
PROGRESS_LEVELV_NUM = 21
logging.PROGRESS = PROGRESS_LEVELV_NUM
logging.addLevelName(PROGRESS_LEVELV_NUM, "PROGRESS")


def progress(self, message, *args, **kws):
    if self.isEnabledFor(PROGRESS_LEVELV_NUM):
        self._log(PROGRESS_LEVELV_NUM, message, args, **kws)


logging.Logger.progress = progress


class DefaultFormatter(logging.Formatter):
    """Prefixes every record with the time elapsed since the formatter was created.

    Parameters
    ----------

    use_ansi : bool, default True
        Color progress, warning and error records for terminals.

    """

    template = "%(levelname)s: %(message)s"

    level_colors = {
        PROGRESS_LEVELV_NUM: "\x1b[32;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    reset = "\x1b[0m"

    def __init__(self, use_ansi: bool = True):
        super().__init__()
        self.start_time = time.time()
        self.use_ansi = use_ansi
        self._plain = logging.Formatter(self.template)
        self._colored = {
            level: logging.Formatter(color + self.template + self.reset)
            for level, color in self.level_colors.items()
        }

    def format(self, record: logging.LogRecord):
        elapsed = timedelta(seconds=record.created - self.start_time)
        formatter = self._plain
        if self.use_ansi:
            formatter = self._colored.get(record.levelno, self._plain)
        return f"{elapsed} {formatter.format(record)}"


def init_logging(
    log_folder: str = None, log_level: int | str = logging.INFO, overwrite: bool = True
):
    """Configure the root logger with a console handler and, if `log_folder` is given, a `log.txt` file handler.

    Parameters
    ----------

    log_folder : str, default None
        Folder for `log.txt`. Nothing is written to disk if None.

    log_level : int | str, default logging.INFO
        Level as number or name, e.g. "PROGRESS".

    overwrite : bool, default True
        Start a new `log.txt` instead of appending to an existing one.
    """

    global __is_initiated__

    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())

    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root.handlers = []
    root.setLevel(log_level)

    console = logging.StreamHandler()
    console.setFormatter(DefaultFormatter(use_ansi=True))
    handlers = [console]

    if log_folder is not None:
        os.makedirs(log_folder, exist_ok=True)
        log_path = os.path.join(log_folder, LOG_FILE_NAME)
        file_handler = logging.FileHandler(
            log_path, mode="w" if overwrite else "a", encoding="utf-8"
        )
        file_handler.setFormatter(DefaultFormatter(use_ansi=False))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(log_level)
        root.addHandler(handler)

    __is_initiated__ = True


class Backend:
    """Receiver of the messages and events of a search task.

    Backends with `REQUIRES_CONTEXT` are entered and exited by the `Pipeline` around a task run.
    """

    REQUIRES_CONTEXT = False

    def log_string(self, value: str, verbosity: str = "info"):
        pass

    def log_event(self, name: str, value: typing.Any):
        pass


class JSONLBackend(Backend):
    EVENTS_PATH = "events.jsonl"
    REQUIRES_CONTEXT = True

    def __init__(self, path: str = None) -> None:
        """Writes one JSON object per event or message to `<path>/events.jsonl`.

        Calls outside of the context are ignored.
        """
        if path is None:
            raise ValueError("JSONLBackend needs an output folder, got path=None.")
        self.path = path
        self.events_path = os.path.join(path, self.EVENTS_PATH)
        self.start_time = None

    def __enter__(self):
        os.makedirs(self.path, exist_ok=True)
        self.start_time = datetime.now().timestamp()
        # a new task run starts a new file
        open(self.events_path, "w").close()
        self.log_event("start", {})
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        stop = {}
        if exc_type is not None:
            stop["error"] = "".join(
                traceback.format_exception(exc_type, exc_value, exc_traceback)
            )
        self.log_event("stop", stop)
        self.start_time = None

    def _write(self, type_: str, name: str, value: typing.Any, verbosity: str = ""):
        if self.start_time is None:
            return

        now = datetime.now()
        line = json.dumps(
            {
                "absolute_time": now.isoformat(),
                "relative_time": now.timestamp() - self.start_time,
                "type": type_,
                "name": name,
                "value": value,
                "verbosity": verbosity,
            }
        )
        with open(self.events_path, "a") as f:
            f.write(line + "\n")

    def log_event(self, name: str, value: typing.Any):
        """Record an event, `value` must be JSON-serializable."""
        self._write("event", name, value)

    def log_string(self, value: str, verbosity: str = "info"):
        self._write("string", "string", value, verbosity)


class LogBackend(Backend):
    def __init__(self, path: str = None, log_level: int | str = logging.INFO) -> None:
        """Forwards messages to the root logger, setting it up first if needed.

        Parameters
        ----------

        path : str, default None
            Folder for `log.txt`. If given, logging is always set up anew to write there.

        log_level : int | str, default logging.INFO
            Level used when logging is set up.

        """
        if not __is_initiated__ or path is not None:
            init_logging(path, log_level)
        self.logger = logging.getLogger()

    def log_string(self, value: str, verbosity: str = "info"):
        level = logging.getLevelName(verbosity.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown verbosity level {verbosity}")
        self.logger.log(level, value)


class Pipeline:
    def __init__(self, backends: list[Backend] = None):
        """Fans messages and events out to all backends.

        Used as context manager around a task run, which enters the backends that need it.
        """
        self.backends = backends if backends is not None else []

    def __enter__(self):
        for backend in self.backends:
            if backend.REQUIRES_CONTEXT:
                backend.__enter__()
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        for backend in self.backends:
            if backend.REQUIRES_CONTEXT:
                backend.__exit__(exc_type, exc_value, exc_traceback)

    def log_string(self, value: str, verbosity: str = "info"):
        for backend in self.backends:
            backend.log_string(value, verbosity=verbosity)

    def log_event(self, name: str, value: typing.Any):
        for backend in self.backends:
            backend.log_event(name, value)
