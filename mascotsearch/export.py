"""Export of MS/MS scans to Mascot generic format (MGF).

Every spectrum title starts with a marker token followed by the index of the originating row, e.g.
`RowIdx 12 (scan=301 rt=1520.4)`. This index is the only link between a Mascot query and the peak list row.
"""

import atexit
import logging
import os
import tempfile
from dataclasses import dataclass

import numpy as np

from mascotsearch.centroiding import Centroider, LocalMaxCentroider
from mascotsearch.constants.keys import MgfKeys
from mascotsearch.data import PeakListRow, Scan
from mascotsearch.exceptions import ConfigurationError

logger = logging.getLogger()

DEFAULT_TITLE_MARKER = "RowIdx"


@dataclass(frozen=True)
class ExportUnit:
    correlation_index: int
    scan_number: int
    title: str
    text: str


def format_title(marker: str, correlation_index: int, scan: Scan) -> str:
    return f"{marker} {correlation_index} (scan={scan.scan_number} rt={float(scan.retention_time)})"


def parse_correlation_index(title: str, marker: str = DEFAULT_TITLE_MARKER) -> int:
    """Recover the row index from a spectrum title.

    Raises
    ------
    ValueError
        if the title does not start with `marker` followed by a non-negative integer

    """
    tokens = title.split()
    if len(tokens) < 2 or tokens[0] != marker:
        raise ValueError(f"Title '{title}' does not start with '{marker} <index>'")
    if not tokens[1].isdigit():
        raise ValueError(f"Title '{title}' holds no valid row index: '{tokens[1]}'")
    return int(tokens[1])


def format_charge(charge: int) -> str:
    """Format a signed charge the MGF way, e.g. -2 -> '2-'."""
    sign = "+" if charge > 0 else "-"
    return f"{abs(charge)}{sign}"


class SpectrumExporter:
    def __init__(
        self,
        title_marker: str = DEFAULT_TITLE_MARKER,
        centroider: Centroider | None = None,
    ):
        """Turns peak list rows into MGF blocks.

        Parameters
        ----------

        title_marker : str
            First token of each title. Must not contain whitespace.

        centroider : Centroider, optional
            Used for scans acquired in profile mode. Defaults to `LocalMaxCentroider`.

        """
        if not title_marker or len(title_marker.split()) != 1:
            raise ConfigurationError(
                f"Invalid title marker '{title_marker}'",
                "The title marker must be a single non-empty token.",
            )
        self.title_marker = title_marker
        self.centroider = centroider if centroider is not None else LocalMaxCentroider()

    def export(self, row_index: int, row: PeakListRow) -> ExportUnit | None:
        """Create the MGF block for the fragmentation scan of the row's best peak.

        Returns None if there is no such scan or it is not an MS/MS scan.
        """
        best_peak = row.best_peak
        scan = best_peak.fragment_scan if best_peak is not None else None
        if scan is None:
            return None

        if scan.ms_level != 2:
            logger.warning(f"Scan {scan.scan_number} is not a MS/MS scan.")
            return None

        title = format_title(self.title_marker, row_index, scan)

        lines = [
            "",
            MgfKeys.BEGIN,
            f"{MgfKeys.TITLE}={title}",
            f"{MgfKeys.PEPMASS}={float(scan.precursor_mz)}",
        ]
        if scan.retention_time > 0:
            lines.append(f"{MgfKeys.RTINSECONDS}={float(scan.retention_time)}")
        if scan.precursor_charge != 0:
            lines.append(f"{MgfKeys.CHARGE}={format_charge(scan.precursor_charge)}")

        mz_values, intensity_values = self._peaks(scan)
        lines += [
            f"{float(mz)}\t{float(intensity)}"
            for mz, intensity in zip(mz_values, intensity_values, strict=True)
        ]
        lines.append(MgfKeys.END)

        return ExportUnit(
            correlation_index=row_index,
            scan_number=scan.scan_number,
            title=title,
            text="\n".join(lines) + "\n",
        )

    def _peaks(self, scan: Scan) -> tuple[np.ndarray, np.ndarray]:
        if scan.centroided:
            return scan.mz_values, scan.intensity_values
        return self.centroider(scan)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temporary file {path}: {e}")


class ExportFile:
    """Temporary MGF file which is removed as soon as it has been uploaded.

    Can be used as context manager, leaving the context releases the file if that did not happen before.
    """

    def __init__(self, prefix: str = "mascot", directory: str | None = None):
        handle, self.path = tempfile.mkstemp(prefix=prefix, suffix=".mgf", dir=directory)
        self._file = os.fdopen(handle, "w", encoding="utf-8")
        self.n_units = 0
        self.released = False

    def write(self, unit: ExportUnit) -> None:
        self._file.write(unit.text)
        self._file.flush()
        self.n_units += 1

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def read_bytes(self) -> bytes:
        self.close()
        with open(self.path, "rb") as f:
            return f.read()

    def release(self) -> None:
        """Delete the file. If that is not possible now, it is deleted when the interpreter exits."""
        if self.released:
            return
        self.close()
        self.released = True
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.info(f"Deferring removal of {self.path} to exit: {e}")
            atexit.register(_remove_quietly, self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        self.release()
