"""In-memory peak list and scan containers.

Only the accessors used by the search are provided. Any object exposing the same attributes can be passed instead.
"""

from dataclasses import dataclass, field

import numpy as np


@dataclass
class Scan:
    """A single mass spectrum.

    `mz_values` and `intensity_values` hold peaks if `centroided` is True and continuous profile data points otherwise.
    """

    scan_number: int
    ms_level: int
    retention_time: float
    precursor_mz: float = 0.0
    precursor_charge: int = 0
    mz_values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    intensity_values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    centroided: bool = True

    def __post_init__(self):
        self.mz_values = np.asarray(self.mz_values, dtype=np.float64)
        self.intensity_values = np.asarray(self.intensity_values, dtype=np.float64)
        if self.mz_values.shape != self.intensity_values.shape:
            raise ValueError(
                f"Scan {self.scan_number}: m/z and intensity arrays differ in length"
            )


@dataclass
class Peak:
    """Detected feature of a row in one raw file."""

    mz: float
    retention_time: float
    height: float
    fragment_scan: Scan | None = None


@dataclass
class Identification:
    """Peptide identification of a row."""

    sequence: str
    score: float
    proteins: list[str] = field(default_factory=list)
    peptide_mr: float = 0.0
    delta: float = 0.0
    modifications: str = ""
    query: int = 0


@dataclass
class PeakListRow:
    peaks: list[Peak] = field(default_factory=list)
    identifications: list[Identification] = field(default_factory=list)
    preferred_identification: Identification | None = None

    @property
    def best_peak(self) -> Peak | None:
        """Most intense peak of the row."""
        if not self.peaks:
            return None
        return max(self.peaks, key=lambda peak: peak.height)

    def add_identification(self, identification: Identification, preferred: bool = False):
        self.identifications.append(identification)
        if preferred or self.preferred_identification is None:
            self.preferred_identification = identification


@dataclass
class PeakList:
    name: str
    rows: list[PeakListRow] = field(default_factory=list)
