"""Download and parsing of Mascot result (.dat) files."""

import io
import logging
import re
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from http.client import HTTPException
from urllib.error import URLError
from urllib.parse import unquote, urlencode
from urllib.request import urlopen

from mascotsearch.constants.keys import ResultSections
from mascotsearch.exceptions import ResultParseError, TransportError
from mascotsearch.submission import SubmissionDescriptor, validate_url

logger = logging.getLogger()

RESULT_PATH = "x-cgi/ms-status.exe"

SECTION_PATTERN = re.compile(r'Content-Type:\s*application/x-Mascot;\s*name="([^"]+)"')
BOUNDARY_PATTERN = re.compile(r"boundary=\"?([^\";\s]+)\"?")
PROTEIN_PATTERN = re.compile(r'"([^"]+)":\d+:\d+:\d+:\d+')


@dataclass(frozen=True)
class PeptideHit:
    """Top ranked peptide match of a query."""

    sequence: str
    score: float
    peptide_mr: float
    delta: float
    missed_cleavages: int = 0
    ions_matched: int = 0
    modifications: str = ""
    proteins: tuple[str, ...] = field(default_factory=tuple)


class ParsedResultSet(ABC):
    """Read access to the queries of a finished search. Queries are numbered from 1."""

    @property
    @abstractmethod
    def number_of_queries(self) -> int:
        """Number of submitted spectra."""

    @abstractmethod
    def peptide_hit(self, query: int) -> PeptideHit | None:
        """Best peptide hit of the query, None if nothing matched."""

    @abstractmethod
    def query_title(self, query: int) -> str:
        """Title of the spectrum submitted as this query."""


class ResultFileParser(typing.Protocol):
    def __call__(self, stream: typing.TextIO) -> ParsedResultSet: ...


def parse_peptide_hit(value: str) -> PeptideHit | None:
    """Parse a `q<i>_p<j>` entry of the peptides section.

    Format: `missed,mr,delta,n_ions,sequence,peaks_used,var_mods,score,ion_series,...;"ACC":frame:start:end:mult,...`
    where `-1` means the query has no match.
    """
    value = value.strip()
    if value == "-1":
        return None

    peptide_part, _, protein_part = value.partition(";")
    tokens = peptide_part.split(",")
    if len(tokens) < 8:
        raise ResultParseError(f"Malformed peptide entry: '{value}'")

    try:
        return PeptideHit(
            sequence=tokens[4],
            score=float(tokens[7]),
            peptide_mr=float(tokens[1]),
            delta=float(tokens[2]),
            missed_cleavages=int(tokens[0]),
            ions_matched=int(tokens[3]),
            modifications=tokens[6],
            proteins=tuple(PROTEIN_PATTERN.findall(protein_part)),
        )
    except ValueError as e:
        raise ResultParseError(f"Malformed peptide entry: '{value}'") from e


class MascotDatFile(ParsedResultSet):
    def __init__(self, sections: dict[str, dict[str, str]]):
        self.sections = sections

        header = sections.get(ResultSections.HEADER, {})
        try:
            self._number_of_queries = int(header.get("queries", 0))
        except ValueError as e:
            raise ResultParseError(
                f"Invalid number of queries: '{header.get('queries')}'"
            ) from e

    @property
    def number_of_queries(self) -> int:
        return self._number_of_queries

    def _check_query(self, query: int):
        if not 1 <= query <= self._number_of_queries:
            raise IndexError(
                f"Query {query} out of range 1..{self._number_of_queries}"
            )

    def peptide_hit(self, query: int) -> PeptideHit | None:
        self._check_query(query)
        value = self.sections.get(ResultSections.PEPTIDES, {}).get(f"q{query}_p1")
        if value is None:
            return None
        return parse_peptide_hit(value)

    def query_title(self, query: int) -> str:
        self._check_query(query)
        section = self.sections.get(f"{ResultSections.QUERY_PREFIX}{query}", {})
        return unquote(section.get("title", ""))


class MascotDatParser:
    """Parser for the MIME formatted Mascot result file.

    The file starts with a MIME header holding the boundary. Each part is introduced by
    `Content-Type: application/x-Mascot; name="<section>"` followed by an empty line and `key=value` lines.
    """

    def __call__(self, stream: typing.TextIO) -> MascotDatFile:
        boundary = None
        sections: dict[str, dict[str, str]] = {}
        current: dict[str, str] | None = None
        in_part_header = False

        for raw_line in stream:
            line = raw_line.rstrip("\r\n")

            if boundary is None:
                if match := BOUNDARY_PATTERN.search(line):
                    boundary = match.group(1)
                continue

            if line.startswith(f"--{boundary}"):
                current = None
                in_part_header = True
                continue

            if in_part_header:
                if match := SECTION_PATTERN.search(line):
                    current = sections.setdefault(match.group(1), {})
                elif not line:
                    in_part_header = False
                continue

            if current is not None and "=" in line:
                key, value = line.split("=", 1)
                current[key] = value

        if boundary is None:
            raise ResultParseError("Result file has no MIME boundary.")
        if ResultSections.HEADER not in sections:
            raise ResultParseError("Result file has no header section.")

        logger.info(f"Parsed result file with sections {', '.join(sections)}")
        return MascotDatFile(sections)


class ResultFetcher:
    def __init__(
        self,
        install_url: str,
        parser: ResultFileParser | None = None,
        timeout: float | None = None,
    ):
        """Downloads the result file of a finished search.

        Parameters
        ----------

        install_url : str
            Root of the Mascot installation, e.g. `http://host/mascot/`

        parser : ResultFileParser, optional
            Turns the downloaded text into a `ParsedResultSet`. Defaults to `MascotDatParser`.

        timeout : float, optional
            Socket timeout in seconds.

        """
        validate_url(install_url, "Mascot install URL")
        self.install_url = install_url if install_url.endswith("/") else install_url + "/"
        self.parser = parser if parser is not None else MascotDatParser()
        self.timeout = timeout

    def result_url(self, descriptor: SubmissionDescriptor) -> str:
        query = urlencode(
            {
                "Autorefresh": "false",
                "Show": "RESULTFILE",
                "DateDir": descriptor.date_directory,
                "ResJob": descriptor.job_id,
            }
        )
        return f"{self.install_url}{RESULT_PATH}?{query}"

    def fetch(self, descriptor: SubmissionDescriptor) -> ParsedResultSet:
        url = self.result_url(descriptor)
        logger.info(f"Fetching result file from {url}")

        try:
            with urlopen(url, timeout=self.timeout) as response:
                stream = io.TextIOWrapper(response, encoding="utf-8", errors="replace")
                return self.parser(stream)
        except (URLError, HTTPException, OSError) as e:
            raise TransportError(f"Could not download result file {url}: {e}") from e
