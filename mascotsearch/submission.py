"""Upload of an MGF file to the Mascot search form and scraping of the streamed response.

While the search is running, `nph-mascot.exe` streams an HTML page which contains progress
markers such as `  45%` and, once finished, a link to the result file:

    <A HREF="../cgi/master_results.pl?file=../data/20100601/F021799.dat">

Both are picked up line by line by two independent matchers.
"""

import logging
import os
import re
import typing
from dataclasses import dataclass
from http.client import HTTPException
from urllib.error import URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from mascotsearch.exceptions import ConfigurationError, ProtocolError, TransportError
from mascotsearch.export import ExportFile

logger = logging.getLogger()

# at most three digits directly in front of '%', not part of a longer number
PROGRESS_PATTERN = re.compile(r"(?<!\d)(\d{1,3})%")
ANCHOR_PATTERN = re.compile(r'<A\s+HREF="([^"]*)"', re.IGNORECASE)
RESULT_FILE_PATTERN = re.compile(r"data/([^/\"]+)/([^/\"?&]+)")
ANCHOR_MARKER = "<a href="

# RFC 2046 boundary characters, without the space
BOUNDARY_PATTERN = re.compile(r"^[0-9A-Za-z'()+_,\-./:=?]{1,70}$")

FILE_FIELD = "FILE"


@dataclass(frozen=True)
class SubmissionDescriptor:
    """Location of a finished search on the server."""

    date_directory: str
    job_id: str


def validate_url(url: str, name: str) -> str:
    """Check that `url` is an absolute http(s) URL."""
    parsed = urlparse(url) if isinstance(url, str) else None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"Malformed {name}: '{url}'", "Expected an absolute http(s) URL."
        )
    return url


class SubmissionTemplate:
    def __init__(self, form_fields: dict, boundary: str):
        """Builds the multipart/form-data body of a search submission.

        Parameters
        ----------

        form_fields : dict
            Mascot search form fields, e.g. {"DB": "SwissProt", "CLE": "Trypsin"}. Values must be scalars.

        boundary : str
            Multipart boundary token.

        """
        if not isinstance(boundary, str) or not BOUNDARY_PATTERN.match(boundary):
            raise ConfigurationError(f"Malformed multipart boundary: '{boundary}'")

        if not isinstance(form_fields, dict):
            raise ConfigurationError(
                f"Search form fields must be a mapping, got {type(form_fields).__name__}"
            )
        for key, value in form_fields.items():
            if key == FILE_FIELD:
                raise ConfigurationError(
                    f"Search form field '{FILE_FIELD}' is reserved for the spectra."
                )
            if not isinstance(value, str | int | float | bool) and value is not None:
                raise ConfigurationError(
                    f"Search form field '{key}' must be a scalar, got {type(value).__name__}"
                )

        self.form_fields = form_fields
        self.boundary = boundary

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def build(self, spectra: bytes, filename: str = "spectra.mgf") -> bytes:
        delimiter = f"--{self.boundary}".encode()
        if delimiter in spectra:
            raise ConfigurationError(
                "Multipart boundary occurs in the exported spectra, choose a different boundary."
            )

        parts = []
        for key, value in self.form_fields.items():
            value = "" if value is None else str(value)
            parts.append(
                f'Content-Disposition: form-data; name="{key}"\r\n\r\n{value}'.encode()
            )
        parts.append(
            (
                f'Content-Disposition: form-data; name="{FILE_FIELD}"; filename="{filename}"\r\n'
                "Content-Type: application/octet-stream\r\n\r\n"
            ).encode()
            + spectra
        )

        body = b"".join(delimiter + b"\r\n" + part + b"\r\n" for part in parts)
        return body + delimiter + b"--\r\n"


class ResponseParser:
    """Line based scraper for the search response.

    Progress and location are matched independently. The last location seen wins.
    """

    def __init__(self):
        self.progress: int | None = None
        self.descriptor: SubmissionDescriptor | None = None
        self.anchor_lines: list[str] = []

    def match_progress(self, line: str) -> int | None:
        match = PROGRESS_PATTERN.search(line)
        if match is None:
            return None
        value = int(match.group(1))
        if value > 100:
            return None
        return value

    def match_location(self, line: str) -> SubmissionDescriptor | None:
        if ANCHOR_MARKER not in line.lower():
            return None
        self.anchor_lines.append(line)

        for anchor in ANCHOR_PATTERN.finditer(line):
            location = RESULT_FILE_PATTERN.search(anchor.group(1))
            if location is not None:
                return SubmissionDescriptor(location.group(1), location.group(2))
        return None

    def feed(self, line: str) -> int | None:
        """Process one response line and return the progress value it holds, if any."""
        progress = self.match_progress(line)
        if progress is not None:
            self.progress = progress

        descriptor = self.match_location(line)
        if descriptor is not None:
            self.descriptor = descriptor

        return progress

    @property
    def anchor_text(self) -> str:
        return "".join(self.anchor_lines)


class SubmissionClient:
    def __init__(
        self,
        submit_url: str,
        template: SubmissionTemplate,
        timeout: float | None = None,
        is_canceled: typing.Callable[[], bool] = lambda: False,
        on_progress: typing.Callable[[int], None] = lambda value: None,
    ):
        """Submits spectra to the search server and waits for the search to finish.

        Parameters
        ----------

        submit_url : str
            URL of the search form handler, e.g. `http://host/mascot/cgi/nph-mascot.exe?1`

        template : SubmissionTemplate
            Builds the request body.

        timeout : float, optional
            Socket timeout in seconds.

        is_canceled : callable
            Checked before every response line is read.

        on_progress : callable
            Called with every progress value found in the response.

        """
        self.submit_url = validate_url(submit_url, "submission URL")
        self.template = template
        self.timeout = timeout
        self.is_canceled = is_canceled
        self.on_progress = on_progress

    def _open(self, body: bytes):
        request = Request(
            self.submit_url,
            data=body,
            method="POST",
            headers={
                "Content-Type": self.template.content_type,
                "Cache-Control": "no-cache",
            },
        )
        return urlopen(request, timeout=self.timeout)

    def submit(self, export_file: ExportFile) -> SubmissionDescriptor | None:
        """Upload the export file and read the response until the server closes it.

        The export file is released once the request has been sent.

        Returns
        -------
        SubmissionDescriptor | None
            Location of the result file, or None if the submission was canceled while reading the response.

        Raises
        ------
        ConfigurationError, TransportError, ProtocolError

        """
        try:
            body = self.template.build(
                export_file.read_bytes(), filename=os.path.basename(export_file.path)
            )
            logger.info(
                f"Submitting {export_file.n_units} spectra ({len(body)} bytes) to {self.submit_url}"
            )
            try:
                response = self._open(body)
            except (URLError, HTTPException, OSError) as e:
                raise TransportError(
                    f"Could not submit search to {self.submit_url}: {e}"
                ) from e
        finally:
            export_file.release()

        parser = ResponseParser()
        with response:
            while True:
                if self.is_canceled():
                    logger.info("Search canceled while waiting for the server")
                    return None
                try:
                    raw_line = response.readline()
                except (HTTPException, OSError) as e:
                    raise TransportError(
                        f"Connection lost while reading search response: {e}"
                    ) from e
                if not raw_line:
                    break

                progress = parser.feed(raw_line.decode("utf-8", errors="replace"))
                if progress is not None:
                    self.on_progress(progress)

        if parser.descriptor is None:
            logger.info(f"Response anchors: {parser.anchor_text}")
            raise ProtocolError(
                f"No result file link in response from {self.submit_url}"
            )

        logger.info(
            f"Search finished: date directory {parser.descriptor.date_directory}, job {parser.descriptor.job_id}"
        )
        return parser.descriptor
