import io
import os
import tempfile
from unittest.mock import MagicMock

import numpy as np
import pytest

from mascotsearch.data import Peak, PeakList, PeakListRow, Scan

RESULT_BOUNDARY = "gc0p4Jq0M2Yt08jU534c0p"


def mock_scan(
    scan_number: int = 1,
    ms_level: int = 2,
    retention_time: float = 60.0,
    precursor_charge: int = 2,
    centroided: bool = True,
) -> Scan:
    """Create a scan with three peaks at 100, 200 and 300 m/z."""
    return Scan(
        scan_number=scan_number,
        ms_level=ms_level,
        retention_time=retention_time,
        precursor_mz=500.25,
        precursor_charge=precursor_charge,
        mz_values=np.array([100.0, 200.0, 300.0]),
        intensity_values=np.array([10.0, 20.0, 30.0]),
        centroided=centroided,
    )


def mock_row(scan: Scan | None) -> PeakListRow:
    return PeakListRow(peaks=[Peak(mz=500.25, retention_time=60.0, height=1e6, fragment_scan=scan)])


def mock_peak_list(ms_levels: list[int | None]) -> PeakList:
    """Create a peak list with one row per entry, `None` meaning the row has no fragmentation scan."""
    rows = [
        mock_row(None if ms_level is None else mock_scan(scan_number=i + 1, ms_level=ms_level))
        for i, ms_level in enumerate(ms_levels)
    ]
    return PeakList(name="test_peaks", rows=rows)


def mock_dat_file(titles: list[str], hits: dict[int, str], n_queries: int | None = None) -> str:
    """Create the text of a Mascot result file.

    Parameters
    ----------

    titles : list[str]
        Title of query 1, 2, ...

    hits : dict[int, str]
        Peptide sequence of the top hit for some of the queries. All other queries have no hit.

    n_queries : int, optional
        Value of the `queries` header entry, defaults to the number of titles.

    """
    n_queries = len(titles) if n_queries is None else n_queries
    lines = [
        "MIME-Version: 1.0 (Generated by Mascot version 1.0)",
        f"Content-Type: multipart/mixed; boundary={RESULT_BOUNDARY}",
        "",
        f"--{RESULT_BOUNDARY}",
        'Content-Type: application/x-Mascot; name="parameters"',
        "",
        "DB=SwissProt",
        "CLE=Trypsin",
        f"--{RESULT_BOUNDARY}",
        'Content-Type: application/x-Mascot; name="header"',
        "",
        "sequences=565254",
        f"queries={n_queries}",
        f"--{RESULT_BOUNDARY}",
        'Content-Type: application/x-Mascot; name="peptides"',
        "",
    ]
    for query in range(1, len(titles) + 1):
        if query in hits:
            sequence = hits[query]
            lines.append(
                f'q{query}_p1=0,1479.795517,-0.001234,9,{sequence},18,0000000000,55.31,0002002000000000000,0,0;"ALBU_BOVIN":0:421:433:1,"ALBU_HUMAN":0:421:433:1'
            )
            lines.append(f"q{query}_p1_terms=K,L:K,L")
            lines.append(f"q{query}_p2=-1")
        else:
            lines.append(f"q{query}_p1=-1")
    for query, title in enumerate(titles, start=1):
        lines += [
            f"--{RESULT_BOUNDARY}",
            f'Content-Type: application/x-Mascot; name="query{query}"',
            "",
            f"title={title.replace(' ', '%20').replace('(', '%28').replace(')', '%29').replace('=', '%3d')}",
            "charge=2+",
            "mass_min=100.000000",
        ]
    lines.append(f"--{RESULT_BOUNDARY}--")
    return "\r\n".join(lines) + "\r\n"


def mock_search_response(
    progress_lines: list[str], anchor_lines: list[str]
) -> bytes:
    """Create the streamed HTML page of nph-mascot.exe."""
    lines = [
        "<HTML><HEAD><TITLE>Mascot Search Progress</TITLE></HEAD><BODY>",
        "<H1>MASCOT search status page</H1>",
        "Searching",
        *progress_lines,
        "Finished uploading search details...",
        *anchor_lines,
        "</BODY></HTML>",
    ]
    return ("\n".join(lines) + "\n").encode()


def mock_http_response(body: bytes) -> io.BytesIO:
    """File-like stand-in for the object returned by urlopen."""
    return io.BytesIO(body)


def mock_unread_response() -> MagicMock:
    response = MagicMock()
    response.readline.return_value = b""
    return response


ANCHOR_LINE = '<A HREF="../cgi/master_results.pl?file=../data/20100601/F021799.dat">Click here to see Search Report</A>'


def random_tempfolder():
    """Create a randomly named temp folder in the system temp folder

    Returns
    -------
    path : str
        Path to the created temp folder

    """
    tempdir = tempfile.gettempdir()
    random_foldername = "mascotsearch_" + "".join(
        np.random.choice(list("abcdefghijklmnopqrstuvwxyz0123456789"), 6)
    )
    path = os.path.join(tempdir, random_foldername)
    os.makedirs(path, exist_ok=True)
    return path


@pytest.fixture
def tempfolder():
    return random_tempfolder()
