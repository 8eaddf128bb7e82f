import os
from unittest.mock import MagicMock, patch
from urllib.error import URLError

import pytest
from conftest import (
    ANCHOR_LINE,
    mock_http_response,
    mock_row,
    mock_scan,
    mock_search_response,
    mock_unread_response,
)

from mascotsearch.exceptions import ConfigurationError, ProtocolError, TransportError
from mascotsearch.export import ExportFile, SpectrumExporter
from mascotsearch.submission import (
    ResponseParser,
    SubmissionClient,
    SubmissionDescriptor,
    SubmissionTemplate,
    validate_url,
)

SUBMIT_URL = "http://mascot.example.org/mascot/cgi/nph-mascot.exe?1"
BOUNDARY = "---------------------------7d71d2e3f0a14"


def _export_file() -> ExportFile:
    export_file = ExportFile(prefix="test")
    export_file.write(SpectrumExporter().export(0, mock_row(mock_scan())))
    return export_file


def _client(**kwargs) -> SubmissionClient:
    template = SubmissionTemplate({"DB": "SwissProt", "CLE": "Trypsin"}, BOUNDARY)
    return SubmissionClient(SUBMIT_URL, template, **kwargs)


@pytest.mark.parametrize(
    "line, expected",
    [
        ("  5%", 5),
        ("100%", 100),
        ("Searching....45% complete", 45),
        ("..7%", 7),
        ("no progress here", None),
        ("%", None),
        ("1000%", None),
        ("250%", None),
        ("width=50%", 50),
    ],
)
def test_match_progress(line, expected):
    assert ResponseParser().match_progress(line) == expected


def test_match_location():
    parser = ResponseParser()

    # when
    descriptor = parser.match_location(ANCHOR_LINE)

    assert descriptor == SubmissionDescriptor("20100601", "F021799.dat")
    assert parser.anchor_text == ANCHOR_LINE


def test_match_location_is_case_insensitive():
    line = '<a href="../cgi/master_results.pl?file=../data/20240131/F000123.dat">'

    assert ResponseParser().match_location(line) == SubmissionDescriptor(
        "20240131", "F000123.dat"
    )


def test_match_location_keeps_non_result_anchors_for_diagnostics():
    parser = ResponseParser()
    line = '<A HREF="../help/index.html">Help</A>'

    # when
    descriptor = parser.match_location(line)

    assert descriptor is None
    assert parser.anchor_text == line


def test_last_location_wins():
    parser = ResponseParser()

    # when
    for line in [
        '<A HREF="../cgi/master_results.pl?file=../data/20100601/F000001.dat">',
        "  50%",
        '<A HREF="../cgi/master_results.pl?file=../data/20100602/F000002.dat">',
        "some text",
    ]:
        parser.feed(line)

    assert parser.descriptor == SubmissionDescriptor("20100602", "F000002.dat")
    assert parser.progress == 50


def test_feed_matches_progress_and_location_on_same_line():
    parser = ResponseParser()

    # when
    progress = parser.feed(f"100% {ANCHOR_LINE}")

    assert progress == 100
    assert parser.descriptor == SubmissionDescriptor("20100601", "F021799.dat")


def test_template_builds_multipart_body():
    template = SubmissionTemplate({"DB": "SwissProt", "TOL": 10, "COM": None}, BOUNDARY)

    # when
    body = template.build(b"BEGIN IONS\nEND IONS\n", filename="spectra.mgf")

    assert template.content_type == f"multipart/form-data; boundary={BOUNDARY}"
    assert body.startswith(f"--{BOUNDARY}\r\n".encode())
    assert body.endswith(f"--{BOUNDARY}--\r\n".encode())
    assert b'Content-Disposition: form-data; name="DB"\r\n\r\nSwissProt\r\n' in body
    assert b'Content-Disposition: form-data; name="TOL"\r\n\r\n10\r\n' in body
    assert b'Content-Disposition: form-data; name="COM"\r\n\r\n\r\n' in body
    assert (
        b'Content-Disposition: form-data; name="FILE"; filename="spectra.mgf"\r\n'
        b"Content-Type: application/octet-stream\r\n\r\nBEGIN IONS\nEND IONS\n\r\n"
    ) in body
    assert body.count(f"--{BOUNDARY}".encode()) == 5


@pytest.mark.parametrize("boundary", ["", "with space", "x" * 71, None])
def test_template_rejects_malformed_boundary(boundary):
    with pytest.raises(ConfigurationError):
        SubmissionTemplate({}, boundary)


@pytest.mark.parametrize(
    "form_fields",
    [{"DB": ["SwissProt", "TrEMBL"]}, {"FILE": "spectra.mgf"}, ["DB"]],
)
def test_template_rejects_malformed_form_fields(form_fields):
    with pytest.raises(ConfigurationError):
        SubmissionTemplate(form_fields, BOUNDARY)


def test_template_rejects_boundary_in_spectra():
    template = SubmissionTemplate({}, "abc")

    with pytest.raises(ConfigurationError):
        template.build(b"TITLE=--abc\n")


@pytest.mark.parametrize(
    "url", ["", "mascot/cgi/nph-mascot.exe", "ftp://host/mascot", "http://", None]
)
def test_validate_url_rejects_malformed_urls(url):
    with pytest.raises(ConfigurationError):
        validate_url(url, "submission URL")


def test_client_rejects_malformed_url():
    template = SubmissionTemplate({}, BOUNDARY)

    with pytest.raises(ConfigurationError):
        SubmissionClient("not a url", template)


@patch("mascotsearch.submission.urlopen")
def test_submit(mock_urlopen):
    mock_urlopen.return_value = mock_http_response(
        mock_search_response(["  5%", "100%"], [ANCHOR_LINE])
    )
    progress_values = []
    client = _client(on_progress=progress_values.append, timeout=30.0)
    export_file = _export_file()

    # when
    descriptor = client.submit(export_file)

    assert descriptor == SubmissionDescriptor("20100601", "F021799.dat")
    assert progress_values == [5, 100]

    request = mock_urlopen.call_args.args[0]
    assert mock_urlopen.call_args.kwargs["timeout"] == 30.0
    assert request.full_url == SUBMIT_URL
    assert request.get_method() == "POST"
    assert request.get_header("Content-type") == f"multipart/form-data; boundary={BOUNDARY}"
    assert request.get_header("Cache-control") == "no-cache"
    assert b"BEGIN IONS" in request.data
    assert b"TITLE=RowIdx 0 " in request.data

    assert export_file.released
    assert not os.path.exists(export_file.path)


@patch("mascotsearch.submission.urlopen")
def test_submit_progress_is_monotonic_for_monotonic_markers(mock_urlopen):
    markers = [f"{value:>3}%" for value in range(0, 101, 7)] + ["100%"]
    mock_urlopen.return_value = mock_http_response(
        mock_search_response(markers, [ANCHOR_LINE])
    )
    progress_values = []

    # when
    _client(on_progress=progress_values.append).submit(_export_file())

    assert progress_values == sorted(progress_values)
    assert progress_values[-1] == 100


@patch("mascotsearch.submission.urlopen")
def test_submit_without_location_raises_protocol_error(mock_urlopen):
    mock_urlopen.return_value = mock_http_response(
        mock_search_response(["  5%", "100%"], ['<A HREF="../help.html">Help</A>'])
    )
    export_file = _export_file()

    # when
    with pytest.raises(ProtocolError) as exc_info:
        _client().submit(export_file)

    assert "PROTOCOL_ERROR" in str(exc_info.value)
    assert export_file.released


@patch("mascotsearch.submission.urlopen")
def test_submit_connection_failure_raises_transport_error(mock_urlopen):
    mock_urlopen.side_effect = URLError("connection refused")
    export_file = _export_file()

    # when
    with pytest.raises(TransportError):
        _client().submit(export_file)

    assert export_file.released
    assert not os.path.exists(export_file.path)


@patch("mascotsearch.submission.urlopen")
def test_submit_read_failure_raises_transport_error(mock_urlopen):
    response = MagicMock()
    response.readline.side_effect = TimeoutError("timed out")
    mock_urlopen.return_value = response

    # when
    with pytest.raises(TransportError):
        _client().submit(_export_file())


@patch("mascotsearch.submission.urlopen")
def test_submit_canceled_before_reading(mock_urlopen):
    response = mock_unread_response()
    mock_urlopen.return_value = response
    export_file = _export_file()

    # when
    descriptor = _client(is_canceled=lambda: True).submit(export_file)

    assert descriptor is None
    response.readline.assert_not_called()
    assert export_file.released


@patch("mascotsearch.submission.urlopen")
def test_submit_canceled_while_reading(mock_urlopen):
    mock_urlopen.return_value = mock_http_response(
        mock_search_response(["  5%", " 50%", "100%"], [ANCHOR_LINE])
    )
    progress_values = []
    canceled = []

    def on_progress(value):
        progress_values.append(value)
        canceled.append(True)

    # when
    descriptor = _client(
        is_canceled=lambda: bool(canceled), on_progress=on_progress
    ).submit(_export_file())

    assert descriptor is None
    assert progress_values == [5]
