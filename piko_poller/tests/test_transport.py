import pytest
import requests

from piko_poller.config import ServerConfig
from piko_poller.errors import TransportError
from piko_poller.logging import ConsoleLog, get_logger
from piko_poller.services.simulation_transport import FileTransport
from piko_poller.services.transport import HttpTransport


ConsoleLog(level="INFO", quiet=True).setup()
LOG = get_logger("transport-test")


class FakeResponse:
    def __init__(self, status_code=200, content=b"", chunks=None):
        self.status_code = status_code
        self.chunks = list(chunks) if chunks is not None else [content]
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.verify = True

    def get(self, url, headers=None, timeout=None, verify=None, stream=False):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout, "verify": verify, "stream": stream})
        response = self.responses.get(url, (404, b""))
        if isinstance(response, FakeResponse):
            return response
        status_code, content = response
        if isinstance(status_code, Exception):
            raise status_code
        return FakeResponse(status_code=status_code, content=content)

    def close(self):
        pass


def _cfg(**overrides):
    cfg = ServerConfig(host="192.168.0.50", protocol="https", port=443, timeout=5.0)
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


def test_fetch_builds_url_and_disables_verification():
    session = FakeSession({"https://192.168.0.50:443/all.xml": (200, b"<root/>")})
    transport = HttpTransport(_cfg(), LOG, session=session)

    result = transport.fetch("all.xml")
    assert result.status_code == 200
    assert result.body == b"<root/>"
    call = session.calls[0]
    assert call["timeout"] == 5.0
    assert call["verify"] is False
    assert call["stream"] is True
    assert call["headers"]["Accept"] == "application/xml"
    assert session.verify is False


def test_non_200_is_returned_not_raised():
    session = FakeSession({"https://192.168.0.50:443/all.xml": (500, b"oops")})
    result = HttpTransport(_cfg(), LOG, session=session).fetch("/all.xml")
    assert result.status_code == 500
    assert result.text == "oops"


@pytest.mark.parametrize(
    "exc",
    [
        requests.ConnectionError("connection refused"),
        requests.Timeout("timed out"),
        requests.exceptions.SSLError("handshake failure"),
    ],
)
def test_network_failures_become_transport_errors(exc):
    session = FakeSession({"https://192.168.0.50:443/all.xml": (exc, None)})
    with pytest.raises(TransportError):
        HttpTransport(_cfg(), LOG, session=session).fetch("/all.xml")


def test_trickling_body_hits_total_deadline():
    url = "https://192.168.0.50:443/all.xml"
    response = FakeResponse(200, chunks=[b"<root>", b"<Power/>", b"</root>"])
    # each read stays under the per-read timeout, the whole body does not
    ticks = iter([0.0, 2.0, 4.0, 6.0])
    transport = HttpTransport(_cfg(), LOG, session=FakeSession({url: response}), clock=lambda: next(ticks))

    with pytest.raises(TransportError, match="longer than 5.0s"):
        transport.fetch("/all.xml")
    assert response.closed


def test_body_assembled_from_chunks():
    url = "https://192.168.0.50:443/all.xml"
    response = FakeResponse(200, chunks=[b"<root>", b"<Power/>", b"</root>"])
    result = HttpTransport(_cfg(), LOG, session=FakeSession({url: response})).fetch("/all.xml")
    assert result.body == b"<root><Power/></root>"
    assert response.closed


def test_broken_body_stream_becomes_transport_error():
    url = "https://192.168.0.50:443/all.xml"
    response = FakeResponse(200, chunks=[b"<root>", requests.exceptions.ChunkedEncodingError("reset")])
    with pytest.raises(TransportError):
        HttpTransport(_cfg(), LOG, session=FakeSession({url: response})).fetch("/all.xml")
    assert response.closed


def test_file_transport(tmp_path):
    doc = tmp_path / "all.xml"
    doc.write_bytes(b"<root/>")
    result = FileTransport(doc, LOG).fetch("/all.xml")
    assert result.status_code == 200
    assert result.body == b"<root/>"

    with pytest.raises(TransportError):
        FileTransport(tmp_path / "missing.xml", LOG).fetch("/all.xml")
