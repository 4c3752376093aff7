# piko_poller/services/simulation_transport.py

from __future__ import annotations

from pathlib import Path

from piko_poller.errors import TransportError
from piko_poller.services.transport import FetchResult


class FileTransport:
    """
    Serves a captured ``all.xml`` from disk in place of the device.
    Every requested path returns the same document.
    """

    def __init__(self, document_path, log):
        self.path = Path(document_path).expanduser()
        self.log = log

    def fetch(self, path: str) -> FetchResult:
        try:
            body = self.path.read_bytes()
        except OSError as exc:
            raise TransportError(f"cannot read simulated document {self.path}: {exc}") from exc
        self.log.debug("[SIM] %s served from %s", path, self.path)
        return FetchResult(status_code=200, body=body)

    def close(self) -> None:
        pass
