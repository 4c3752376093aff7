# piko_poller/services/transport.py

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

import requests
import urllib3

from piko_poller.config import ServerConfig
from piko_poller.errors import TransportError


@dataclass
class FetchResult:
    status_code: int
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class HttpTransport:
    """Fetches documents from the inverter's embedded web server.

    Certificate validation is off: the devices ship self-signed certificates.
    """

    HEADERS = {"Accept": "application/xml"}
    CHUNK_SIZE = 8192

    def __init__(self, cfg: ServerConfig, log, session: Optional[requests.Session] = None, clock=time.monotonic):
        self.cfg = cfg
        self.log = log
        self.base_url = cfg.base_url.rstrip("/")
        self.timeout = cfg.timeout
        self.clock = clock
        self.session = session or requests.Session()
        self.session.verify = False
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def fetch(self, path: str) -> FetchResult:
        url = self._build_url(path)
        # requests' timeout covers the connect and each read, not the whole body
        deadline = self.clock() + self.timeout
        try:
            resp = self.session.get(
                url,
                headers=self.HEADERS,
                timeout=self.timeout,
                verify=False,
                stream=True,
            )
            try:
                chunks = []
                for chunk in resp.iter_content(chunk_size=self.CHUNK_SIZE):
                    chunks.append(chunk)
                    if self.clock() > deadline:
                        raise TransportError(f"request to {url} took longer than {self.timeout}s")
            finally:
                resp.close()
        except requests.RequestException as exc:
            raise TransportError(f"request to {url} failed: {exc}") from exc

        self.log.debug("request to %s with status %s", path, resp.status_code)
        return FetchResult(status_code=resp.status_code, body=b"".join(chunks))

    def close(self) -> None:
        self.session.close()
