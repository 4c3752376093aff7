# piko_poller/config.py
from dataclasses import dataclass, field
from pathlib import Path
import configparser
import re

from piko_poller.errors import ConfigurationError

HOST_PATTERN = re.compile(r"^[A-Za-z0-9.]+$")


@dataclass
class ServerConfig:
    host: str
    protocol: str = "http"
    port: int = 80
    timeout: float = 5.0

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


@dataclass
class PollingConfig:
    interval_ms: int = 10000
    fail_count: int = 5
    fail_timeout_ms: int = 60000


@dataclass
class StateConfig:
    path: str | None = None


@dataclass
class SimulationConfig:
    document: str | None = None


@dataclass
class RetentionConfig:
    stale_days: int = 30
    vacuum_after_prune: bool = True


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    server: ServerConfig
    polling: PollingConfig
    state: StateConfig
    simulation: SimulationConfig
    retention: RetentionConfig
    logging: LoggingConfig


def validate_server(server: ServerConfig) -> None:
    if not HOST_PATTERN.match(server.host or ""):
        raise ConfigurationError(
            f"Server IP/Host: {server.host} is invalid - example 192.168.0.1"
        )
    if server.protocol not in ("http", "https"):
        raise ConfigurationError(f"Unsupported protocol: {server.protocol}")
    if not 0 < server.port < 65536:
        raise ConfigurationError(f"Port out of range: {server.port}")
    if server.timeout <= 0:
        raise ConfigurationError("server timeout must be positive")


def validate_polling(polling: PollingConfig) -> None:
    if polling.interval_ms <= 0:
        raise ConfigurationError("interval_ms must be positive")
    if polling.fail_timeout_ms <= 0:
        raise ConfigurationError("fail_timeout_ms must be positive")
    if polling.fail_count < 0:
        raise ConfigurationError("fail_count must not be negative")


def validate_retention(retention: RetentionConfig) -> None:
    if retention.stale_days < 0:
        raise ConfigurationError("[retention] stale_days must not be negative")


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        read = self.parser.read(self.path)
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _as_int(section: str, key: str, raw: str) -> int:
            try:
                return int(raw.strip())
            except ValueError as exc:
                raise ConfigurationError(f"[{section}] {key} must be an integer, got {raw!r}") from exc

        # --- Server ---
        if "server" not in p:
            raise ConfigurationError("[server] section missing from config")
        server_sec = p["server"]
        host = server_sec.get("host", "").strip()
        if not host:
            raise ConfigurationError("[server] host is required")
        server_kwargs = {"host": host}
        if "protocol" in server_sec:
            server_kwargs["protocol"] = server_sec["protocol"].strip().lower()
        if "port" in server_sec:
            server_kwargs["port"] = _as_int("server", "port", server_sec["port"])
        if "timeout" in server_sec:
            try:
                server_kwargs["timeout"] = float(server_sec["timeout"])
            except ValueError as exc:
                raise ConfigurationError("[server] timeout must be a number") from exc
        server = ServerConfig(**server_kwargs)
        validate_server(server)

        # --- Polling ---
        polling_kwargs = {}
        if "polling" in p:
            polling_sec = p["polling"]
            for key in ("interval_ms", "fail_count", "fail_timeout_ms"):
                if key in polling_sec:
                    polling_kwargs[key] = _as_int("polling", key, polling_sec[key])
        polling = PollingConfig(**polling_kwargs)
        validate_polling(polling)

        # --- State ---
        state_kwargs = {}
        if "state" in p and "path" in p["state"]:
            state_kwargs["path"] = p["state"]["path"]
        state_cfg = StateConfig(**state_kwargs)

        # --- Simulation ---
        simulation_kwargs = {}
        if "simulation" in p and "document" in p["simulation"]:
            document_raw = p["simulation"]["document"].strip()
            simulation_kwargs["document"] = document_raw or None
        simulation_cfg = SimulationConfig(**simulation_kwargs)

        # --- Retention ---
        retention_kwargs = {}
        if "retention" in p:
            retention_sec = p["retention"]
            if "stale_days" in retention_sec:
                retention_kwargs["stale_days"] = _as_int("retention", "stale_days", retention_sec["stale_days"])
            if "vacuum_after_prune" in retention_sec:
                retention_kwargs["vacuum_after_prune"] = _as_bool(retention_sec["vacuum_after_prune"])
        retention_cfg = RetentionConfig(**retention_kwargs)
        validate_retention(retention_cfg)

        # --- Logging ---
        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                raw = logging_sec["debug_modules"]
                logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
            if "structured_enabled" in logging_sec:
                logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
            if "structured_path" in logging_sec:
                logging_kwargs["structured_path"] = logging_sec["structured_path"]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            server=server,
            polling=polling,
            state=state_cfg,
            simulation=simulation_cfg,
            retention=retention_cfg,
            logging=logging_cfg,
        )
