"""Centralised settings for the live telemetry server and dashboard client."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from . import APP_ROOT, LOG_DIR

LOG_FILE = LOG_DIR / "telemetry.log"
DEFAULT_CONFIG_FILE = APP_ROOT / "config.yaml"

ENV_CONFIG = "TELEMETRY_CONFIG"
ENV_HOST = "TELEMETRY_HOST"
ENV_PORT = "TELEMETRY_PORT"


class ConfigurationError(RuntimeError):
    """Raised when the configuration file or overrides are invalid."""


@dataclass(slots=True)
class GeneratorSettings:
    tick_interval_s: float = 1.2
    retention: int = 120
    seed_points: int = 15
    seed_spacing_ms: int = 5000


@dataclass(slots=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 3000
    keepalive_s: float = 15.0
    subscriber_queue_size: int = 16
    gzip_minimum_size: int = 500


@dataclass(slots=True)
class ClientSettings:
    base_url: str = "http://127.0.0.1:3000"
    snapshot_path: str = "/api/telemetry/snapshot"
    stream_path: str = "/api/telemetry/stream"
    snapshot_timeout_s: float = 5.0
    backoff_floor_s: float = 1.0
    backoff_ceiling_s: float = 15.0
    live_window_s: float = 5.0
    post_layout_delay_s: float = 0.25
    base_price: float = 0.16
    price: float = 0.16
    device_count: int = 1000
    per_unit_rate: float = 1.2
    savings_fraction: float = 0.40

    @property
    def snapshot_url(self) -> str:
        return self.base_url.rstrip("/") + self.snapshot_path

    @property
    def stream_url(self) -> str:
        return self.base_url.rstrip("/") + self.stream_path


@dataclass(slots=True)
class Settings:
    generator: GeneratorSettings = field(default_factory=GeneratorSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    client: ClientSettings = field(default_factory=ClientSettings)

    def validate(self) -> "Settings":
        gen, client = self.generator, self.client
        if gen.tick_interval_s <= 0:
            raise ConfigurationError("generator.tick_interval_s must be greater than zero")
        if gen.retention < 1 or gen.seed_points < 1:
            raise ConfigurationError("generator.retention and seed_points must be positive")
        if gen.seed_points > gen.retention:
            raise ConfigurationError("generator.seed_points cannot exceed generator.retention")
        if self.server.subscriber_queue_size < 1:
            raise ConfigurationError("server.subscriber_queue_size must be positive")
        if not 0 < client.backoff_floor_s <= client.backoff_ceiling_s:
            raise ConfigurationError("client backoff floor must be positive and not exceed the ceiling")
        if client.live_window_s >= client.backoff_ceiling_s:
            raise ConfigurationError(
                "client.live_window_s must be shorter than client.backoff_ceiling_s "
                f"({client.live_window_s} >= {client.backoff_ceiling_s})"
            )
        if client.base_price <= 0:
            raise ConfigurationError("client.base_price must be greater than zero")
        return self


def _build_section(cls: type, raw: Any, name: str) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Section '{name}' must be a mapping")
    known = {item.name for item in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in section '{name}': {', '.join(unknown)}")
    try:
        return cls(**dict(raw))
    except TypeError as exc:
        raise ConfigurationError(f"Invalid section '{name}': {exc}") from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Unable to parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return data


def _apply_env(settings: Settings, env: Mapping[str, str]) -> None:
    host = env.get(ENV_HOST)
    if host:
        settings.server.host = host
    port = env.get(ENV_PORT)
    if port:
        try:
            settings.server.port = int(port)
        except ValueError as exc:
            raise ConfigurationError(f"{ENV_PORT} must be an integer, got '{port}'") from exc


def load_settings(path: Optional[Path | str] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from YAML (if present) and apply environment overrides."""
    env = os.environ if env is None else env
    candidate = Path(path) if path else Path(env.get(ENV_CONFIG) or DEFAULT_CONFIG_FILE)

    raw: Dict[str, Any] = {}
    if candidate.exists():
        raw = _read_yaml(candidate)
    elif path:
        raise ConfigurationError(f"Configuration file not found: {candidate}")

    unknown = sorted(set(raw) - {"generator", "server", "client"})
    if unknown:
        raise ConfigurationError(f"Unknown configuration sections: {', '.join(unknown)}")

    settings = Settings(
        generator=_build_section(GeneratorSettings, raw.get("generator"), "generator"),
        server=_build_section(ServerSettings, raw.get("server"), "server"),
        client=_build_section(ClientSettings, raw.get("client"), "client"),
    )
    _apply_env(settings, env)
    return settings.validate()


def setup_logging(level: int = logging.INFO, log_file: Path = LOG_FILE) -> None:
    """Configure a rotating file logger plus console echo."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[handler, console_handler],
        force=True,
    )
