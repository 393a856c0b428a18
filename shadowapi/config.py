# shadowapi/config.py
# Configuration management: env-driven, frozen sections, lazily built singleton.

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from shadowapi.errors import ErrorCode, ShadowError

logger = logging.getLogger(__name__)


DEFAULT_FRAGMENTS: Tuple[str, ...] = (
    r"""['"](\/api\/[a-zA-Z0-9_\-\/{}]+)['"]""",
    r"""['"](\/v1\/[a-zA-Z0-9_\-\/{}]+)['"]""",
    r"""['"](\/graphql[a-zA-Z0-9_\-\/]*)['"]""",
)

DEFAULT_SESSION_KEY = "shadow-api-visualizer.findings"


@dataclass(frozen=True)
class DiscoveryConfig:
    fragments: Tuple[str, ...] = DEFAULT_FRAGMENTS
    scope_only: bool = False
    scope_rules: Tuple[str, ...] = ()
    max_body_chars: int = 5_000_000
    method_lookback_chars: int = 50


@dataclass(frozen=True)
class StorageConfig:
    base_dir: Path = field(default_factory=lambda: Path.home() / ".shadowapi")
    db_name: str = "shadowapi.db"
    session_key: str = DEFAULT_SESSION_KEY
    io_timeout_seconds: float = 10.0

    @property
    def db_path(self) -> Path:
        return self.base_dir / self.db_name


@dataclass(frozen=True)
class ProxyConfig:
    listen_host: str = "127.0.0.1"
    listen_port: int = 8080


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file_enabled: bool = False
    file_name: str = "shadowapi.log"
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass
class ShadowConfig:
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    log: LogConfig = field(default_factory=LogConfig)
    debug: bool = False

    def ensure_dirs(self) -> None:
        self.storage.base_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "ShadowConfig":
        fragments = DEFAULT_FRAGMENTS
        patterns_file = os.getenv("SHADOW_PATTERNS_FILE")
        if patterns_file:
            fragments = tuple(read_lines(patterns_file))

        scope_rules: Tuple[str, ...] = ()
        scope_file = os.getenv("SHADOW_SCOPE_FILE")
        if scope_file:
            scope_rules = tuple(read_lines(scope_file))

        discovery = DiscoveryConfig(
            fragments=fragments,
            scope_only=_env_bool("SHADOW_SCOPE_ONLY", False),
            scope_rules=scope_rules,
            max_body_chars=_env_int("SHADOW_MAX_BODY_CHARS", 5_000_000),
        )

        base_dir = Path(os.getenv("SHADOW_DATA_DIR", str(Path.home() / ".shadowapi")))
        storage = StorageConfig(
            base_dir=base_dir,
            db_name=os.getenv("SHADOW_DB_NAME", "shadowapi.db"),
            session_key=os.getenv("SHADOW_SESSION_KEY", DEFAULT_SESSION_KEY),
        )

        proxy = ProxyConfig(
            listen_host=os.getenv("SHADOW_PROXY_HOST", "127.0.0.1"),
            listen_port=_env_int("SHADOW_PROXY_PORT", 8080),
        )

        log = LogConfig(
            level=os.getenv("SHADOW_LOG_LEVEL", "INFO"),
            file_enabled=_env_bool("SHADOW_LOG_FILE", False),
        )

        return cls(
            discovery=discovery,
            storage=storage,
            proxy=proxy,
            log=log,
            debug=_env_bool("SHADOW_DEBUG", False),
        )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ShadowError(
            ErrorCode.CONFIG_INVALID,
            f"{name} must be an integer",
            details={"value": raw},
        ) from e


def read_lines(path: str) -> List[str]:
    """One entry per line; blank lines and '#' comments are dropped."""
    p = Path(path).expanduser()
    if not p.is_file():
        raise ShadowError(
            ErrorCode.CONFIG_FILE_NOT_FOUND,
            f"Configured file does not exist: {p}",
            details={"path": str(p)},
        )
    lines = []
    for line in p.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            lines.append(line)
    return lines


_config: Optional[ShadowConfig] = None


def get_config() -> ShadowConfig:
    global _config
    if _config is None:
        _config = ShadowConfig.from_env()
    return _config


def set_config(config: ShadowConfig) -> None:
    global _config
    _config = config


def setup_logging(config: Optional[ShadowConfig] = None) -> None:
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        cfg.ensure_dirs()
        log_path = cfg.storage.base_dir / cfg.log.file_name
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
