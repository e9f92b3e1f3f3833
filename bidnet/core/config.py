"""
Service configuration parameters for bidnet.

Defines network endpoints, storage locations and operational limits.
Values come from defaults, then BIDNET_* environment variables (optionally
loaded from a .env file), then explicit CLI options.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "BIDNET_"


@dataclass
class ServiceConfig:
    """Service-wide configuration parameters"""

    # Network
    host: str = "127.0.0.1"
    port: int = 40001
    request_timeout: float = 10.0  # Seconds a client waits for a reply
    max_body_size: int = 1024 * 1024  # Maximum request/response body in bytes

    # Identity
    seed_bytes: int = 32  # Length of persisted dht/rpc seeds

    # Storage
    data_dir: Path = Path("~/.bidnet")
    db_name: str = "auction.db"

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: Optional[Path] = None

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()
        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir).expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    def ensure_dirs(self) -> None:
        """Create data (and log) directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        if self.log_to_file:
            (self.log_dir or self.data_dir / "logs").mkdir(exist_ok=True, parents=True)

    def with_overrides(self, **overrides) -> "ServiceConfig":
        """Copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _coerce(raw: str, current):
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, Path) or current is None:
        return Path(raw)
    return raw


def load_config(env_file: Optional[str] = None) -> ServiceConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional path to a .env file; when None, a .env in the
            working directory is used if present. Variables already set in
            the process environment win over the file.

    Returns:
        ServiceConfig instance
    """
    load_dotenv(dotenv_path=env_file or find_dotenv(usecwd=True), override=False)

    defaults = ServiceConfig()
    values = {}
    for f in fields(ServiceConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        try:
            values[f.name] = _coerce(raw, getattr(defaults, f.name))
        except ValueError as e:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}") from e

    return ServiceConfig(**values)
