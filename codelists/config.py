"""
Configuration for codelist evaluation and its collaborators.

Values default to sensible local settings and can be overridden from
``CODELISTS_*`` environment variables via ``load_config()``.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class EvaluationConfig:
    """Configuration for evaluation operations"""
    include_historic: bool = True
    max_workers: int = field(default_factory=lambda: os.cpu_count() or 4)
    timeout: Optional[float] = None
    parallel: bool = True


@dataclass
class ServerConfig:
    """Configuration for remote hermes and dm+d servers"""
    hermes_url: Optional[str] = None
    dmd_url: Optional[str] = None
    request_timeout: int = 30
    max_retries: int = 3
    user_agent: str = "codelists/1.0"


@dataclass
class SnapshotConfig:
    """Location of a local terminology snapshot (CSV or Parquet tables)"""
    directory: Optional[str] = None


@dataclass
class CodelistsConfig:
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def load_config() -> CodelistsConfig:
    """Build configuration from CODELISTS_* environment variables."""
    evaluation = EvaluationConfig()
    evaluation.include_historic = _env_bool("CODELISTS_INCLUDE_HISTORIC", evaluation.include_historic)
    evaluation.max_workers = _env_int("CODELISTS_MAX_WORKERS", evaluation.max_workers)
    evaluation.timeout = _env_float("CODELISTS_TIMEOUT", evaluation.timeout)

    server = ServerConfig(
        hermes_url=os.getenv("CODELISTS_HERMES_URL") or None,
        dmd_url=os.getenv("CODELISTS_DMD_URL") or None,
    )
    server.request_timeout = _env_int("CODELISTS_REQUEST_TIMEOUT", server.request_timeout)
    server.max_retries = _env_int("CODELISTS_MAX_RETRIES", server.max_retries)

    snapshot = SnapshotConfig(directory=os.getenv("CODELISTS_SNAPSHOT_DIR") or None)

    return CodelistsConfig(evaluation=evaluation, server=server, snapshot=snapshot)


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach a single stream handler to the package logger if none is present."""
    logger = logging.getLogger("codelists")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
