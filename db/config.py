"""
db/config.py

Environment plumbing shared by the warehouse session and the app settings:
`.env` loading, the deployment environment name and the database URL.
"""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILES = (".env", ".env.local")

_PRODUCTION_ENVIRONMENTS = frozenset({"prod", "production"})
_CLOUD_ENVIRONMENTS = _PRODUCTION_ENVIRONMENTS | {"staging", "cloud"}

_DRIVER_PREFIXES = (
    ("postgres://", "postgresql+psycopg://"),
    ("postgresql://", "postgresql+psycopg://"),
)


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip("\"'")


def load_env_files(root: Path | None = None) -> None:
    """
    Copy KEY=VALUE pairs from the project's env files into ``os.environ``.

    Variables already present in the process environment win.
    """

    base = root or Path(__file__).resolve().parents[1]
    for filename in ENV_FILES:
        path = base / filename
        if not path.is_file():
            continue
        for raw_line in path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is not None:
                os.environ.setdefault(*parsed)


def current_environment() -> str:
    return os.getenv("ENVIRONMENT", "").strip().lower() or "local"


def is_production() -> bool:
    return current_environment() in _PRODUCTION_ENVIRONMENTS


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite bare postgres URLs to the psycopg 3 driver SQLAlchemy expects.
    """

    for prefix, replacement in _DRIVER_PREFIXES:
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def resolve_database_url() -> str:
    """
    Pick the warehouse URL: ``DATABASE_URL``, then ``CLOUD_DATABASE_URL`` in
    cloud-like environments, then ``LOCAL_DATABASE_URL``.
    """

    load_env_files()
    candidates = [os.getenv("DATABASE_URL")]
    if current_environment() in _CLOUD_ENVIRONMENTS:
        candidates.append(os.getenv("CLOUD_DATABASE_URL"))
    candidates.append(os.getenv("LOCAL_DATABASE_URL"))

    for url in candidates:
        if url:
            return normalize_postgres_url(url)
    raise RuntimeError(
        "No telemetry database URL configured. Set DATABASE_URL, or "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )
