"""
Environment-driven database configuration for the session store.
"""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILES = (".env", ".env.local")
CLOUD_LIKE_ENVIRONMENTS = {"prod", "production", "staging", "cloud"}


def load_env_files(filenames: tuple[str, ...] = ENV_FILES) -> None:
    """
    Load KEY=VALUE pairs from project env files into os.environ.

    Variables already present in the process environment win.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in filenames:
        env_path = project_root / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export ") :]

            key, value = line.split("=", 1)
            key = key.strip()
            if key and key not in os.environ:
                os.environ[key] = value.strip().strip('"').strip("'")


def normalize_database_url(url: str) -> str:
    """
    Rewrite bare postgres URLs to the psycopg driver; other URLs pass through.
    """

    url = url.strip()
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def resolve_database_url(override: str | None = None) -> str:
    """
    Resolve the session database URL.

    Priority:
    1) explicit `override`
    2) SCRAPE_DATABASE_URL
    3) DATABASE_URL
    4) CLOUD_DATABASE_URL when ENVIRONMENT is cloud-like
    5) LOCAL_DATABASE_URL
    """

    if override and override.strip():
        return normalize_database_url(override)

    load_env_files()

    for name in ("SCRAPE_DATABASE_URL", "DATABASE_URL"):
        value = os.getenv(name)
        if value and value.strip():
            return normalize_database_url(value)

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = os.getenv("CLOUD_DATABASE_URL")
    if environment in CLOUD_LIKE_ENVIRONMENTS and cloud_url:
        return normalize_database_url(cloud_url)

    local_url = os.getenv("LOCAL_DATABASE_URL")
    if local_url:
        return normalize_database_url(local_url)

    raise RuntimeError(
        "No database URL configured for SCRAPE_SESSION_BACKEND=database. Set "
        "SCRAPE_DATABASE_URL or DATABASE_URL, or configure LOCAL_DATABASE_URL / "
        "CLOUD_DATABASE_URL."
    )
