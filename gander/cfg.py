"""Settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MIGRATION_DIR = "."


@dataclass(frozen=True)
class EnvVar:
    """An environment variable and the value it resolved to."""

    name: str
    value: str


def env_or(key: str, default: str) -> str:
    """Return the variable ``key`` from the environment, or ``default`` if unset or empty."""
    return os.environ.get(key, "") or default


def list_vars() -> list[EnvVar]:
    """Return the environment variables the tool understands, with their current values."""
    return [
        EnvVar("GOOSE_DRIVER", env_or("GOOSE_DRIVER", "")),
        EnvVar("GOOSE_DBSTRING", env_or("GOOSE_DBSTRING", "")),
        EnvVar("GOOSE_MIGRATION_DIR", env_or("GOOSE_MIGRATION_DIR", DEFAULT_MIGRATION_DIR)),
        EnvVar("NO_COLOR", env_or("NO_COLOR", "false")),
    ]