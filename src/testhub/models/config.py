"""Configuration model for testhub.

HubConfig holds the repository coordinates, the modules whose test lists
are scanned, and the tuning knobs of the sync engine.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

_ENV_PREFIX = "TESTHUB_"


class HubConfig(BaseModel):
    """Per-installation configuration."""

    repo_path: str = "MESAHub/mesa"
    db_path: str = ":memory:"
    db_url: Optional[str] = None
    default_branch: str = "main"
    modules: list[str] = Field(default_factory=lambda: ["star", "binary", "astero"])
    test_list_path: str = "{module}/test_suite/do1_test_source"

    # Sync tuning
    days_before: int = Field(default=2, ge=1)
    lookback_factor: int = Field(default=5, ge=2)
    lookback_cap_days: int = Field(default=250, ge=1)

    # Navigation
    per_page: int = Field(default=50, ge=1)
    nearby_limit: int = Field(default=7, ge=1)

    # Remote
    github_token: Optional[str] = Field(default=None, repr=False)
    github_api_url: Optional[str] = None

    @field_validator("modules", mode="before")
    @classmethod
    def _split_modules(cls, v: object) -> object:
        """Accept a comma-separated string (env var form)."""
        if isinstance(v, str):
            return [m.strip() for m in v.split(",") if m.strip()]
        return v

    def test_list_for(self, module: str) -> str:
        """Repository path of the test list file for a module."""
        return self.test_list_path.format(module=module)

    @classmethod
    def from_env(cls, *, dotenv: bool = True, **overrides: object) -> HubConfig:
        """Build a config from ``TESTHUB_*`` environment variables.

        A ``.env`` file in the working directory is loaded first (without
        overriding variables already set). Keyword overrides win over both.
        """
        if dotenv:
            load_dotenv(override=False)

        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
