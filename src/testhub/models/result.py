"""Test outcome model used when recording submissions directly."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TestOutcome(BaseModel):
    """One test case result reported by a computer for a commit."""

    __test__ = False

    module: str = Field(min_length=1)
    name: str = Field(min_length=1)
    passed: bool
    checksum: Optional[str] = None
    failure_type: Optional[str] = None
