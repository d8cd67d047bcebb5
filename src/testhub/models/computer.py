"""Per-computer completion view for a commit."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from testhub.models.status import CompilationStatus


class ComputerSpec(BaseModel):
    """Build environment a submission was produced on."""

    model_config = {"frozen": True}

    platform_version: Optional[str] = None
    sdk_version: Optional[str] = None
    math_backend: Optional[str] = None
    compiler: Optional[str] = None
    compiler_version: Optional[str] = None

    def __str__(self) -> str:
        parts = [
            self.platform_version,
            self.sdk_version and f"SDK {self.sdk_version}",
            self.math_backend,
            self.compiler and " ".join(p for p in (self.compiler, self.compiler_version) if p),
        ]
        return ", ".join(p for p in parts if p) or "unspecified"


class ComputerSpecInfo(BaseModel):
    """How much of a commit's test suite one computer+spec combination ran.

    Attributes:
        computer: Computer name.
        spec: Build environment of the grouped submissions.
        numerator: Distinct test cases exercised by this group.
        denominator: Test cases known for the commit.
        compilation: Compile outcome across this computer's submissions.
    """

    computer: str
    spec: ComputerSpec
    numerator: int
    denominator: int
    compilation: CompilationStatus = CompilationStatus.UNKNOWN

    @property
    def fraction(self) -> float:
        if self.denominator == 0:
            return 0.0
        return self.numerator / self.denominator

    @property
    def complete(self) -> bool:
        return self.denominator > 0 and self.numerator == self.denominator
