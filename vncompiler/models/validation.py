"""
Validation models - results of checking a script without compiling it
"""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class IssueLocation(BaseModel):
    scene: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None


class ValidationIssue(BaseModel):
    """A single validation error with an optional fix suggestion"""
    type: Literal["syntax", "reference", "asset", "template", "component"]
    message: str
    location: Optional[IssueLocation] = None
    suggestion: Optional[str] = None


class ValidationResult(BaseModel):
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
