"""
Dependency models - third-party library declarations and their resolution
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_INTEGRITY_PATTERN = re.compile(r"^sha(256|384|512)-[A-Za-z0-9+/]+={0,2}$")


class DependencyKind(str, Enum):
    """How a declared library ends up in the document"""
    REMOTE = "remote"      # left as a <script>/<link> load tag
    INLINE = "inline"      # literal content copied into the script block
    BUNDLED = "bundled"    # fetched at compile time and inlined


class DependencyFormat(str, Enum):
    SCRIPT = "script"
    STYLESHEET = "stylesheet"


_KIND_ALIASES = {
    "cdn": DependencyKind.REMOTE.value,
    "bundle": DependencyKind.BUNDLED.value,
}

_FORMAT_ALIASES = {
    "js": DependencyFormat.SCRIPT.value,
    "css": DependencyFormat.STYLESHEET.value,
}


def detect_format(url: str) -> DependencyFormat:
    """Infer script vs stylesheet from a URL suffix"""
    lowered = (url or "").lower().split("?", 1)[0].split("#", 1)[0]
    if lowered.endswith(".css"):
        return DependencyFormat.STYLESHEET
    if lowered.endswith(".js") or lowered.endswith(".mjs"):
        return DependencyFormat.SCRIPT
    if ".css" in lowered:
        return DependencyFormat.STYLESHEET
    return DependencyFormat.SCRIPT


class DependencyDeclaration(BaseModel):
    """A library declaration from the script or from the caller"""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    kind: DependencyKind = Field(DependencyKind.REMOTE, alias="type")
    url: Optional[str] = None
    version: Optional[str] = None
    integrity: Optional[str] = None
    priority: int = 50
    defer: bool = False
    async_: bool = Field(False, alias="async")
    is_module: bool = Field(False, alias="module")
    no_module: bool = Field(False, alias="nomodule")
    crossorigin: Optional[Literal["anonymous", "use-credentials"]] = None
    condition: Optional[str] = None
    format: Optional[DependencyFormat] = None
    content: Optional[str] = None
    minify: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def _infer_format(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("format"):
            data = dict(data)
            data["format"] = detect_format(data.get("url") or "").value
        return data

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _KIND_ALIASES.get(lowered, lowered)
        return value

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _FORMAT_ALIASES.get(lowered, lowered)
        return value

    @field_validator("priority")
    @classmethod
    def _check_priority(cls, value: int) -> int:
        if value < 0 or value > 100:
            raise ValueError(f"priority must be between 0 and 100 (got {value})")
        return value

    @field_validator("integrity")
    @classmethod
    def _check_integrity(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _INTEGRITY_PATTERN.match(value.strip()):
            raise ValueError("integrity must be an SRI hash such as 'sha384-<base64>'")
        return value.strip() if value else value

    @model_validator(mode="after")
    def _check_kind_requirements(self) -> "DependencyDeclaration":
        if not self.name or not self.name.strip():
            raise ValueError("dependency name is required")
        if self.kind in (DependencyKind.REMOTE, DependencyKind.BUNDLED) and not self.url:
            raise ValueError(f"{self.kind.value} dependency '{self.name}' requires a url")
        if self.kind == DependencyKind.INLINE and not self.content:
            raise ValueError(f"inline dependency '{self.name}' requires content")
        return self


class ResolvedDependency(BaseModel):
    """A declaration after resolution; bundled ones carry fetched content"""
    model_config = ConfigDict(frozen=True)

    declaration: DependencyDeclaration
    content: Optional[str] = None
    size_bytes: int = 0
    minified: bool = False
    content_hash: Optional[str] = None

    @property
    def name(self) -> str:
        return self.declaration.name


class DependencyPreset(BaseModel):
    """A named group of declarations, expanded by 'preset:<name>'"""
    name: str
    description: str = ""
    category: Literal["ui", "audio", "graphics", "analytics", "utils", "custom"] = "custom"
    dependencies: List[DependencyDeclaration] = Field(default_factory=list)


class DependencyStats(BaseModel):
    total: int = 0
    remote: int = 0
    bundled: int = 0
    inline: int = 0
    dropped: int = 0
    total_bundled_size: int = 0
    cache_entries: int = 0


class ResolvedBundle(BaseModel):
    """Everything the template assembler needs from the dependency resolver"""
    cdn_markup: str = ""
    bundled_script: str = ""
    bundled_style: str = ""
    inline_script: str = ""
    resolved: List[ResolvedDependency] = Field(default_factory=list)
    dropped: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    stats: DependencyStats = Field(default_factory=DependencyStats)

    def manifest(self) -> Dict[str, Any]:
        """Diagnostic summary carried into the runtime data"""
        return {
            "stats": self.stats.model_dump(exclude={"cache_entries"}),
            "dependencies": [
                {
                    "name": item.name,
                    "kind": item.declaration.kind.value,
                    "format": item.declaration.format.value if item.declaration.format else None,
                    "url": item.declaration.url,
                    "version": item.declaration.version,
                    "priority": item.declaration.priority,
                    "sizeBytes": item.size_bytes,
                    "minified": item.minified,
                    "hash": item.content_hash,
                }
                for item in self.resolved
            ],
            "dropped": list(self.dropped),
        }
