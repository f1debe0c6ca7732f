"""
Compiler models - compile requests, processed assets and compile results
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .dependency import DependencyDeclaration

# Images at or below this size are inlined as data URIs
EMBED_THRESHOLD = 1024 * 1024


class AssetKind(str, Enum):
    """Media classification derived from the file extension"""
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    UNKNOWN = "unknown"


class GameMetadata(BaseModel):
    """Title / author / description block carried into the document head"""
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    created: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class CompileRequest(BaseModel):
    """One compile invocation. Immutable for the duration of the compile."""
    model_config = ConfigDict(frozen=True)

    input: str                                  # script path or literal YAML
    output: str
    assets_dir: Optional[str] = None
    custom_css: Optional[str] = None            # path to a stylesheet override
    custom_js: Optional[str] = None             # path to a script override
    minify: bool = False
    title: Optional[str] = None
    theme: Optional[str] = None                 # used when the script sets no styles.theme
    metadata: GameMetadata = Field(default_factory=GameMetadata)
    dependencies: List[Union[DependencyDeclaration, str]] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_paths(self) -> "CompileRequest":
        if not self.input:
            raise ValueError("Input script path is required")
        if not self.output:
            raise ValueError("Output path is required")
        return self


class ProcessedAsset(BaseModel):
    """A media file classified and either embedded or referenced"""
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    relative_path: str
    kind: AssetKind
    size_bytes: int = 0
    embedded_data: Optional[str] = None
    reference_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_embedding(self) -> "ProcessedAsset":
        has_data = self.embedded_data is not None
        has_url = self.reference_url is not None
        if has_data == has_url:
            raise ValueError(
                f"asset '{self.key}' must have exactly one of embedded_data / reference_url"
            )
        if has_data and (self.kind != AssetKind.IMAGE or self.size_bytes > EMBED_THRESHOLD):
            raise ValueError(
                f"asset '{self.key}' may only embed images of at most {EMBED_THRESHOLD} bytes"
            )
        return self

    @property
    def embedded(self) -> bool:
        return self.embedded_data is not None

    @property
    def src(self) -> str:
        return self.embedded_data or self.reference_url or ""


class BundleArtifact(BaseModel):
    """The assembled single-file document"""
    model_config = ConfigDict(frozen=True)

    document: str
    warnings: List[str] = Field(default_factory=list)

    @property
    def size_bytes(self) -> int:
        return len(self.document.encode("utf-8"))


class CompileStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scene_count: int = Field(0, alias="sceneCount")
    asset_count: int = Field(0, alias="assetCount")
    component_count: int = Field(0, alias="componentCount")
    dependency_count: int = Field(0, alias="dependencyCount")
    output_size_bytes: int = Field(0, alias="outputSizeBytes")
    compilation_time_ms: int = Field(0, alias="compilationTimeMs")


class CompileResult(BaseModel):
    """Outcome of one compile: success with stats, or a single error message"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    output_path: Optional[str] = Field(None, alias="outputPath")
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    stats: CompileStats = Field(default_factory=CompileStats)
