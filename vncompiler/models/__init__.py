"""
Data models
"""
from .compiler import (
    EMBED_THRESHOLD,
    AssetKind,
    BundleArtifact,
    CompileRequest,
    CompileResult,
    CompileStats,
    GameMetadata,
    ProcessedAsset,
)
from .component import ComponentBundle, ComponentMountDirective, ComponentPayload
from .dependency import (
    DependencyDeclaration,
    DependencyFormat,
    DependencyKind,
    DependencyPreset,
    DependencyStats,
    ResolvedBundle,
    ResolvedDependency,
    detect_format,
)
from .project import ProjectConfig
from .validation import IssueLocation, ValidationIssue, ValidationResult

__all__ = [
    "EMBED_THRESHOLD",
    "AssetKind",
    "BundleArtifact",
    "CompileRequest",
    "CompileResult",
    "CompileStats",
    "GameMetadata",
    "ProcessedAsset",
    "ComponentBundle",
    "ComponentMountDirective",
    "ComponentPayload",
    "DependencyDeclaration",
    "DependencyFormat",
    "DependencyKind",
    "DependencyPreset",
    "DependencyStats",
    "ResolvedBundle",
    "ResolvedDependency",
    "detect_format",
    "ProjectConfig",
    "IssueLocation",
    "ValidationIssue",
    "ValidationResult",
]
