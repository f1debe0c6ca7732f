"""
Compiler services
"""
from .asset_bundler import AssetBundler
from .compiler import CompilerError, OutputError, ScriptInputError, VNCompiler
from .component_extractor import ComponentExtractor
from .dependency_resolver import DependencyResolver
from .fetch_cache import FetchCache
from .path_resolver import PathResolver
from .template_assembler import TemplateAssembler
from .template_manager import TemplateError, TemplateManager

__all__ = [
    "AssetBundler",
    "CompilerError",
    "OutputError",
    "ScriptInputError",
    "VNCompiler",
    "ComponentExtractor",
    "DependencyResolver",
    "FetchCache",
    "PathResolver",
    "TemplateAssembler",
    "TemplateError",
    "TemplateManager",
]
