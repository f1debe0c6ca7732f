"""
VN Compiler - orchestrates one compile from script to single-file document

Flow per compile:
1. load + parse the script (fatal on failure)
2. hand the scenes to a fresh narrative engine
3-5. assets, components and dependencies, gathered concurrently
6. template assembly
7. atomic write of the output
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from vncompiler.models.compiler import CompileRequest, CompileResult, CompileStats, ProcessedAsset
from vncompiler.models.component import ComponentBundle, ComponentMountDirective
from vncompiler.models.dependency import DependencyDeclaration
from vncompiler.services.asset_bundler import AssetBundler
from vncompiler.services.component_extractor import ComponentExtractor
from vncompiler.services.dependency_resolver import DependencyResolver
from vncompiler.services.narrative_engine import NarrativeEngine, YamlSceneEngine
from vncompiler.services.template_assembler import TemplateAssembler
from vncompiler.services.template_manager import TemplateError, TemplateManager
from vncompiler.utils.formatting import format_duration, format_size

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
EngineFactory = Callable[[], NarrativeEngine]


class CompilerError(RuntimeError):
    """Base class for fatal compile errors."""


class ScriptInputError(CompilerError):
    """The script is missing, unreadable or not shaped like a script."""


class OutputError(CompilerError):
    """The output document could not be written."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _warn(warnings: List[str], message: str) -> None:
    logger.warning("[VNCompiler] %s", message)
    warnings.append(message)


class VNCompiler:
    """
    Compile pipeline.

    Collaborators are injectable. The dependency resolver (and its fetch
    cache) is the only piece meant to be shared between compiles; everything
    else a compile produces belongs to that compile.
    """

    def __init__(
        self,
        *,
        resolver: Optional[DependencyResolver] = None,
        asset_bundler: Optional[AssetBundler] = None,
        extractor: Optional[ComponentExtractor] = None,
        templates: Optional[TemplateManager] = None,
        assembler: Optional[TemplateAssembler] = None,
        engine_factory: EngineFactory = YamlSceneEngine,
        clock: Clock = _utc_now,
    ) -> None:
        self.resolver = resolver or DependencyResolver()
        self.asset_bundler = asset_bundler or AssetBundler()
        self.extractor = extractor or ComponentExtractor()
        self.templates = templates or TemplateManager()
        self.assembler = assembler or TemplateAssembler(self.templates)
        self._engine_factory = engine_factory
        self._clock = clock

    async def compile(self, request: CompileRequest) -> CompileResult:
        """Run one compile; fatal problems come back as success=False"""
        started = time.perf_counter()
        warnings: List[str] = []
        logger.info("[VNCompiler] Compiling %s -> %s", self._describe_input(request.input), request.output)

        try:
            stats = await self._run(request, warnings)
        except (CompilerError, TemplateError) as exc:
            logger.error("[VNCompiler] Compilation failed: %s", exc)
            return CompileResult(success=False, error=str(exc), warnings=warnings)

        stats.compilation_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "[VNCompiler] Compiled %s scenes in %s -> %s (%s, %s warnings)",
            stats.scene_count,
            format_duration(stats.compilation_time_ms),
            request.output,
            format_size(stats.output_size_bytes),
            len(warnings),
        )
        return CompileResult(
            success=True,
            output_path=str(request.output),
            warnings=warnings,
            stats=stats,
        )

    async def _run(self, request: CompileRequest, warnings: List[str]) -> CompileStats:
        script_text, script_path = await asyncio.to_thread(self._load_script, request.input)
        parsed = self._parse_script(script_text)

        scenes_yaml = yaml.safe_dump(parsed["scenes"], sort_keys=False, allow_unicode=True)
        engine = self._engine_factory()
        try:
            engine.load_script(scenes_yaml)
            scenes = engine.get_all_scenes()
        except (ValueError, yaml.YAMLError) as exc:
            raise ScriptInputError(f"Scenes could not be loaded: {exc}") from exc
        logger.info("[VNCompiler] Loaded %s scenes", len(scenes))

        # The template is fatal when missing, so load it before any fetching
        template = await asyncio.to_thread(self.templates.load_template)
        fragments = await asyncio.to_thread(self.templates.load_runtime_fragments, warnings)
        theme_css = await asyncio.to_thread(self.templates.load_theme_css, warnings)

        metadata = self._build_metadata(request, parsed)
        title = request.title or metadata.get("title") or "VN Game"
        theme = self.templates.theme_for(metadata, fallback=request.theme)

        declarations = self._collect_declarations(request, parsed, warnings)
        base_dir = script_path.parent if script_path else Path.cwd()

        asset_warnings: List[str] = []
        component_warnings: List[str] = []
        dependency_warnings: List[str] = []
        (assets, (directives, components), bundle) = await asyncio.gather(
            asyncio.to_thread(self._gather_assets, request.assets_dir, parsed.get("assets"), asset_warnings),
            asyncio.to_thread(self._gather_components, script_path, scenes, component_warnings),
            self.resolver.resolve_all(
                declarations,
                request.minify,
                base_dir=base_dir,
                warnings=dependency_warnings,
            ),
        )
        warnings.extend(asset_warnings)
        warnings.extend(component_warnings)
        warnings.extend(dependency_warnings)

        custom_css = await asyncio.to_thread(self._read_override, request.custom_css, "CSS", warnings)
        custom_js = await asyncio.to_thread(self._read_override, request.custom_js, "JS", warnings)

        artifact = self.assembler.render(
            template=template,
            fragments=fragments,
            theme=theme,
            theme_css=theme_css,
            title=str(title),
            metadata=metadata,
            script_text=scenes_yaml,
            scenes=scenes,
            variables=parsed.get("variables") or {},
            assets=assets,
            directives=directives,
            components=components,
            dependencies=bundle,
            dependency_manifest=self.resolver.manifest(declarations, bundle),
            generated_at=self._clock().isoformat(),
            custom_css=custom_css,
            custom_js=custom_js,
            minify=request.minify,
        )
        warnings.extend(artifact.warnings)

        await asyncio.to_thread(self._write_output, request.output, artifact.document)

        return CompileStats(
            scene_count=len(scenes),
            asset_count=len(assets),
            component_count=len(directives),
            dependency_count=len(bundle.resolved),
            output_size_bytes=artifact.size_bytes,
        )

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    @staticmethod
    def _describe_input(value: str) -> str:
        return "<inline script>" if "\n" in value else value

    @staticmethod
    def _load_script(value: str) -> Tuple[str, Optional[Path]]:
        """A value containing a newline is the script itself, else a path"""
        if "\n" in value:
            return value, None
        path = Path(value)
        if not path.is_file():
            raise ScriptInputError(f"Script file not found: {value}")
        try:
            return path.read_text(encoding="utf-8"), path.resolve()
        except (OSError, UnicodeDecodeError) as exc:
            raise ScriptInputError(f"Failed to load script {value}: {exc}") from exc

    @staticmethod
    def _parse_script(text: str) -> Dict[str, Any]:
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ScriptInputError(f"Invalid YAML in script: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ScriptInputError("Script must be a mapping at the top level")
        if not isinstance(parsed.get("scenes"), dict):
            raise ScriptInputError("Script must define 'scenes' as a mapping of scene name to instructions")
        for key in ("variables", "styles"):
            if parsed.get(key) is not None and not isinstance(parsed[key], dict):
                raise ScriptInputError(f"Script '{key}' must be a mapping")
        return parsed

    @staticmethod
    def _build_metadata(request: CompileRequest, parsed: Dict[str, Any]) -> Dict[str, Any]:
        metadata = request.metadata.model_dump(exclude_none=True)
        if parsed.get("title"):
            metadata["title"] = parsed["title"]
        elif request.title and not metadata.get("title"):
            metadata["title"] = request.title
        if parsed.get("description"):
            metadata["description"] = parsed["description"]
        metadata["variables"] = parsed.get("variables") or {}
        metadata["styles"] = parsed.get("styles") or {}
        return metadata

    def _collect_declarations(
        self,
        request: CompileRequest,
        parsed: Dict[str, Any],
        warnings: List[str],
    ) -> List[DependencyDeclaration]:
        from_script = self.resolver.declarations_from_script(
            parsed.get("dependencies"),
            parsed.get("dependencies_quick"),
            warnings,
        )
        from_caller: List[DependencyDeclaration] = []
        for entry in request.dependencies:
            from_caller.extend(self.resolver.coerce(entry, warnings))
        return self.resolver.merge(from_script, from_caller)

    # ------------------------------------------------------------------
    # Concurrent stages (run in worker threads)
    # ------------------------------------------------------------------

    def _gather_assets(
        self,
        assets_dir: Optional[str],
        script_assets: Any,
        warnings: List[str],
    ) -> List[ProcessedAsset]:
        assets = self.asset_bundler.process_assets(assets_dir, warnings) if assets_dir else []
        return assets + self.asset_bundler.assets_from_script(script_assets, warnings)

    def _gather_components(
        self,
        script_path: Optional[Path],
        scenes: List[Dict[str, Any]],
        warnings: List[str],
    ) -> Tuple[List[ComponentMountDirective], ComponentBundle]:
        directives = self.extractor.extract(script_path, scenes, warnings)
        bundle = self.extractor.load_payloads(directives, script_path, warnings)
        return directives, bundle

    @staticmethod
    def _read_override(path: Optional[str], label: str, warnings: List[str]) -> str:
        if not path:
            return ""
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _warn(warnings, f"Failed to load custom {label} file {path}: {exc}")
            return ""
        logger.debug("[VNCompiler] Loaded custom %s: %s", label, path)
        return content

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @staticmethod
    def _write_output(output: str, document: str) -> None:
        """Write through a temp file in the target directory, then rename"""
        target = Path(output)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(document)
                os.replace(temp_name, target)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(temp_name)
                raise
        except OSError as exc:
            raise OutputError(f"Failed to write output {output}: {exc}") from exc
