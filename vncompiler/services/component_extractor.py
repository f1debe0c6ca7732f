"""
Component Directive Extractor

Scans scene text for mount directives of the form

    {{component "create" "KeeperStats" "./components/keeper-stats.js" "" "keeper" "expanded=true,slots=3"}}

and loads the referenced script / stylesheet payloads once per distinct path.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

from vncompiler.models.component import (
    ComponentBundle,
    ComponentMountDirective,
    ComponentPayload,
)
from vncompiler.services.path_resolver import PathNotFound, PathResolver

logger = logging.getLogger(__name__)

_Q = r"""["']"""
DIRECTIVE_PATTERN = re.compile(
    r"\{\{\s*component\s+"
    rf"{_Q}create{_Q}\s+"
    rf"{_Q}([^\"']+){_Q}\s+"      # component name
    rf"{_Q}([^\"']+){_Q}\s+"      # script path
    rf"{_Q}([^\"']*){_Q}\s+"      # stylesheet path, may be empty
    rf"{_Q}([^\"']+){_Q}\s+"      # instance id
    rf"{_Q}([^\"']*){_Q}\s*"      # k=v,... config
    r"\}\}"
)
# Only "create" is compiled; mount/update/show/hide/unmount are runtime actions
_DIRECTIVE_START = re.compile(r"\{\{\s*component\s+" rf"{_Q}create{_Q}")

TEXT_FIELDS = ("say", "text", "content", "message", "speaker")
BRANCH_FIELDS = ("then", "else")
STYLESHEET_SUFFIXES = ("-styles.css", ".css", "-style.css")

_INT = re.compile(r"^-?\d+$")
_FLOAT = re.compile(r"^-?\d*\.\d+$")

_EXPORT_DEFAULT_NAME = re.compile(r"^export\s+default\s+\w+;?\s*$", re.MULTILINE)
_EXPORT_LIST = re.compile(r"^export\s*\{[^}]*\}\s*;?\s*$", re.MULTILINE)
_EXPORT_PREFIX = re.compile(
    r"^export\s+(?:default\s+)?(?=(?:async\s+)?(?:class|function|const|let|var)\b)",
    re.MULTILINE,
)


@dataclass(frozen=True)
class DirectiveMatch:
    component_name: str
    script_path: str
    stylesheet_path: Optional[str]
    instance_id: str
    config_text: str
    start: int


@dataclass(frozen=True)
class MalformedDirective:
    text: str
    start: int


@dataclass
class ConfigParseResult:
    values: Dict[str, Any] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


def find_directives(text: str) -> List[Union[DirectiveMatch, MalformedDirective]]:
    """Tokenize every `{{component "create" ...}}` occurrence; never raises"""
    found: List[Union[DirectiveMatch, MalformedDirective]] = []
    if not text or "component" not in text:
        return found
    for start_match in _DIRECTIVE_START.finditer(text):
        start = start_match.start()
        match = DIRECTIVE_PATTERN.match(text, start)
        if match is None:
            end = text.find("}}", start)
            found.append(MalformedDirective(text=text[start:end + 2 if end != -1 else len(text)], start=start))
            continue
        name, script, style, instance, config = (group.strip() for group in match.groups())
        found.append(
            DirectiveMatch(
                component_name=name,
                script_path=script,
                stylesheet_path=style if style and style.lower() != "null" else None,
                instance_id=instance,
                config_text=config,
                start=start,
            )
        )
    return found


def coerce_value(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT.match(value):
        return int(value)
    if _FLOAT.match(value):
        return float(value)
    return value


def parse_config(text: str) -> ConfigParseResult:
    """'a=1,b=true,c=x' -> {'a': 1, 'b': True, 'c': 'x'}; bad pairs are skipped"""
    result = ConfigParseResult()
    if not text or not text.strip():
        return result
    for pair in text.split(","):
        if not pair.strip():
            continue
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            result.skipped.append(pair.strip())
            continue
        result.values[key] = coerce_value(value.strip())
    return result


def strip_module_exports(source: str) -> str:
    source = _EXPORT_DEFAULT_NAME.sub("", source)
    source = _EXPORT_LIST.sub("", source)
    source = _EXPORT_PREFIX.sub("", source)
    return source.strip()


def _iter_texts(instruction: Any) -> Iterator[str]:
    if isinstance(instruction, str):
        yield instruction
        return
    if not isinstance(instruction, dict):
        return
    for name in TEXT_FIELDS:
        value = instruction.get(name)
        if isinstance(value, str):
            yield value
    choices = instruction.get("choices")
    if isinstance(choices, list):
        for choice in choices:
            if isinstance(choice, dict) and isinstance(choice.get("text"), str):
                yield choice["text"]
    for name in BRANCH_FIELDS:
        branch = instruction.get(name)
        if isinstance(branch, list):
            for nested in branch:
                yield from _iter_texts(nested)
        elif branch is not None:
            yield from _iter_texts(branch)


def _warn(warnings: Optional[List[str]], message: str) -> None:
    logger.warning("[ComponentExtractor] %s", message)
    if warnings is not None:
        warnings.append(message)


class ComponentExtractor:
    """Finds component mount directives and loads their payloads"""

    def __init__(self, resolver_factory=PathResolver) -> None:
        self._resolver_factory = resolver_factory

    def resolver_for(self, script_path: Optional[str | Path]) -> PathResolver:
        return self._resolver_factory(script_path)

    def extract(
        self,
        script_path: Optional[str | Path],
        scenes: Sequence[Dict[str, Any]],
        warnings: Optional[List[str]] = None,
    ) -> List[ComponentMountDirective]:
        resolver = self.resolver_for(script_path)
        directives: List[ComponentMountDirective] = []
        counter = 0

        for scene in scenes or []:
            if not isinstance(scene, dict):
                continue
            scene_id = str(scene.get("name", ""))
            instructions = scene.get("instructions") or []
            for index, instruction in enumerate(instructions):
                for text in _iter_texts(instruction):
                    for token in find_directives(text):
                        if isinstance(token, MalformedDirective):
                            _warn(warnings, f"Malformed component directive in scene '{scene_id}': {token.text}")
                            continue
                        counter += 1
                        parsed = parse_config(token.config_text)
                        if parsed.skipped:
                            logger.debug(
                                "[ComponentExtractor] Skipped config pairs for %s: %s",
                                token.component_name,
                                parsed.skipped,
                            )
                        directives.append(
                            ComponentMountDirective(
                                id=f"component-{token.component_name.lower()}-{scene_id}-{counter}",
                                component_name=token.component_name,
                                script_path=token.script_path,
                                stylesheet_path=token.stylesheet_path
                                or self._detect_stylesheet(token.script_path, resolver),
                                instance_id=token.instance_id,
                                config=parsed.values,
                                scene_id=scene_id,
                                instruction_index=index,
                            )
                        )

        logger.info("[ComponentExtractor] Found %s component directives", len(directives))
        return directives

    @staticmethod
    def _detect_stylesheet(script_path: str, resolver: PathResolver) -> Optional[str]:
        name = script_path.rsplit("/", 1)[-1]
        if "." not in name:
            return None
        base = script_path[: script_path.rfind(".")]
        for suffix in STYLESHEET_SUFFIXES:
            candidate = f"{base}{suffix}"
            if not isinstance(resolver.resolve(candidate), PathNotFound):
                logger.debug("[ComponentExtractor] Auto-detected stylesheet %s", candidate)
                return candidate
        return None

    def load_payloads(
        self,
        directives: Sequence[ComponentMountDirective],
        script_path: Optional[str | Path],
        warnings: Optional[List[str]] = None,
    ) -> ComponentBundle:
        """Load each distinct script and stylesheet path exactly once"""
        resolver = self.resolver_for(script_path)
        bundle = ComponentBundle()
        seen: Set[Tuple[str, str]] = set()

        def load(kind: str, requested: str, component_name: str) -> None:
            if (kind, requested) in seen:
                return
            seen.add((kind, requested))
            resolution = resolver.resolve(requested)
            if isinstance(resolution, PathNotFound):
                message = f"Could not resolve {kind} for component {component_name}: {requested}"
                _warn(warnings, message)
                bundle.missing.append(requested)
                bundle.warnings.append(message)
                return
            try:
                content = resolution.path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                message = f"Could not read {kind} for component {component_name} ({resolution.path}): {exc}"
                _warn(warnings, message)
                bundle.missing.append(requested)
                bundle.warnings.append(message)
                return
            payload = ComponentPayload(
                requested_path=requested,
                resolved_path=str(resolution.path),
                component_name=component_name,
                content=strip_module_exports(content) if kind == "script" else content,
            )
            (bundle.scripts if kind == "script" else bundle.styles).append(payload)
            logger.debug(
                "[ComponentExtractor] Loaded %s for %s via %s",
                kind,
                component_name,
                resolution.strategy,
            )

        for directive in directives:
            load("script", directive.script_path, directive.component_name)
            if directive.stylesheet_path:
                load("stylesheet", directive.stylesheet_path, directive.component_name)

        return bundle
