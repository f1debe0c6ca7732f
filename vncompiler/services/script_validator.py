"""
Script Validator - checks a script for structural and reference problems
without compiling it
"""
from __future__ import annotations

import logging
import re
from collections import deque
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

import yaml

from vncompiler.models.validation import IssueLocation, ValidationIssue, ValidationResult
from vncompiler.services.component_extractor import MalformedDirective, find_directives
from vncompiler.services.path_resolver import PathNotFound, PathResolver

logger = logging.getLogger(__name__)

SCENE_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")
RESERVED_SCENE_NAMES = ("constructor", "prototype", "__proto__")
ACTION_TYPES = ("setVar", "addVar", "setFlag", "clearFlag", "addToList", "addTime")
INPUT_TYPES = ("text", "number", "select", "checkbox", "radio", "textarea", "range")
ASSET_TYPES = ("image", "audio", "video")
START_SCENE_HINTS = ("start", "intro", "begin")

INPUT_HELPER_PATTERN = re.compile(r"\{\{input:([^:}]+):([^:}]*):([^:}]*):?([^}]*)\}\}")
ASSET_HELPER_PATTERN = re.compile(r"""\{\{(showImage|playAudio|playVideo)\s+['"]([^'"]+)['"]""")
CONDITION_HINT_PATTERN = re.compile(r"hasFlag\(|playerChose\(|[a-zA-Z_][a-zA-Z0-9_.]*\s*(eq|ne|gt|lt|gte|lte)")
VARIABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_.]*$")


def _instruction_texts(instruction: Any) -> Iterator[Tuple[str, str]]:
    """(context, text) pairs for the text-bearing fields of one instruction"""
    if isinstance(instruction, str):
        yield "text", instruction
        return
    if not isinstance(instruction, dict):
        return
    for name in ("say", "text", "content", "message", "speaker"):
        value = instruction.get(name)
        if isinstance(value, str):
            yield name, value
    choices = instruction.get("choices")
    if isinstance(choices, list):
        for number, choice in enumerate(choices, start=1):
            if isinstance(choice, dict) and isinstance(choice.get("text"), str):
                yield f"choice {number}", choice["text"]
    for branch in ("then", "else"):
        nested = instruction.get(branch)
        if isinstance(nested, list):
            for item in nested:
                yield from _instruction_texts(item)


def _collect_references(instruction: Any, found: Set[str]) -> None:
    if not isinstance(instruction, dict):
        return
    for key in ("goto", "jump"):
        if isinstance(instruction.get(key), str):
            found.add(instruction[key])
    choices = instruction.get("choices")
    if isinstance(choices, list):
        for choice in choices:
            if isinstance(choice, dict) and isinstance(choice.get("goto"), str):
                found.add(choice["goto"])
    for branch in ("then", "else"):
        nested = instruction.get(branch)
        if isinstance(nested, list):
            for item in nested:
                _collect_references(item, found)


class ScriptValidator:
    """Validates script text; errors make it invalid, warnings do not"""

    def __init__(self, resolver_factory=PathResolver) -> None:
        self._resolver_factory = resolver_factory

    def validate(self, content: str, script_path: Optional[str | Path] = None) -> ValidationResult:
        errors: List[ValidationIssue] = []
        warnings: List[str] = []

        try:
            parsed = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message=f"YAML syntax error: {exc}",
                    location=IssueLocation(
                        line=mark.line + 1 if mark is not None else None,
                        column=mark.column + 1 if mark is not None else None,
                    ),
                    suggestion="Check indentation, quotes, and YAML structure",
                )
            )
            return ValidationResult(valid=False, errors=errors, warnings=warnings)

        self._validate_structure(parsed, errors, warnings)
        scenes = parsed.get("scenes") if isinstance(parsed, dict) else None
        if isinstance(scenes, dict):
            self._validate_scenes(scenes, errors, warnings)
            self._validate_references(scenes, errors, warnings)
            self._validate_input_helpers(scenes, errors, warnings)
            self._validate_components(scenes, script_path, errors, warnings)
            if parsed.get("assets"):
                self._count_asset_references(scenes, warnings)

        logger.debug("[ScriptValidator] %s errors, %s warnings", len(errors), len(warnings))
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def validate_file(self, path: str | Path) -> ValidationResult:
        text = Path(path).read_text(encoding="utf-8")
        return self.validate(text, path)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def _validate_structure(self, parsed: Any, errors: List[ValidationIssue], warnings: List[str]) -> None:
        if not isinstance(parsed, dict):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message="Script must be a YAML mapping with game structure",
                    suggestion="Ensure your script is a mapping with title, scenes, etc.",
                )
            )
            return

        if "scenes" not in parsed or parsed.get("scenes") is None:
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message="Missing required 'scenes' section",
                    suggestion="Add a 'scenes:' section with your scene definitions",
                )
            )
        elif not isinstance(parsed["scenes"], dict):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message="Scenes section must be a mapping",
                    suggestion="Define scenes as a mapping with scene names as keys",
                )
            )

        title = parsed.get("title")
        if not title:
            warnings.append("Consider adding a 'title' field for your game")
        elif not isinstance(title, str):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message="Title must be a string",
                    suggestion='Set title as a quoted string: title: "Your Game Title"',
                )
            )

        description = parsed.get("description")
        if not description:
            warnings.append("Consider adding a 'description' field for your game")
        elif not isinstance(description, str):
            warnings.append("Description should be a string")

        if parsed.get("variables") is not None and not isinstance(parsed["variables"], dict):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message="Variables section must be a mapping",
                    suggestion='Define variables as key-value pairs: variables: { playerName: "", score: 0 }',
                )
            )

        if parsed.get("styles") is not None and not isinstance(parsed["styles"], dict):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message="Styles section must be a mapping",
                    suggestion="Define styles as key-value pairs: styles: { theme: modern }",
                )
            )

        assets = parsed.get("assets")
        if assets:
            if not isinstance(assets, list):
                errors.append(
                    ValidationIssue(
                        type="asset",
                        message="Assets section must be a list",
                        suggestion="Define assets as a list of asset mappings",
                    )
                )
            else:
                self._validate_assets(assets, errors, warnings)

    @staticmethod
    def _validate_assets(assets: List[Any], errors: List[ValidationIssue], warnings: List[str]) -> None:
        for index, asset in enumerate(assets):
            if not isinstance(asset, dict):
                errors.append(
                    ValidationIssue(
                        type="asset",
                        message=f"Asset at index {index} must be a mapping",
                        suggestion="Define each asset with name, url, and type fields",
                    )
                )
                continue
            label = asset.get("name") or index
            if not isinstance(asset.get("name"), str) or not asset.get("name"):
                errors.append(
                    ValidationIssue(
                        type="asset",
                        message=f"Asset at index {index} missing or invalid 'name' field",
                        suggestion="Add a string 'name' field to identify the asset",
                    )
                )
            if not isinstance(asset.get("url"), str) or not asset.get("url"):
                errors.append(
                    ValidationIssue(
                        type="asset",
                        message=f"Asset '{label}' missing or invalid 'url' field",
                        suggestion="Add a string 'url' field with the asset file path or URL",
                    )
                )
            asset_type = asset.get("type")
            if not isinstance(asset_type, str) or not asset_type:
                errors.append(
                    ValidationIssue(
                        type="asset",
                        message=f"Asset '{label}' missing or invalid 'type' field",
                        suggestion="Add a 'type' field: 'image', 'audio', or 'video'",
                    )
                )
            elif asset_type not in ASSET_TYPES:
                warnings.append(f"Asset '{label}' has unusual type '{asset_type}' (expected: image, audio, video)")

    # ------------------------------------------------------------------
    # Scenes
    # ------------------------------------------------------------------

    def _validate_scenes(self, scenes: Dict[str, Any], errors: List[ValidationIssue], warnings: List[str]) -> None:
        if not scenes:
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message="No scenes defined",
                    suggestion="Add at least one scene to your scenes section",
                )
            )
            return

        for name in scenes:
            name = str(name)
            if not SCENE_NAME_PATTERN.match(name):
                warnings.append(f"Scene name '{name}' may cause issues (use only letters, numbers, underscores)")
            if len(name) > 50:
                warnings.append(f"Scene name '{name}' is very long ({len(name)} characters)")
            if name in RESERVED_SCENE_NAMES:
                errors.append(
                    ValidationIssue(
                        type="reference",
                        message=f"Scene name '{name}' is reserved and cannot be used",
                        suggestion=f"Rename scene '{name}' to something else",
                    )
                )

        for name, instructions in scenes.items():
            if not isinstance(instructions, list):
                errors.append(
                    ValidationIssue(
                        type="syntax",
                        message=f"Scene '{name}' must be a list of instructions",
                        location=IssueLocation(scene=str(name)),
                        suggestion="Convert scene content to a YAML list",
                    )
                )
                continue
            if not instructions:
                warnings.append(f"Scene '{name}' is empty")
                continue
            for index, instruction in enumerate(instructions):
                self._validate_instruction(instruction, str(name), index, errors, warnings)

    def _validate_instruction(
        self,
        instruction: Any,
        scene: str,
        index: int,
        errors: List[ValidationIssue],
        warnings: List[str],
    ) -> None:
        location = IssueLocation(scene=scene, line=index + 1)

        if isinstance(instruction, str):
            if not instruction.strip():
                warnings.append(f"Empty text instruction in scene '{scene}' at line {index + 1}")
            return
        if not isinstance(instruction, dict):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message=f"Invalid instruction type in scene '{scene}' at line {index + 1}",
                    location=location,
                    suggestion="Instructions must be strings or mappings",
                )
            )
            return

        if "choices" in instruction:
            self._validate_choices(instruction["choices"], scene, location, errors, warnings)
        if "actions" in instruction:
            self._validate_actions(instruction["actions"], scene, location, errors, warnings)
        condition = instruction.get("condition", instruction.get("if"))
        if condition is not None:
            self._validate_condition(condition, scene, location, errors, warnings)
        for branch in ("then", "else"):
            nested = instruction.get(branch)
            if isinstance(nested, list):
                for item in nested:
                    self._validate_instruction(item, scene, index, errors, warnings)

    @staticmethod
    def _validate_choices(
        choices: Any,
        scene: str,
        location: IssueLocation,
        errors: List[ValidationIssue],
        warnings: List[str],
    ) -> None:
        if not isinstance(choices, list):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message=f"Choices in scene '{scene}' must be a list",
                    location=location,
                    suggestion="Convert choices to a YAML list",
                )
            )
            return
        if not choices:
            warnings.append(f"Empty choices list in scene '{scene}' at line {location.line}")
            return
        if len(choices) > 6:
            warnings.append(f"Many choices ({len(choices)}) in scene '{scene}' - consider splitting")
        for number, choice in enumerate(choices, start=1):
            text = choice.get("text") if isinstance(choice, dict) else None
            if not text:
                errors.append(
                    ValidationIssue(
                        type="syntax",
                        message=f"Choice {number} in scene '{scene}' missing text",
                        location=location,
                        suggestion="All choices must have a 'text' property",
                    )
                )
            elif isinstance(text, str) and len(text) > 100:
                warnings.append(f"Very long choice text ({len(text)} chars) in scene '{scene}'")

    @staticmethod
    def _validate_actions(
        actions: Any,
        scene: str,
        location: IssueLocation,
        errors: List[ValidationIssue],
        warnings: List[str],
    ) -> None:
        if not isinstance(actions, list):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message=f"Actions in scene '{scene}' must be a list",
                    location=location,
                    suggestion="Convert actions to a YAML list",
                )
            )
            return

        def problem(message: str, suggestion: str) -> None:
            errors.append(ValidationIssue(type="syntax", message=message, location=location, suggestion=suggestion))

        for action in actions:
            action_type = action.get("type") if isinstance(action, dict) else None
            if not action_type:
                problem(f"Action missing 'type' in scene '{scene}'", "All actions must have a 'type' property")
                continue
            if action_type not in ACTION_TYPES:
                problem(
                    f"Unknown action type '{action_type}' in scene '{scene}'",
                    f"Use one of: {', '.join(ACTION_TYPES)}",
                )
            elif action_type in ("setVar", "addVar"):
                if not action.get("key"):
                    problem(
                        f"{action_type} action missing 'key' property in scene '{scene}'",
                        "Add a 'key' property to specify the variable name",
                    )
                if "value" not in action:
                    warnings.append(f"{action_type} action in scene '{scene}' has undefined value")
            elif action_type in ("setFlag", "clearFlag"):
                if not action.get("flag"):
                    problem(
                        f"{action_type} action missing 'flag' property in scene '{scene}'",
                        "Add a 'flag' property to specify the flag name",
                    )
            elif action_type == "addToList":
                if not action.get("list") or not action.get("item"):
                    problem(
                        f"addToList action missing 'list' or 'item' property in scene '{scene}'",
                        "Add both 'list' and 'item' properties",
                    )
            elif action_type == "addTime":
                minutes = action.get("minutes")
                if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
                    problem(
                        f"addTime action 'minutes' must be a number in scene '{scene}'",
                        "Set 'minutes' to a numeric value",
                    )

    @staticmethod
    def _validate_condition(
        condition: Any,
        scene: str,
        location: IssueLocation,
        errors: List[ValidationIssue],
        warnings: List[str],
    ) -> None:
        if not isinstance(condition, str):
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message=f"Condition in scene '{scene}' must be a string",
                    location=location,
                    suggestion="Convert condition to a string expression",
                )
            )
            return
        if not condition.strip():
            errors.append(
                ValidationIssue(
                    type="syntax",
                    message=f"Empty condition in scene '{scene}'",
                    location=location,
                    suggestion="Provide a valid condition expression",
                )
            )
            return
        if "=" in condition and not CONDITION_HINT_PATTERN.search(condition):
            warnings.append(f"Condition in scene '{scene}' uses '=' - consider using 'eq' instead")

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_references(scenes: Dict[str, Any], errors: List[ValidationIssue], warnings: List[str]) -> None:
        names = [str(name) for name in scenes]
        referenced: Set[str] = set()
        for instructions in scenes.values():
            if isinstance(instructions, list):
                for instruction in instructions:
                    _collect_references(instruction, referenced)

        for target in sorted(referenced):
            if target not in scenes:
                errors.append(
                    ValidationIssue(
                        type="reference",
                        message=f"Scene '{target}' is referenced but not defined",
                        suggestion=f"Create scene '{target}' or fix the reference",
                    )
                )

        if not names:
            return
        starts = [name for name in names if any(hint in name.lower() for hint in START_SCENE_HINTS)]
        queue = deque(starts or names[:1])
        reachable: Set[str] = set()
        while queue:
            name = queue.popleft()
            if name in reachable:
                continue
            reachable.add(name)
            found: Set[str] = set()
            instructions = scenes.get(name)
            if isinstance(instructions, list):
                for instruction in instructions:
                    _collect_references(instruction, found)
            queue.extend(sorted(ref for ref in found if ref in scenes and ref not in reachable))

        for name in names:
            if name not in reachable:
                warnings.append(f"Scene '{name}' may be unreachable from the starting scene")

    @staticmethod
    def _validate_input_helpers(scenes: Dict[str, Any], errors: List[ValidationIssue], warnings: List[str]) -> None:
        for scene, instructions in scenes.items():
            if not isinstance(instructions, list):
                continue
            for index, instruction in enumerate(instructions):
                location = IssueLocation(scene=str(scene), line=index + 1)
                for context, text in _instruction_texts(instruction):
                    for match in INPUT_HELPER_PATTERN.finditer(text):
                        variable, _placeholder, input_type, options = match.groups()
                        if not VARIABLE_NAME_PATTERN.match(variable.strip()):
                            errors.append(
                                ValidationIssue(
                                    type="template",
                                    message=f"Invalid variable name '{variable}' in input helper in scene '{scene}' {context}",
                                    location=location,
                                    suggestion="Variable names must start with letter or underscore",
                                )
                            )
                        normalized = input_type.strip().lower()
                        if normalized and normalized not in INPUT_TYPES:
                            errors.append(
                                ValidationIssue(
                                    type="template",
                                    message=f"Unknown input type '{input_type}' in scene '{scene}' {context}",
                                    location=location,
                                    suggestion=f"Use one of: {', '.join(INPUT_TYPES)}",
                                )
                            )
                        if normalized in ("select", "radio") and options.strip() and "," not in options:
                            warnings.append(
                                f"Input helper in scene '{scene}' {context} has single option for {normalized} type"
                            )

    def _validate_components(
        self,
        scenes: Dict[str, Any],
        script_path: Optional[str | Path],
        errors: List[ValidationIssue],
        warnings: List[str],
    ) -> None:
        resolver = self._resolver_factory(script_path)
        checked: Set[str] = set()
        for scene, instructions in scenes.items():
            if not isinstance(instructions, list):
                continue
            for index, instruction in enumerate(instructions):
                location = IssueLocation(scene=str(scene), line=index + 1)
                for context, text in _instruction_texts(instruction):
                    for token in find_directives(text):
                        if isinstance(token, MalformedDirective):
                            errors.append(
                                ValidationIssue(
                                    type="component",
                                    message=f"Malformed component directive in scene '{scene}' {context}: {token.text}",
                                    location=location,
                                    suggestion='Use {{component "create" "Name" "script.js" "" "instanceId" "k=v"}}',
                                )
                            )
                            continue
                        for path in (token.script_path, token.stylesheet_path):
                            if not path or path in checked:
                                continue
                            checked.add(path)
                            if isinstance(resolver.resolve(path), PathNotFound):
                                warnings.append(
                                    f"Component file '{path}' for {token.component_name} could not be found"
                                )

    @staticmethod
    def _count_asset_references(scenes: Dict[str, Any], warnings: List[str]) -> None:
        referenced: Set[str] = set()
        for instructions in scenes.values():
            if not isinstance(instructions, list):
                continue
            for instruction in instructions:
                for _context, text in _instruction_texts(instruction):
                    referenced.update(match.group(2) for match in ASSET_HELPER_PATTERN.finditer(text))
        if referenced:
            warnings.append(
                f"Found {len(referenced)} asset references - ensure assets directory is provided during compilation"
            )
