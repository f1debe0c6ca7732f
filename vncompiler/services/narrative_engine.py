"""
Narrative engine interface and the default YAML scene engine
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol, runtime_checkable

import yaml

logger = logging.getLogger(__name__)


@runtime_checkable
class NarrativeEngine(Protocol):
    """What the compiler needs from a narrative engine"""

    def load_script(self, text: str) -> None: ...

    def get_all_scenes(self) -> List[Dict[str, Any]]: ...


class YamlSceneEngine:
    """Parses a scenes mapping into [{name, instructions}]; gives instructions no meaning"""

    def __init__(self) -> None:
        self._scenes: List[Dict[str, Any]] = []

    def load_script(self, text: str) -> None:
        data = yaml.safe_load(text) if text and text.strip() else {}
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("scenes must be a mapping of scene name to instructions")

        scenes: List[Dict[str, Any]] = []
        for name, instructions in data.items():
            if instructions is None:
                instructions = []
            elif not isinstance(instructions, list):
                instructions = [instructions]
            scenes.append({"name": str(name), "instructions": instructions})
        self._scenes = scenes
        logger.debug("[YamlSceneEngine] Loaded %s scenes", len(scenes))

    def get_all_scenes(self) -> List[Dict[str, Any]]:
        return list(self._scenes)
