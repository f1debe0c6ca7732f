"""
Component models - mount directives found in scene text and their loaded payloads
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ComponentMountDirective(BaseModel):
    """One `{{component "create" ...}}` occurrence inside a scene"""
    model_config = ConfigDict(frozen=True)

    id: str                                   # "component-keeperstats-intro-1"
    component_name: str                       # "KeeperStats"
    script_path: str                          # "./components/keeper-stats.js"
    stylesheet_path: Optional[str] = None     # given, or found by sibling probing
    instance_id: str                          # "keeper"
    config: Dict[str, Any] = Field(default_factory=dict)
    scene_id: str
    instruction_index: int

    def runtime_entry(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "componentName": self.component_name,
            "scriptPath": self.script_path,
            "cssPath": self.stylesheet_path,
            "instanceId": self.instance_id,
            "config": dict(self.config),
            "sceneId": self.scene_id,
            "instructionIndex": self.instruction_index,
        }


class ComponentPayload(BaseModel):
    """File content loaded once per distinct path"""
    model_config = ConfigDict(frozen=True)

    requested_path: str
    resolved_path: str
    component_name: str
    content: str


class ComponentBundle(BaseModel):
    """Script and stylesheet payloads for every directive, deduplicated by path"""
    scripts: List[ComponentPayload] = Field(default_factory=list)
    styles: List[ComponentPayload] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def script_text(self) -> str:
        return "\n\n".join(payload.content for payload in self.scripts)

    def style_text(self) -> str:
        parts: List[str] = []
        for payload in self.styles:
            parts.append(f"/* Component: {payload.component_name} ({payload.requested_path}) */")
            parts.append(payload.content)
        return "\n\n".join(parts)
