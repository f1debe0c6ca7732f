"""
Project configuration model (vn-config.json)
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _default_project_metadata() -> Dict[str, Any]:
    return {"tags": ["visual-novel", "interactive-fiction"]}


class ProjectConfig(BaseModel):
    """Per-project defaults; CLI flags override them"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    title: str = "VN Game"
    author: Optional[str] = None
    description: Optional[str] = None
    version: str = "1.0.0"
    input: str = "story.yaml"
    output: str = "index.html"
    assets_dir: Optional[str] = Field(None, alias="assetsDir")
    theme: str = "base"
    custom_css: Optional[str] = Field(None, alias="customCSS")
    custom_js: Optional[str] = Field(None, alias="customJS")
    minify: bool = False
    dependencies: List[Any] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=_default_project_metadata)
