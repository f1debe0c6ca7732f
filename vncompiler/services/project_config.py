"""
Project config loading (vn-config.json and friends)
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError

from vncompiler.models.project import ProjectConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("vn-config.json", "vn-compiler.json", "vnconfig.json")

_PATH_FIELDS = ("input", "output", "assets_dir", "custom_css", "custom_js")


def find_project_config(directory: str | Path = ".") -> Optional[Path]:
    base = Path(directory)
    for name in CONFIG_FILENAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def load_project_config(
    path: Optional[str | Path] = None,
    directory: str | Path = ".",
    warnings: Optional[List[str]] = None,
) -> Tuple[ProjectConfig, Optional[Path]]:
    """
    Load a project config, resolving its relative paths against its own directory.

    Returns the defaults (and None) when no file is found or the file is broken.
    """
    config_path = Path(path) if path else find_project_config(directory)
    if config_path is None:
        return ProjectConfig(), None

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
        config = ProjectConfig.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        message = f"Could not load project config {config_path}: {exc}; using defaults"
        logger.warning("[ProjectConfig] %s", message)
        if warnings is not None:
            warnings.append(message)
        return ProjectConfig(), None

    base = config_path.resolve().parent
    updates = {}
    for name in _PATH_FIELDS:
        value = getattr(config, name)
        if value and not Path(value).is_absolute():
            updates[name] = str(base / value)
    logger.debug("[ProjectConfig] Loaded %s", config_path)
    return config.model_copy(update=updates), config_path
