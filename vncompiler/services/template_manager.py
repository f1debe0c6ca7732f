"""
Template Manager - master template, themes and browser runtime fragments

All client files ship as package data under vncompiler/client/.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from vncompiler.config import settings

logger = logging.getLogger(__name__)

CLIENT_DIR = Path(__file__).resolve().parent.parent / "client"
DEFAULT_TEMPLATE = CLIENT_DIR / "assets" / "template.html"
DEFAULT_THEME_CSS = CLIENT_DIR / "assets" / "theme.css"

# Injection order of the runtime fragments, fixed
FRAGMENT_FILES: Dict[str, str] = {
    "UTILS_POLYFILLS_JS": "utils/polyfills.js",
    "RUNTIME_ASSET_MANAGER_JS": "runtime/asset-manager.js",
    "RUNTIME_COMPONENT_MANAGER_JS": "runtime/component-manager.js",
    "RUNTIME_SCENE_MANAGER_JS": "runtime/scene-manager.js",
    "RUNTIME_SAVE_MANAGER_JS": "runtime/save-manager.js",
    "RUNTIME_GAME_INITIALIZATION_JS": "runtime/game-initialization.js",
    "UTILS_DEBUG_HELPERS_JS": "utils/debug-helpers.js",
}
FRAGMENT_ORDER = tuple(FRAGMENT_FILES)

_VAR_REFERENCE = re.compile(r"var\(\s*(--[A-Za-z0-9_-]+)\s*\)")


class TemplateError(RuntimeError):
    """Raised when the master template cannot be loaded."""


@dataclass(frozen=True)
class Theme:
    name: str
    label: str
    variables: Dict[str, str] = field(default_factory=dict)


THEMES: Dict[str, Theme] = {
    "base": Theme(
        name="base",
        label="Crimson Night",
        variables={
            "--primary-color": "#e92932",
            "--primary-dark": "#d11d26",
            "--secondary-color": "#472426",
            "--background-color": "#221112",
            "--text-color": "#ffffff",
            "--text-muted": "#a0aec0",
            "--border-color": "#3c2328",
            "--accent-color": "#e92932",
        },
    ),
    "light": Theme(
        name="light",
        label="Paper",
        variables={
            "--primary-color": "#2b6cb0",
            "--primary-dark": "#2c5282",
            "--secondary-color": "#e2e8f0",
            "--background-color": "#f7fafc",
            "--text-color": "#1a202c",
            "--text-muted": "#4a5568",
            "--border-color": "#cbd5e0",
            "--accent-color": "#d69e2e",
        },
    ),
    "modern": Theme(
        name="modern",
        label="Slate",
        variables={
            "--primary-color": "#6366f1",
            "--primary-dark": "#4f46e5",
            "--secondary-color": "#1e293b",
            "--background-color": "#0f172a",
            "--text-color": "#f1f5f9",
            "--text-muted": "#94a3b8",
            "--border-color": "#334155",
            "--accent-color": "#22d3ee",
        },
    ),
}

BASE_CSS = """* { box-sizing: border-box; margin: 0; padding: 0; }
body {
  font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
  line-height: 1.6;
  background: var(--background-color);
  color: var(--text-color);
}
#vn-container { max-width: 800px; margin: 0 auto; padding: 20px; min-height: 100vh; }
.vn-dialogue { border: 1px solid var(--border-color); border-radius: 8px; padding: 20px; margin: 20px 0; }
.vn-speaker { color: var(--accent-color); font-weight: 600; margin-bottom: 6px; }
.vn-choice {
  display: block; width: 100%; text-align: left;
  background: var(--primary-color); color: var(--text-color);
  border: none; padding: 12px 20px; border-radius: 6px; cursor: pointer; margin: 5px 0;
}
.vn-choice:hover { background: var(--primary-dark); }
.vn-input { padding: 10px 12px; border: 1px solid var(--border-color); border-radius: 4px; width: 100%; }
.vn-input:focus { outline: none; border-color: var(--primary-color); }
.vn-muted { color: var(--text-muted); }
.vn-component-missing { border: 1px dashed var(--border-color); color: var(--text-muted); padding: 8px; }"""


def _warn(warnings: Optional[List[str]], message: str) -> None:
    logger.warning("[TemplateManager] %s", message)
    if warnings is not None:
        warnings.append(message)


class TemplateManager:
    """Loads the master template, the theme stylesheet and the runtime fragments"""

    def __init__(
        self,
        client_dir: Optional[str | Path] = None,
        template_path: Optional[str | Path] = None,
        default_theme: Optional[str] = None,
    ) -> None:
        self.client_dir = Path(client_dir) if client_dir else CLIENT_DIR
        override = template_path or settings.template_path
        self.template_path = Path(override) if override else self.client_dir / "assets" / "template.html"
        self.default_theme = default_theme or settings.default_theme

    def load_template(self) -> str:
        try:
            template = self.template_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(f"HTML template could not be loaded from {self.template_path}: {exc}") from exc
        logger.debug("[TemplateManager] Loaded template %s (%s chars)", self.template_path, len(template))
        return template

    def load_theme_css(self, warnings: Optional[List[str]] = None) -> str:
        path = self.client_dir / "assets" / "theme.css"
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            _warn(warnings, f"Theme stylesheet not loaded ({path}): {exc}")
            return ""

    def load_runtime_fragments(self, warnings: Optional[List[str]] = None) -> Dict[str, str]:
        """Named JS fragments in injection order; missing ones are left out"""
        fragments: Dict[str, str] = {}
        for name, relative in FRAGMENT_FILES.items():
            path = self.client_dir / relative
            try:
                fragments[name] = path.read_text(encoding="utf-8")
            except OSError as exc:
                _warn(warnings, f"Runtime fragment {name} not loaded ({path}): {exc}")
        logger.debug("[TemplateManager] Loaded %s/%s runtime fragments", len(fragments), len(FRAGMENT_FILES))
        return fragments

    # ------------------------------------------------------------------
    # Themes
    # ------------------------------------------------------------------

    @staticmethod
    def available_themes() -> List[Theme]:
        return list(THEMES.values())

    def theme_for(
        self,
        metadata: Optional[Mapping[str, Any]] = None,
        fallback: Optional[str] = None,
    ) -> Theme:
        requested = None
        styles = (metadata or {}).get("styles")
        if isinstance(styles, Mapping):
            requested = styles.get("theme")
        name = str(requested or fallback or self.default_theme or "base")
        theme = THEMES.get(name)
        if theme is None:
            logger.info("[TemplateManager] Unknown theme '%s', using base", name)
            return THEMES["base"]
        return theme

    @staticmethod
    def theme_variables_css(theme: Theme) -> str:
        lines = [f"  {name}: {value};" for name, value in theme.variables.items()]
        return ":root {\n" + "\n".join(lines) + "\n}"

    @staticmethod
    def apply_theme_variables(css: str, theme: Theme) -> str:
        """Replace every var(--name) reference with the theme's literal value"""
        return _VAR_REFERENCE.sub(lambda m: theme.variables.get(m.group(1), m.group(0)), css)
