"""
Project Scaffold - creates a new visual novel project from a template

Templates: basic, interactive, media-rich.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from vncompiler.models.project import ProjectConfig

logger = logging.getLogger(__name__)

TEMPLATES = ("basic", "interactive", "media-rich")
PROJECT_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")


class ScaffoldError(RuntimeError):
    """Raised when a project cannot be created."""


@dataclass
class ScaffoldResult:
    path: Path
    template: str
    files: List[Path] = field(default_factory=list)


def _basic_story(title: str, description: str) -> Dict[str, Any]:
    return {
        "title": title,
        "description": description,
        "variables": {"playerName": "", "courage": 0},
        "scenes": {
            "intro": [
                f"Welcome to {title}.",
                {"speaker": "Guide", "say": "Every story starts with a single choice."},
                {
                    "text": "Where do you want to go?",
                    "choices": [
                        {"text": "Into the forest", "goto": "forest"},
                        {"text": "Back to the village", "goto": "village"},
                    ],
                },
            ],
            "forest": [
                "The trees close in around you.",
                {"actions": [{"type": "addVar", "key": "courage", "value": 1}]},
                {"goto": "ending"},
            ],
            "village": [
                "The village is quiet tonight.",
                {"goto": "ending"},
            ],
            "ending": ["Courage: {{courage}}", "The End."],
        },
    }


def _interactive_story(title: str, description: str) -> Dict[str, Any]:
    return {
        "title": title,
        "description": description,
        "variables": {"playerName": "", "trust": 0, "visited_library": False},
        "scenes": {
            "start": [
                "Before we begin, what should we call you?",
                "{{input:playerName:Your name:text}}",
                {"speaker": "Archivist", "say": "Welcome, {{playerName}}."},
                {
                    "text": "The archive has two doors.",
                    "choices": [
                        {
                            "text": "The library",
                            "goto": "library",
                            "actions": [{"type": "setFlag", "flag": "visited_library"}],
                        },
                        {"text": "The observatory", "goto": "observatory"},
                    ],
                },
            ],
            "library": [
                "Dusty shelves stretch into the dark.",
                {"actions": [{"type": "addVar", "key": "trust", "value": 2}]},
                {"goto": "crossroads"},
            ],
            "observatory": [
                "A brass telescope points at a single star.",
                {"actions": [{"type": "addVar", "key": "trust", "value": 1}]},
                {"goto": "crossroads"},
            ],
            "crossroads": [
                {
                    "if": "trust gte 2",
                    "then": [{"speaker": "Archivist", "say": "You have earned the key."}],
                    "else": [{"speaker": "Archivist", "say": "Come back when you know more."}],
                },
                {"actions": [{"type": "addTime", "minutes": 30}]},
                "The End.",
            ],
        },
    }


def _media_rich_story(title: str, description: str) -> Dict[str, Any]:
    return {
        "title": title,
        "description": description,
        "styles": {"theme": "modern"},
        "variables": {"chapter": 1},
        "assets": [
            {"name": "background-music", "url": "assets/audio/theme.mp3", "type": "audio"},
            {"name": "intro-cutscene", "url": "assets/video/intro.mp4", "type": "video"},
        ],
        "scenes": {
            "intro": [
                "{{showImage 'images_placeholder'}}",
                "{{playAudio 'background-music'}}",
                '{{component "create" "SceneBadge" "./components/scene-badge.js" "" "badge" "label=Chapter,chapter=1"}}',
                {"speaker": "Narrator", "say": "Media showcase scene."},
                {"goto": "showcase"},
            ],
            "showcase": [
                "{{playVideo 'intro-cutscene'}}",
                "All media types in one scene!",
            ],
        },
    }


STORY_BUILDERS: Dict[str, Callable[[str, str], Dict[str, Any]]] = {
    "basic": _basic_story,
    "interactive": _interactive_story,
    "media-rich": _media_rich_story,
}

CUSTOM_CSS = """/* Custom styles, applied after the theme */
.vn-dialogue {
  box-shadow: 0 4px 12px rgba(0, 0, 0, 0.25);
}
"""

CUSTOM_JS = """// Custom script, runs after the runtime and components are loaded
window.addEventListener('vn-game-ready', function () {
  console.log('Game ready:', window.VN_RUNTIME_DATA.gameData.metadata.title);
});
"""

ASSETS_README = """# Assets

- images/: .jpg .jpeg .png .gif .webp .svg .bmp (images up to 1 MB are embedded)
- audio/: .mp3 .wav .ogg .m4a .aac .flac
- video/: .mp4 .webm .avi .mov .wmv .flv

Assets are addressed by key: the path inside this directory without its
extension, with separators and other punctuation replaced by `_`.
`images/hero.png` becomes `images_hero`.
"""

PLACEHOLDER_SVG = """<svg width="400" height="300" xmlns="http://www.w3.org/2000/svg">
  <rect width="100%" height="100%" fill="#f0f0f0"/>
  <text x="50%" y="50%" font-family="Arial" font-size="16" fill="#666" text-anchor="middle" dy="0.3em">
    Placeholder Image
  </text>
</svg>
"""

SCENE_BADGE_JS = """class SceneBadge extends VNComponent {
  render() {
    const badge = document.createElement('div');
    badge.className = 'scene-badge';
    badge.textContent = this.config.label + ' ' + this.config.chapter;
    return badge;
  }
}

export default SceneBadge;
"""

SCENE_BADGE_CSS = """.scene-badge {
  display: inline-block;
  padding: 4px 10px;
  border-radius: 999px;
  background: var(--accent-color);
  color: var(--background-color);
  font-size: 0.8rem;
}
"""


class ProjectScaffolder:
    """Writes a project skeleton to disk"""

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        self._clock = clock

    def create(
        self,
        name: str,
        template: str = "basic",
        directory: str | Path = ".",
        title: Optional[str] = None,
        author: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ScaffoldResult:
        if template not in TEMPLATES:
            raise ScaffoldError(f"Invalid template: {template} (available: {', '.join(TEMPLATES)})")
        if not PROJECT_NAME_PATTERN.match(name or ""):
            raise ScaffoldError(
                "Project name must start with a letter and contain only letters, numbers, hyphens, and underscores"
            )
        if len(name) > 50:
            logger.warning("[ProjectScaffolder] Project name is very long and may cause issues")

        root = Path(directory) / name
        if root.exists() and (not root.is_dir() or any(root.iterdir())):
            raise ScaffoldError(f"Directory '{root}' already exists and is not empty")

        title = title or name
        description = description or f"A visual novel created with the {template} template"
        result = ScaffoldResult(path=root, template=template)

        for sub in ("assets/images", "assets/audio", "assets/video", "styles", "scripts", "dist"):
            (root / sub).mkdir(parents=True, exist_ok=True)

        story = STORY_BUILDERS[template](title, description)
        self._write(result, "story.yaml", yaml.safe_dump(story, sort_keys=False, allow_unicode=True))

        config = ProjectConfig(
            title=title,
            author=author,
            description=description,
            output="dist/index.html",
            assets_dir="assets",
            theme=story.get("styles", {}).get("theme", "base"),
            custom_css="styles/custom.css",
            custom_js="scripts/custom.js",
            metadata={
                "created": self._clock().isoformat(),
                "template": template,
                "tags": ["visual-novel", "interactive-fiction"],
            },
        )
        self._write(
            result,
            "vn-config.json",
            json.dumps(config.model_dump(by_alias=True, exclude_none=True), indent=2) + "\n",
        )

        self._write(result, "assets/README.md", ASSETS_README)
        self._write(result, "styles/custom.css", CUSTOM_CSS)
        self._write(result, "scripts/custom.js", CUSTOM_JS)

        if template == "media-rich":
            self._write(result, "assets/images/placeholder.svg", PLACEHOLDER_SVG)
            self._write(result, "components/scene-badge.js", SCENE_BADGE_JS)
            self._write(result, "components/scene-badge.css", SCENE_BADGE_CSS)

        self._write(result, "README.md", self._readme(name, title, template))
        logger.info("[ProjectScaffolder] Created %s project at %s (%s files)", template, root, len(result.files))
        return result

    @staticmethod
    def _write(result: ScaffoldResult, relative: str, content: str) -> None:
        path = result.path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        result.files.append(path)
        logger.debug("[ProjectScaffolder] Wrote %s", path)

    @staticmethod
    def _readme(name: str, title: str, template: str) -> str:
        return f"""# {title}

Created from the `{template}` template.

## Layout

- `story.yaml`: scenes, variables and assets
- `assets/`: images, audio and video
- `styles/custom.css`: stylesheet applied after the theme
- `scripts/custom.js`: script appended after everything else
- `vn-config.json`: compile defaults

## Build

```bash
cd {name}
vn-compiler validate story.yaml
vn-compiler compile story.yaml
```

Open `dist/index.html` in a browser.
"""
