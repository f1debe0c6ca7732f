"""
Template Assembler - builds the stylesheet, script and runtime-data blocks and
substitutes them into the master template

Placeholders are `{{UPPER_NAME}}` tokens. Substitution is a single pass over
the template: every token is replaced exactly once and substituted content is
never scanned again.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

import minify_html
import rcssmin

from vncompiler import __version__
from vncompiler.models.compiler import BundleArtifact, ProcessedAsset
from vncompiler.models.component import ComponentBundle, ComponentMountDirective
from vncompiler.models.dependency import ResolvedBundle
from vncompiler.services.asset_bundler import AssetBundler
from vncompiler.services.template_manager import (
    BASE_CSS,
    FRAGMENT_ORDER,
    Theme,
    TemplateManager,
)
from vncompiler.utils.formatting import escape_html, format_size

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Z][A-Z0-9_]*)\}\}")
_SCRIPT_CLOSE = re.compile(r"</(script)", re.IGNORECASE)


def _warn(warnings: Optional[List[str]], message: str) -> None:
    logger.warning("[TemplateAssembler] %s", message)
    if warnings is not None:
        warnings.append(message)


def _guard_script_close(content: str) -> str:
    return _SCRIPT_CLOSE.sub(r"<\\/\1", content)


def _script(content: str, label: str) -> str:
    """Wrap JS in a script element that its content cannot close early"""
    return f"<script>\n/* {label} */\n{_guard_script_close(content)}\n</script>"


def escape_json_for_script(text: str) -> str:
    """Make serialized JSON safe inside <script> and free of `{{` sequences"""
    return text.replace("</", "<\\/").replace("{{", "{\\u007b")


class TemplateAssembler:
    """Turns the outputs of the other pipeline stages into one document"""

    def __init__(self, templates: Optional[TemplateManager] = None) -> None:
        self.templates = templates or TemplateManager()

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def build_stylesheet(
        self,
        theme: Theme,
        *,
        dependency_css: str = "",
        theme_css: str = "",
        component_css: str = "",
        custom_css: str = "",
        minify: bool = False,
        warnings: Optional[List[str]] = None,
    ) -> str:
        sections = [("Theme Variables", self.templates.theme_variables_css(theme))]
        if dependency_css.strip():
            sections.append(("Dependency CSS", dependency_css))
        sections.append(("Base CSS", BASE_CSS))
        if theme_css.strip():
            sections.append(("Theme CSS", theme_css))
        if component_css.strip():
            sections.append(("Component CSS", component_css))
        if custom_css.strip():
            sections.append(("Custom CSS", custom_css))

        css = "\n\n".join(f"/* {label} */\n{body}" for label, body in sections)
        css = self.templates.apply_theme_variables(css, theme)

        if minify:
            try:
                css = rcssmin.cssmin(css)
            except Exception as exc:
                _warn(warnings, f"CSS minification failed, keeping original: {exc}")
        return css

    @staticmethod
    def build_script_block(
        template: str,
        fragments: Mapping[str, str],
        *,
        dependencies: Optional[ResolvedBundle] = None,
        component_js: str = "",
        custom_js: str = "",
    ) -> str:
        """
        Script block order:
            bundled dependency scripts, inline dependency scripts,
            runtime fragments (fixed order), component scripts, custom JS last.

        A fragment the template places through its own placeholder is not
        repeated here.
        """
        blocks: List[str] = []
        if dependencies is not None:
            if dependencies.bundled_script.strip():
                blocks.append(_script(dependencies.bundled_script, "Bundled dependencies"))
            if dependencies.inline_script.strip():
                blocks.append(_script(dependencies.inline_script, "Inline dependencies"))

        for name in FRAGMENT_ORDER:
            content = fragments.get(name)
            if not content or f"{{{{{name}}}}}" in template:
                continue
            blocks.append(_script(content, name))

        if component_js.strip():
            blocks.append(_script(component_js, "Component JavaScript"))
        if custom_js.strip():
            blocks.append(_script(custom_js, "Custom JavaScript"))
        return "\n".join(blocks)

    @staticmethod
    def build_runtime_data(
        *,
        script_text: str,
        scenes: Sequence[Mapping[str, Any]],
        metadata: Mapping[str, Any],
        variables: Mapping[str, Any],
        assets: Sequence[ProcessedAsset],
        directives: Sequence[ComponentMountDirective],
        theme: Theme,
        dependency_manifest: Mapping[str, Any],
        generated_at: str,
        minify: bool = False,
    ) -> str:
        runtime_data = {
            "gameData": {
                "script": script_text,
                "scenes": list(scenes),
                "metadata": dict(metadata),
                "variables": dict(variables),
                "assets": AssetBundler.runtime_manifest(assets),
                "components": [directive.runtime_entry() for directive in directives],
            },
            "config": {
                "theme": theme.name,
                "minified": minify,
                "version": __version__,
                "generated": generated_at,
                "dependencies": dict(dependency_manifest),
            },
        }
        serialized = json.dumps(
            runtime_data,
            ensure_ascii=False,
            indent=None if minify else 2,
            default=str,
        )
        return f"window.VN_RUNTIME_DATA = {escape_json_for_script(serialized)};"

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    @staticmethod
    def assemble(
        template: str,
        values: Mapping[str, str],
        fragments: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Replace every {{UPPER_NAME}} token once; unknown names become empty"""
        fragments = fragments or {}

        def substitute(match: re.Match) -> str:
            name = match.group(1)
            if name in values:
                return values[name]
            if name in fragments:
                return _guard_script_close(fragments[name])
            if name not in FRAGMENT_ORDER:
                logger.debug("[TemplateAssembler] Unknown placeholder {{%s}} substituted with empty string", name)
            return ""

        return PLACEHOLDER_PATTERN.sub(substitute, template)

    @staticmethod
    def minify_document(document: str, warnings: Optional[List[str]] = None) -> str:
        try:
            return minify_html.minify(document, minify_css=True, minify_js=True)
        except Exception as exc:
            _warn(warnings, f"HTML minification failed, keeping unminified document: {exc}")
            return document

    def render(
        self,
        *,
        template: str,
        fragments: Mapping[str, str],
        theme: Theme,
        theme_css: str,
        title: str,
        metadata: Mapping[str, Any],
        script_text: str,
        scenes: Sequence[Mapping[str, Any]],
        variables: Mapping[str, Any],
        assets: Sequence[ProcessedAsset],
        directives: Sequence[ComponentMountDirective],
        components: ComponentBundle,
        dependencies: ResolvedBundle,
        dependency_manifest: Mapping[str, Any],
        generated_at: str,
        custom_css: str = "",
        custom_js: str = "",
        minify: bool = False,
    ) -> BundleArtifact:
        warnings: List[str] = []

        stylesheet = self.build_stylesheet(
            theme,
            dependency_css=dependencies.bundled_style,
            theme_css=theme_css,
            component_css=components.style_text(),
            custom_css=custom_css,
            minify=minify,
            warnings=warnings,
        )
        scripts = self.build_script_block(
            template,
            fragments,
            dependencies=dependencies,
            component_js=components.script_text(),
            custom_js=custom_js,
        )
        runtime_data = self.build_runtime_data(
            script_text=script_text,
            scenes=scenes,
            metadata=metadata,
            variables=variables,
            assets=assets,
            directives=directives,
            theme=theme,
            dependency_manifest=dependency_manifest,
            generated_at=generated_at,
            minify=minify,
        )

        tags = metadata.get("tags") or []
        values: Dict[str, str] = {
            "VN_TITLE": escape_html(title),
            "META_DESCRIPTION": escape_html(metadata.get("description") or title),
            "META_AUTHOR": escape_html(metadata.get("author") or ""),
            "META_KEYWORDS": escape_html(", ".join(str(tag) for tag in tags) if isinstance(tags, list) else tags),
            "GENERATION_TIMESTAMP": escape_html(generated_at),
            "SCENE_COUNT": str(len(scenes)),
            "THEME_NAME": escape_html(theme.name),
            "DEPENDENCY_SCRIPTS": dependencies.cdn_markup,
            "BUNDLED_CSS": stylesheet,
            "RUNTIME_DATA": runtime_data,
            "RUNTIME_SCRIPTS": scripts,
        }

        document = self.assemble(template, values, fragments)
        if minify:
            document = self.minify_document(document, warnings)

        artifact = BundleArtifact(document=document, warnings=warnings)
        logger.info("[TemplateAssembler] Document assembled: %s", format_size(artifact.size_bytes))
        return artifact
