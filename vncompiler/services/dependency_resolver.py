"""
Dependency Resolver - turns library declarations into load tags and bundled content

remote  -> <script>/<link> tags, never fetched
bundled -> fetched (httpx or local file) with per-attempt timeout, retries and
           backoff, checked against SRI integrity, optionally minified
inline  -> literal content, concatenated

Output order is always ascending priority over declaration order. Fetches are
joined before any ordering decision, so completion order never leaks through.
"""
from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import unquote, urlsplit

import httpx
import rcssmin
import rjsmin
from pydantic import ValidationError

from vncompiler.config import Settings, settings as default_settings
from vncompiler.models.dependency import (
    DependencyDeclaration,
    DependencyFormat,
    DependencyKind,
    DependencyPreset,
    DependencyStats,
    ResolvedBundle,
    ResolvedDependency,
)
from vncompiler.services.fetch_cache import FetchCache
from vncompiler.utils.formatting import escape_html, format_size

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class DependencyFetchError(RuntimeError):
    """Raised when one fetch attempt fails."""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"{name}: {detail}")


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before the attempt after `attempt` (1-based): base doubling, capped"""
    return min(base * (2 ** (attempt - 1)), cap)


def verify_integrity(raw: bytes, integrity: str) -> bool:
    algorithm, _, expected = integrity.partition("-")
    digest = hashlib.new(algorithm, raw).digest()
    actual = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(actual, expected)


def _is_remote_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def _warn(warnings: Optional[List[str]], message: str) -> None:
    logger.warning("[DependencyResolver] %s", message)
    if warnings is not None:
        warnings.append(message)


class DependencyResolver:
    """
    Resolves dependency declarations for one process.

    The only state kept between calls is the fetch cache and the preset
    registry; both belong to this instance.
    """

    def __init__(
        self,
        cache: Optional[FetchCache] = None,
        *,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.settings = config or default_settings
        self.cache = cache if cache is not None else FetchCache(enabled=self.settings.enable_fetch_cache)
        self._transport = transport
        self._sleep = sleep
        self._presets: Dict[str, DependencyPreset] = {}

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def register_preset(self, preset: DependencyPreset) -> None:
        self._presets[preset.name] = preset
        logger.debug("[DependencyResolver] Registered preset: %s", preset.name)

    def available_presets(self) -> List[DependencyPreset]:
        return list(self._presets.values())

    def add_from_shorthand(self, text: str) -> DependencyDeclaration:
        """
        Parse one shorthand entry.

        "name@1.2.3"          -> remote, CDN url for name@1.2.3
        "name"                -> remote, CDN url for name
        "@scope/pkg@1.2"      -> split on the last '@'
        "bundle:<url|path>"   -> bundled, named after the file stem
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("empty dependency shorthand")
        if text.startswith("preset:"):
            raise ValueError(f"'{text}' names a preset; use expand_shorthand()")

        if text.startswith("bundle:"):
            location = text[len("bundle:"):].strip()
            if not location:
                raise ValueError("bundle: shorthand requires a url or path")
            last_segment = urlsplit(location).path.rstrip("/").split("/")[-1] or location
            stem = last_segment.rsplit(".", 1)[0] if "." in last_segment else last_segment
            return DependencyDeclaration(
                name=stem or "unnamed",
                kind=DependencyKind.BUNDLED,
                url=location,
            )

        split_at = text.rfind("@")
        if split_at > 0 and text[split_at + 1:]:
            name, version = text[:split_at], text[split_at + 1:]
            package = f"{name}@{version}"
        else:
            name, version = text.rstrip("@"), None
            package = name
        return DependencyDeclaration(
            name=name,
            kind=DependencyKind.REMOTE,
            version=version,
            url=self.settings.cdn_url_template.format(package=package),
        )

    def expand_shorthand(self, text: str) -> List[DependencyDeclaration]:
        text = (text or "").strip()
        if text.startswith("preset:"):
            return self.expand_preset(text[len("preset:"):].strip())
        return [self.add_from_shorthand(text)]

    def expand_preset(self, name: str) -> List[DependencyDeclaration]:
        preset = self._presets.get(name)
        if preset is None:
            raise ValueError(f"Preset not found: {name}")
        logger.info(
            "[DependencyResolver] Expanded preset %s (%s dependencies)",
            name,
            len(preset.dependencies),
        )
        return list(preset.dependencies)

    def declarations_from_script(
        self,
        dependencies: Any = None,
        dependencies_quick: Any = None,
        warnings: Optional[List[str]] = None,
    ) -> List[DependencyDeclaration]:
        """Normalize the script's `dependencies_quick` then `dependencies` lists"""
        declarations: List[DependencyDeclaration] = []

        for entry in self._as_list(dependencies_quick, "dependencies_quick", warnings):
            if not isinstance(entry, str):
                _warn(warnings, f"Quick dependency must be a string, got {type(entry).__name__}; dropped")
                continue
            try:
                declarations.extend(self.expand_shorthand(entry))
            except (ValueError, ValidationError) as exc:
                _warn(warnings, f"Invalid quick dependency '{entry}': {self._short_error(exc)}")

        for entry in self._as_list(dependencies, "dependencies", warnings):
            declarations.extend(self.coerce(entry, warnings))

        return declarations

    def coerce(
        self,
        entry: Any,
        warnings: Optional[List[str]] = None,
    ) -> List[DependencyDeclaration]:
        """Turn a declaration, a shorthand string or a mapping into declarations"""
        if isinstance(entry, DependencyDeclaration):
            return [entry]
        try:
            if isinstance(entry, str):
                return self.expand_shorthand(entry)
            if isinstance(entry, dict):
                if str(entry.get("type", "")).lower() == "preset":
                    return self.expand_preset(str(entry.get("preset") or entry.get("name") or ""))
                return [DependencyDeclaration.model_validate(entry)]
        except (ValueError, ValidationError) as exc:
            label = entry.get("name", "?") if isinstance(entry, dict) else entry
            _warn(warnings, f"Invalid dependency '{label}': {self._short_error(exc)}")
            return []
        _warn(warnings, f"Unsupported dependency entry: {entry!r}")
        return []

    @staticmethod
    def merge(*lists: Iterable[DependencyDeclaration]) -> List[DependencyDeclaration]:
        """Deduplicate by name; the last definition wins but keeps the first position"""
        merged: Dict[str, DependencyDeclaration] = {}
        for declarations in lists:
            for declaration in declarations:
                merged[declaration.name] = declaration
        return list(merged.values())

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_all(
        self,
        declarations: Sequence[DependencyDeclaration],
        minify: bool = False,
        *,
        base_dir: Optional[str | Path] = None,
        warnings: Optional[List[str]] = None,
    ) -> ResolvedBundle:
        local_warnings: List[str] = []
        ordered = sorted(declarations, key=lambda d: d.priority)

        remote = [d for d in ordered if d.kind == DependencyKind.REMOTE]
        bundled = [d for d in ordered if d.kind == DependencyKind.BUNDLED]
        inline = [d for d in ordered if d.kind == DependencyKind.INLINE]

        fetched: List[Optional[ResolvedDependency]] = []
        if bundled:
            logger.info("[DependencyResolver] Bundling %s dependencies", len(bundled))
            semaphore = asyncio.Semaphore(max(1, self.settings.fetch_concurrency))
            async with httpx.AsyncClient(
                transport=self._transport,
                headers={"User-Agent": self.settings.user_agent},
                follow_redirects=True,
            ) as client:
                fetched = await asyncio.gather(
                    *(
                        self._bundle_one(client, semaphore, declaration, minify, base_dir, local_warnings)
                        for declaration in bundled
                    )
                )

        resolved_bundled = [item for item in fetched if item is not None]
        dropped = [d.name for d, item in zip(bundled, fetched) if item is None]

        script_parts: List[str] = []
        style_parts: List[str] = []
        for item in resolved_bundled:
            target = style_parts if item.declaration.format == DependencyFormat.STYLESHEET else script_parts
            target.append(f"/* {item.name} ({format_size(item.size_bytes)}) */\n{item.content}\n")

        inline_parts = [f"/* Inline: {d.name} */\n{d.content}\n" for d in inline]

        fetched_iter = iter(fetched)
        resolved: List[ResolvedDependency] = []
        for declaration in ordered:
            if declaration.kind == DependencyKind.BUNDLED:
                item = next(fetched_iter)
                if item is not None:
                    resolved.append(item)
            else:
                resolved.append(ResolvedDependency(declaration=declaration))

        bundle = ResolvedBundle(
            cdn_markup="\n".join(self.render_tag(d) for d in remote),
            bundled_script="\n".join(script_parts),
            bundled_style="\n".join(style_parts),
            inline_script="\n".join(inline_parts),
            resolved=resolved,
            dropped=dropped,
            warnings=local_warnings,
        )
        bundle.stats = self.stats(bundle)
        if warnings is not None:
            warnings.extend(local_warnings)

        logger.info(
            "[DependencyResolver] Resolved %s dependencies (remote=%s bundled=%s inline=%s dropped=%s)",
            len(ordered),
            len(remote),
            len(resolved_bundled),
            len(inline),
            len(dropped),
        )
        return bundle

    async def _bundle_one(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        declaration: DependencyDeclaration,
        minify: bool,
        base_dir: Optional[str | Path],
        warnings: List[str],
    ) -> Optional[ResolvedDependency]:
        try:
            content = await self._fetch_with_retry(client, semaphore, declaration, base_dir)
        except DependencyFetchError as exc:
            _warn(warnings, f"Failed to bundle {declaration.name}: {exc.detail}")
            return None

        should_minify = declaration.minify if declaration.minify is not None else minify
        minified = False
        if should_minify:
            try:
                if declaration.format == DependencyFormat.STYLESHEET:
                    content = rcssmin.cssmin(content)
                else:
                    content = rjsmin.jsmin(content)
                minified = True
            except Exception as exc:
                _warn(warnings, f"Failed to minify {declaration.name}, keeping original: {exc}")

        encoded = content.encode("utf-8")
        logger.debug("[DependencyResolver] Bundled %s (%s)", declaration.name, format_size(len(encoded)))
        return ResolvedDependency(
            declaration=declaration,
            content=content,
            size_bytes=len(encoded),
            minified=minified,
            content_hash=hashlib.sha256(encoded).hexdigest(),
        )

    async def _fetch_with_retry(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        declaration: DependencyDeclaration,
        base_dir: Optional[str | Path],
    ) -> str:
        location = declaration.url or ""
        cache_key = location if _is_remote_url(location) else str(self._local_path(location, base_dir))

        cached = self.cache.get(cache_key)
        if cached is not None:
            if not declaration.integrity or verify_integrity(cached.encode("utf-8"), declaration.integrity):
                logger.debug("[DependencyResolver] Using cached: %s", declaration.name)
                return cached

        max_attempts = max(1, self.settings.fetch_max_retries)
        last_error = "no attempt made"
        for attempt in range(1, max_attempts + 1):
            try:
                async with semaphore:
                    logger.debug(
                        "[DependencyResolver] Fetching %s (attempt %s/%s)",
                        location,
                        attempt,
                        max_attempts,
                    )
                    raw = await asyncio.wait_for(
                        self._fetch_once(client, location, base_dir),
                        timeout=self.settings.fetch_timeout_seconds,
                    )
                if declaration.integrity and not verify_integrity(raw, declaration.integrity):
                    raise DependencyFetchError(declaration.name, "integrity mismatch")
                content = raw.decode("utf-8", errors="replace")
                self.cache.put(cache_key, content)
                return content
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.settings.fetch_timeout_seconds}s"
            except DependencyFetchError as exc:
                last_error = exc.detail
            except (httpx.HTTPError, OSError) as exc:
                last_error = f"{type(exc).__name__}: {exc}"

            logger.debug(
                "[DependencyResolver] Attempt %s/%s for %s failed: %s",
                attempt,
                max_attempts,
                declaration.name,
                last_error,
            )
            if attempt < max_attempts:
                await self._sleep(
                    backoff_delay(
                        attempt,
                        self.settings.fetch_backoff_base_seconds,
                        self.settings.fetch_backoff_cap_seconds,
                    )
                )

        raise DependencyFetchError(
            declaration.name,
            f"gave up after {max_attempts} attempts: {last_error}",
        )

    async def _fetch_once(
        self,
        client: httpx.AsyncClient,
        location: str,
        base_dir: Optional[str | Path],
    ) -> bytes:
        if _is_remote_url(location):
            response = await client.get(location)
            response.raise_for_status()
            return response.content
        return await asyncio.to_thread(self._local_path(location, base_dir).read_bytes)

    @staticmethod
    def _local_path(location: str, base_dir: Optional[str | Path]) -> Path:
        if location.startswith("file://"):
            return Path(unquote(urlsplit(location).path))
        path = Path(location).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = Path(base_dir) / path
        return path

    # ------------------------------------------------------------------
    # Rendering / diagnostics
    # ------------------------------------------------------------------

    @staticmethod
    def render_tag(declaration: DependencyDeclaration) -> str:
        """Load tag for a remote declaration, wrapped in a guard when conditional"""
        url = declaration.url or ""
        if declaration.condition:
            return DependencyResolver._render_guard(declaration)

        if declaration.format == DependencyFormat.STYLESHEET:
            attrs = ['rel="stylesheet"', f'href="{escape_html(url)}"']
            if declaration.integrity:
                attrs.append(f'integrity="{escape_html(declaration.integrity)}"')
            if declaration.crossorigin:
                attrs.append(f'crossorigin="{declaration.crossorigin}"')
            return f"<link {' '.join(attrs)}>"

        attrs = [f'src="{escape_html(url)}"']
        if declaration.integrity:
            attrs.append(f'integrity="{escape_html(declaration.integrity)}"')
        if declaration.crossorigin:
            attrs.append(f'crossorigin="{declaration.crossorigin}"')
        if declaration.defer:
            attrs.append("defer")
        if declaration.async_:
            attrs.append("async")
        if declaration.is_module:
            attrs.append('type="module"')
        if declaration.no_module:
            attrs.append("nomodule")
        return f"<script {' '.join(attrs)}></script>"

    @staticmethod
    def _render_guard(declaration: DependencyDeclaration) -> str:
        is_style = declaration.format == DependencyFormat.STYLESHEET
        var = "link" if is_style else "script"
        lines = [
            f"<!-- Load {escape_html(declaration.name)} conditionally -->",
            "<script>",
            f"if ({declaration.condition}) {{",
            f"  var {var} = document.createElement('{var}');",
        ]
        if is_style:
            lines.append("  link.rel = 'stylesheet';")
            lines.append(f"  link.href = {json.dumps(declaration.url)};")
        else:
            lines.append(f"  script.src = {json.dumps(declaration.url)};")
            if declaration.defer:
                lines.append("  script.defer = true;")
            if declaration.async_:
                lines.append("  script.async = true;")
            if declaration.is_module:
                lines.append("  script.type = 'module';")
            if declaration.no_module:
                lines.append("  script.noModule = true;")
        if declaration.integrity:
            lines.append(f"  {var}.integrity = {json.dumps(declaration.integrity)};")
        if declaration.crossorigin:
            lines.append(f"  {var}.crossOrigin = {json.dumps(declaration.crossorigin)};")
        lines.append(f"  document.head.appendChild({var});")
        lines.append("}")
        lines.append("</script>")
        return "\n".join(lines)

    def stats(self, bundle: ResolvedBundle) -> DependencyStats:
        kinds = [item.declaration.kind for item in bundle.resolved]
        return DependencyStats(
            total=len(bundle.resolved) + len(bundle.dropped),
            remote=kinds.count(DependencyKind.REMOTE),
            bundled=kinds.count(DependencyKind.BUNDLED),
            inline=kinds.count(DependencyKind.INLINE),
            dropped=len(bundle.dropped),
            total_bundled_size=sum(
                item.size_bytes for item in bundle.resolved if item.declaration.kind == DependencyKind.BUNDLED
            ),
            cache_entries=len(self.cache),
        )

    def manifest(
        self,
        declarations: Sequence[DependencyDeclaration],
        bundle: ResolvedBundle,
    ) -> Dict[str, Any]:
        manifest = bundle.manifest()
        manifest["declared"] = [d.name for d in declarations]
        manifest["presets"] = sorted(self._presets)
        return manifest

    @staticmethod
    def _as_list(value: Any, label: str, warnings: Optional[List[str]]) -> List[Any]:
        if value is None:
            return []
        if not isinstance(value, list):
            _warn(warnings, f"Script '{label}' must be a list; ignoring it")
            return []
        return value

    @staticmethod
    def _short_error(exc: Exception) -> str:
        if isinstance(exc, ValidationError):
            first = exc.errors()[0]
            return str(first.get("msg", exc))
        return str(exc)
