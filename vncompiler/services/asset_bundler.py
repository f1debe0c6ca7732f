"""
Asset Bundler - classifies media files and embeds small images as data URIs

Images at or below EMBED_THRESHOLD are inlined as base64; everything else is
left as a relative reference next to the compiled document.
"""
from __future__ import annotations

import base64
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from vncompiler.models.compiler import EMBED_THRESHOLD, AssetKind, ProcessedAsset
from vncompiler.utils.formatting import escape_html, format_size

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: Dict[AssetKind, tuple] = {
    AssetKind.IMAGE: (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp"),
    AssetKind.AUDIO: (".mp3", ".wav", ".ogg", ".m4a", ".aac", ".flac"),
    AssetKind.VIDEO: (".mp4", ".webm", ".avi", ".mov", ".wmv", ".flv"),
}

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".flac": "audio/flac",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".avi": "video/avi",
    ".mov": "video/quicktime",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
}

# Spellings accepted in a script's `assets:` list
_KIND_ALIASES = {
    "image": AssetKind.IMAGE,
    "img": AssetKind.IMAGE,
    "picture": AssetKind.IMAGE,
    "photo": AssetKind.IMAGE,
    "audio": AssetKind.AUDIO,
    "sound": AssetKind.AUDIO,
    "music": AssetKind.AUDIO,
    "video": AssetKind.VIDEO,
    "movie": AssetKind.VIDEO,
    "film": AssetKind.VIDEO,
}

_KEY_SANITIZE = re.compile(r"[^a-zA-Z0-9_]")


def classify_extension(extension: str) -> AssetKind:
    extension = extension.lower()
    for kind, extensions in SUPPORTED_EXTENSIONS.items():
        if extension in extensions:
            return kind
    return AssetKind.UNKNOWN


def asset_key(relative_path: str) -> str:
    """'bg/Forest Night.png' -> 'bg_forest_night'"""
    path = Path(relative_path)
    stem = path.with_suffix("").as_posix() if path.suffix else path.as_posix()
    stem = stem.replace("/", "_").replace("\\", "_")
    return _KEY_SANITIZE.sub("_", stem).lower()


def _warn(warnings: Optional[List[str]], message: str) -> None:
    logger.warning("[AssetBundler] %s", message)
    if warnings is not None:
        warnings.append(message)


class AssetBundler:
    """Walks an asset directory and produces ProcessedAsset records"""

    def __init__(self, embed_threshold: int = EMBED_THRESHOLD) -> None:
        self.embed_threshold = min(embed_threshold, EMBED_THRESHOLD)

    def process_assets(
        self,
        directory: Optional[str | Path],
        warnings: Optional[List[str]] = None,
    ) -> List[ProcessedAsset]:
        """
        Classify every supported file under a directory

        A missing directory yields an empty list plus a warning. A file that
        cannot be read is excluded with a warning; the rest still process.
        """
        if not directory:
            return []

        root = Path(directory)
        if not root.exists():
            _warn(warnings, f"Assets directory not found: {directory}")
            return []
        if not root.is_dir():
            _warn(warnings, f"Asset path is not a directory: {directory}")
            return []

        logger.info("[AssetBundler] Processing assets from %s", root)
        assets: List[ProcessedAsset] = []
        seen: Dict[str, str] = {}
        for file_path in sorted(p for p in root.rglob("*") if p.is_file()):
            kind = classify_extension(file_path.suffix)
            if kind == AssetKind.UNKNOWN:
                logger.debug("[AssetBundler] Skipping unsupported file: %s", file_path)
                continue
            try:
                asset = self._process_file(file_path, root, kind)
            except OSError as exc:
                _warn(warnings, f"Failed to process asset {file_path}: {exc}")
                continue
            if asset.key in seen:
                _warn(
                    warnings,
                    f"Asset key '{asset.key}' is shared by {seen[asset.key]} and {asset.name}; the later file wins",
                )
            seen[asset.key] = asset.name
            assets.append(asset)
            logger.debug(
                "[AssetBundler] %s %s (%s)",
                "Embedded" if asset.embedded else "Referenced",
                asset.name,
                format_size(asset.size_bytes),
            )

        self._log_stats(assets)
        return assets

    def _process_file(self, file_path: Path, root: Path, kind: AssetKind) -> ProcessedAsset:
        size = file_path.stat().st_size
        relative = file_path.relative_to(root).as_posix()
        extension = file_path.suffix.lower()

        embedded_data = None
        reference_url = None
        if kind == AssetKind.IMAGE and size <= self.embed_threshold:
            raw = file_path.read_bytes()
            mime = MIME_TYPES.get(extension, "application/octet-stream")
            embedded_data = f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"
        else:
            reference_url = relative

        return ProcessedAsset(
            key=asset_key(relative),
            name=file_path.name,
            relative_path=relative,
            kind=kind,
            size_bytes=size,
            embedded_data=embedded_data,
            reference_url=reference_url,
            metadata={"format": extension.lstrip(".").upper()},
        )

    def assets_from_script(
        self,
        entries: Any,
        warnings: Optional[List[str]] = None,
    ) -> List[ProcessedAsset]:
        """Turn a script's `assets:` list into referenced assets (size unknown)"""
        if not entries:
            return []
        if not isinstance(entries, list):
            _warn(warnings, "Script 'assets' must be a list; ignoring it")
            return []

        assets: List[ProcessedAsset] = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                _warn(warnings, f"Script asset #{index} is not a mapping; skipped")
                continue
            key = entry.get("key") or entry.get("name") or "unknown"
            name = entry.get("name") or entry.get("key") or "unnamed"
            location = entry.get("url") or entry.get("path") or ""
            kind = _KIND_ALIASES.get(str(entry.get("type") or "").lower(), AssetKind.UNKNOWN)
            metadata = entry.get("metadata")
            if not isinstance(metadata, Mapping):
                metadata = {"description": entry.get("description")} if entry.get("description") else {}
            try:
                assets.append(
                    ProcessedAsset(
                        key=str(key),
                        name=str(name),
                        relative_path=str(location),
                        kind=kind,
                        size_bytes=0,
                        reference_url=str(location),
                        metadata=dict(metadata),
                    )
                )
            except ValidationError as exc:
                _warn(warnings, f"Script asset '{key}' is invalid: {exc.errors()[0]['msg']}")
        logger.debug("[AssetBundler] Extracted %s assets from script", len(assets))
        return assets

    @staticmethod
    def generate_manifest(assets: Iterable[ProcessedAsset]) -> Dict[str, Any]:
        assets = list(assets)
        by_kind: Dict[str, int] = {kind.value: 0 for kind in AssetKind}
        for asset in assets:
            by_kind[asset.kind.value] += 1
        return {
            "version": "1.0",
            "total": len(assets),
            "by_kind": by_kind,
            "embedded": sum(1 for a in assets if a.embedded),
            "referenced": sum(1 for a in assets if not a.embedded),
            "total_size_bytes": sum(a.size_bytes for a in assets),
            "assets": [
                {
                    "key": a.key,
                    "name": a.name,
                    "kind": a.kind.value,
                    "size": a.size_bytes,
                    "embedded": a.embedded,
                    "url": a.reference_url,
                    "metadata": dict(a.metadata),
                }
                for a in assets
            ],
        }

    @staticmethod
    def runtime_manifest(assets: Iterable[ProcessedAsset]) -> Dict[str, Dict[str, Any]]:
        """key -> entry map read by the browser asset manager"""
        manifest: Dict[str, Dict[str, Any]] = {}
        for asset in assets:
            entry: Dict[str, Any] = {
                "key": asset.key,
                "name": asset.name,
                "type": asset.kind.value,
                "size": asset.size_bytes,
                "metadata": dict(asset.metadata),
            }
            if asset.embedded:
                entry["embeddedData"] = asset.embedded_data
            else:
                entry["referenceURL"] = asset.reference_url
            manifest[asset.key] = entry
        return manifest

    @staticmethod
    def _log_stats(assets: List[ProcessedAsset]) -> None:
        counts = {kind: sum(1 for a in assets if a.kind == kind) for kind in AssetKind}
        logger.info(
            "[AssetBundler] %s assets (images=%s audio=%s video=%s, embedded=%s, total %s)",
            len(assets),
            counts[AssetKind.IMAGE],
            counts[AssetKind.AUDIO],
            counts[AssetKind.VIDEO],
            sum(1 for a in assets if a.embedded),
            format_size(sum(a.size_bytes for a in assets)),
        )


def _by_key(assets: Mapping[str, ProcessedAsset] | Iterable[ProcessedAsset]) -> Mapping[str, ProcessedAsset]:
    if isinstance(assets, Mapping):
        return assets
    return {asset.key: asset for asset in assets}


def render_image(
    assets: Mapping[str, ProcessedAsset] | Iterable[ProcessedAsset],
    key: str,
    alt: Optional[str] = None,
    css_class: Optional[str] = None,
) -> str:
    asset = _by_key(assets).get(key)
    if asset is None:
        return f"<!-- Asset not found: {escape_html(key)} -->"
    class_attr = f' class="{escape_html(css_class)}"' if css_class else ""
    return (
        f'<img src="{escape_html(asset.src)}" alt="{escape_html(alt or asset.name)}"'
        f'{class_attr} data-asset="{escape_html(key)}">'
    )


def render_audio(
    assets: Mapping[str, ProcessedAsset] | Iterable[ProcessedAsset],
    key: str,
    autoplay: bool = False,
    loop: bool = False,
) -> str:
    asset = _by_key(assets).get(key)
    if asset is None:
        return f"<!-- Asset not found: {escape_html(key)} -->"
    flags = (" autoplay" if autoplay else "") + (" loop" if loop else "")
    return f'<audio src="{escape_html(asset.src)}" controls{flags} data-asset="{escape_html(key)}"></audio>'


def render_video(
    assets: Mapping[str, ProcessedAsset] | Iterable[ProcessedAsset],
    key: str,
    autoplay: bool = False,
    loop: bool = False,
    css_class: Optional[str] = None,
) -> str:
    asset = _by_key(assets).get(key)
    if asset is None:
        return f"<!-- Asset not found: {escape_html(key)} -->"
    flags = (" autoplay" if autoplay else "") + (" loop" if loop else "")
    class_attr = f' class="{escape_html(css_class)}"' if css_class else ""
    return (
        f'<video src="{escape_html(asset.src)}" controls{flags}{class_attr} '
        f'data-asset="{escape_html(key)}"></video>'
    )
