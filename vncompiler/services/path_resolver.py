"""
Path Resolver - finds component files through an ordered list of base directories
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

BaseDirFactory = Callable[[], Optional[Path]]


@dataclass(frozen=True)
class ResolvedPath:
    path: Path
    strategy: str


@dataclass(frozen=True)
class PathNotFound:
    requested: str
    tried: Tuple[str, ...] = field(default_factory=tuple)


PathResolution = Union[ResolvedPath, PathNotFound]


def executable_dir() -> Path:
    """Directory of the frozen binary, or of the launched entry script"""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    if sys.argv and sys.argv[0]:
        return Path(sys.argv[0]).resolve().parent
    return Path.cwd()


class PathResolver:
    """
    Resolves relative paths against named strategies, first existing file wins.

    Default order: script_dir -> executable_dir -> cwd. The cwd is read at
    resolve time, not at construction.
    """

    def __init__(
        self,
        script_path: Optional[str | Path] = None,
        strategies: Optional[List[Tuple[str, BaseDirFactory]]] = None,
    ) -> None:
        if strategies is None:
            strategies = []
            if script_path:
                script_dir = Path(script_path).resolve().parent
                strategies.append(("script_dir", lambda: script_dir))
            strategies.append(("executable_dir", executable_dir))
            strategies.append(("cwd", Path.cwd))
        self.strategies = strategies

    def resolve(self, requested: str) -> PathResolution:
        if not requested or requested.startswith(("http://", "https://")):
            return PathNotFound(requested=requested or "")

        candidate = Path(requested).expanduser()
        if candidate.is_absolute():
            if candidate.is_file():
                return ResolvedPath(path=candidate, strategy="absolute")
            return PathNotFound(requested=requested, tried=(str(candidate),))

        tried: List[str] = []
        for name, base_factory in self.strategies:
            base = base_factory()
            if base is None:
                continue
            full = (base / candidate).resolve()
            tried.append(str(full))
            if full.is_file():
                logger.debug("[PathResolver] %s -> %s (%s)", requested, full, name)
                return ResolvedPath(path=full, strategy=name)

        logger.debug("[PathResolver] %s not found; tried %s", requested, tried)
        return PathNotFound(requested=requested, tried=tuple(tried))
