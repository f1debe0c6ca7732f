from datetime import datetime, timezone

import httpx
import pytest

from vncompiler.config import Settings
from vncompiler.services.compiler import VNCompiler
from vncompiler.services.dependency_resolver import DependencyResolver
from vncompiler.services.fetch_cache import FetchCache

FIXED_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)

# 10 KB image (embedded) and 2 MB video (referenced)
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * (10 * 1024 - 8)
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * (2 * 1024 * 1024 - 12)


async def _no_sleep(delay):
    return None


def _offline(request):
    return httpx.Response(404)


@pytest.fixture
def make_compiler():
    """VNCompiler with a fixed clock and a mock transport; nothing touches the network"""

    def factory(handler=_offline, **kwargs):
        resolver = DependencyResolver(
            FetchCache(),
            config=Settings(fetch_timeout_seconds=5.0, fetch_max_retries=3, fetch_concurrency=4),
            transport=httpx.MockTransport(handler),
            sleep=_no_sleep,
        )
        return VNCompiler(resolver=resolver, clock=lambda: FIXED_TIME, **kwargs)

    return factory


@pytest.fixture
def media_project(tmp_path):
    """A project with a 10 KB PNG, a 2 MB MP4 and a script depending on some-lib@1.0.0"""
    assets = tmp_path / "assets"
    (assets / "images").mkdir(parents=True)
    (assets / "video").mkdir(parents=True)
    (assets / "images" / "hero.png").write_bytes(PNG_BYTES)
    (assets / "video" / "intro.mp4").write_bytes(MP4_BYTES)
    script = tmp_path / "story.yaml"
    script.write_text(
        """title: Media Test
description: One image, one video
variables:
  seen: false
dependencies_quick:
  - some-lib@1.0.0
scenes:
  intro:
    - "{{showImage 'images_hero'}}"
    - speaker: Guide
      say: "Welcome, {{playerName}}"
    - goto: cinema
  cinema:
    - "{{playVideo 'video_intro'}}"
    - The End.
""",
        encoding="utf-8",
    )
    return tmp_path
