import asyncio
import base64
import hashlib

import httpx
import pytest

from vncompiler.config import Settings
from vncompiler.models.dependency import (
    DependencyDeclaration,
    DependencyFormat,
    DependencyKind,
    DependencyPreset,
)
from vncompiler.services.dependency_resolver import (
    DependencyResolver,
    backoff_delay,
    verify_integrity,
)
from vncompiler.services.fetch_cache import FetchCache


def _settings(**overrides) -> Settings:
    values = {
        "fetch_timeout_seconds": 5.0,
        "fetch_max_retries": 3,
        "fetch_backoff_base_seconds": 1.0,
        "fetch_backoff_cap_seconds": 5.0,
        "fetch_concurrency": 4,
        "enable_fetch_cache": True,
        "cdn_url_template": "https://cdn.jsdelivr.net/npm/{package}",
    }
    values.update(overrides)
    return Settings(**values)


class _Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _resolver(handler, **overrides):
    sleeps = _Sleeps()
    resolver = DependencyResolver(
        FetchCache(),
        config=_settings(**overrides),
        transport=httpx.MockTransport(handler),
        sleep=sleeps,
    )
    return resolver, sleeps


def _bundled(name, priority=50, **extra):
    return DependencyDeclaration(
        name=name,
        kind=DependencyKind.BUNDLED,
        url=f"https://example.test/{name}.js",
        priority=priority,
        **extra,
    )


def test_backoff_doubles_and_caps():
    assert [backoff_delay(n, 1.0, 5.0) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_verify_integrity():
    raw = b"console.log(1);"
    digest = base64.b64encode(hashlib.sha384(raw).digest()).decode("ascii")
    assert verify_integrity(raw, f"sha384-{digest}")
    assert not verify_integrity(b"tampered", f"sha384-{digest}")


def test_shorthand_with_version():
    resolver = DependencyResolver(FetchCache(), config=_settings())

    declaration = resolver.add_from_shorthand("some-lib@1.0.0")

    assert declaration.name == "some-lib"
    assert declaration.version == "1.0.0"
    assert declaration.kind == DependencyKind.REMOTE
    assert declaration.url == "https://cdn.jsdelivr.net/npm/some-lib@1.0.0"


def test_shorthand_scoped_package_splits_on_last_at():
    resolver = DependencyResolver(FetchCache(), config=_settings())

    declaration = resolver.add_from_shorthand("@scope/pkg@2.1")

    assert declaration.name == "@scope/pkg"
    assert declaration.version == "2.1"
    assert declaration.url == "https://cdn.jsdelivr.net/npm/@scope/pkg@2.1"


def test_shorthand_bundle_and_bare_name():
    resolver = DependencyResolver(FetchCache(), config=_settings())

    bundled = resolver.add_from_shorthand("bundle:https://example.test/dist/howler.min.css")
    bare = resolver.add_from_shorthand("lodash")

    assert bundled.kind == DependencyKind.BUNDLED
    assert bundled.name == "howler.min"
    assert bundled.format == DependencyFormat.STYLESHEET
    assert bare.version is None
    assert bare.url == "https://cdn.jsdelivr.net/npm/lodash"


def test_preset_expansion_and_unknown_preset():
    resolver = DependencyResolver(FetchCache(), config=_settings())
    resolver.register_preset(
        DependencyPreset(
            name="audio",
            category="audio",
            dependencies=[DependencyDeclaration(name="howler", url="https://example.test/howler.js")],
        )
    )
    warnings = []

    declarations = resolver.declarations_from_script(
        dependencies=[{"type": "preset", "name": "missing"}],
        dependencies_quick=["preset:audio"],
        warnings=warnings,
    )

    assert [d.name for d in declarations] == ["howler"]
    assert len(warnings) == 1
    assert "missing" in warnings[0]


def test_invalid_declaration_is_dropped_with_warning():
    resolver = DependencyResolver(FetchCache(), config=_settings())
    warnings = []

    declarations = resolver.coerce({"name": "broken", "type": "bundled"}, warnings)

    assert declarations == []
    assert "broken" in warnings[0]


def test_merge_keeps_first_position_last_definition():
    first = DependencyDeclaration(name="a", url="https://example.test/a.js")
    second = DependencyDeclaration(name="b", url="https://example.test/b.js")
    override = DependencyDeclaration(name="a", url="https://example.test/a2.js")

    merged = DependencyResolver.merge([first, second], [override])

    assert [d.name for d in merged] == ["a", "b"]
    assert merged[0].url == "https://example.test/a2.js"


def test_render_tag_variants():
    script = DependencyDeclaration(
        name="lib",
        url="https://example.test/lib.js",
        defer=True,
        crossorigin="anonymous",
    )
    style = DependencyDeclaration(name="css", url="https://example.test/theme.css")
    guarded = DependencyDeclaration(
        name="touch",
        url="https://example.test/touch.js",
        condition="'ontouchstart' in window",
    )

    assert DependencyResolver.render_tag(script) == (
        '<script src="https://example.test/lib.js" crossorigin="anonymous" defer></script>'
    )
    assert DependencyResolver.render_tag(style) == '<link rel="stylesheet" href="https://example.test/theme.css">'
    rendered = DependencyResolver.render_tag(guarded)
    assert "if ('ontouchstart' in window) {" in rendered
    assert 'script.src = "https://example.test/touch.js";' in rendered


@pytest.mark.asyncio
async def test_bundled_order_ignores_completion_order():
    delays = {"/p10.js": 0.09, "/p50.js": 0.05, "/p90.js": 0.01}
    completed = []

    async def handler(request):
        await asyncio.sleep(delays[request.url.path])
        completed.append(request.url.path)
        return httpx.Response(200, text=f"/* {request.url.path} */")

    resolver, _ = _resolver(handler)
    declarations = [_bundled("p90", 90), _bundled("p10", 10), _bundled("p50", 50)]

    bundle = await resolver.resolve_all(declarations)

    assert completed == ["/p90.js", "/p50.js", "/p10.js"]
    assert [item.name for item in bundle.resolved] == ["p10", "p50", "p90"]
    script = bundle.bundled_script
    assert script.index("/p10.js") < script.index("/p50.js") < script.index("/p90.js")


@pytest.mark.asyncio
async def test_failing_dependency_is_retried_then_dropped():
    calls = {"bad": 0, "good": 0}

    def handler(request):
        if request.url.path == "/bad.js":
            calls["bad"] += 1
            return httpx.Response(500)
        calls["good"] += 1
        return httpx.Response(200, text="var good = 1;")

    resolver, sleeps = _resolver(handler)
    warnings = []

    bundle = await resolver.resolve_all([_bundled("bad", 10), _bundled("good", 20)], warnings=warnings)

    assert calls == {"bad": 3, "good": 1}
    assert sleeps.delays == [1.0, 2.0]
    assert bundle.dropped == ["bad"]
    assert [item.name for item in bundle.resolved] == ["good"]
    assert "var good = 1;" in bundle.bundled_script
    assert len(warnings) == 1
    assert "bad" in warnings[0] and "3 attempts" in warnings[0]
    assert bundle.stats.dropped == 1


@pytest.mark.asyncio
async def test_timeout_counts_as_failed_attempt():
    async def handler(request):
        await asyncio.sleep(1.0)
        return httpx.Response(200, text="late")

    resolver, sleeps = _resolver(handler, fetch_timeout_seconds=0.01, fetch_max_retries=2)
    warnings = []

    bundle = await resolver.resolve_all([_bundled("slow")], warnings=warnings)

    assert bundle.dropped == ["slow"]
    assert sleeps.delays == [1.0]
    assert "timed out" in warnings[0]


@pytest.mark.asyncio
async def test_fetch_cache_is_reused_across_calls():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, text="var cached = true;")

    resolver, _ = _resolver(handler)

    first = await resolver.resolve_all([_bundled("lib")])
    second = await resolver.resolve_all([_bundled("lib")])

    assert calls == ["/lib.js"]
    assert first.bundled_script == second.bundled_script
    assert len(resolver.cache) == 1


@pytest.mark.asyncio
async def test_integrity_mismatch_drops_dependency():
    def handler(request):
        return httpx.Response(200, text="tampered")

    expected = base64.b64encode(hashlib.sha256(b"original").digest()).decode("ascii")
    resolver, _ = _resolver(handler)
    warnings = []

    bundle = await resolver.resolve_all(
        [_bundled("signed", integrity=f"sha256-{expected}")],
        warnings=warnings,
    )

    assert bundle.dropped == ["signed"]
    assert "integrity mismatch" in warnings[0]


@pytest.mark.asyncio
async def test_local_bundle_and_inline_and_remote(tmp_path):
    (tmp_path / "vendor").mkdir()
    (tmp_path / "vendor" / "local.js").write_text("var local = 1;", encoding="utf-8")

    def handler(request):
        raise AssertionError("remote dependencies must not be fetched")

    resolver, _ = _resolver(handler)
    declarations = [
        DependencyDeclaration(name="local", type="bundled", url="vendor/local.js"),
        DependencyDeclaration(name="snippet", type="inline", content="window.snippet = true;"),
        resolver.add_from_shorthand("some-lib@1.0.0"),
    ]

    bundle = await resolver.resolve_all(declarations, base_dir=tmp_path)

    assert "var local = 1;" in bundle.bundled_script
    assert bundle.inline_script.startswith("/* Inline: snippet */")
    assert bundle.cdn_markup == '<script src="https://cdn.jsdelivr.net/npm/some-lib@1.0.0"></script>'
    assert bundle.stats.model_dump()["remote"] == 1
    assert bundle.stats.bundled == 1
    assert bundle.stats.inline == 1


@pytest.mark.asyncio
async def test_minify_bundled_script():
    def handler(request):
        return httpx.Response(200, text="function  add ( a, b ) {\n   return a + b;\n}\n")

    resolver, _ = _resolver(handler)

    bundle = await resolver.resolve_all([_bundled("math")], minify=True)

    item = bundle.resolved[0]
    assert item.minified
    assert "function add(a,b){return a+b;}" in item.content


@pytest.mark.asyncio
async def test_fetch_concurrency_bounds_in_flight_requests():
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, text=f"/* {request.url.path} */")

    resolver, _ = _resolver(handler, fetch_concurrency=1)
    declarations = [_bundled(f"lib{index}", index) for index in range(5)]

    bundle = await resolver.resolve_all(declarations)

    assert len(bundle.resolved) == 5
    assert peak == 1
