from vncompiler.config import Settings
from vncompiler.services.fetch_cache import FetchCache
from vncompiler.utils.formatting import escape_html, format_duration, format_size


def test_escape_html():
    assert escape_html('<a href="x">&</a>') == "&lt;a href=&quot;x&quot;&gt;&amp;&lt;/a&gt;"
    assert escape_html(None) == ""
    assert escape_html(3) == "3"


def test_format_size():
    assert format_size(512) == "512 B"
    assert format_size(1536) == "1.5 KB"
    assert format_size(5 * 1024 * 1024) == "5.0 MB"


def test_format_duration():
    assert format_duration(250) == "250ms"
    assert format_duration(1500) == "1.50s"


def test_fetch_cache():
    cache = FetchCache()
    cache.put("https://example.test/a.js", "var a;")

    assert cache.get("https://example.test/a.js") == "var a;"
    assert "https://example.test/a.js" in cache
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_disabled_fetch_cache_stores_nothing():
    cache = FetchCache(enabled=False)
    cache.put("https://example.test/a.js", "var a;")

    assert cache.get("https://example.test/a.js") is None
    assert len(cache) == 0


def test_settings_defaults():
    config = Settings()

    assert config.api_prefix == "/api"
    assert "{package}" in config.cdn_url_template
