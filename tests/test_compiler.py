import asyncio
import base64
import json

import httpx
import pytest

from vncompiler.models.compiler import CompileRequest, GameMetadata
from vncompiler.services.template_manager import TemplateManager

from conftest import PNG_BYTES


def _runtime_data(document: str):
    start = document.index("window.VN_RUNTIME_DATA = ") + len("window.VN_RUNTIME_DATA = ")
    end = document.index(";\n", start)
    return json.loads(document[start:end])


def _request(project, output="dist/index.html", **overrides):
    values = dict(
        input=str(project / "story.yaml"),
        output=str(project / output),
        assets_dir=str(project / "assets"),
    )
    values.update(overrides)
    return CompileRequest(**values)


class RecordingEngine:
    instances = []

    def __init__(self):
        self.loaded = None
        RecordingEngine.instances.append(self)

    def load_script(self, text):
        self.loaded = text

    def get_all_scenes(self):
        return [{"name": "only", "instructions": ["from the fake engine"]}]


@pytest.mark.asyncio
async def test_end_to_end_media_project(make_compiler, media_project):
    result = await make_compiler().compile(_request(media_project))

    assert result.success, result.error
    assert result.warnings == []
    assert result.stats.scene_count == 2
    assert result.stats.asset_count == 2
    assert result.stats.dependency_count == 1

    document = (media_project / "dist" / "index.html").read_text(encoding="utf-8")
    assert result.stats.output_size_bytes == len(document.encode("utf-8"))
    assert document.count('src="https://cdn.jsdelivr.net/npm/some-lib@1.0.0"') == 1

    data = _runtime_data(document)
    assets = data["gameData"]["assets"]
    expected_png = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")
    assert assets["images_hero"]["embeddedData"] == expected_png
    assert "referenceURL" not in assets["images_hero"]
    assert assets["video_intro"]["referenceURL"] == "video/intro.mp4"
    assert "embeddedData" not in assets["video_intro"]
    assert assets["video_intro"]["size"] == 2 * 1024 * 1024
    assert [scene["name"] for scene in data["gameData"]["scenes"]] == ["intro", "cinema"]
    assert data["gameData"]["metadata"]["title"] == "Media Test"
    assert data["config"]["dependencies"]["declared"] == ["some-lib"]
    assert "<title>Media Test</title>" in document


@pytest.mark.asyncio
async def test_compile_is_idempotent_under_fixed_clock(make_compiler, media_project):
    compiler = make_compiler()

    first = await compiler.compile(_request(media_project, output="a.html"))
    second = await make_compiler().compile(_request(media_project, output="b.html"))

    assert first.success and second.success
    assert (media_project / "a.html").read_bytes() == (media_project / "b.html").read_bytes()


@pytest.mark.asyncio
async def test_missing_script_is_fatal(make_compiler, tmp_path):
    output = tmp_path / "out.html"

    result = await make_compiler().compile(CompileRequest(input=str(tmp_path / "nope.yaml"), output=str(output)))

    assert not result.success
    assert "not found" in result.error
    assert not output.exists()


@pytest.mark.asyncio
async def test_invalid_yaml_is_fatal(make_compiler, tmp_path):
    script = tmp_path / "story.yaml"
    script.write_text("scenes: [unclosed\n", encoding="utf-8")

    result = await make_compiler().compile(CompileRequest(input=str(script), output=str(tmp_path / "out.html")))

    assert not result.success
    assert "YAML" in result.error


@pytest.mark.asyncio
async def test_scenes_must_be_a_mapping(make_compiler, tmp_path):
    script = tmp_path / "story.yaml"
    script.write_text("title: x\nscenes:\n  - a\n", encoding="utf-8")

    result = await make_compiler().compile(CompileRequest(input=str(script), output=str(tmp_path / "out.html")))

    assert not result.success
    assert "scenes" in result.error


@pytest.mark.asyncio
@pytest.mark.parametrize("section", ["variables: [a, b]", "styles: dark"])
async def test_top_level_sections_must_be_mappings(make_compiler, tmp_path, section):
    output = tmp_path / "out.html"
    script = f"{section}\nscenes:\n  start:\n    - Hi\n"

    result = await make_compiler().compile(CompileRequest(input=script, output=str(output)))

    assert not result.success
    assert section.split(":")[0] in result.error
    assert not output.exists()


@pytest.mark.asyncio
async def test_cancelled_compile_writes_nothing(make_compiler, media_project):
    started = asyncio.Event()
    never = asyncio.Event()

    async def blocking(request):
        started.set()
        await never.wait()
        return httpx.Response(200, text="var late = 1;")

    request = _request(media_project, dependencies=["bundle:https://example.test/slow.js"])
    task = asyncio.create_task(make_compiler(handler=blocking).compile(request))
    await asyncio.wait_for(started.wait(), timeout=2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert not (media_project / "dist" / "index.html").exists()


@pytest.mark.asyncio
async def test_missing_template_is_fatal_and_writes_nothing(make_compiler, media_project):
    compiler = make_compiler(templates=TemplateManager(template_path=media_project / "missing.html"))

    result = await compiler.compile(_request(media_project))

    assert not result.success
    assert "template" in result.error.lower()
    assert not (media_project / "dist" / "index.html").exists()


@pytest.mark.asyncio
async def test_unwritable_output_leaves_no_partial_file(make_compiler, media_project):
    blocker = media_project / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    result = await make_compiler().compile(_request(media_project, output="blocker/index.html"))

    assert not result.success
    assert "Failed to write output" in result.error
    assert blocker.read_text(encoding="utf-8") == "not a directory"


@pytest.mark.asyncio
async def test_successful_write_leaves_no_temp_files(make_compiler, media_project):
    result = await make_compiler().compile(_request(media_project))

    assert result.success
    assert [p.name for p in (media_project / "dist").iterdir()] == ["index.html"]


@pytest.mark.asyncio
async def test_partial_problems_become_warnings(make_compiler, media_project):
    request = _request(
        media_project,
        assets_dir=str(media_project / "no-assets"),
        custom_css=str(media_project / "missing.css"),
        dependencies=["bundle:https://example.test/broken.js"],
    )

    result = await make_compiler().compile(request)

    assert result.success
    assert len(result.warnings) == 3
    assert any("Assets directory not found" in warning for warning in result.warnings)
    assert any("broken" in warning for warning in result.warnings)
    assert any("custom CSS" in warning for warning in result.warnings)


@pytest.mark.asyncio
async def test_custom_css_and_js_are_included(make_compiler, media_project):
    (media_project / "custom.css").write_text(".mine { color: var(--accent-color); }", encoding="utf-8")
    (media_project / "custom.js").write_text("window.customLoaded = true;", encoding="utf-8")

    result = await make_compiler().compile(
        _request(
            media_project,
            custom_css=str(media_project / "custom.css"),
            custom_js=str(media_project / "custom.js"),
        )
    )

    document = (media_project / "dist" / "index.html").read_text(encoding="utf-8")
    assert result.success
    assert ".mine { color: #e92932; }" in document
    assert document.rindex("window.customLoaded = true;") > document.index("class SceneManager")


@pytest.mark.asyncio
async def test_inline_script_and_injected_engine(make_compiler, tmp_path):
    RecordingEngine.instances = []
    compiler = make_compiler(engine_factory=RecordingEngine)
    request = CompileRequest(
        input="title: Inline\nscenes:\n  a:\n    - hi\n",
        output=str(tmp_path / "inline.html"),
        metadata=GameMetadata(author="Ada"),
    )

    first = await compiler.compile(request)
    second = await compiler.compile(request)

    assert first.success and second.success
    assert len(RecordingEngine.instances) == 2
    assert "a:" in RecordingEngine.instances[0].loaded
    assert first.stats.scene_count == 1
    document = (tmp_path / "inline.html").read_text(encoding="utf-8")
    assert "from the fake engine" in document
    assert 'content="Ada"' in document
