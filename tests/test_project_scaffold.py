import json
from datetime import datetime, timezone

import pytest

from vncompiler.models.compiler import CompileRequest
from vncompiler.services.project_config import find_project_config, load_project_config
from vncompiler.services.project_scaffold import TEMPLATES, ProjectScaffolder, ScaffoldError
from vncompiler.services.script_validator import ScriptValidator


def _scaffolder():
    return ProjectScaffolder(clock=lambda: datetime(2026, 1, 1, tzinfo=timezone.utc))


@pytest.mark.parametrize("template", TEMPLATES)
def test_scaffolded_story_validates(tmp_path, template):
    result = _scaffolder().create("novel", template=template, directory=tmp_path)

    validation = ScriptValidator().validate_file(result.path / "story.yaml")

    assert validation.valid, [issue.message for issue in validation.errors]
    assert (result.path / "vn-config.json").is_file()
    assert (result.path / "styles" / "custom.css").is_file()
    assert (result.path / "scripts" / "custom.js").is_file()
    assert (result.path / "README.md").is_file()


def test_media_rich_adds_components(tmp_path):
    result = _scaffolder().create("media", template="media-rich", directory=tmp_path)

    assert (result.path / "components" / "scene-badge.js").is_file()
    assert (result.path / "assets" / "images" / "placeholder.svg").is_file()


def test_refuses_non_empty_directory(tmp_path):
    target = tmp_path / "novel"
    target.mkdir()
    (target / "keep.txt").write_text("mine", encoding="utf-8")

    with pytest.raises(ScaffoldError):
        _scaffolder().create("novel", directory=tmp_path)

    assert (target / "keep.txt").read_text(encoding="utf-8") == "mine"


def test_rejects_bad_name_and_template(tmp_path):
    with pytest.raises(ScaffoldError):
        _scaffolder().create("1novel", directory=tmp_path)
    with pytest.raises(ScaffoldError):
        _scaffolder().create("novel", template="epic", directory=tmp_path)


def test_project_config_resolves_paths_against_its_directory(tmp_path):
    result = _scaffolder().create("novel", directory=tmp_path)

    config, path = load_project_config(directory=result.path)

    assert path == find_project_config(result.path)
    assert config.title == "novel"
    assert config.custom_css == str(result.path.resolve() / "styles" / "custom.css")
    assert config.output == str(result.path.resolve() / "dist" / "index.html")


def test_broken_project_config_falls_back_to_defaults(tmp_path):
    (tmp_path / "vn-config.json").write_text("{not json", encoding="utf-8")
    warnings = []

    config, path = load_project_config(directory=tmp_path, warnings=warnings)

    assert path is None
    assert config.title == "VN Game"
    assert len(warnings) == 1


def test_config_aliases(tmp_path):
    (tmp_path / "vn-config.json").write_text(
        json.dumps({"title": "Aliased", "assetsDir": "media", "customJS": "/abs/custom.js", "minify": True}),
        encoding="utf-8",
    )

    config, _ = load_project_config(directory=tmp_path)

    assert config.assets_dir == str(tmp_path.resolve() / "media")
    assert config.custom_js == "/abs/custom.js"
    assert config.minify is True


@pytest.mark.asyncio
async def test_media_rich_project_compiles(tmp_path, make_compiler, monkeypatch):
    result = _scaffolder().create("media", template="media-rich", directory=tmp_path)
    monkeypatch.chdir(result.path)
    config, _ = load_project_config(directory=result.path)

    compiled = await make_compiler().compile(
        CompileRequest(
            input=config.input,
            output=config.output,
            assets_dir=config.assets_dir,
            custom_css=config.custom_css,
            custom_js=config.custom_js,
        )
    )

    assert compiled.success, compiled.error
    assert compiled.stats.component_count == 1
    document = (result.path / "dist" / "index.html").read_text(encoding="utf-8")
    assert "class SceneBadge extends VNComponent" in document
    assert "export default SceneBadge" not in document
    assert ".scene-badge" in document
    assert '"theme": "modern"' in document
