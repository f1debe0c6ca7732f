from vncompiler.services.component_extractor import (
    ComponentExtractor,
    DirectiveMatch,
    MalformedDirective,
    find_directives,
    parse_config,
    strip_module_exports,
)
from vncompiler.services.path_resolver import PathNotFound, PathResolver, ResolvedPath

DIRECTIVE = '{{component "create" "KeeperStats" "./components/keeper-stats.js" "" "stats" "hp=10,visible=true,ratio=0.5,label=Keeper"}}'

COMPONENT_JS = """class KeeperStats extends VNComponent {
  render() { return document.createElement('div'); }
}

export default KeeperStats;
"""


def _scenes(*instructions):
    return [{"name": "intro", "instructions": list(instructions)}]


def test_parse_config_coerces_values_and_skips_bad_pairs():
    result = parse_config("hp=10,visible=true,hidden=false,ratio=0.5,label=Keeper,broken")

    assert result.values == {
        "hp": 10,
        "visible": True,
        "hidden": False,
        "ratio": 0.5,
        "label": "Keeper",
    }
    assert result.skipped == ["broken"]


def test_find_directives_reports_malformed_tokens():
    tokens = find_directives(DIRECTIVE + ' and {{component "create" "Half"}}')

    assert isinstance(tokens[0], DirectiveMatch)
    assert tokens[0].component_name == "KeeperStats"
    assert tokens[0].stylesheet_path is None
    assert isinstance(tokens[1], MalformedDirective)


def test_strip_module_exports():
    source = "export class A {}\nexport const b = 1;\nexport { A, b };\nexport default A;\n"

    stripped = strip_module_exports(source)

    assert "export" not in stripped
    assert "class A {}" in stripped
    assert "const b = 1;" in stripped


def test_extract_walks_text_fields_choices_and_branches(tmp_path):
    script = tmp_path / "story.yaml"
    script.write_text("scenes: {}\n", encoding="utf-8")
    scenes = _scenes(
        DIRECTIVE,
        {"speaker": "Guide", "say": "Hello"},
        {"choices": [{"text": DIRECTIVE.replace('"stats"', '"choice"'), "goto": "intro"}]},
        {"if": "hp gt 5", "then": [{"text": DIRECTIVE.replace('"stats"', '"branch"')}]},
    )

    directives = ComponentExtractor().extract(script, scenes)

    assert [d.instance_id for d in directives] == ["stats", "choice", "branch"]
    assert [d.instruction_index for d in directives] == [0, 2, 3]
    assert directives[0].id == "component-keeperstats-intro-1"
    assert directives[2].id == "component-keeperstats-intro-3"
    assert directives[0].config["hp"] == 10


def test_extract_detects_sibling_stylesheet(tmp_path):
    components = tmp_path / "components"
    components.mkdir()
    (components / "keeper-stats.js").write_text(COMPONENT_JS, encoding="utf-8")
    (components / "keeper-stats.css").write_text(".keeper {}", encoding="utf-8")
    script = tmp_path / "story.yaml"
    script.write_text("scenes: {}\n", encoding="utf-8")

    extractor = ComponentExtractor()
    directives = extractor.extract(script, _scenes(DIRECTIVE))
    bundle = extractor.load_payloads(directives, script)

    assert directives[0].stylesheet_path == "./components/keeper-stats.css"
    assert len(bundle.scripts) == 1
    assert len(bundle.styles) == 1
    assert "export default" not in bundle.script_text()
    assert "/* Component: KeeperStats" in bundle.style_text()


def test_component_path_falls_back_to_cwd(tmp_path, monkeypatch):
    story_dir = tmp_path / "story"
    story_dir.mkdir()
    script = story_dir / "story.yaml"
    script.write_text("scenes: {}\n", encoding="utf-8")
    work_dir = tmp_path / "work"
    (work_dir / "components").mkdir(parents=True)
    (work_dir / "components" / "keeper-stats.js").write_text(COMPONENT_JS, encoding="utf-8")
    monkeypatch.chdir(work_dir)

    extractor = ComponentExtractor()
    directives = extractor.extract(script, _scenes(DIRECTIVE))
    bundle = extractor.load_payloads(directives, script)

    assert bundle.missing == []
    assert bundle.scripts[0].resolved_path == str((work_dir / "components" / "keeper-stats.js").resolve())
    resolution = PathResolver(script).resolve("./components/keeper-stats.js")
    assert isinstance(resolution, ResolvedPath)
    assert resolution.strategy == "cwd"


def test_unresolved_component_keeps_directive_without_payload(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    script = tmp_path / "story.yaml"
    script.write_text("scenes: {}\n", encoding="utf-8")
    warnings = []

    extractor = ComponentExtractor()
    directives = extractor.extract(script, _scenes(DIRECTIVE), warnings)
    bundle = extractor.load_payloads(directives, script, warnings)

    assert len(directives) == 1
    assert bundle.scripts == []
    assert bundle.missing == ["./components/keeper-stats.js"]
    assert any("KeeperStats" in warning for warning in warnings)


def test_shared_script_is_loaded_once(tmp_path):
    (tmp_path / "components").mkdir()
    (tmp_path / "components" / "keeper-stats.js").write_text(COMPONENT_JS, encoding="utf-8")
    script = tmp_path / "story.yaml"
    script.write_text("scenes: {}\n", encoding="utf-8")
    scenes = _scenes(DIRECTIVE, DIRECTIVE.replace('"stats"', '"second"'))

    extractor = ComponentExtractor()
    directives = extractor.extract(script, scenes)
    bundle = extractor.load_payloads(directives, script)

    assert len(directives) == 2
    assert len(bundle.scripts) == 1


def test_path_resolver_strategies_in_order(tmp_path):
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    (second / "widget.js").write_text("", encoding="utf-8")
    resolver = PathResolver(strategies=[("first", lambda: first), ("second", lambda: second)])

    found = resolver.resolve("widget.js")
    missing = resolver.resolve("nothing.js")

    assert found.strategy == "second"
    assert isinstance(missing, PathNotFound)
    assert len(missing.tried) == 2
    assert isinstance(resolver.resolve("https://example.test/widget.js"), PathNotFound)


def test_find_directives_ignores_runtime_actions():
    text = '{{component "update" "b1" "label=Bye"}} {{component "show" "b1"}} {{component \'unmount\' "b1"}}'

    assert find_directives(text) == []


def test_extract_does_not_warn_on_update_directive(tmp_path):
    script = tmp_path / "story.yaml"
    script.write_text("", encoding="utf-8")
    warnings = []

    directives = ComponentExtractor().extract(script, _scenes('{{component "update" "b1" "label=Bye"}}'), warnings)

    assert directives == []
    assert warnings == []
