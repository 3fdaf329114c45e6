"""Tests for the generation manifest."""

import json
from pathlib import Path

from extension_api_bindgen.class_generator import GenerationResult
from extension_api_bindgen.manifest import GENERATOR_NAME, build_manifest, emit_manifest
from extension_api_bindgen.models import GenerationContext


def test_manifest_contents(tmp_path: Path, result: GenerationResult) -> None:
    ctx = GenerationContext(output_dir=tmp_path)
    manifest = build_manifest(ctx, result, ["core_defs.py"])
    assert manifest["generator"]["name"] == GENERATOR_NAME
    assert manifest["engine"]["version_full_name"] == "Godot Engine v4.2.1.stable.official"
    assert manifest["build_configuration"] == "float_64"
    assert manifest["artifacts"] == ["core_defs.py"]
    assert manifest["class_count"] == len(result.plans)
    assert manifest["utility_function_count"] == 3
    assert manifest["builtin_methods"] == {"String": 2, "Vector2": 5, "Callable": 1}
    node = next(c for c in manifest["classes"] if c["name"] == "Node")
    assert node["inherits"] == "Object"
    assert node["virtuals"] == 4
    assert node["properties"] == 3
    assert {"owner": "Node", "member": "rpc", "reason": "variadic methods are not bound"} in manifest["diagnostics"]
    json.dumps(manifest)


def test_emit_manifest(tmp_path: Path, result: GenerationResult) -> None:
    emit_manifest(GenerationContext(output_dir=tmp_path), result)
    data = json.loads((tmp_path / "manifest.json").read_text(encoding="utf-8"))
    assert data["context"]["output_dir"] == str(tmp_path)


def test_emit_manifest_dry_run(tmp_path: Path, result: GenerationResult) -> None:
    emit_manifest(GenerationContext(output_dir=tmp_path, dry_run=True), result)
    assert not (tmp_path / "manifest.json").exists()
