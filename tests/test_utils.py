"""Tests for naming, literal conversion and file output helpers."""

from pathlib import Path
from typing import Optional

import pytest

from extension_api_bindgen.utils import (
    TemplateRenderer,
    atomic_write_text,
    host_type_name,
    python_literal,
    sanitize_identifier,
    write_text,
)

# ###############
# Identifiers
# ###############


@pytest.mark.parametrize(
    "name, expected",
    [
        ("delta", "delta"),
        ("class", "class_"),
        ("from", "from_"),
        ("self", "self_"),
        ("value", "value"),
        ("2d_mode", "_2d_mode"),
        ("a/b", "a_b"),
        ("", "arg"),
    ],
)
def test_sanitize_identifier(name: str, expected: str) -> None:
    assert sanitize_identifier(name) == expected


def test_host_type_name_keeps_dotted_paths() -> None:
    assert host_type_name("Node.ProcessMode") == "Node.ProcessMode"
    assert host_type_name("Variant.Type") == "Variant.Type"


# ###############
# Default Literals
# ###############


@pytest.mark.parametrize(
    "text, expected",
    [
        ("true", "True"),
        ("false", "False"),
        ("null", "None"),
        ("0", "0"),
        ("-1", "-1"),
        ("0.5", "0.5"),
        ("1e-05", "1e-05"),
        ('"hello"', '"hello"'),
        ("Vector2(0, 0)", None),
        ("[]", None),
        ("&\"name\"", None),
        (None, None),
    ],
)
def test_python_literal(text: Optional[str], expected: Optional[str]) -> None:
    assert python_literal(text) == expected


# ###############
# File Output
# ###############


def test_atomic_write_skips_unchanged_content(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "mod.py"
    assert atomic_write_text(target, "x = 1\r\n") is True
    assert target.read_text(encoding="utf-8") == "x = 1\n"
    assert atomic_write_text(target, "x = 1\n") is False
    assert atomic_write_text(target, "x = 2\n") is True
    assert [p.name for p in target.parent.iterdir()] == ["mod.py"]


def test_write_text_dry_run(tmp_path: Path) -> None:
    target = tmp_path / "mod.py"
    write_text(target, "x = 1\n", dry_run=True)
    assert not target.exists()


# ###############
# Templating
# ###############


def test_renderer_registers_only_filters_the_templates_use() -> None:
    env = TemplateRenderer().env
    assert {"pyrepr", "indent_lines"} <= set(env.filters)
    assert "sanitize" not in env.filters
    assert "host_type" not in env.filters
    assert "len" not in env.globals


def test_indent_lines_leaves_blank_lines_empty() -> None:
    template = TemplateRenderer().env.from_string("{{ body | indent_lines }}")
    assert template.render(body=["a = 1", "", "return a"]) == "    a = 1\n\n    return a"
