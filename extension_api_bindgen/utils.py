#!/usr/bin/env python3
"""
Utilities for templating (Jinja2) and file I/O for the extension API binding generator.

This module provides:
- Project-wide logging configuration.
- Identifier helpers that keep engine names valid in generated Python.
- Layered Jinja2 environment creation with user templates and package templates.
- The template filters the package templates use.
- Production-grade file writing helpers (atomic writes, newline normalization, idempotency).

The goal is to keep the rest of the codebase clean and focused on mapping and emission logic.
"""

from __future__ import annotations

import keyword
import logging
import os
import re
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateNotFound,
)

logger = logging.getLogger(__name__)

PACKAGE_NAME = "extension_api_bindgen"


def configure_logging(
    level: Optional[Union[int, str]] = None,
    *,
    to_file: Optional[Union[str, Path]] = None,
    fmt: Optional[str] = None,
    stream: Optional[TextIO] = None,
    propagate_package_loggers: bool = True,
) -> None:
    """
    Configure project-wide logging with consistent formatting and optional file output.

    Parameters:
    - level: int or name (e.g., 'INFO', 'DEBUG'). Defaults to INFO.
    - to_file: path to a log file; if provided, logs are also written there.
    - fmt: logging format string. Defaults to '%(levelname)s: %(message)s'.
    - stream: stream for console logs (defaults to sys.stderr).
    - propagate_package_loggers: whether the package logger propagates to root.
    """
    if level is None:
        resolved_level = logging.INFO
    elif isinstance(level, str):
        resolved_level = getattr(logging, level.upper(), logging.INFO)
    else:
        resolved_level = int(level)

    log_format = fmt or "%(levelname)s: %(message)s"
    stream = stream or sys.stderr

    # Reset root handlers for deterministic setup
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(resolved_level)

    handlers: List[logging.Handler] = []

    stream_handler = logging.StreamHandler(stream)
    stream_handler.setLevel(resolved_level)
    stream_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(stream_handler)

    if to_file:
        file_handler = logging.FileHandler(str(to_file), mode="w")
        file_handler.setLevel(resolved_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    for h in handlers:
        root.addHandler(h)

    pkg_logger = logging.getLogger(PACKAGE_NAME)
    pkg_logger.setLevel(resolved_level)
    pkg_logger.propagate = propagate_package_loggers


# ----------------------------------------
# Identifier helpers
# ----------------------------------------

# Names the generated method bodies use for their own locals and parameters.
_RESERVED_LOCALS = frozenset({"self", "cls"})

_NUMBER_LITERAL = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def sanitize_identifier(name: str) -> str:
    """
    Make an engine name usable as a Python identifier.

    Engine names are already snake_case; only keywords, names that clash with
    generated locals and names starting with a digit need adjusting.
    """
    if not name:
        return "arg"
    out = name.replace(".", "_").replace("/", "_")
    if out[0].isdigit():
        out = f"_{out}"
    if keyword.iskeyword(out) or out in _RESERVED_LOCALS:
        return f"{out}_"
    return out


def host_type_name(name: str) -> str:
    """
    Flatten a dotted engine type name (e.g. 'Node.ProcessMode') into the
    attribute path used by generated code. Dotted names stay dotted; only
    names that are not valid paths are sanitized.
    """
    return ".".join(sanitize_identifier(part) for part in name.split("."))


def python_literal(text: Optional[str]) -> Optional[str]:
    """
    Convert a schema default value literal into a Python literal, or None
    when the literal has no plain Python spelling (constructors, arrays, ...).
    """
    if text is None:
        return None
    s = text.strip()
    if s in ("true", "false"):
        return "True" if s == "true" else "False"
    if s == "null":
        return "None"
    if _NUMBER_LITERAL.match(s):
        return s
    if len(s) >= 2 and s[0] == s[-1] == '"' and "\\" not in s:
        return s
    return None


# ----------------------------------------
# Jinja environment helpers
# ----------------------------------------

class TemplateRenderer:
    """
    A thin wrapper over a Jinja2 Environment with layered loaders and useful filters.
    - templates_dir: user-provided templates directory (highest precedence)
    - package templates: extension_api_bindgen/templates
    """

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        loaders: List[Any] = []

        # 1) User-provided directory
        if templates_dir:
            p = Path(templates_dir)
            if p.is_dir():
                loaders.append(FileSystemLoader(str(p)))
            else:
                logger.warning("Templates directory %s does not exist; using package templates", p)

        # 2) Package templates (installed alongside this module)
        pkg_templates_fs = Path(__file__).parent / "templates"
        if pkg_templates_fs.is_dir():
            loaders.append(FileSystemLoader(str(pkg_templates_fs)))
        else:
            loaders.append(PackageLoader(PACKAGE_NAME, "templates"))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )

        self._register_filters()

    # ---- Filters registration ----

    def _register_filters(self) -> None:
        self.env.filters["pyrepr"] = repr
        self.env.filters["indent_lines"] = _filter_indent_lines

    # ---- Rendering ----

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise RuntimeError(f"Template not found: {template_name}") from e
        return template.render(**context)


def _filter_indent_lines(lines: List[str], width: int = 4) -> str:
    """
    Join a list of code lines, indenting every non-empty line by `width` spaces.
    """
    pad = " " * width
    return "\n".join(f"{pad}{ln}" if ln else "" for ln in lines)


# ----------------------------------------
# File I/O helpers
# ----------------------------------------

def ensure_dir(p: Path) -> None:
    """
    Ensure directory exists (mkdir -p).
    """
    Path(p).mkdir(parents=True, exist_ok=True)


def normalize_newlines(text: str) -> str:
    """
    Normalize to Unix newlines for reproducible diffs.
    """
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _read_text_if_exists(path: Path, encoding: str = "utf-8") -> Optional[str]:
    try:
        with open(path, "r", encoding=encoding, newline="") as f:
            return f.read()
    except FileNotFoundError:
        return None


def atomic_write_text(
    path: Path,
    content: str,
    encoding: str = "utf-8",
    make_parents: bool = True,
    mode: Optional[int] = 0o644,
    log: bool = True,
    only_if_changed: bool = True,
) -> bool:
    """
    Write text atomically to the given path:
    - Optionally avoid writing if the content is unchanged.
    - Write to a temp file in the same directory and os.replace to final path.
    - Set POSIX file mode if provided.

    Returns True if a write occurred, False if skipped due to idempotency.
    """
    content = normalize_newlines(content)
    if make_parents:
        ensure_dir(path.parent)

    if only_if_changed:
        old = _read_text_if_exists(path, encoding=encoding)
        if old is not None and normalize_newlines(old) == content:
            if log:
                logger.debug("[skip] %s (unchanged)", path)
            return False

    tmp_path = None
    try:
        # Create tmp file in same directory for atomic replace
        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        with os.fdopen(fd, "w", encoding=encoding, newline="\n") as f:
            f.write(content)
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        tmp_path = None
        if log:
            logger.info("[write] %s", path)
        return True
    finally:
        # Cleanup temp if an exception occurred before replace
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)


def write_text(
    path: Path,
    content: str,
    encoding: str = "utf-8",
    dry_run: bool = False,
    log: bool = True,
) -> None:
    """
    Convenience wrapper over atomic_write_text with optional dry-run support.
    """
    if dry_run:
        if log:
            logger.info("[dry-run] write %s", path)
        return
    atomic_write_text(path, content, encoding=encoding, log=log)


__all__ = [
    "TemplateRenderer",
    "configure_logging",
    "sanitize_identifier",
    "host_type_name",
    "python_literal",
    "ensure_dir",
    "normalize_newlines",
    "atomic_write_text",
    "write_text",
]
