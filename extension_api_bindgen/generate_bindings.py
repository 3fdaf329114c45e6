#!/usr/bin/env python3
"""
Python binding generator for Godot's extension_api.json

This entrypoint wires together:
- Parsing the engine's API description into an immutable registry
- Planning every class (methods, virtual trampolines, properties), optionally in parallel
- Emitting (Jinja2-based) a Python package that calls the engine through ctypes

Outputs:
- <output_dir>/__init__.py
- <output_dir>/core_defs.py
- <output_dir>/utility_functions.py
- <output_dir>/classes/<Class>.py (or a single module with --single-file)
- <optional> <output_dir>/manifest.json (for introspection)

Usage (example):
  python -m extension_api_bindgen.generate_bindings \
    --api path/to/extension_api.json \
    --build-configuration float_64 \
    --output-dir src/godot_bindings \
    --jobs 8

Exit codes:
  0 success, 1 templating, 2 schema/registry, 3 type mapping or layout,
  4 writing output, 5 writing the manifest.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence
import logging

from jinja2 import TemplateError

logger = logging.getLogger(__name__)

# Local modules
from .class_generator import ClassGeneratorConfig, generate_all
from .emitters.python_emitter import EmitterConfig, PythonEmitter
from .errors import LayoutError, MappingError, SchemaError
from .manifest import emit_manifest
from .models import GenerationContext
from .parsing.schema_parser import build_registry, load_schema
from .registry import BUILD_PROFILES, DEFAULT_BUILD_CONFIGURATION
from .utils import TemplateRenderer, configure_logging

EXIT_OK = 0
EXIT_TEMPLATING = 1
EXIT_SCHEMA = 2
EXIT_MAPPING = 3
EXIT_WRITE = 4
EXIT_MANIFEST = 5


# --------------------------
# CLI
# --------------------------

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Generate Python bindings from Godot's extension_api.json")

    p.add_argument(
        "--api",
        required=True,
        help="Path to extension_api.json (as dumped by `godot --dump-extension-api`).",
    )
    p.add_argument(
        "--output-dir",
        default="generated",
        help="Output directory for the generated package.",
    )
    p.add_argument(
        "--build-configuration",
        choices=sorted(BUILD_PROFILES),
        default=DEFAULT_BUILD_CONFIGURATION,
        help="Engine build configuration whose sizes and offsets are used.",
    )
    p.add_argument(
        "--single-file",
        action="store_true",
        help="Emit one module with every class (parent classes first) instead of one module per class.",
    )
    p.add_argument(
        "--templates-dir",
        default=None,
        help="Optional templates directory. Templates found there override the package templates.",
    )
    p.add_argument(
        "--runtime-module",
        default="godot.runtime",
        help="Module the generated code imports its runtime support from.",
    )
    p.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Number of worker threads used to plan classes.",
    )
    p.add_argument(
        "--no-virtuals",
        action="store_true",
        help="Do not emit overridable virtual methods and their dispatch tables.",
    )
    p.add_argument(
        "--no-properties",
        action="store_true",
        help="Do not synthesize properties (accessor methods stay public).",
    )
    p.add_argument(
        "--no-manifest",
        action="store_true",
        help="Do not emit the JSON manifest alongside generated sources.",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan and render everything without writing files.",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for DEBUG). Repeat for more detail."
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease verbosity (-q for WARNING, -qq for ERROR)."
    )
    p.add_argument(
        "--log-level",
        choices=["CRITICAL","ERROR","WARNING","INFO","DEBUG","NOTSET","critical","error","warning","info","debug","notset"],
        default=None,
        help="Explicit log level (overrides -v/-q)."
    )
    p.add_argument(
        "--log-format",
        default="%(levelname)s: %(message)s",
        help="Logging format string."
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Optional file to write logs to."
    )

    return p.parse_args(argv)


# --------------------------
# Main
# --------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    ns = parse_args(argv)

    # Configure logging as early as possible
    if getattr(ns, "log_level", None):
        level_name = str(ns.log_level).upper()
        level = getattr(logging, level_name, logging.INFO)
    else:
        if getattr(ns, "verbose", 0) >= 1:
            level = logging.DEBUG
        elif getattr(ns, "quiet", 0) >= 2:
            level = logging.ERROR
        elif getattr(ns, "quiet", 0) == 1:
            level = logging.WARNING
        else:
            level = logging.INFO

    configure_logging(
        level=level,
        to_file=ns.log_file,
        fmt=getattr(ns, "log_format", "%(levelname)s: %(message)s"),
    )

    ctx = GenerationContext(
        output_dir=Path(ns.output_dir).resolve(),
        templates_dir=Path(ns.templates_dir).resolve() if ns.templates_dir else None,
        build_configuration=ns.build_configuration,
        runtime_module=ns.runtime_module,
        single_file=ns.single_file,
        dry_run=ns.dry_run,
        jobs=max(1, ns.jobs),
    )

    # Initialize renderer (layered: user dir -> package templates)
    try:
        renderer = TemplateRenderer(ctx.templates_dir)
    except Exception:
        logger.exception("Failed to initialize templating")
        return EXIT_TEMPLATING

    # Phase 1: registry
    try:
        schema = load_schema(ns.api)
        registry = build_registry(schema, ctx.build_configuration)
    except (SchemaError, OSError, json.JSONDecodeError):
        logger.exception("Failed to load %s", ns.api)
        return EXIT_SCHEMA

    # Phase 2: per-class planning
    try:
        result = generate_all(registry, ClassGeneratorConfig(
            emit_properties=not ns.no_properties,
            emit_virtuals=not ns.no_virtuals,
            jobs=ctx.jobs,
        ))
    except (MappingError, LayoutError):
        logger.exception("Type mapping failed; the mapping tables do not cover this schema")
        return EXIT_MAPPING

    # Emit sources
    emitter = PythonEmitter(ctx, renderer, EmitterConfig(
        runtime_module=ctx.runtime_module,
        single_file=ctx.single_file,
    ))
    try:
        artifacts = emitter.emit(result)
    except (TemplateError, RuntimeError):
        logger.exception("Failed to render generated sources")
        return EXIT_TEMPLATING
    except (MappingError, LayoutError):
        logger.exception("Failed to lay out builtin value types")
        return EXIT_MAPPING
    except OSError:
        logger.exception("Failed to write generated sources")
        return EXIT_WRITE

    if result.diagnostics:
        logger.warning("%d member(s) were skipped; see the log above or manifest.json", len(result.diagnostics))

    # Optional: emit a JSON manifest of the generation data for debugging/inspection.
    if not ns.no_manifest:
        try:
            emit_manifest(ctx, result, artifacts)
        except Exception:
            logger.exception("Failed to emit generation manifest")
            return EXIT_MANIFEST

    if ctx.dry_run:
        logger.info("Dry-run complete (no files written).")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
