import sys
import os
import platform
import shlex
from datetime import datetime, timezone
from importlib import metadata as importlib_metadata

import json
from typing import Dict, Optional
from .class_generator import GenerationResult
from .models import GenerationContext
from .utils import write_text

import logging
logger = logging.getLogger(__name__)

GENERATOR_NAME = "extension-api-bindgen"


def generator_version() -> str:
    try:
        return importlib_metadata.version(GENERATOR_NAME)
    except importlib_metadata.PackageNotFoundError:
        return "unknown"


def build_manifest(ctx: GenerationContext, result: GenerationResult, artifacts: Optional[list] = None) -> Dict:
    """
    Describe one generation run: generator metadata, full invocation, the
    engine version and build configuration, per-class counts and every
    member that was skipped with the reason why.
    """
    argv = list(getattr(sys, "argv", []) or [])
    command_line = " ".join(shlex.quote(a) for a in argv) if argv else ""

    now_utc = datetime.now(timezone.utc).isoformat()
    env_info = {
        "python_version": sys.version,
        "python_executable": sys.executable,
        "platform": platform.platform(),
        "system": platform.system(),
        "machine": platform.machine(),
        "cwd": os.getcwd(),
        "timestamp_utc": now_utc,
    }

    classes = []
    for plan in result.plans:
        classes.append({
            "name": plan.name,
            "inherits": plan.parent,
            "api_type": plan.cls.api_type,
            "methods": len(plan.bindings),
            "virtuals": len(plan.virtuals),
            "properties": len(plan.properties),
            "skipped": len(plan.diagnostics),
        })

    return {
        # Generator metadata
        "generator": {
            "name": GENERATOR_NAME,
            "version": generator_version(),
        },

        # Invocation and environment details
        "invocation": {
            "argv": argv,
            "command_line": command_line,
        },
        "environment": env_info,

        # Main configuration snapshot
        "context": ctx.to_dict(),
        "engine": dict(result.registry.header),
        "build_configuration": result.registry.build_configuration,
        "artifacts": list(artifacts or []),
        "class_count": len(result.plans),
        "utility_function_count": len(result.utilities),
        "builtin_methods": {p.name: len(p.bindings) for p in result.builtins},
        "classes": classes,
        "diagnostics": [d.to_dict() for d in result.diagnostics],
    }


def emit_manifest(ctx: GenerationContext, result: GenerationResult, artifacts: Optional[list] = None) -> None:
    """
    Write manifest.json next to the generated package.
    """
    manifest = build_manifest(ctx, result, artifacts)
    manifest_path = ctx.output_dir / "manifest.json"
    content = json.dumps(manifest, indent=2)
    try:
        write_text(manifest_path, content, dry_run=ctx.dry_run)
    except OSError:
        logger.exception("Failed to write manifest to %s", manifest_path)
        raise
