#!/usr/bin/env python3
"""
Emitter for generated Python binding packages.

Given the class plans produced by class_generator, this emitter writes:

Per-class mode (default):
- <output_dir>/__init__.py            (package entry, via template)
- <output_dir>/core_defs.py           (enums, value types and their methods, constructor/operator tables)
- <output_dir>/utility_functions.py   (bound utility functions)
- <output_dir>/classes/__init__.py    (every class, parent-first)
- <output_dir>/classes/<Class>.py     (one module per engine class)

Single-file mode:
- <output_dir>/<single_file_name>     (everything above in one module, classes parent-first)

Class modules import their parent at import time and every other engine
class inside the function bodies that use it, so class modules never form
import cycles.

Rendering follows two paths: package-level artifacts go through Jinja2
templates; class bodies are assembled line by line from the planned
fragments. Render or write failures are logged and re-raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..class_generator import BuiltinPlan, ClassPlan, GenerationResult
from ..layouts import ValueLayouts
from ..method_binding import MethodBinding
from ..models import EnumDef, GenerationContext
from ..properties import PropertyAccessor
from ..type_mapping import Origin, TypeMapper, builtin_typecode, infix_operator
from ..utils import TemplateRenderer, ensure_dir, sanitize_identifier, write_text
from ..virtual_dispatch import TrampolinePlan

logger = logging.getLogger(__name__)

ABI_MODULE = "extension_api_bindgen.abi"


# --------------------------
# Configuration
# --------------------------

@dataclass(frozen=True)
class EmitterConfig:
    """
    Configuration for the Python emitter.

    Template names can be overridden with files of the same name in the
    user templates directory (see utils.TemplateRenderer for layering).
    """
    runtime_module: str = "godot.runtime"
    single_file: bool = False
    single_file_name: str = "bindings.py"
    core_defs_template: str = "core_defs.py.j2"
    utility_functions_template: str = "utility_functions.py.j2"
    package_init_template: str = "package_init.py.j2"


# --------------------------
# Emitter
# --------------------------

class PythonEmitter:
    """
    Emit a Python binding package from a GenerationResult.

    Usage:
        emitter = PythonEmitter(ctx, renderer, config)
        written = emitter.emit(result)
    """

    def __init__(self, ctx: GenerationContext, renderer: TemplateRenderer, config: Optional[EmitterConfig] = None) -> None:
        self.ctx = ctx
        self.renderer = renderer
        self.config = config or EmitterConfig(runtime_module=ctx.runtime_module, single_file=ctx.single_file)

    # ---- Public API ----

    def emit(self, result: GenerationResult) -> List[str]:
        """
        Render and write every artifact. Returns the written paths (relative
        to the output directory) in the order they were produced.
        """
        if not self.ctx.dry_run:
            ensure_dir(self.ctx.output_dir)
        artifacts = self.render(result)
        for rel, content in artifacts.items():
            path = self.ctx.output_dir / rel
            try:
                write_text(path, content, dry_run=self.ctx.dry_run)
            except OSError:
                logger.exception("Failed to write %s", path)
                raise
        logger.info("Generation complete under: %s", self.ctx.output_dir)
        return list(artifacts)

    def render(self, result: GenerationResult) -> Dict[str, str]:
        """
        Render every artifact to text without touching the filesystem.
        Keys are paths relative to the output directory.
        """
        mapper = TypeMapper(result.registry)
        ordered = self._parent_first(result)
        core_ctx = self._core_context(result, mapper, in_package=not self.config.single_file)

        if self.config.single_file:
            return {self.config.single_file_name: self._render_single_file(result, ordered, core_ctx)}

        out: Dict[str, str] = {}
        out["core_defs.py"] = self._render_template(self.config.core_defs_template, {**core_ctx, "standalone": True})
        out["utility_functions.py"] = self._render_template(
            self.config.utility_functions_template,
            self._utility_context(result, standalone=True),
        )
        for plan in ordered:
            out[f"classes/{plan.cls.module_name}.py"] = self._render_class_module(result, plan)
        out["classes/__init__.py"] = self._render_classes_init(ordered)
        out["__init__.py"] = self._render_template(self.config.package_init_template, {
            "header": self._header_comment(result),
            "classes": [p.name for p in ordered],
        })
        return out

    # ---- Template-backed artifacts ----

    def _render_template(self, name: str, context: Dict) -> str:
        try:
            return self.renderer.render(name, context)
        except Exception:
            logger.exception("Failed to render template %s", name)
            raise

    def _core_context(self, result: GenerationResult, mapper: TypeMapper, in_package: bool = True) -> Dict:
        registry = result.registry
        layouts = ValueLayouts(registry, mapper)

        builtin_plans = {p.name: p for p in result.builtins if p.bindings}
        structs = [
            {
                "host": lay.host,
                "name": lay.name,
                "size": lay.size,
                "fields": layouts.declaration_fields(lay.name),
                "methods": self._render_builtin_members(builtin_plans[lay.name], in_package)
                if lay.name in builtin_plans else [],
            }
            for lay in layouts.struct_layouts()
        ]
        mixins = [
            {"host": p.holder, "name": p.name, "lines": self._render_builtin_members(p, in_package)}
            for p in builtin_plans.values()
            if not p.builtin.is_struct
        ]
        requires: Set[Tuple[Origin, str]] = set()
        for p in builtin_plans.values():
            requires |= p.requires()
        runtime_base = ["variant_constructor", "variant_operator_evaluator"]
        if builtin_plans:
            runtime_base += ["gi", "builtin_method_bind"]

        enums = [self._enum_context(e, mapper.enum_host_name(e.name)) for e in registry.global_enums]
        for b in registry.builtin_classes:
            enums.extend(self._enum_context(e, mapper.enum_host_name(f"{b.name}.{e.name}")) for e in b.enums)
        constructors = []
        operators = []
        for b in registry.builtin_classes:
            if registry.builtin_byte_size(b.name) is None:
                continue
            typecode = builtin_typecode(b.name)
            for index in range(b.constructor_count):
                constructors.append({"name": b.name, "index": index, "typecode": typecode})
            for op in b.operators:
                variant_op, _ = infix_operator(op.name)
                right = op.right_type or "Nil"
                operators.append({
                    "name": b.name,
                    "symbol": op.name,
                    "right": op.right_type or "",
                    "op": variant_op,
                    "left_type": typecode,
                    "right_type": builtin_typecode(right),
                    "return_type": op.return_type,
                })

        return {
            "header": self._header_comment(result),
            "runtime_module": self.config.runtime_module,
            "abi_module": ABI_MODULE,
            "build_configuration": registry.build_configuration,
            "runtime_imports": self._runtime_symbols(requires, base=runtime_base),
            "uses_optional": any(
                "Optional[" in b.parameter_list + b.return_annotation for p in builtin_plans.values() for b in p.bindings
            ),
            "enums": enums,
            "structs": structs,
            "mixins": mixins,
            "sizes": sorted((name, registry.builtin_byte_size(name)) for name in registry.builtin_size_names),
            "constructors": constructors,
            "operators": operators,
            "native_structures": [(n.name, n.format) for n in registry.native_structures],
        }

    def _utility_context(self, result: GenerationResult, standalone: bool) -> Dict:
        functions = []
        requires: Set[Tuple[Origin, str]] = set()
        for binding in result.utilities:
            requires |= binding.requires
            body: List[str] = []
            if standalone:
                body.extend(self._class_imports(binding.requires, skip=(), package=".classes"))
            body.extend(binding.body_lines())
            functions.append({
                "name": binding.exposed_name,
                "bind_attr": binding.bind_attr,
                "key": (binding.method.name, binding.method.hash),
                "params": binding.parameter_list,
                "returns": binding.return_annotation,
                "body": body,
            })
        return {
            "header": self._header_comment(result),
            "standalone": standalone,
            "runtime_module": self.config.runtime_module,
            "abi_module": ABI_MODULE,
            "runtime_imports": self._runtime_symbols(requires, base=("gi", "utility_function_bind")),
            "core_imports": self._core_symbols(requires),
            "uses_optional": any("Optional[" in b.parameter_list + b.return_annotation for b in result.utilities),
            "functions": functions,
        }

    # ---- Class modules ----

    def _render_class_module(self, result: GenerationResult, plan: ClassPlan) -> str:
        requires = plan.requires()
        base = plan.parent or "Wrapped"
        lines: List[str] = [self._header_comment(result), "from __future__ import annotations", ""]
        if plan.members:
            lines.append("import ctypes")
        if plan.cls.enums:
            lines.append("from enum import IntEnum, IntFlag")
        if self._uses_optional(plan):
            lines.append("from typing import Optional")
        lines.append("")
        abi = self._abi_symbols(plan)
        if abi:
            lines.append(f"from {ABI_MODULE} import {', '.join(abi)}")
        runtime = self._runtime_symbols(requires, base=self._class_runtime_base(plan))
        lines.append(f"from {self.config.runtime_module} import {', '.join(runtime)}")
        core = self._core_symbols(requires)
        if core:
            lines.append(f"from ..core_defs import {', '.join(core)}")
        if plan.parent:
            lines.append(f"from .{plan.parent} import {plan.parent}")
        lines.append("")
        lines.append("")
        lines.extend(self._render_class_body(plan, base, in_package=True))
        lines.append("")
        lines.append("")
        lines.append(f"__all__ = [{plan.name!r}]")
        lines.append("")
        return "\n".join(lines)

    def _render_class_body(self, plan: ClassPlan, base: str, in_package: bool) -> List[str]:
        """
        The class statement plus its module-level proxies and dispatch table.
        """
        cls = plan.cls
        skip = (plan.name, plan.parent)
        lines: List[str] = [f"class {plan.name}({base}):", f'    """Engine class {plan.name}."""', ""]
        lines.append(f"    class_name = {plan.name!r}")
        lines.append("")

        for e in cls.enums:
            lines.extend(self._render_enum(e, sanitize_identifier(e.name), indent=4))
            lines.append("")
        if cls.constants:
            for c in cls.constants:
                lines.append(f"    {sanitize_identifier(c.name)} = {c.value}")
            lines.append("")

        bindings = plan.bindings
        for b in bindings:
            key = (b.owner, b.method.name, b.method.hash)
            lines.append(f"    {b.bind_attr} = LazyBinding({key!r}, classdb_method_bind)")
        if bindings:
            lines.append("")

        for p in plan.properties:
            lines.extend(self._render_property(p, skip, in_package))

        for m in plan.members:
            if isinstance(m, MethodBinding):
                lines.extend(self._render_binding(m, skip, in_package))
            else:
                lines.extend(self._render_virtual(m, skip, in_package))

        dispatch = plan.dispatch
        if dispatch is not None and dispatch.entries:
            lines.append("    @classmethod")
            lines.append("    def get_virtual_dispatcher(cls, name):")
            lines.append(f"        proxy = {dispatch.table_name}.get(str(name))")
            lines.append("        if proxy is not None:")
            lines.append("            return proxy")
            lines.append("        return super().get_virtual_dispatcher(name)")
            lines.append("")

        while lines and lines[-1] == "":
            lines.pop()

        if dispatch is not None and dispatch.entries:
            for v in plan.virtuals:
                lines.append("")
                lines.append("")
                proxy = v.proxy_lines()
                imports = self._class_imports(v.requires, skip, ".") if in_package else []
                lines.append(proxy[0])
                lines.extend(f"    {ln}" for ln in imports)
                lines.extend(proxy[1:])
            lines.append("")
            lines.append("")
            lines.append(f"{dispatch.table_name} = {{")
            for name, v in dispatch.entries.items():
                lines.append(f"    {name!r}: {v.proxy_name},")
            lines.append("}")
        return lines

    def _render_binding(
        self, b: MethodBinding, skip: Sequence[Optional[str]], in_package: bool, package: str = ".",
    ) -> List[str]:
        lines: List[str] = []
        if b.is_static:
            lines.append("    @staticmethod")
        lines.append(f"    def {b.exposed_name}({b.parameter_list}) -> {b.return_annotation}:")
        body: List[str] = []
        if in_package:
            body.extend(self._class_imports(b.requires, skip, package))
        body.extend(b.body_lines())
        lines.extend(f"        {ln}" for ln in body)
        lines.append("")
        return lines

    def _render_builtin_members(self, plan: BuiltinPlan, in_package: bool) -> List[str]:
        """
        Binding attributes and methods of one builtin, indented for a class body.
        """
        typecode = builtin_typecode(plan.name)
        lines: List[str] = []
        for b in plan.bindings:
            key = (typecode, b.method.name, b.method.hash)
            lines.append(f"    {b.bind_attr} = LazyBinding({key!r}, builtin_method_bind)")
        lines.append("")
        for b in plan.bindings:
            lines.extend(self._render_binding(b, (), in_package, package=".classes"))
        while lines and lines[-1] == "":
            lines.pop()
        return lines

    def _render_virtual(self, v: TrampolinePlan, skip: Sequence[Optional[str]], in_package: bool) -> List[str]:
        lines = [f"    def {v.exposed_name}({v.parameter_list}) -> {v.return_annotation}:"]
        body: List[str] = []
        if in_package and v.default_return is not None:
            body.extend(self._class_imports(v.requires, skip, "."))
        body.extend(v.base_body_lines())
        lines.extend(f"        {ln}" for ln in body)
        lines.append("")
        return lines

    def _render_property(self, p: PropertyAccessor, skip: Sequence[Optional[str]], in_package: bool) -> List[str]:
        imports = self._class_imports(p.requires, skip, ".") if in_package else []
        lines = ["    @property", f"    def {p.exposed_name}(self) -> {p.annotation}:"]
        lines.extend(f"        {ln}" for ln in imports + p.getter_lines())
        lines.append("")
        lines.append(f"    @{p.exposed_name}.setter")
        lines.append(f"    def {p.exposed_name}(self, value: {p.annotation}) -> None:")
        lines.extend(f"        {ln}" for ln in imports + p.setter_lines())
        lines.append("")
        return lines

    def _render_enum(self, e: EnumDef, host: str, indent: int) -> List[str]:
        pad = " " * indent
        ctx = self._enum_context(e, host)
        lines = [f"{pad}class {ctx['host']}({ctx['base']}):"]
        if not ctx["values"]:
            lines.append(f"{pad}    pass")
        for name, value in ctx["values"]:
            lines.append(f"{pad}    {name} = {value}")
        return lines

    @staticmethod
    def _enum_context(e: EnumDef, host: str) -> Dict:
        return {
            "host": host,
            "base": "IntFlag" if e.is_bitfield else "IntEnum",
            "values": [(sanitize_identifier(v.name), v.value) for v in e.values],
        }

    # ---- Single-file mode ----

    def _render_single_file(self, result: GenerationResult, ordered: Sequence[ClassPlan], core_ctx: Dict) -> str:
        requires: Set[Tuple[Origin, str]] = set()
        for plan in ordered:
            requires |= plan.requires()
        for b in result.utilities:
            requires |= b.requires
        for p in result.builtins:
            requires |= p.requires()
        base = ["gi", "Wrapped", "classdb_method_bind", "instance_from_handle", "utility_function_bind"]
        base += ["builtin_method_bind", "variant_constructor", "variant_operator_evaluator"]

        lines: List[str] = [
            self._header_comment(result),
            "from __future__ import annotations",
            "",
            "import ctypes",
            "from enum import IntEnum, IntFlag",
            "from typing import Optional",
            "",
            f"from {ABI_MODULE} import POINTER_SIZE, LazyBinding, SlotBuffer, slot_addresses",
            f"from {self.config.runtime_module} import {', '.join(self._runtime_symbols(requires, base=base))}",
            "",
        ]
        lines.append(self._render_template(self.config.core_defs_template, {**core_ctx, "standalone": False}).rstrip())
        for plan in ordered:
            lines.append("")
            lines.append("")
            lines.extend(self._render_class_body(plan, plan.parent or "Wrapped", in_package=False))
        utility = self._render_template(
            self.config.utility_functions_template,
            self._utility_context(result, standalone=False),
        ).strip()
        if utility:
            lines.append("")
            lines.append("")
            lines.append(utility)
        lines.append("")
        return "\n".join(lines)

    # ---- Helpers ----

    def _render_classes_init(self, ordered: Sequence[ClassPlan]) -> str:
        lines = ['"""Generated engine classes, parent classes first."""', ""]
        for plan in ordered:
            lines.append(f"from .{plan.cls.module_name} import {plan.name}")
        lines.append("")
        lines.append("__all__ = [")
        for plan in ordered:
            lines.append(f"    {plan.name!r},")
        lines.append("]")
        lines.append("")
        return "\n".join(lines)

    @staticmethod
    def _parent_first(result: GenerationResult) -> List[ClassPlan]:
        by_name = {p.name: p for p in result.plans}
        return [by_name[c.name] for c in result.registry.classes_parent_first() if c.name in by_name]

    @staticmethod
    def _header_comment(result: GenerationResult) -> str:
        version = result.registry.header.get("version_full_name") or "unknown engine version"
        return (
            f"# Generated by extension-api-bindgen from extension_api.json "
            f"({version}, {result.registry.build_configuration}). Do not edit."
        )

    @staticmethod
    def _class_imports(requires: Iterable[Tuple[Origin, str]], skip: Sequence[Optional[str]], package: str) -> List[str]:
        names = sorted(sym for origin, sym in requires if origin == Origin.CLASS and sym not in skip)
        prefix = package if package.endswith(".") else f"{package}."
        return [f"from {prefix}{n} import {n}" for n in names]

    @staticmethod
    def _runtime_symbols(requires: Iterable[Tuple[Origin, str]], base: Iterable[str]) -> List[str]:
        names = set(base)
        names.update(sym for origin, sym in requires if origin == Origin.RUNTIME)
        return sorted(names)

    @staticmethod
    def _core_symbols(requires: Iterable[Tuple[Origin, str]]) -> List[str]:
        return sorted(sym for origin, sym in requires if origin == Origin.CORE)

    @staticmethod
    def _class_runtime_base(plan: ClassPlan) -> List[str]:
        base = ["gi"]
        if not plan.parent:
            base.append("Wrapped")
        if plan.bindings:
            base.append("classdb_method_bind")
        if plan.virtuals:
            base.append("instance_from_handle")
        return base

    @staticmethod
    def _abi_symbols(plan: ClassPlan) -> List[str]:
        names: Set[str] = set()
        if plan.bindings:
            names.add("LazyBinding")
        for v in plan.virtuals:
            if v.args:
                names.add("slot_addresses")
            text = "\n".join(v.proxy_lines())
            if "SlotBuffer" in text:
                names.add("SlotBuffer")
            if "POINTER_SIZE" in text:
                names.add("POINTER_SIZE")
        return sorted(names)

    @staticmethod
    def _uses_optional(plan: ClassPlan) -> bool:
        for m in plan.members:
            if "Optional[" in m.parameter_list + m.return_annotation:
                return True
        return any("Optional[" in p.annotation for p in plan.properties)


__all__ = [
    "EmitterConfig",
    "PythonEmitter",
]
