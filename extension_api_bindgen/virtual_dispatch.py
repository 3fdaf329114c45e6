#!/usr/bin/env python3
"""
Trampolines that let the engine call overridable (virtual) methods on Python objects.

For each accepted virtual method the generator plans:
- an overridable base method on the class returning the type's default value
- a module-level proxy `(instance, args, ret_ptr)` that resolves the host
  object, unmarshals each argument slot through `SlotBuffer`, calls the
  override and stores the result into the return slot
- an entry in the class's dispatch table, consulted by
  `get_virtual_dispatcher(name)` before deferring to the parent class

Virtual methods taking enum, bitfield, typed-array, dictionary or string
arguments are rejected with a diagnostic and omitted entirely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Set, Tuple, Union

from .default_values import DefaultValueSynthesizer
from .method_binding import target_requirements
from .models import ClassDef, Diagnostic, MethodDef
from .registry import Registry
from .type_mapping import ArgumentKind, Origin, TargetKind, TargetType, TypeMapper
from .utils import sanitize_identifier

logger = logging.getLogger(__name__)

_REJECTED_KINDS = {
    TargetKind.ENUM: "enum",
    TargetKind.BITFIELD: "bitfield",
    TargetKind.TYPED_ARRAY: "typed array",
    TargetKind.STRING: "string",
}


# --------------------------
# Plan model
# --------------------------

@dataclass(frozen=True)
class TrampolineArg:
    name: str
    target: TargetType
    lines: Tuple[str, ...]


@dataclass(frozen=True)
class TrampolinePlan:
    owner: str
    method: MethodDef
    exposed_name: str
    proxy_name: str
    args: Tuple[TrampolineArg, ...] = ()
    ret: Optional[TargetType] = None
    store_lines: Tuple[str, ...] = ()
    default_return: Optional[str] = None
    requires: FrozenSet[Tuple[Origin, str]] = field(default_factory=frozenset)

    @property
    def parameter_list(self) -> str:
        return ", ".join(["self"] + [f"{a.name}: {a.target.annotation}" for a in self.args])

    @property
    def return_annotation(self) -> str:
        return self.ret.annotation if self.ret else "None"

    def base_body_lines(self) -> List[str]:
        if self.default_return is None:
            return ["pass"]
        return [f"return {self.default_return}"]

    def proxy_lines(self) -> List[str]:
        """Module-level proxy function definition, unindented."""
        lines = [
            f"def {self.proxy_name}(instance, args, ret_ptr):",
            "    if not instance:",
            "        return",
            "    target = instance_from_handle(instance)",
            "    if target is None:",
            "        return",
        ]
        if self.args:
            lines.append(f"    _slots = slot_addresses(args, {len(self.args)})")
        for a in self.args:
            lines.extend(f"    {ln}" for ln in a.lines)
        call = f"target.{self.exposed_name}({', '.join(a.name for a in self.args)})"
        if self.ret is None:
            lines.append(f"    {call}")
        else:
            lines.append(f"    result = {call}")
            lines.extend(f"    {ln}" for ln in self.store_lines)
        return lines


@dataclass(frozen=True)
class DispatchTable:
    """Name -> proxy for the virtual methods one class declares itself."""
    owner: str
    parent: Optional[str]
    entries: Mapping[str, TrampolinePlan] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def table_name(self) -> str:
        return f"_{self.owner}_virtuals"

    def lookup(self, name: str) -> Optional[TrampolinePlan]:
        return self.entries.get(name)


def resolve_dispatch(
    registry: Registry,
    tables: Mapping[str, DispatchTable],
    class_name: str,
    method_name: str,
) -> Optional[TrampolinePlan]:
    """
    The proxy the engine gets for `method_name` on `class_name`: the class's
    own entry, else the nearest ancestor's, else None.
    """
    for name in [class_name] + registry.ancestors(class_name):
        table = tables.get(name)
        if table is None:
            continue
        hit = table.lookup(method_name)
        if hit is not None:
            return hit
    return None


# --------------------------
# Generator
# --------------------------

class VirtualDispatchGenerator:

    def __init__(
        self,
        registry: Registry,
        mapper: Optional[TypeMapper] = None,
        defaults: Optional[DefaultValueSynthesizer] = None,
    ) -> None:
        self.registry = registry
        self.mapper = mapper or TypeMapper(registry)
        self.defaults = defaults or DefaultValueSynthesizer(self.mapper)

    def accept(self, cls: ClassDef, method: MethodDef) -> Union[TrampolinePlan, Diagnostic]:
        reason = self.rejection(method)
        if reason:
            return Diagnostic(cls.name, method.name, reason)

        args: List[TrampolineArg] = []
        requires: Set[Tuple[Origin, str]] = set()
        for i, a in enumerate(method.arguments):
            target = self.mapper.map_argument(a, ArgumentKind.CLASSES)
            args.append(TrampolineArg(a.exposed_name, target, tuple(self._unmarshal(a.exposed_name, i, target))))
            requires |= target_requirements(target)
            if target.kind == TargetKind.OBJECT:
                requires.add((Origin.RUNTIME, "lookup_live_object"))

        ret: Optional[TargetType] = None
        store: Tuple[str, ...] = ()
        default: Optional[str] = None
        if method.has_return:
            ret = self.mapper.map_return(method, ArgumentKind.CLASSES)
            store = tuple(self._store(ret))
            default = self.defaults.default_value(method.return_type)
            requires |= target_requirements(ret)
        requires.discard((Origin.CLASS, cls.name))

        return TrampolinePlan(
            owner=cls.name,
            method=method,
            exposed_name=sanitize_identifier(method.name),
            proxy_name=f"_{cls.name}_proxy_{method.name}",
            args=tuple(args),
            ret=ret,
            store_lines=store,
            default_return=default,
            requires=frozenset(requires),
        )

    def dispatch_table(self, cls: ClassDef, plans: List[TrampolinePlan]) -> DispatchTable:
        entries: Dict[str, TrampolinePlan] = {p.method.name: p for p in plans}
        return DispatchTable(owner=cls.name, parent=cls.inherits, entries=MappingProxyType(entries))

    # ---- Rules ----

    def rejection(self, method: MethodDef) -> Optional[str]:
        if method.is_vararg:
            return "variadic methods are not bound"
        for a in method.arguments:
            if a.type.contains_pointer():
                return f"argument '{a.name}' is a raw pointer ({a.type.spelling})"
        if method.has_return and method.return_type.contains_pointer():
            return f"return type is a raw pointer ({method.return_type.spelling})"
        for a in method.arguments:
            target = self.mapper.map_argument(a, ArgumentKind.CLASSES)
            if target.kind in _REJECTED_KINDS:
                return f"virtual argument '{a.name}' of {_REJECTED_KINDS[target.kind]} type is not supported"
            if target.source == "Dictionary":
                return f"virtual argument '{a.name}' of dictionary type is not supported"
        return None

    def _unmarshal(self, name: str, index: int, target: TargetType) -> List[str]:
        slot = f"_slots[{index}]"
        if target.is_scalar:
            ctype = f"ctypes.{target.ctype}"
            return [f"{name} = SlotBuffer.at({slot}, ctypes.sizeof({ctype})).load({ctype})"]
        if target.kind == TargetKind.OBJECT:
            handle = f"_handle_{name}"
            return [
                f"{handle} = SlotBuffer.at({slot}, POINTER_SIZE).load(ctypes.c_void_p)",
                f"{name} = (lookup_live_object({handle}) or {target.host}(native_handle={handle})) if {handle} else None",
            ]
        size = self.mapper.require_builtin_size(target.source)
        if target.is_struct:
            return [f"{name} = SlotBuffer.at({slot}, {size}).load({target.host})"]
        return [f"{name} = {target.host}.from_content(SlotBuffer.at({slot}, {size}).read())"]

    def _store(self, target: TargetType) -> List[str]:
        if target.is_scalar:
            ctype = f"ctypes.{target.ctype}"
            return [f"SlotBuffer.at(ret_ptr, ctypes.sizeof({ctype})).store(result, {ctype})"]
        if target.kind in (TargetKind.ENUM, TargetKind.BITFIELD):
            return ["SlotBuffer.at(ret_ptr, 8).store(int(result), ctypes.c_int64)"]
        if target.kind == TargetKind.OBJECT:
            return ["SlotBuffer.at(ret_ptr, POINTER_SIZE).store(None if result is None else result.handle, ctypes.c_void_p)"]
        if target.kind == TargetKind.TYPED_ARRAY:
            size = self.mapper.require_builtin_size("Array")
        else:
            size = self.mapper.require_builtin_size(target.source)
        if target.is_struct:
            return [f"SlotBuffer.at(ret_ptr, {size}).store(result)"]
        # Handle-backed values hand over their content storage.
        return [f"SlotBuffer.at(ret_ptr, {size}).write(bytes(result.content))"]


__all__ = [
    "TrampolineArg",
    "TrampolinePlan",
    "DispatchTable",
    "resolve_dispatch",
    "VirtualDispatchGenerator",
]
