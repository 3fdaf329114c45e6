#!/usr/bin/env python3
"""
Call-site planning for ABI-bound engine methods, builtin methods and utility
functions.

For every method that carries a binding hash, the generator produces a
`MethodBinding`: the lazily resolved binding handle, one `ArgSlot` per
declared argument (in declaration order) and, when the method returns a
value, a `ReturnPlan`. Each slot carries pre-call lines and the expression
that goes into the pointer array handed to the engine, so emitters only
concatenate fragments.

Argument semantics:
- COPY: scalars, enums, bitfields and fixed-layout struct builtins get a
  local ctypes copy whose address is passed
- CONTENT_POINTER: handle-backed builtins (strings, arrays, ...) pass the
  address of their content storage
- HANDLE: engine objects pass the address of a cell holding their handle

Methods that cannot be bound (variadic, raw pointers in the signature) come
back with `supported=False` and a reason; the caller records a diagnostic
and keeps going.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import FrozenSet, Iterable, List, Optional, Set, Tuple

from .default_values import DefaultValueSynthesizer
from .models import ArgumentDef, BuiltinClassDef, ClassDef, MethodDef, UtilityFunctionDef
from .registry import Registry
from .type_mapping import ArgumentKind, Origin, TargetKind, TargetType, TypeMapper
from .utils import python_literal, sanitize_identifier

logger = logging.getLogger(__name__)


# --------------------------
# Plan model
# --------------------------

class ArgSemantics(Enum):
    COPY = auto()
    CONTENT_POINTER = auto()
    HANDLE = auto()


@dataclass(frozen=True)
class ArgSlot:
    name: str
    schema_type: str
    target: TargetType
    semantics: ArgSemantics
    pre_call_lines: Tuple[str, ...] = ()
    to_native_expr: str = ""
    default: Optional[str] = None

    @property
    def annotation(self) -> str:
        return self.target.annotation

    @property
    def signature(self) -> str:
        text = f"{self.name}: {self.annotation}"
        if self.default is not None:
            text += f" = {self.default}"
        return text


@dataclass(frozen=True)
class ReturnPlan:
    target: TargetType
    storage_line: str
    pointer_expr: str
    from_native_expr: str

    @property
    def annotation(self) -> str:
        return self.target.annotation


@dataclass(frozen=True)
class CoverKey:
    """
    Stable identity of a binding by its schema signature. Hand-written
    replacements of generated bindings are registered under this key.
    """
    owner: str
    name: str
    parameter_types: Tuple[str, ...]
    return_type: str

    def __str__(self) -> str:
        return f"{self.owner}.{self.name}({', '.join(self.parameter_types)}) -> {self.return_type}"


@dataclass(frozen=True)
class MethodBinding:
    owner: str
    method: MethodDef
    exposed_name: str
    bind_attr: str
    cover_key: CoverKey
    is_private: bool = False
    is_utility: bool = False
    is_builtin: bool = False
    # Class expression owning the LazyBinding attribute.
    holder: str = ""
    # Address expression of the receiver; unused for static methods.
    receiver: str = "self.handle"
    args: Tuple[ArgSlot, ...] = ()
    ret: Optional[ReturnPlan] = None
    supported: bool = True
    reason: Optional[str] = None
    requires: FrozenSet[Tuple[Origin, str]] = field(default_factory=frozenset)

    @property
    def bind_key(self) -> Tuple[str, str, int]:
        return (self.owner, self.method.name, self.method.hash or 0)

    @property
    def is_static(self) -> bool:
        return self.method.is_static

    @property
    def parameter_list(self) -> str:
        params = [a.signature for a in self.args]
        if not self.is_static and not self.is_utility:
            params.insert(0, "self")
        return ", ".join(params)

    @property
    def return_annotation(self) -> str:
        return self.ret.annotation if self.ret else "None"

    def body_lines(self) -> List[str]:
        """
        Python statements performing the call, without indentation.
        """
        lines: List[str] = []
        for a in self.args:
            lines.extend(a.pre_call_lines)
        args_expr = "None"
        if self.args:
            natives = ", ".join(a.to_native_expr for a in self.args)
            lines.append(f"_args = (ctypes.c_void_p * {len(self.args)})({natives})")
            args_expr = "_args"
        ret_expr = "None"
        if self.ret:
            lines.append(self.ret.storage_line)
            ret_expr = self.ret.pointer_expr
        instance = "None" if self.is_static else self.receiver
        if self.is_utility:
            lines.append(
                f"gi.call_utility_function({self.bind_attr}.resolve(), {ret_expr}, {args_expr}, {len(self.args)})"
            )
        elif self.is_builtin:
            lines.append(
                f"gi.call_builtin_method_ptr({self.holder}.{self.bind_attr}.resolve(), "
                f"{instance}, {args_expr}, {ret_expr}, {len(self.args)})"
            )
        else:
            lines.append(
                f"gi.object_method_bind_ptrcall({self.holder or self.owner}.{self.bind_attr}.resolve(), "
                f"{instance}, {args_expr}, {ret_expr})"
            )
        if self.ret:
            lines.append(f"return {self.ret.from_native_expr}")
        return lines


def accessor_name(method: MethodDef, referenced: Iterable[str]) -> str:
    """
    Attribute name a method is emitted under. Bound methods used by a
    property are hidden behind a name-mangled private attribute.
    """
    if method.is_bound and method.name in referenced:
        return f"__{method.name}"
    return sanitize_identifier(method.name)


def builtin_method_holder(host: str, is_struct: bool) -> str:
    """Class that carries the bound methods of a builtin value type."""
    return host if is_struct else f"{host}Methods"


def target_requirements(target: Optional[TargetType]) -> Set[Tuple[Origin, str]]:
    out: Set[Tuple[Origin, str]] = set()
    while target is not None:
        if target.symbol and target.origin != Origin.BUILTIN:
            out.add((target.origin, target.symbol))
        target = target.element
    return out


# --------------------------
# Generator
# --------------------------

_DEFAULTABLE = (TargetKind.BOOL, TargetKind.INT, TargetKind.FLOAT, TargetKind.ENUM, TargetKind.BITFIELD)


class MethodBindingGenerator:
    """
    Plans bound calls for one registry. Stateless apart from its collaborators.
    """

    def __init__(
        self,
        registry: Registry,
        mapper: Optional[TypeMapper] = None,
        defaults: Optional[DefaultValueSynthesizer] = None,
    ) -> None:
        self.registry = registry
        self.mapper = mapper or TypeMapper(registry)
        self.defaults = defaults or DefaultValueSynthesizer(self.mapper)

    # ---- Public API ----

    def generate(self, cls: ClassDef, method: MethodDef, referenced: Iterable[str] = ()) -> MethodBinding:
        referenced = frozenset(referenced)
        exposed = accessor_name(method, referenced)
        return self._plan(
            owner=cls.name,
            method=method,
            exposed_name=exposed,
            bind_attr=f"_method_{method.name}",
            is_private=exposed.startswith("__"),
            is_utility=False,
            kind=ArgumentKind.CLASSES,
        )

    def generate_utility(self, fn: UtilityFunctionDef) -> MethodBinding:
        return self._plan(
            owner="utility",
            method=fn.as_method(),
            exposed_name=sanitize_identifier(fn.name),
            bind_attr=f"_utility_{fn.name}",
            is_private=False,
            is_utility=True,
            kind=ArgumentKind.BUILTIN,
        )

    def generate_builtin(self, builtin: BuiltinClassDef, method: MethodDef) -> MethodBinding:
        """
        Plan a method of a builtin value type. Struct builtins carry their
        methods and pass their own address; handle-backed builtins get a
        mixin class and pass the address of their content storage.
        """
        host = self.mapper.builtin_host_name(builtin.name)
        return self._plan(
            owner=builtin.name,
            method=method,
            exposed_name=sanitize_identifier(method.name),
            bind_attr=f"_method_{method.name}",
            is_private=False,
            is_utility=False,
            kind=ArgumentKind.BUILTIN,
            is_builtin=True,
            holder=builtin_method_holder(host, builtin.is_struct),
            receiver="ctypes.addressof(self)" if builtin.is_struct else "ctypes.addressof(self.content)",
        )

    def cover_key(self, owner: str, method: MethodDef) -> CoverKey:
        return CoverKey(
            owner=owner,
            name=method.name,
            parameter_types=tuple(a.type.spelling for a in method.arguments),
            return_type=method.return_type.spelling if method.has_return else "void",
        )

    # ---- Planning ----

    def _plan(
        self,
        *,
        owner: str,
        method: MethodDef,
        exposed_name: str,
        bind_attr: str,
        is_private: bool,
        is_utility: bool,
        kind: ArgumentKind,
        is_builtin: bool = False,
        holder: str = "",
        receiver: str = "self.handle",
    ) -> MethodBinding:
        base = dict(
            owner=owner,
            method=method,
            exposed_name=exposed_name,
            bind_attr=bind_attr,
            cover_key=self.cover_key(owner, method),
            is_private=is_private,
            is_utility=is_utility,
            is_builtin=is_builtin,
            holder=holder,
            receiver=receiver,
        )
        reason = self.unsupported_reason(method)
        if reason:
            return MethodBinding(supported=False, reason=reason, **base)

        slots = [self._arg_slot(a, kind) for a in method.arguments]
        slots = self._trailing_defaults(method.arguments, slots)
        ret = self._return_plan(method, kind)

        requires: Set[Tuple[Origin, str]] = set()
        for s in slots:
            requires |= target_requirements(s.target)
        if ret is not None:
            requires |= target_requirements(ret.target)
            if ret.target.kind == TargetKind.OBJECT and self.registry.has_subclasses(ret.target.source):
                requires.add((Origin.RUNTIME, "lookup_object"))
        requires.discard((Origin.CLASS, owner))

        logger.debug("Planned %s.%s with %d argument slot(s)", owner, method.name, len(slots))
        return MethodBinding(args=tuple(slots), ret=ret, requires=frozenset(requires), **base)

    def unsupported_reason(self, method: MethodDef) -> Optional[str]:
        if method.is_vararg:
            return "variadic methods are not bound"
        for a in method.arguments:
            if a.type.contains_pointer():
                return f"argument '{a.name}' is a raw pointer ({a.type.spelling})"
        if method.has_return and method.return_type.contains_pointer():
            return f"return type is a raw pointer ({method.return_type.spelling})"
        return None

    def _arg_slot(self, arg: ArgumentDef, kind: ArgumentKind) -> ArgSlot:
        name = arg.exposed_name
        target = self.mapper.map_argument(arg, kind)
        if self.mapper.argument_needs_copy(arg.type):
            if target.kind in (TargetKind.ENUM, TargetKind.BITFIELD):
                setup = f"copy_{name} = ctypes.c_int64(int({name}))"
            elif target.is_scalar:
                setup = f"copy_{name} = ctypes.{target.ctype}({name})"
            else:
                setup = f"copy_{name} = {target.host}.from_buffer_copy({name})"
            return ArgSlot(
                name=name,
                schema_type=arg.type.spelling,
                target=target,
                semantics=ArgSemantics.COPY,
                pre_call_lines=(setup,),
                to_native_expr=f"ctypes.addressof(copy_{name})",
            )
        if target.kind == TargetKind.OBJECT:
            return ArgSlot(
                name=name,
                schema_type=arg.type.spelling,
                target=target,
                semantics=ArgSemantics.HANDLE,
                pre_call_lines=(f"handle_{name} = ctypes.c_void_p(None if {name} is None else {name}.handle)",),
                to_native_expr=f"ctypes.addressof(handle_{name})",
            )
        return ArgSlot(
            name=name,
            schema_type=arg.type.spelling,
            target=target,
            semantics=ArgSemantics.CONTENT_POINTER,
            to_native_expr=f"ctypes.addressof({name}.content)",
        )

    def _trailing_defaults(self, args: Tuple[ArgumentDef, ...], slots: List[ArgSlot]) -> List[ArgSlot]:
        """
        Attach Python defaults to the trailing run of arguments whose schema
        default has a plain literal spelling.
        """
        out = list(slots)
        for i in range(len(args) - 1, -1, -1):
            literal = self._default_literal(args[i], slots[i].target)
            if literal is None:
                break
            out[i] = replace(slots[i], default=literal)
        return out

    def _default_literal(self, arg: ArgumentDef, target: TargetType) -> Optional[str]:
        literal = python_literal(arg.default_value)
        if literal is None:
            return None
        if target.kind == TargetKind.OBJECT:
            return literal if literal == "None" else None
        if target.kind not in _DEFAULTABLE or literal in ("None",) or literal.startswith('"'):
            return None
        return literal

    def _return_plan(self, method: MethodDef, kind: ArgumentKind) -> Optional[ReturnPlan]:
        if not method.has_return:
            return None
        rtype = method.return_type
        target = self.mapper.map_return(method, kind)
        default = self.defaults.default_value(rtype)

        if target.is_scalar:
            return ReturnPlan(
                target=target,
                storage_line=f"_result = ctypes.{target.ctype}({default})",
                pointer_expr="ctypes.byref(_result)",
                from_native_expr="_result.value",
            )
        if target.kind in (TargetKind.ENUM, TargetKind.BITFIELD):
            return ReturnPlan(
                target=target,
                storage_line=f"_result = ctypes.c_int64(int({default}))",
                pointer_expr="ctypes.byref(_result)",
                from_native_expr=f"{target.host}(_result.value)",
            )
        if target.kind == TargetKind.TYPED_ARRAY:
            return ReturnPlan(
                target=target,
                storage_line=f"_result = {self.mapper.builtin_storage('Array')}",
                pointer_expr="ctypes.byref(_result)",
                from_native_expr=f"GodotCollection({target.element.host}, content=_result)",
            )
        if target.kind == TargetKind.OBJECT:
            if self.registry.has_subclasses(target.source):
                wrap = "lookup_object(_result.value)"
            else:
                wrap = f"{target.host}(native_handle=_result.value)"
            return ReturnPlan(
                target=target,
                storage_line="_result = ctypes.c_void_p()",
                pointer_expr="ctypes.byref(_result)",
                from_native_expr=f"{wrap} if _result.value else None",
            )
        if target.is_struct:
            return ReturnPlan(
                target=target,
                storage_line=f"_result = {default}",
                pointer_expr="ctypes.byref(_result)",
                from_native_expr="_result",
            )
        # Handle-backed builtins: the engine writes into the content storage.
        return ReturnPlan(
            target=target,
            storage_line=f"_result = {default}",
            pointer_expr="ctypes.byref(_result.content)",
            from_native_expr="_result",
        )


__all__ = [
    "ArgSemantics",
    "ArgSlot",
    "ReturnPlan",
    "CoverKey",
    "MethodBinding",
    "MethodBindingGenerator",
    "accessor_name",
    "builtin_method_holder",
    "target_requirements",
]
