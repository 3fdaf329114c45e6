#!/usr/bin/env python3
"""
Schema parsing for Godot's extension_api.json.

This module reads the structured API description and produces the immutable
`Registry` that every generator consumes.

Key features:
- Required-field validation: a structurally malformed schema is fatal
  (`SchemaError`), because every downstream component assumes a complete
  registry.
- Type spellings are converted into the `TypeRef` tagged union here, once,
  so that nothing downstream re-parses `enum::`/`bitfield::`/`typedarray::`.
- Builtin sizes and member offsets are resolved for a single build
  configuration.

The schema itself is plain JSON; no schema grammar is involved.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import SchemaError
from ..models import (
    PRIMITIVE_TYPE_NAMES,
    ArgumentDef,
    BitfieldRef,
    BuiltinClassDef,
    BuiltinMember,
    BuiltinOperator,
    ClassDef,
    ConstantDef,
    CoreValueRef,
    EnumDef,
    EnumRef,
    EnumValue,
    MemberOffset,
    MethodDef,
    NativeStructureDef,
    ObjectRef,
    PointerRef,
    PrimitiveRef,
    PropertyDef,
    TypedArrayRef,
    TypeRef,
    UtilityFunctionDef,
)
from ..registry import DEFAULT_BUILD_CONFIGURATION, Registry, resolve_profile

logger = logging.getLogger(__name__)


# --------------------------
# Helpers
# --------------------------

def _require(obj: Mapping[str, Any], key: str, where: str) -> Any:
    if not isinstance(obj, Mapping):
        raise SchemaError(f"{where}: expected an object, got {type(obj).__name__}")
    try:
        return obj[key]
    except KeyError:
        raise SchemaError(f"{where}: missing required field '{key}'") from None


def _list(obj: Mapping[str, Any], key: str, where: str) -> List[Any]:
    value = obj.get(key) or []
    if not isinstance(value, list):
        raise SchemaError(f"{where}: field '{key}' must be a list")
    return value


class TypeResolver:
    """
    Converts schema type spellings into `TypeRef` variants.

    Resolution order: prefixed forms, raw pointers, primitives, engine
    classes (so `Object` is a handle even though it also has a builtin size),
    builtin value types, native structures. Anything else is a schema defect.
    """

    def __init__(
        self,
        class_names: FrozenSet[str],
        builtin_names: FrozenSet[str],
        native_structure_names: FrozenSet[str],
    ) -> None:
        self.class_names = class_names
        self.builtin_names = builtin_names
        self.native_structure_names = native_structure_names

    def resolve(self, spelling: Any, where: str) -> TypeRef:
        if not isinstance(spelling, str) or not spelling.strip():
            raise SchemaError(f"{where}: empty or non-string type")
        s = spelling.strip()
        if s.startswith("enum::"):
            return EnumRef(s[len("enum::"):])
        if s.startswith("bitfield::"):
            return BitfieldRef(s[len("bitfield::"):])
        if s.startswith("typedarray::"):
            inner = self.resolve(s[len("typedarray::"):], where)
            return TypedArrayRef(name=inner.spelling, element=inner)
        # Pointer markers only apply to raw descriptors; collection names were handled above.
        if "*" in s:
            return PointerRef(s)
        if s in PRIMITIVE_TYPE_NAMES:
            return PrimitiveRef(s)
        if s in self.class_names:
            return ObjectRef(s)
        if s in self.builtin_names:
            return CoreValueRef(s)
        if s in self.native_structure_names:
            return PointerRef(s)
        raise SchemaError(f"{where}: unknown type '{s}'")


# --------------------------
# Section parsers
# --------------------------

def _parse_sizes(schema: Mapping[str, Any], build_configuration: str) -> Dict[str, int]:
    for entry in _list(schema, "builtin_class_sizes", "schema"):
        if _require(entry, "build_configuration", "builtin_class_sizes[]") != build_configuration:
            continue
        sizes: Dict[str, int] = {}
        for item in _list(entry, "sizes", f"builtin_class_sizes[{build_configuration}]"):
            name = _require(item, "name", "builtin_class_sizes.sizes[]")
            sizes[name] = int(_require(item, "size", f"builtin_class_sizes.sizes[{name}]"))
        return sizes
    raise SchemaError(f"schema: no builtin_class_sizes for build configuration '{build_configuration}'")


def _parse_member_offsets(schema: Mapping[str, Any], build_configuration: str) -> Dict[str, Tuple[MemberOffset, ...]]:
    out: Dict[str, Tuple[MemberOffset, ...]] = {}
    for entry in _list(schema, "builtin_class_member_offsets", "schema"):
        if _require(entry, "build_configuration", "builtin_class_member_offsets[]") != build_configuration:
            continue
        for cls in _list(entry, "classes", "builtin_class_member_offsets[]"):
            name = _require(cls, "name", "builtin_class_member_offsets.classes[]")
            where = f"builtin_class_member_offsets[{name}]"
            out[name] = tuple(
                MemberOffset(
                    member=_require(m, "member", where),
                    offset=int(_require(m, "offset", where)),
                    meta=_require(m, "meta", where),
                )
                for m in _list(cls, "members", where)
            )
    return out


def _parse_enum(obj: Mapping[str, Any], where: str) -> EnumDef:
    name = _require(obj, "name", where)
    values = tuple(
        EnumValue(
            name=_require(v, "name", f"{where}.{name}"),
            value=int(_require(v, "value", f"{where}.{name}")),
        )
        for v in _list(obj, "values", f"{where}.{name}")
    )
    return EnumDef(name=name, values=values, is_bitfield=bool(obj.get("is_bitfield", False)))


def _parse_argument(obj: Mapping[str, Any], resolver: TypeResolver, where: str) -> ArgumentDef:
    name = _require(obj, "name", where)
    return ArgumentDef(
        name=name,
        type=resolver.resolve(_require(obj, "type", f"{where}.{name}"), f"{where}.{name}"),
        meta=obj.get("meta"),
        default_value=obj.get("default_value"),
    )


def _parse_method(obj: Mapping[str, Any], resolver: TypeResolver, owner: str) -> MethodDef:
    name = _require(obj, "name", f"{owner}.methods[]")
    where = f"{owner}.{name}"
    is_virtual = bool(obj.get("is_virtual", False))
    method_hash = obj.get("hash")

    if is_virtual and method_hash is not None:
        # Newer schemas hash virtuals for compatibility checks; they are still overridable, not bound.
        logger.debug("%s: ignoring compatibility hash of virtual method", where)
        method_hash = None
    if not is_virtual and method_hash is None:
        raise SchemaError(f"{where}: non-virtual method without a binding hash")

    ret_obj = obj.get("return_value")
    return_type: Optional[TypeRef] = None
    return_meta: Optional[str] = None
    if ret_obj:
        return_type = resolver.resolve(_require(ret_obj, "type", f"{where}.return_value"), f"{where}.return_value")
        return_meta = ret_obj.get("meta")

    return MethodDef(
        name=name,
        arguments=tuple(_parse_argument(a, resolver, where) for a in _list(obj, "arguments", where)),
        return_type=return_type,
        return_meta=return_meta,
        is_static=bool(obj.get("is_static", False)),
        is_virtual=is_virtual,
        is_vararg=bool(obj.get("is_vararg", False)),
        is_const=bool(obj.get("is_const", False)),
        hash=int(method_hash) if method_hash is not None else None,
    )


def _parse_property(obj: Mapping[str, Any], owner: str) -> PropertyDef:
    name = _require(obj, "name", f"{owner}.properties[]")
    index = obj.get("index")
    return PropertyDef(
        name=name,
        type=obj.get("type", ""),
        getter=obj.get("getter") or "",
        setter=obj.get("setter") or None,
        index=int(index) if index is not None else None,
    )


def _parse_class(obj: Mapping[str, Any], resolver: TypeResolver) -> ClassDef:
    name = _require(obj, "name", "classes[]")
    return ClassDef(
        name=name,
        inherits=obj.get("inherits") or None,
        methods=tuple(_parse_method(m, resolver, name) for m in _list(obj, "methods", name)),
        properties=tuple(_parse_property(p, name) for p in _list(obj, "properties", name)),
        enums=tuple(_parse_enum(e, f"{name}.enums") for e in _list(obj, "enums", name)),
        constants=tuple(
            ConstantDef(name=_require(c, "name", f"{name}.constants"), value=int(_require(c, "value", f"{name}.constants")))
            for c in _list(obj, "constants", name)
        ),
        is_refcounted=bool(obj.get("is_refcounted", False)),
        is_instantiable=bool(obj.get("is_instantiable", True)),
        api_type=obj.get("api_type", "core"),
    )


def _parse_builtin_method(obj: Mapping[str, Any], resolver: TypeResolver, owner: str) -> MethodDef:
    name = _require(obj, "name", f"{owner}.methods[]")
    where = f"{owner}.{name}"
    method_hash = obj.get("hash")
    if method_hash is None:
        raise SchemaError(f"{where}: builtin method without a binding hash")
    # Builtin methods spell the return as a bare type name, not a return_value object.
    ret = obj.get("return_type")
    return MethodDef(
        name=name,
        arguments=tuple(_parse_argument(a, resolver, where) for a in _list(obj, "arguments", where)),
        return_type=resolver.resolve(ret, f"{where}.return_type") if ret else None,
        is_static=bool(obj.get("is_static", False)),
        is_vararg=bool(obj.get("is_vararg", False)),
        is_const=bool(obj.get("is_const", False)),
        hash=int(method_hash),
    )


def _parse_builtin(obj: Mapping[str, Any], resolver: TypeResolver) -> BuiltinClassDef:
    name = _require(obj, "name", "builtin_classes[]")
    return BuiltinClassDef(
        name=name,
        members=tuple(
            BuiltinMember(name=_require(m, "name", f"{name}.members"), type=_require(m, "type", f"{name}.members"))
            for m in _list(obj, "members", name)
        ),
        operators=tuple(
            BuiltinOperator(
                name=_require(op, "name", f"{name}.operators"),
                return_type=_require(op, "return_type", f"{name}.operators"),
                right_type=op.get("right_type") or None,
            )
            for op in _list(obj, "operators", name)
        ),
        has_destructor=bool(obj.get("has_destructor", False)),
        constructor_count=len(_list(obj, "constructors", name)),
        enums=tuple(_parse_enum(e, f"{name}.enums") for e in _list(obj, "enums", name)),
        methods=tuple(_parse_builtin_method(m, resolver, name) for m in _list(obj, "methods", name)),
    )


def _parse_utility(obj: Mapping[str, Any], resolver: TypeResolver) -> UtilityFunctionDef:
    name = _require(obj, "name", "utility_functions[]")
    where = f"utility.{name}"
    ret = obj.get("return_type")
    method_hash = obj.get("hash")
    if method_hash is None:
        raise SchemaError(f"{where}: utility function without a binding hash")
    return UtilityFunctionDef(
        name=name,
        category=obj.get("category", "general"),
        arguments=tuple(_parse_argument(a, resolver, where) for a in _list(obj, "arguments", where)),
        return_type=resolver.resolve(ret, f"{where}.return_type") if ret else None,
        is_vararg=bool(obj.get("is_vararg", False)),
        hash=int(method_hash),
    )


# --------------------------
# Public API
# --------------------------

def load_schema(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load extension_api.json. I/O and JSON errors propagate unchanged.
    """
    p = Path(path)
    with open(p, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise SchemaError(f"{p}: top-level JSON value must be an object")
    logger.debug("Loaded schema %s", p)
    return data


def build_registry(
    schema: Mapping[str, Any],
    build_configuration: str = DEFAULT_BUILD_CONFIGURATION,
) -> Registry:
    """
    Build the immutable Registry for one build configuration.

    Raises SchemaError on any structural defect.
    """
    resolve_profile(build_configuration)

    raw_classes: Sequence[Mapping[str, Any]] = _list(schema, "classes", "schema")
    raw_builtins: Sequence[Mapping[str, Any]] = _list(schema, "builtin_classes", "schema")
    raw_natives: Sequence[Mapping[str, Any]] = _list(schema, "native_structures", "schema")

    sizes = _parse_sizes(schema, build_configuration)
    class_names = frozenset(_require(c, "name", "classes[]") for c in raw_classes)
    builtin_names = frozenset(_require(b, "name", "builtin_classes[]") for b in raw_builtins) | frozenset(sizes)
    natives = tuple(
        NativeStructureDef(
            name=_require(n, "name", "native_structures[]"),
            format=_require(n, "format", f"native_structures[{n.get('name')}]"),
        )
        for n in raw_natives
    )
    resolver = TypeResolver(class_names, builtin_names, frozenset(n.name for n in natives))

    registry = Registry.build(
        build_configuration=build_configuration,
        classes=[_parse_class(c, resolver) for c in raw_classes],
        builtin_classes=[_parse_builtin(b, resolver) for b in raw_builtins],
        builtin_sizes=sizes,
        member_offsets=_parse_member_offsets(schema, build_configuration),
        global_enums=[_parse_enum(e, "global_enums") for e in _list(schema, "global_enums", "schema")],
        utility_functions=[_parse_utility(u, resolver) for u in _list(schema, "utility_functions", "schema")],
        native_structures=natives,
        header=schema.get("header") or {},
    )
    logger.info(
        "Loaded %d class(es), %d builtin(s), %d utility function(s) for %s",
        len(registry.classes), len(registry.builtin_classes), len(registry.utility_functions), build_configuration,
    )
    return registry


__all__ = [
    "TypeResolver",
    "load_schema",
    "build_registry",
]
