#!/usr/bin/env python3
"""
Data models for the extension API binding generator.

This module provides strongly-typed, immutable data structures to describe:
- Schema type references (a closed tagged union built once at load time)
- Arguments, methods, properties, enums, constants
- Engine classes, builtin value types, utility functions, native structures
- Recoverable diagnostics raised while generating a class
- Generation context (paths, build configuration, flags)

The models are designed to be consumed by:
- The parsing layer (to populate instances from extension_api.json)
- The registry, mapping engine and generators (read-only)
- The emitters/templates (Jinja2) through `to_dict()`

Nothing in here mutates after construction: the registry is built once and
every later phase only reads it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from .utils import sanitize_identifier

# --------------------------
# Type references
# --------------------------

PRIMITIVE_TYPE_NAMES = frozenset({"int", "float", "real", "bool", "void"})


@dataclass(frozen=True)
class TypeRef:
    """
    Base of the type reference variants. Every schema type spelling is
    converted into exactly one subclass at the schema boundary, so that no
    downstream component re-parses `enum::`/`bitfield::`/`typedarray::`.
    """
    name: str

    @property
    def spelling(self) -> str:
        """The spelling as it appears in extension_api.json."""
        return self.name

    def contains_pointer(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.spelling


@dataclass(frozen=True)
class PrimitiveRef(TypeRef):
    """int / float / real / bool / void."""

    @property
    def is_void(self) -> bool:
        return self.name == "void"


@dataclass(frozen=True)
class CoreValueRef(TypeRef):
    """A builtin (Variant) type with a declared byte size per build configuration."""


@dataclass(frozen=True)
class ObjectRef(TypeRef):
    """An engine class, passed across the ABI as an opaque handle."""


@dataclass(frozen=True)
class EnumRef(TypeRef):
    @property
    def spelling(self) -> str:
        return f"enum::{self.name}"


@dataclass(frozen=True)
class BitfieldRef(TypeRef):
    @property
    def spelling(self) -> str:
        return f"bitfield::{self.name}"


@dataclass(frozen=True)
class TypedArrayRef(TypeRef):
    element: TypeRef = field(default_factory=lambda: PrimitiveRef("void"))

    @property
    def spelling(self) -> str:
        return f"typedarray::{self.element.spelling}"

    def contains_pointer(self) -> bool:
        return self.element.contains_pointer()


@dataclass(frozen=True)
class PointerRef(TypeRef):
    """A raw/unmanaged pointer descriptor (e.g. `const void*`) or a native structure."""

    def contains_pointer(self) -> bool:
        return True


# --------------------------
# Members
# --------------------------

@dataclass(frozen=True)
class ArgumentDef:
    name: str
    type: TypeRef
    meta: Optional[str] = None
    default_value: Optional[str] = None

    @property
    def exposed_name(self) -> str:
        return sanitize_identifier(self.name or "arg")

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "exposed_name": self.exposed_name,
            "type": self.type.spelling,
            "meta": self.meta,
            "default_value": self.default_value,
        }


@dataclass(frozen=True)
class MethodDef:
    """
    A class method. Exactly one of the following holds (checked by the parser):
    - `hash` is present and the method is a concrete ABI-bound call, or
    - `hash` is absent and the method is an overridable virtual.
    """
    name: str
    arguments: Tuple[ArgumentDef, ...] = ()
    return_type: Optional[TypeRef] = None
    return_meta: Optional[str] = None
    is_static: bool = False
    is_virtual: bool = False
    is_vararg: bool = False
    is_const: bool = False
    hash: Optional[int] = None

    @property
    def has_return(self) -> bool:
        return self.return_type is not None and not (
            isinstance(self.return_type, PrimitiveRef) and self.return_type.is_void
        )

    @property
    def is_bound(self) -> bool:
        return self.hash is not None

    @property
    def signature(self) -> str:
        """Human-friendly signature for diagnostics."""
        params = ", ".join(f"{a.name}: {a.type.spelling}" for a in self.arguments)
        ret = self.return_type.spelling if self.has_return else "void"
        return f"{self.name}({params}) -> {ret}"

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "arguments": [a.to_dict() for a in self.arguments],
            "return_type": self.return_type.spelling if self.return_type else None,
            "return_meta": self.return_meta,
            "is_static": self.is_static,
            "is_virtual": self.is_virtual,
            "is_vararg": self.is_vararg,
            "is_const": self.is_const,
            "hash": self.hash,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class PropertyDef:
    name: str
    type: str = ""
    getter: str = ""
    setter: Optional[str] = None
    index: Optional[int] = None

    @property
    def exposed_name(self) -> str:
        return sanitize_identifier(self.name)

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "type": self.type,
            "getter": self.getter,
            "setter": self.setter,
            "index": self.index,
        }


@dataclass(frozen=True)
class EnumValue:
    name: str
    value: int


@dataclass(frozen=True)
class EnumDef:
    name: str
    values: Tuple[EnumValue, ...] = ()
    is_bitfield: bool = False

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "is_bitfield": self.is_bitfield,
            "values": [{"name": v.name, "value": v.value} for v in self.values],
        }


@dataclass(frozen=True)
class ConstantDef:
    name: str
    value: int


# --------------------------
# Top-level entities
# --------------------------

@dataclass(frozen=True)
class ClassDef:
    name: str
    inherits: Optional[str] = None
    methods: Tuple[MethodDef, ...] = ()
    properties: Tuple[PropertyDef, ...] = ()
    enums: Tuple[EnumDef, ...] = ()
    constants: Tuple[ConstantDef, ...] = ()
    is_refcounted: bool = False
    is_instantiable: bool = True
    api_type: str = "core"

    @property
    def module_name(self) -> str:
        return self.name

    def method(self, name: str) -> Optional[MethodDef]:
        for m in self.methods:
            if m.name == name:
                return m
        return None

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "inherits": self.inherits,
            "is_refcounted": self.is_refcounted,
            "is_instantiable": self.is_instantiable,
            "api_type": self.api_type,
            "methods": [m.to_dict() for m in self.methods],
            "properties": [p.to_dict() for p in self.properties],
            "enums": [e.to_dict() for e in self.enums],
        }


@dataclass(frozen=True)
class BuiltinMember:
    name: str
    type: str


@dataclass(frozen=True)
class BuiltinOperator:
    """An operator declared on a builtin; `right_type` is None for unary operators."""
    name: str
    return_type: str
    right_type: Optional[str] = None


@dataclass(frozen=True)
class BuiltinClassDef:
    name: str
    members: Tuple[BuiltinMember, ...] = ()
    operators: Tuple[BuiltinOperator, ...] = ()
    has_destructor: bool = False
    constructor_count: int = 0
    enums: Tuple[EnumDef, ...] = ()
    methods: Tuple[MethodDef, ...] = ()

    @property
    def is_struct(self) -> bool:
        """Builtins with declared members are plain fixed-layout structs."""
        return bool(self.members)

    def method(self, name: str) -> Optional[MethodDef]:
        for m in self.methods:
            if m.name == name:
                return m
        return None


@dataclass(frozen=True)
class MemberOffset:
    member: str
    offset: int
    meta: str


@dataclass(frozen=True)
class UtilityFunctionDef:
    name: str
    category: str = "general"
    arguments: Tuple[ArgumentDef, ...] = ()
    return_type: Optional[TypeRef] = None
    is_vararg: bool = False
    hash: Optional[int] = None

    def as_method(self) -> MethodDef:
        """View as a static method so the binding generator can plan its call site."""
        return MethodDef(
            name=self.name,
            arguments=self.arguments,
            return_type=self.return_type,
            is_static=True,
            is_vararg=self.is_vararg,
            hash=self.hash,
        )


@dataclass(frozen=True)
class NativeStructureDef:
    name: str
    format: str


# --------------------------
# Diagnostics
# --------------------------

@dataclass(frozen=True)
class Diagnostic:
    """A recoverable problem: the named member is omitted, the rest of the class generates normally."""
    owner: str
    member: str
    reason: str

    def __str__(self) -> str:
        return f"{self.owner}.{self.member}: {self.reason}"

    def to_dict(self) -> Dict:
        return {"owner": self.owner, "member": self.member, "reason": self.reason}


# --------------------------
# Generation context
# --------------------------

@dataclass
class GenerationContext:
    """
    Parameters for a single generation run.

    Paths are absolute. Emitters should rely on these rather than guessing.
    """
    output_dir: Path
    templates_dir: Optional[Path] = None
    build_configuration: str = "float_64"
    runtime_module: str = "godot.runtime"
    single_file: bool = False
    dry_run: bool = False
    jobs: int = 1

    @property
    def classes_dir(self) -> Path:
        return self.output_dir / "classes"

    def to_dict(self) -> Dict:
        return {
            "output_dir": str(self.output_dir),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "build_configuration": self.build_configuration,
            "runtime_module": self.runtime_module,
            "single_file": self.single_file,
            "dry_run": self.dry_run,
            "jobs": self.jobs,
        }


__all__ = [
    "PRIMITIVE_TYPE_NAMES",
    "TypeRef",
    "PrimitiveRef",
    "CoreValueRef",
    "ObjectRef",
    "EnumRef",
    "BitfieldRef",
    "TypedArrayRef",
    "PointerRef",
    "ArgumentDef",
    "MethodDef",
    "PropertyDef",
    "EnumValue",
    "EnumDef",
    "ConstantDef",
    "ClassDef",
    "BuiltinMember",
    "BuiltinOperator",
    "BuiltinClassDef",
    "MemberOffset",
    "UtilityFunctionDef",
    "NativeStructureDef",
    "Diagnostic",
    "GenerationContext",
    "sanitize_identifier",
]
