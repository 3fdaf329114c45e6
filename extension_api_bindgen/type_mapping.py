#!/usr/bin/env python3
"""
Type mapping for extension API bindings.

This module decides, for every schema type reference, how values of that
type look on the Python side and how they cross the GDExtension ABI. It
provides:

- The target type model (`TargetKind`, `TargetType`) consumed by the
  default value synthesizer, the binding generators and the emitters
- Width resolution for numeric types (explicit width metadata, build
  configuration defaults, fixed widths for builtin struct fields)
- The rename tables for builtin value types and engine-wide enumerations
- The builtin storage, variant typecode and operator tables

Typical usage (high level):

    from .type_mapping import ArgumentKind, TypeMapper

    mapper = TypeMapper(registry)
    target = mapper.map_type(arg.type, arg.meta, ArgumentKind.CLASSES)

Design notes:
- `map_type` is total over the TypeRef variants. The only failures are
  `MappingError`s for values missing from the tables below (unknown width
  metadata, unknown builtin sizes, unknown operators/typecodes). A miss
  means the tables are stale for the schema version, so it aborts the run.
- Every target carries the symbol generated code must import to name it
  (`origin`/`symbol`), so emitters never re-derive that from spellings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Mapping, Optional, Tuple

from .errors import MappingError
from .models import (
    ArgumentDef,
    BitfieldRef,
    CoreValueRef,
    EnumRef,
    MethodDef,
    ObjectRef,
    PointerRef,
    PrimitiveRef,
    TypedArrayRef,
    TypeRef,
)
from .registry import Registry
from .utils import host_type_name


# --------------------------
# Mapping model
# --------------------------

class ArgumentKind(Enum):
    # General method argument/return: width from metadata, else the build configuration.
    CLASSES = auto()
    # Named field of a fixed-layout builtin: always the narrowest historical width.
    BUILTIN_FIELD = auto()
    # Builtin method or utility function argument/return.
    BUILTIN = auto()


class TargetKind(Enum):
    VOID = auto()
    BOOL = auto()
    INT = auto()
    FLOAT = auto()
    STRING = auto()
    CORE_VALUE = auto()
    VARIANT = auto()
    OBJECT = auto()
    ENUM = auto()
    BITFIELD = auto()
    TYPED_ARRAY = auto()
    POINTER = auto()


class Origin(Enum):
    """Where generated code gets the name of a target type from."""
    BUILTIN = auto()    # Python builtins (int, float, bool)
    RUNTIME = auto()    # the runtime module (GString, GArray, StringName, ...)
    CORE = auto()       # the generated core definitions (struct builtins, global enums)
    CLASS = auto()      # a generated engine class module


@dataclass(frozen=True)
class TargetType:
    """
    How one schema type appears to Python and across the ABI.

    - host: Python-facing type expression (annotations, constructors)
    - ctype: ctypes storage type name for scalars/handles, None for value types
    - source: the schema name the target was derived from (e.g. 'String', 'Node')
    - symbol/origin: what generated code imports to use `host`
    """
    kind: TargetKind
    host: str
    source: str
    ctype: Optional[str] = None
    bits: int = 0
    signed: bool = True
    element: Optional["TargetType"] = None
    origin: Origin = Origin.BUILTIN
    symbol: Optional[str] = None
    is_struct: bool = False

    @property
    def annotation(self) -> str:
        if self.kind == TargetKind.VOID:
            return "None"
        if self.kind == TargetKind.OBJECT:
            return f"Optional[{self.host}]"
        if self.kind == TargetKind.TYPED_ARRAY and self.element is not None:
            return f"{self.host}[{self.element.host}]"
        return self.host

    @property
    def is_scalar(self) -> bool:
        return self.kind in (TargetKind.BOOL, TargetKind.INT, TargetKind.FLOAT)

    def describe(self) -> str:
        """Human-readable description used in diagnostics and tests."""
        if self.kind == TargetKind.INT:
            return f"{self.bits}-bit {'signed' if self.signed else 'unsigned'} integer"
        if self.kind == TargetKind.FLOAT:
            return f"{self.bits}-bit float"
        if self.kind == TargetKind.TYPED_ARRAY and self.element is not None:
            return f"collection of {self.element.describe()}"
        return f"{self.kind.name.lower()} {self.host}"


# --------------------------
# Tables
# --------------------------

INT_META: Mapping[str, Tuple[int, bool]] = {
    "int8": (8, True),
    "uint8": (8, False),
    "int16": (16, True),
    "uint16": (16, False),
    "int32": (32, True),
    "uint32": (32, False),
    "int64": (64, True),
    "uint64": (64, False),
}

FLOAT_META = frozenset({"float", "double"})

# Builtins renamed so they do not read as Python's own str/list.
BUILTIN_RENAMES: Mapping[str, str] = {
    "String": "GString",
    "Array": "GArray",
    "Nil": "Variant",
}

# Engine-wide enumerations referenced from many classes resolve to one canonical type.
ENUM_RENAMES: Mapping[str, str] = {
    "Error": "GodotError",
    "Variant.Type": "VariantType",
}

# Zero members of the engine-wide enumerations ("no error" / "null").
ENUM_ZERO_MEMBERS: Mapping[str, str] = {
    "Error": "OK",
    "Variant.Type": "TYPE_NIL",
}

VARIANT_TYPECODES: Mapping[str, str] = {
    "Nil": "GDEXTENSION_VARIANT_TYPE_NIL",
    "Variant": "GDEXTENSION_VARIANT_TYPE_NIL",
    "bool": "GDEXTENSION_VARIANT_TYPE_BOOL",
    "int": "GDEXTENSION_VARIANT_TYPE_INT",
    "float": "GDEXTENSION_VARIANT_TYPE_FLOAT",
    "String": "GDEXTENSION_VARIANT_TYPE_STRING",
    "Vector2": "GDEXTENSION_VARIANT_TYPE_VECTOR2",
    "Vector2i": "GDEXTENSION_VARIANT_TYPE_VECTOR2I",
    "Rect2": "GDEXTENSION_VARIANT_TYPE_RECT2",
    "Rect2i": "GDEXTENSION_VARIANT_TYPE_RECT2I",
    "Vector3": "GDEXTENSION_VARIANT_TYPE_VECTOR3",
    "Vector3i": "GDEXTENSION_VARIANT_TYPE_VECTOR3I",
    "Transform2D": "GDEXTENSION_VARIANT_TYPE_TRANSFORM2D",
    "Vector4": "GDEXTENSION_VARIANT_TYPE_VECTOR4",
    "Vector4i": "GDEXTENSION_VARIANT_TYPE_VECTOR4I",
    "Plane": "GDEXTENSION_VARIANT_TYPE_PLANE",
    "Quaternion": "GDEXTENSION_VARIANT_TYPE_QUATERNION",
    "AABB": "GDEXTENSION_VARIANT_TYPE_AABB",
    "Basis": "GDEXTENSION_VARIANT_TYPE_BASIS",
    "Transform3D": "GDEXTENSION_VARIANT_TYPE_TRANSFORM3D",
    "Projection": "GDEXTENSION_VARIANT_TYPE_PROJECTION",
    "Color": "GDEXTENSION_VARIANT_TYPE_COLOR",
    "StringName": "GDEXTENSION_VARIANT_TYPE_STRING_NAME",
    "NodePath": "GDEXTENSION_VARIANT_TYPE_NODE_PATH",
    "RID": "GDEXTENSION_VARIANT_TYPE_RID",
    "Object": "GDEXTENSION_VARIANT_TYPE_OBJECT",
    "Callable": "GDEXTENSION_VARIANT_TYPE_CALLABLE",
    "Signal": "GDEXTENSION_VARIANT_TYPE_SIGNAL",
    "Dictionary": "GDEXTENSION_VARIANT_TYPE_DICTIONARY",
    "Array": "GDEXTENSION_VARIANT_TYPE_ARRAY",
    "PackedByteArray": "GDEXTENSION_VARIANT_TYPE_PACKED_BYTE_ARRAY",
    "PackedInt32Array": "GDEXTENSION_VARIANT_TYPE_PACKED_INT32_ARRAY",
    "PackedInt64Array": "GDEXTENSION_VARIANT_TYPE_PACKED_INT64_ARRAY",
    "PackedFloat32Array": "GDEXTENSION_VARIANT_TYPE_PACKED_FLOAT32_ARRAY",
    "PackedFloat64Array": "GDEXTENSION_VARIANT_TYPE_PACKED_FLOAT64_ARRAY",
    "PackedStringArray": "GDEXTENSION_VARIANT_TYPE_PACKED_STRING_ARRAY",
    "PackedVector2Array": "GDEXTENSION_VARIANT_TYPE_PACKED_VECTOR2_ARRAY",
    "PackedVector3Array": "GDEXTENSION_VARIANT_TYPE_PACKED_VECTOR3_ARRAY",
    "PackedColorArray": "GDEXTENSION_VARIANT_TYPE_PACKED_COLOR_ARRAY",
    "PackedVector4Array": "GDEXTENSION_VARIANT_TYPE_PACKED_VECTOR4_ARRAY",
}

# Schema operator -> (variant operator constant, Python special method or None).
VARIANT_OPERATORS: Mapping[str, Tuple[str, Optional[str]]] = {
    "==": ("GDEXTENSION_VARIANT_OP_EQUAL", "__eq__"),
    "!=": ("GDEXTENSION_VARIANT_OP_NOT_EQUAL", "__ne__"),
    "<": ("GDEXTENSION_VARIANT_OP_LESS", "__lt__"),
    "<=": ("GDEXTENSION_VARIANT_OP_LESS_EQUAL", "__le__"),
    ">": ("GDEXTENSION_VARIANT_OP_GREATER", "__gt__"),
    ">=": ("GDEXTENSION_VARIANT_OP_GREATER_EQUAL", "__ge__"),
    "+": ("GDEXTENSION_VARIANT_OP_ADD", "__add__"),
    "-": ("GDEXTENSION_VARIANT_OP_SUBTRACT", "__sub__"),
    "*": ("GDEXTENSION_VARIANT_OP_MULTIPLY", "__mul__"),
    "/": ("GDEXTENSION_VARIANT_OP_DIVIDE", "__truediv__"),
    "unary-": ("GDEXTENSION_VARIANT_OP_NEGATE", "__neg__"),
    "unary+": ("GDEXTENSION_VARIANT_OP_POSITIVE", "__pos__"),
    "%": ("GDEXTENSION_VARIANT_OP_MODULE", "__mod__"),
    "**": ("GDEXTENSION_VARIANT_OP_POWER", "__pow__"),
    "<<": ("GDEXTENSION_VARIANT_OP_SHIFT_LEFT", "__lshift__"),
    ">>": ("GDEXTENSION_VARIANT_OP_SHIFT_RIGHT", "__rshift__"),
    "&": ("GDEXTENSION_VARIANT_OP_BIT_AND", "__and__"),
    "|": ("GDEXTENSION_VARIANT_OP_BIT_OR", "__or__"),
    "^": ("GDEXTENSION_VARIANT_OP_BIT_XOR", "__xor__"),
    "~": ("GDEXTENSION_VARIANT_OP_BIT_NEGATE", "__invert__"),
    "in": ("GDEXTENSION_VARIANT_OP_IN", "__contains__"),
    # Python cannot overload the logical operators.
    "and": ("GDEXTENSION_VARIANT_OP_AND", None),
    "or": ("GDEXTENSION_VARIANT_OP_OR", None),
    "xor": ("GDEXTENSION_VARIANT_OP_XOR", None),
    "not": ("GDEXTENSION_VARIANT_OP_NOT", None),
}


def int_ctype(bits: int, signed: bool) -> str:
    return f"c_{'' if signed else 'u'}int{bits}"


def float_ctype(bits: int) -> str:
    return "c_float" if bits == 32 else "c_double"


def builtin_typecode(name: str) -> str:
    try:
        return VARIANT_TYPECODES[name]
    except KeyError:
        raise MappingError(f"No variant typecode for builtin '{name}'") from None


def infix_operator(symbol: str) -> Tuple[str, Optional[str]]:
    """
    Map a schema operator symbol to its variant operator constant and the
    Python special method implementing it (None when Python cannot overload it).
    """
    try:
        return VARIANT_OPERATORS[symbol]
    except KeyError:
        raise MappingError(f"Unknown operator symbol '{symbol}'") from None


# --------------------------
# Mapper
# --------------------------

class TypeMapper:
    """
    Maps schema type references to target types for one registry.

    Holds no mutable state; safe to share between worker threads.
    """

    def __init__(self, registry: Registry) -> None:
        self.registry = registry
        self.profile = registry.profile

    # ---- Public API ----

    def map_type(
        self,
        type_ref: Optional[TypeRef],
        meta: Optional[str] = None,
        kind: ArgumentKind = ArgumentKind.CLASSES,
    ) -> TargetType:
        if type_ref is None:
            return self._void()
        if isinstance(type_ref, PrimitiveRef):
            return self._map_primitive(type_ref, meta, kind)
        if isinstance(type_ref, EnumRef):
            return self._map_enum(type_ref)
        if isinstance(type_ref, BitfieldRef):
            return self._map_bitfield(type_ref)
        if isinstance(type_ref, TypedArrayRef):
            inner = self.map_type(type_ref.element, None, kind)
            return TargetType(
                kind=TargetKind.TYPED_ARRAY,
                host="GodotCollection",
                source=type_ref.spelling,
                element=inner,
                origin=Origin.RUNTIME,
                symbol="GodotCollection",
            )
        if isinstance(type_ref, ObjectRef):
            return TargetType(
                kind=TargetKind.OBJECT,
                host=type_ref.name,
                source=type_ref.name,
                ctype="c_void_p",
                bits=self.profile.pointer_bits,
                origin=Origin.CLASS,
                symbol=type_ref.name,
            )
        if isinstance(type_ref, CoreValueRef):
            return self._map_core_value(type_ref)
        if isinstance(type_ref, PointerRef):
            return TargetType(
                kind=TargetKind.POINTER,
                host="int",
                source=type_ref.spelling,
                ctype="c_void_p",
                bits=self.profile.pointer_bits,
            )
        raise MappingError(f"Unhandled type reference variant {type(type_ref).__name__}")

    def map_argument(self, arg: ArgumentDef, kind: ArgumentKind = ArgumentKind.CLASSES) -> TargetType:
        return self.map_type(arg.type, arg.meta, kind)

    def map_return(self, method: MethodDef, kind: ArgumentKind = ArgumentKind.CLASSES) -> TargetType:
        if not method.has_return:
            return self._void()
        return self.map_type(method.return_type, method.return_meta, kind)

    def enum_host_name(self, name: str) -> str:
        """
        Python name of an enum: engine-wide enums are canonicalized, class
        enums stay nested ('Node.ProcessMode'), builtin enums and other
        dotted names are flattened ('Vector2.Axis' -> 'Vector2Axis').
        """
        if name in ENUM_RENAMES:
            return ENUM_RENAMES[name]
        owner, _, member = name.rpartition(".")
        if owner and self.registry.lookup_class(owner) is None:
            return host_type_name(owner.replace(".", "") + member)
        return host_type_name(name)

    def builtin_host_name(self, name: str) -> str:
        return BUILTIN_RENAMES.get(name, name)

    def argument_needs_copy(self, type_ref: TypeRef) -> bool:
        """
        True when the ABI needs a stable copy distinct from the host value:
        scalars, enums, bitfields and fixed-layout struct builtins.
        """
        if isinstance(type_ref, PrimitiveRef):
            return not type_ref.is_void
        if isinstance(type_ref, (EnumRef, BitfieldRef)):
            return True
        if isinstance(type_ref, CoreValueRef):
            builtin = self.registry.lookup_builtin(type_ref.name)
            return builtin is not None and builtin.is_struct
        return False

    def builtin_storage(self, name: str) -> str:
        """
        Raw ctypes storage expression able to receive a builtin of `name`
        from the ABI, chosen by its byte size in the active configuration.
        """
        size = self.registry.builtin_byte_size(name)
        if size is None:
            raise MappingError(f"No builtin size for '{name}' in {self.profile.name}")
        if size in (0, 4):
            return "ctypes.c_int32(0)"
        if size == 8:
            return "ctypes.c_int64(0)"
        if size == 16:
            return "(ctypes.c_int64 * 2)()"
        raise MappingError(f"Unsupported storage size {size} for builtin '{name}'")

    def require_builtin_size(self, name: str) -> int:
        size = self.registry.builtin_byte_size(name)
        if size is None:
            raise MappingError(f"No builtin size for '{name}' in {self.profile.name}")
        return size

    # ---- Variant rules ----

    def _void(self) -> TargetType:
        return TargetType(kind=TargetKind.VOID, host="None", source="void")

    def _map_primitive(self, t: PrimitiveRef, meta: Optional[str], kind: ArgumentKind) -> TargetType:
        if t.name == "void":
            return self._void()
        if t.name == "bool":
            return TargetType(kind=TargetKind.BOOL, host="bool", source="bool", ctype="c_bool", bits=8)
        if t.name == "int":
            if meta is not None:
                try:
                    bits, signed = INT_META[meta]
                except KeyError:
                    raise MappingError(f"Unknown integer width metadata '{meta}'") from None
            elif kind == ArgumentKind.BUILTIN_FIELD:
                bits, signed = 32, True
            else:
                bits, signed = self.profile.int_bits, True
            return TargetType(
                kind=TargetKind.INT, host="int", source="int",
                ctype=int_ctype(bits, signed), bits=bits, signed=signed,
            )
        # float / real
        if kind == ArgumentKind.BUILTIN_FIELD:
            bits = 32
        elif meta is None:
            bits = self.profile.float_bits
        elif meta not in FLOAT_META:
            raise MappingError(f"Unknown float width metadata '{meta}'")
        elif meta == "double":
            bits = 64
        else:
            # The engine passes 'float'-tagged values at the configuration width.
            bits = self.profile.float_bits
        return TargetType(kind=TargetKind.FLOAT, host="float", source=t.name, ctype=float_ctype(bits), bits=bits)

    def _map_enum(self, t: EnumRef) -> TargetType:
        host = self.enum_host_name(t.name)
        return TargetType(
            kind=TargetKind.ENUM, host=host, source=t.name, ctype="c_int64", bits=64,
            **self._enum_origin(t.name, host),
        )

    def _map_bitfield(self, t: BitfieldRef) -> TargetType:
        host = self.enum_host_name(t.name)
        return TargetType(
            kind=TargetKind.BITFIELD, host=host, source=t.name, ctype="c_int64", bits=64,
            **self._enum_origin(t.name, host),
        )

    def _enum_origin(self, name: str, host: str) -> Dict[str, object]:
        owner = name.rpartition(".")[0]
        if owner and self.registry.lookup_class(owner) is not None:
            return {"origin": Origin.CLASS, "symbol": owner}
        return {"origin": Origin.CORE, "symbol": host}

    def _map_core_value(self, t: CoreValueRef) -> TargetType:
        name = t.name
        if name in ("Nil", "Variant"):
            return TargetType(
                kind=TargetKind.VARIANT, host="Variant", source=name,
                origin=Origin.RUNTIME, symbol="Variant",
            )
        host = self.builtin_host_name(name)
        if name == "String":
            return TargetType(
                kind=TargetKind.STRING, host=host, source=name,
                origin=Origin.RUNTIME, symbol=host,
            )
        builtin = self.registry.lookup_builtin(name)
        is_struct = builtin is not None and builtin.is_struct
        return TargetType(
            kind=TargetKind.CORE_VALUE,
            host=host,
            source=name,
            origin=Origin.CORE if is_struct else Origin.RUNTIME,
            symbol=host,
            is_struct=is_struct,
        )


__all__ = [
    "ArgumentKind",
    "TargetKind",
    "Origin",
    "TargetType",
    "INT_META",
    "FLOAT_META",
    "BUILTIN_RENAMES",
    "ENUM_RENAMES",
    "ENUM_ZERO_MEMBERS",
    "VARIANT_TYPECODES",
    "VARIANT_OPERATORS",
    "int_ctype",
    "float_ctype",
    "builtin_typecode",
    "infix_operator",
    "TypeMapper",
]
