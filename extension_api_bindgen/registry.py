#!/usr/bin/env python3
"""
The type registry: every lookup table the generators need, built once.

A `Registry` is constructed in a single phase from the parsed schema and is
read-only afterwards (mapping proxies, frozensets and tuples), so per-class
generation can run concurrently against it without locking.

Derived tables:
- class name -> ClassDef, builtin name -> BuiltinClassDef, enum name (global, Class.Enum, Builtin.Enum) -> EnumDef
- builtin byte sizes and member offsets for the selected build configuration
- the reference-type set: engine classes that cross the ABI as opaque handles
- the subclass index: classes that appear as some other class's parent
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import SchemaError
from .models import (
    BuiltinClassDef,
    ClassDef,
    EnumDef,
    MemberOffset,
    NativeStructureDef,
    UtilityFunctionDef,
)

logger = logging.getLogger(__name__)


# --------------------------
# Build configurations
# --------------------------

@dataclass(frozen=True)
class BuildProfile:
    """
    Integer/float width profile of a build configuration. Governs the default
    width of schema `int`/`float` values that carry no width metadata.
    """
    name: str
    int_bits: int
    float_bits: int
    pointer_bits: int


BUILD_PROFILES: Mapping[str, BuildProfile] = MappingProxyType({
    "float_32": BuildProfile("float_32", int_bits=32, float_bits=32, pointer_bits=32),
    "float_64": BuildProfile("float_64", int_bits=64, float_bits=64, pointer_bits=64),
    "double_32": BuildProfile("double_32", int_bits=32, float_bits=64, pointer_bits=32),
    "double_64": BuildProfile("double_64", int_bits=64, float_bits=64, pointer_bits=64),
})

DEFAULT_BUILD_CONFIGURATION = "float_64"


def resolve_profile(build_configuration: str) -> BuildProfile:
    try:
        return BUILD_PROFILES[build_configuration]
    except KeyError:
        raise SchemaError(
            f"Unknown build configuration '{build_configuration}' "
            f"(expected one of: {', '.join(sorted(BUILD_PROFILES))})"
        ) from None


# --------------------------
# Registry
# --------------------------

@dataclass(frozen=True)
class Registry:
    """
    Immutable view of the bound API for one build configuration.

    Build with `Registry.build(...)` (the schema parser does this); never
    construct the lookup tables by hand.
    """
    profile: BuildProfile
    classes: Tuple[ClassDef, ...]
    builtin_classes: Tuple[BuiltinClassDef, ...]
    global_enums: Tuple[EnumDef, ...]
    utility_functions: Tuple[UtilityFunctionDef, ...]
    native_structures: Tuple[NativeStructureDef, ...]
    header: Mapping[str, object]
    _class_map: Mapping[str, ClassDef]
    _builtin_map: Mapping[str, BuiltinClassDef]
    _enum_map: Mapping[str, EnumDef]
    _builtin_sizes: Mapping[str, int]
    _member_offsets: Mapping[str, Tuple[MemberOffset, ...]]
    _core_value_names: FrozenSet[str]
    _reference_types: FrozenSet[str]
    _subclassed: FrozenSet[str]

    @staticmethod
    def build(
        *,
        build_configuration: str,
        classes: Sequence[ClassDef],
        builtin_classes: Sequence[BuiltinClassDef],
        builtin_sizes: Mapping[str, int],
        member_offsets: Optional[Mapping[str, Sequence[MemberOffset]]] = None,
        global_enums: Sequence[EnumDef] = (),
        utility_functions: Sequence[UtilityFunctionDef] = (),
        native_structures: Sequence[NativeStructureDef] = (),
        header: Optional[Mapping[str, object]] = None,
    ) -> "Registry":
        profile = resolve_profile(build_configuration)

        class_map: Dict[str, ClassDef] = {}
        for cdef in classes:
            if cdef.name in class_map:
                raise SchemaError(f"Duplicate class name '{cdef.name}'")
            class_map[cdef.name] = cdef

        subclassed = set()
        for cdef in classes:
            if not cdef.inherits:
                continue
            if cdef.inherits not in class_map:
                raise SchemaError(f"Class '{cdef.name}' inherits unknown class '{cdef.inherits}'")
            subclassed.add(cdef.inherits)

        builtin_map = {b.name: b for b in builtin_classes}
        core_value_names = frozenset(builtin_map) | (frozenset(builtin_sizes) - frozenset(class_map))
        reference_types = frozenset(name for name in class_map if name not in core_value_names)

        enum_map: Dict[str, EnumDef] = {}
        for e in global_enums:
            enum_map[e.name] = e
        for cdef in classes:
            for e in cdef.enums:
                enum_map[f"{cdef.name}.{e.name}"] = e
        for b in builtin_classes:
            for e in b.enums:
                enum_map.setdefault(f"{b.name}.{e.name}", e)

        registry = Registry(
            profile=profile,
            classes=tuple(classes),
            builtin_classes=tuple(builtin_classes),
            global_enums=tuple(global_enums),
            utility_functions=tuple(utility_functions),
            native_structures=tuple(native_structures),
            header=MappingProxyType(dict(header or {})),
            _class_map=MappingProxyType(class_map),
            _builtin_map=MappingProxyType(builtin_map),
            _enum_map=MappingProxyType(enum_map),
            _builtin_sizes=MappingProxyType(dict(builtin_sizes)),
            _member_offsets=MappingProxyType({k: tuple(v) for k, v in (member_offsets or {}).items()}),
            _core_value_names=core_value_names,
            _reference_types=reference_types,
            _subclassed=frozenset(subclassed),
        )
        # Inheritance must be acyclic; walking every chain once proves it.
        for cdef in classes:
            registry.ancestors(cdef.name)

        logger.debug(
            "Registry built for %s: %d classes, %d builtins, %d global enums",
            profile.name, len(class_map), len(builtin_map), len(global_enums),
        )
        return registry

    # ---- Lookups ----

    @property
    def build_configuration(self) -> str:
        return self.profile.name

    def lookup_class(self, name: str) -> Optional[ClassDef]:
        return self._class_map.get(name)

    def lookup_builtin(self, name: str) -> Optional[BuiltinClassDef]:
        return self._builtin_map.get(name)

    def lookup_enum(self, name: str) -> Optional[EnumDef]:
        return self._enum_map.get(name)

    def is_reference_type(self, name: str) -> bool:
        return name in self._reference_types

    def is_core_value(self, name: str) -> bool:
        return name in self._core_value_names

    def has_subclasses(self, name: str) -> bool:
        return name in self._subclassed

    def builtin_byte_size(self, name: str) -> Optional[int]:
        return self._builtin_sizes.get(name)

    def builtin_member_offsets(self, name: str) -> Tuple[MemberOffset, ...]:
        return self._member_offsets.get(name, ())

    @property
    def builtin_size_names(self) -> Iterable[str]:
        return self._builtin_sizes.keys()

    def ancestors(self, name: str) -> List[str]:
        """
        Parent chain of a class, nearest first. Raises SchemaError on cycles.
        """
        chain: List[str] = []
        seen = {name}
        cur = self._class_map.get(name)
        while cur is not None and cur.inherits:
            if cur.inherits in seen:
                raise SchemaError(f"Inheritance cycle through '{cur.inherits}'")
            seen.add(cur.inherits)
            chain.append(cur.inherits)
            cur = self._class_map.get(cur.inherits)
        return chain

    def classes_parent_first(self) -> List[ClassDef]:
        """
        Classes ordered so that every parent precedes its children, keeping
        declaration order otherwise.
        """
        ordered: List[ClassDef] = []
        placed: Set[str] = set()

        def place(cdef: ClassDef) -> None:
            if cdef.name in placed:
                return
            if cdef.inherits:
                place(self._class_map[cdef.inherits])
            placed.add(cdef.name)
            ordered.append(cdef)

        for cdef in self.classes:
            place(cdef)
        return ordered


__all__ = [
    "BuildProfile",
    "BUILD_PROFILES",
    "DEFAULT_BUILD_CONFIGURATION",
    "resolve_profile",
    "Registry",
]
