#!/usr/bin/env python3
"""
Zero/placeholder values for every schema type.

The synthesizer produces Python expressions (as source text) used for:
- initializing return storage before a call writes into it
- the bodies of overridable virtual methods that were not overridden
- placeholder objects built through the fast (non-registering) constructor
"""

from __future__ import annotations

import logging

from .models import (
    BitfieldRef,
    CoreValueRef,
    EnumRef,
    ObjectRef,
    PointerRef,
    PrimitiveRef,
    TypedArrayRef,
    TypeRef,
)
from .type_mapping import ENUM_RENAMES, ENUM_ZERO_MEMBERS, TypeMapper
from .utils import sanitize_identifier

logger = logging.getLogger(__name__)


class DefaultValueSynthesizer:
    """
    Total over TypeRef; never raises for a type the mapper accepts.
    """

    def __init__(self, mapper: TypeMapper) -> None:
        self.mapper = mapper
        self.registry = mapper.registry

    def default_value(self, type_ref: TypeRef) -> str:
        if isinstance(type_ref, PrimitiveRef):
            if type_ref.name == "int":
                return "0"
            if type_ref.name in ("float", "real"):
                return "0.0"
            if type_ref.name == "bool":
                return "False"
            return "None"
        if isinstance(type_ref, EnumRef):
            return self._enum_default(type_ref.name)
        if isinstance(type_ref, BitfieldRef):
            return f"{self.mapper.enum_host_name(type_ref.name)}(0)"
        if isinstance(type_ref, TypedArrayRef):
            element = self.mapper.map_type(type_ref.element)
            return f"GodotCollection({element.host})"
        if isinstance(type_ref, ObjectRef):
            return f"{type_ref.name}(fast=True)"
        if isinstance(type_ref, CoreValueRef):
            if type_ref.name in ("Nil", "Variant"):
                return "Variant()"
            return f"{self.mapper.builtin_host_name(type_ref.name)}()"
        if isinstance(type_ref, PointerRef):
            return "None"
        return "None"

    def _enum_default(self, name: str) -> str:
        if name in ENUM_ZERO_MEMBERS:
            return f"{ENUM_RENAMES[name]}.{ENUM_ZERO_MEMBERS[name]}"
        host = self.mapper.enum_host_name(name)
        edef = self.registry.lookup_enum(name)
        if edef is None or not edef.values or any(v.value == 0 for v in edef.values):
            return f"{host}(0)"
        # IntEnum rejects undeclared values; fall back to the first declared member.
        first = sanitize_identifier(edef.values[0].name)
        logger.debug("Enum %s has no zero member; defaulting to %s", name, first)
        return f"{host}.{first}"


__all__ = ["DefaultValueSynthesizer"]
