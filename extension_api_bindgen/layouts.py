#!/usr/bin/env python3
"""
Fixed-layout builtin value types (Vector2, Color, Transform3D, ...).

Layouts come from `builtin_class_member_offsets` for the active build
configuration; those offsets and width metadata are authoritative. When a
builtin has no offset table, its declared members are laid out
sequentially using builtin-field widths. Builtins without members are
opaque byte storage of their declared size.

A layout is turned into either:
- a `ctypes.Structure` subclass (`ValueLayouts.struct_type`), used by tests
  and tooling to check default values against the declared size, or
- declaration lines for the generated core definitions module.

Both paths insert explicit padding and verify the result against the
declared byte size; a mismatch raises `LayoutError`.
"""

from __future__ import annotations

import ctypes
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type

from .errors import LayoutError
from .models import PRIMITIVE_TYPE_NAMES, PrimitiveRef
from .registry import Registry
from .type_mapping import INT_META, ArgumentKind, TypeMapper, float_ctype, int_ctype

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayoutField:
    name: str
    offset: int
    size: int
    ctype: Optional[str] = None   # scalar ctypes name, e.g. 'c_float'
    nested: Optional[str] = None  # schema name of a nested value type


@dataclass(frozen=True)
class ValueLayout:
    name: str
    host: str
    size: int
    fields: Tuple[LayoutField, ...] = ()

    @property
    def is_opaque(self) -> bool:
        return not self.fields

    def field_specs(self) -> List[Tuple[str, str, object]]:
        """
        Ordered ('name', kind, payload) entries covering every byte of the
        layout, with kind in {'scalar', 'nested', 'bytes'}.
        """
        if self.is_opaque:
            return [("_opaque", "bytes", self.size)] if self.size else []
        specs: List[Tuple[str, str, object]] = []
        cursor = 0
        for f in sorted(self.fields, key=lambda x: x.offset):
            if f.offset < cursor:
                raise LayoutError(f"{self.name}.{f.name}: overlaps previous member at offset {f.offset}")
            if f.offset > cursor:
                specs.append((f"_pad{cursor}", "bytes", f.offset - cursor))
            if f.ctype is not None:
                specs.append((f.name, "scalar", f.ctype))
            else:
                specs.append((f.name, "nested", f.nested))
            cursor = f.offset + f.size
        if cursor > self.size:
            raise LayoutError(f"{self.name}: members span {cursor} bytes, declared size is {self.size}")
        if cursor < self.size:
            specs.append((f"_pad{cursor}", "bytes", self.size - cursor))
        return specs


class ValueLayouts:
    """
    Layout builder for one registry. Results are cached per instance; use
    one instance per thread (the emitter builds core definitions on a single
    thread).
    """

    def __init__(self, registry: Registry, mapper: Optional[TypeMapper] = None) -> None:
        self.registry = registry
        self.mapper = mapper or TypeMapper(registry)
        self._layouts: Dict[str, ValueLayout] = {}
        self._types: Dict[str, Type[ctypes.Structure]] = {}

    # ---- Layouts ----

    def layout(self, name: str) -> ValueLayout:
        cached = self._layouts.get(name)
        if cached is not None:
            return cached
        size = self.registry.builtin_byte_size(name)
        if size is None:
            raise LayoutError(f"No declared byte size for builtin '{name}' in {self.registry.build_configuration}")

        offsets = self.registry.builtin_member_offsets(name)
        builtin = self.registry.lookup_builtin(name)
        if offsets:
            fields = tuple(self._field_from_meta(name, o.member, o.offset, o.meta) for o in offsets)
        elif builtin is not None and builtin.is_struct:
            fields = self._sequential_fields(name, builtin.members)
        else:
            fields = ()

        result = ValueLayout(name=name, host=self.mapper.builtin_host_name(name), size=size, fields=fields)
        result.field_specs()
        self._layouts[name] = result
        return result

    def struct_layouts(self) -> List[ValueLayout]:
        """
        Layouts of every builtin with members, nested types first.
        """
        ordered: List[ValueLayout] = []
        placed = set()

        def place(name: str) -> None:
            if name in placed:
                return
            placed.add(name)
            lay = self.layout(name)
            for f in lay.fields:
                if f.nested:
                    place(f.nested)
            ordered.append(lay)

        for b in self.registry.builtin_classes:
            if b.is_struct and self.registry.builtin_byte_size(b.name) is not None:
                place(b.name)
        return ordered

    # ---- ctypes ----

    def struct_type(self, name: str) -> Type[ctypes.Structure]:
        cached = self._types.get(name)
        if cached is not None:
            return cached
        lay = self.layout(name)
        fields: List[Tuple[str, object]] = []
        for fname, kind, payload in lay.field_specs():
            if kind == "scalar":
                fields.append((fname, getattr(ctypes, payload)))
            elif kind == "nested":
                fields.append((fname, self.struct_type(payload)))
            else:
                fields.append((fname, ctypes.c_uint8 * payload))
        struct = type(lay.host, (ctypes.Structure,), {"_fields_": fields})
        if ctypes.sizeof(struct) != lay.size:
            raise LayoutError(f"{name}: ctypes size {ctypes.sizeof(struct)} != declared size {lay.size}")
        for f in lay.fields:
            if getattr(struct, f.name).offset != f.offset:
                raise LayoutError(f"{name}.{f.name}: misaligned member at offset {f.offset}")
        self._types[name] = struct
        return struct

    def declaration_fields(self, name: str) -> List[Tuple[str, str]]:
        """('name', ctypes expression) pairs for the generated `_fields_` list."""
        out: List[Tuple[str, str]] = []
        for fname, kind, payload in self.layout(name).field_specs():
            if kind == "scalar":
                out.append((fname, f"ctypes.{payload}"))
            elif kind == "nested":
                out.append((fname, self.mapper.builtin_host_name(payload)))
            else:
                out.append((fname, f"ctypes.c_uint8 * {payload}"))
        return out

    # ---- Field construction ----

    def _field_from_meta(self, owner: str, member: str, offset: int, meta: str) -> LayoutField:
        if meta in INT_META:
            bits, signed = INT_META[meta]
            return LayoutField(member, offset, bits // 8, ctype=int_ctype(bits, signed))
        if meta == "float":
            return LayoutField(member, offset, 4, ctype=float_ctype(32))
        if meta == "double":
            return LayoutField(member, offset, 8, ctype=float_ctype(64))
        nested_size = self.registry.builtin_byte_size(meta)
        if nested_size is None:
            raise LayoutError(f"{owner}.{member}: unknown member metadata '{meta}'")
        return LayoutField(member, offset, nested_size, nested=meta)

    def _sequential_fields(self, owner: str, members) -> Tuple[LayoutField, ...]:
        fields: List[LayoutField] = []
        offset = 0
        for m in members:
            if m.type in PRIMITIVE_TYPE_NAMES:
                target = self.mapper.map_type(PrimitiveRef(m.type), None, ArgumentKind.BUILTIN_FIELD)
                size = ctypes.sizeof(getattr(ctypes, target.ctype))
                fields.append(LayoutField(m.name, offset, size, ctype=target.ctype))
            else:
                size = self.registry.builtin_byte_size(m.type)
                if size is None:
                    raise LayoutError(f"{owner}.{m.name}: unknown member type '{m.type}'")
                fields.append(LayoutField(m.name, offset, size, nested=m.type))
            offset += size
        return tuple(fields)


__all__ = ["LayoutField", "ValueLayout", "ValueLayouts"]
