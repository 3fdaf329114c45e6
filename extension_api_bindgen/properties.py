#!/usr/bin/env python3
"""
Property synthesis: engine properties become Python `property` objects.

A property is emitted only when both accessors exist on the class, have
usable arities, and can themselves be emitted. Accessors used by an emitted
property are reported back as the referenced-method set so the method
generator can hide bound accessors behind private names.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Set, Tuple

from .method_binding import accessor_name, target_requirements
from .models import ClassDef, Diagnostic, MethodDef, PropertyDef
from .registry import Registry
from .type_mapping import ArgumentKind, Origin, TargetKind, TargetType, TypeMapper

logger = logging.getLogger(__name__)

# Returns a reason when a method cannot be emitted, None otherwise.
EmittableCheck = Callable[[MethodDef], Optional[str]]


@dataclass(frozen=True)
class PropertyAccessor:
    owner: str
    prop: PropertyDef
    exposed_name: str
    target: TargetType
    getter: MethodDef
    setter: MethodDef
    getter_attr: str
    setter_attr: str
    index_expr: Optional[str] = None
    value_expr: str = "value"
    requires: FrozenSet[Tuple[Origin, str]] = field(default_factory=frozenset)

    @property
    def annotation(self) -> str:
        return self.target.annotation

    def getter_lines(self) -> List[str]:
        index = self.index_expr or ""
        return [f"return self.{self.getter_attr}({index})"]

    def setter_lines(self) -> List[str]:
        params = [self.value_expr] if self.index_expr is None else [self.index_expr, self.value_expr]
        return [f"self.{self.setter_attr}({', '.join(params)})"]


@dataclass
class PropertySet:
    accessors: List[PropertyAccessor] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    referenced: Set[str] = field(default_factory=set)


class PropertySynthesizer:

    def __init__(self, registry: Registry, mapper: Optional[TypeMapper] = None) -> None:
        self.registry = registry
        self.mapper = mapper or TypeMapper(registry)

    def synthesize(self, cls: ClassDef, emittable: Optional[EmittableCheck] = None) -> PropertySet:
        """
        Plan every property of `cls`. Skipped properties yield a diagnostic;
        nothing here is fatal.
        """
        result = PropertySet()
        accepted: List[Tuple[PropertyDef, MethodDef, MethodDef]] = []
        for prop in cls.properties:
            outcome = self._check(cls, prop, emittable)
            if isinstance(outcome, Diagnostic):
                logger.debug("Skipping property %s", outcome)
                result.diagnostics.append(outcome)
                continue
            getter, setter = outcome
            accepted.append((prop, getter, setter))
            result.referenced.update((getter.name, setter.name))

        for prop, getter, setter in accepted:
            result.accessors.append(self._accessor(cls, prop, getter, setter, result.referenced))
        return result

    # ---- Rules ----

    def _check(self, cls: ClassDef, prop: PropertyDef, emittable: Optional[EmittableCheck]):
        def skip(reason: str) -> Diagnostic:
            return Diagnostic(cls.name, prop.name, reason)

        if not prop.getter:
            return skip("property has no getter")
        if prop.getter.startswith("_"):
            return skip(f"getter '{prop.getter}' is not public")
        getter = cls.method(prop.getter)
        if getter is None:
            return skip(f"getter '{prop.getter}' not found")
        if not prop.setter:
            return skip("read-only property")
        setter = cls.method(prop.setter)
        if setter is None:
            return skip(f"setter '{prop.setter}' not found")
        if len(getter.arguments) > 1:
            return skip(f"getter '{getter.name}' takes {len(getter.arguments)} arguments")
        if len(setter.arguments) > 2:
            return skip(f"setter '{setter.name}' takes {len(setter.arguments)} arguments")
        if not getter.has_return:
            return skip(f"getter '{getter.name}' returns nothing")
        if emittable is not None:
            for m in (getter, setter):
                reason = emittable(m)
                if reason:
                    return skip(f"accessor '{m.name}' is not emitted ({reason})")
        return getter, setter

    def _accessor(
        self,
        cls: ClassDef,
        prop: PropertyDef,
        getter: MethodDef,
        setter: MethodDef,
        referenced: Set[str],
    ) -> PropertyAccessor:
        target = self.mapper.map_return(getter, ArgumentKind.CLASSES)
        requires = set(target_requirements(target))

        index_expr: Optional[str] = None
        if prop.index is not None and getter.arguments:
            index_target = self.mapper.map_argument(getter.arguments[0], ArgumentKind.CLASSES)
            if index_target.kind == TargetKind.INT:
                index_expr = str(prop.index)
            else:
                index_expr = f"{index_target.host}({prop.index})"
                requires |= target_requirements(index_target)

        value_expr = "value"
        if setter.arguments:
            value_target = self.mapper.map_argument(setter.arguments[-1], ArgumentKind.CLASSES)
            if target.source == "StringName" and value_target.kind == TargetKind.STRING:
                value_expr = "GString(str(value))"
                requires.add((Origin.RUNTIME, "GString"))
        requires.discard((Origin.CLASS, cls.name))

        return PropertyAccessor(
            owner=cls.name,
            prop=prop,
            exposed_name=prop.exposed_name,
            target=target,
            getter=getter,
            setter=setter,
            getter_attr=accessor_name(getter, referenced),
            setter_attr=accessor_name(setter, referenced),
            index_expr=index_expr,
            value_expr=value_expr,
            requires=frozenset(requires),
        )


__all__ = ["PropertyAccessor", "PropertySet", "PropertySynthesizer", "EmittableCheck"]
