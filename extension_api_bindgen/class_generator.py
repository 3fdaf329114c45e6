#!/usr/bin/env python3
"""
Per-class generation: turns one ClassDef into a ClassPlan.

Generation runs in two phases:
1. The registry is built (single-threaded, see parsing.schema_parser).
2. Every class is planned independently against the read-only registry.
   Classes share nothing mutable, so phase 2 fans out over a thread pool.

Recoverable problems (unsupported methods, unusable properties) become
diagnostics on the class plan. Fatal errors (MappingError, SchemaError)
propagate out of `generate_all` and abort the run.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Union

from .default_values import DefaultValueSynthesizer
from .method_binding import MethodBinding, MethodBindingGenerator
from .models import BuiltinClassDef, ClassDef, Diagnostic, MethodDef
from .properties import PropertyAccessor, PropertySynthesizer
from .registry import Registry
from .type_mapping import Origin, TypeMapper
from .virtual_dispatch import DispatchTable, TrampolinePlan, VirtualDispatchGenerator

logger = logging.getLogger(__name__)

Member = Union[MethodBinding, TrampolinePlan]


@dataclass(frozen=True)
class ClassGeneratorConfig:
    """
    Knobs for per-class planning.
    """
    emit_properties: bool = True
    emit_virtuals: bool = True
    jobs: int = 1


@dataclass
class ClassPlan:
    cls: ClassDef
    properties: List[PropertyAccessor] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)
    dispatch: Optional[DispatchTable] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.cls.name

    @property
    def parent(self) -> Optional[str]:
        return self.cls.inherits

    @property
    def bindings(self) -> List[MethodBinding]:
        return [m for m in self.members if isinstance(m, MethodBinding)]

    @property
    def virtuals(self) -> List[TrampolinePlan]:
        return [m for m in self.members if isinstance(m, TrampolinePlan)]

    def requires(self) -> Set[Tuple[Origin, str]]:
        out: Set[Tuple[Origin, str]] = set()
        for m in self.members:
            out |= m.requires
        for p in self.properties:
            out |= p.requires
        return out

    def class_refs(self) -> List[str]:
        """Other engine classes referenced from method bodies."""
        skip = {self.name, self.parent}
        return sorted(sym for origin, sym in self.requires() if origin == Origin.CLASS and sym not in skip)


@dataclass
class BuiltinPlan:
    """Bound methods of one builtin value type."""
    builtin: BuiltinClassDef
    bindings: List[MethodBinding] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.builtin.name

    @property
    def holder(self) -> str:
        return self.bindings[0].holder if self.bindings else ""

    def requires(self) -> Set[Tuple[Origin, str]]:
        out: Set[Tuple[Origin, str]] = set()
        for b in self.bindings:
            out |= b.requires
        return out


@dataclass
class GenerationResult:
    registry: Registry
    plans: List[ClassPlan]
    utilities: List[MethodBinding]
    diagnostics: List[Diagnostic]
    builtins: List[BuiltinPlan] = field(default_factory=list)

    @property
    def dispatch_tables(self) -> Dict[str, DispatchTable]:
        return {p.name: p.dispatch for p in self.plans if p.dispatch is not None}

    def plan(self, name: str) -> Optional[ClassPlan]:
        for p in self.plans:
            if p.name == name:
                return p
        return None


class ClassGenerator:

    def __init__(self, registry: Registry, config: Optional[ClassGeneratorConfig] = None) -> None:
        self.registry = registry
        self.config = config or ClassGeneratorConfig()
        self.mapper = TypeMapper(registry)
        self.defaults = DefaultValueSynthesizer(self.mapper)
        self.bindings = MethodBindingGenerator(registry, self.mapper, self.defaults)
        self.virtuals = VirtualDispatchGenerator(registry, self.mapper, self.defaults)
        self.properties = PropertySynthesizer(registry, self.mapper)

    # ---- Public API ----

    def generate(self, cls: ClassDef) -> ClassPlan:
        plan = ClassPlan(cls=cls)

        # Properties first: they decide which accessors are hidden.
        referenced: Set[str] = set()
        if self.config.emit_properties:
            props = self.properties.synthesize(cls, emittable=self._emittable)
            plan.properties = props.accessors
            plan.diagnostics.extend(props.diagnostics)
            referenced = props.referenced

        for method in cls.methods:
            if method.is_bound:
                binding = self.bindings.generate(cls, method, referenced)
                if binding.supported:
                    plan.members.append(binding)
                else:
                    plan.diagnostics.append(Diagnostic(cls.name, method.name, binding.reason or "unsupported"))
            elif self.config.emit_virtuals:
                outcome = self.virtuals.accept(cls, method)
                if isinstance(outcome, Diagnostic):
                    plan.diagnostics.append(outcome)
                else:
                    plan.members.append(outcome)

        plan.dispatch = self.virtuals.dispatch_table(cls, plan.virtuals)
        for d in plan.diagnostics:
            logger.warning("%s", d)
        logger.debug(
            "Planned %s: %d method(s), %d virtual(s), %d propert(ies), %d skipped",
            cls.name, len(plan.bindings), len(plan.virtuals), len(plan.properties), len(plan.diagnostics),
        )
        return plan

    def generate_utilities(self) -> Tuple[List[MethodBinding], List[Diagnostic]]:
        out: List[MethodBinding] = []
        diags: List[Diagnostic] = []
        for fn in self.registry.utility_functions:
            binding = self.bindings.generate_utility(fn)
            if binding.supported:
                out.append(binding)
            else:
                diag = Diagnostic("utility", fn.name, binding.reason or "unsupported")
                logger.warning("%s", diag)
                diags.append(diag)
        return out, diags

    def generate_builtin(self, builtin: BuiltinClassDef) -> BuiltinPlan:
        plan = BuiltinPlan(builtin=builtin)
        fields = {m.name for m in builtin.members}
        for method in builtin.methods:
            binding = self.bindings.generate_builtin(builtin, method)
            if not binding.supported:
                plan.diagnostics.append(Diagnostic(builtin.name, method.name, binding.reason or "unsupported"))
            elif binding.exposed_name in fields:
                plan.diagnostics.append(Diagnostic(builtin.name, method.name, "name clashes with a struct field"))
            else:
                plan.bindings.append(binding)
        for d in plan.diagnostics:
            logger.warning("%s", d)
        return plan

    def generate_builtins(self) -> List[BuiltinPlan]:
        """Plans for every builtin that has a size in the active configuration and declares methods."""
        return [
            self.generate_builtin(b)
            for b in self.registry.builtin_classes
            if b.methods and self.registry.builtin_byte_size(b.name) is not None
        ]

    # ---- Internals ----

    def _emittable(self, method: MethodDef) -> Optional[str]:
        if method.is_bound:
            return self.bindings.unsupported_reason(method)
        if not self.config.emit_virtuals:
            return "virtual methods are disabled"
        return self.virtuals.rejection(method)


def generate_all(registry: Registry, config: Optional[ClassGeneratorConfig] = None) -> GenerationResult:
    """
    Plan every class (in declaration order), every utility function and
    the methods of every builtin value type.
    """
    config = config or ClassGeneratorConfig()
    generator = ClassGenerator(registry, config)
    classes = list(registry.classes)

    if config.jobs > 1 and len(classes) > 1:
        with concurrent.futures.ThreadPoolExecutor(max_workers=config.jobs) as executor:
            futures = [executor.submit(generator.generate, c) for c in classes]
            plans = [f.result() for f in futures]
    else:
        plans = [generator.generate(c) for c in classes]

    utilities, utility_diags = generator.generate_utilities()
    builtins = generator.generate_builtins()
    diagnostics = [d for p in plans for d in p.diagnostics] + utility_diags
    diagnostics += [d for b in builtins for d in b.diagnostics]
    logger.info(
        "Planned %d class(es), %d utility function(s) and %d builtin method(s); %d member(s) skipped",
        len(plans), len(utilities), sum(len(b.bindings) for b in builtins), len(diagnostics),
    )
    return GenerationResult(
        registry=registry, plans=plans, utilities=utilities, diagnostics=diagnostics, builtins=builtins,
    )


__all__ = [
    "ClassGeneratorConfig",
    "ClassPlan",
    "BuiltinPlan",
    "GenerationResult",
    "ClassGenerator",
    "generate_all",
]
