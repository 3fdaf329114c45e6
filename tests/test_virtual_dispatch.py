"""Tests for virtual method trampolines and dispatch tables."""

from typing import Dict

import pytest

from extension_api_bindgen.class_generator import GenerationResult
from extension_api_bindgen.models import Diagnostic
from extension_api_bindgen.registry import Registry
from extension_api_bindgen.type_mapping import Origin
from extension_api_bindgen.virtual_dispatch import (
    DispatchTable,
    TrampolinePlan,
    VirtualDispatchGenerator,
    resolve_dispatch,
)

# ###############
# Helpers
# ###############


@pytest.fixture
def generator(registry: Registry) -> VirtualDispatchGenerator:
    return VirtualDispatchGenerator(registry)


def accept(registry: Registry, generator: VirtualDispatchGenerator, owner: str, name: str):
    cls = registry.lookup_class(owner)
    return generator.accept(cls, cls.method(name))


# ###############
# Rejection
# ###############


@pytest.mark.parametrize(
    "owner, name, reason",
    [
        ("Shape", "_draw", "enum"),
        ("Shape", "_set_mask", "bitfield"),
        ("Shape", "_collect", "typed array"),
        ("Shape", "_apply_state", "dictionary"),
        ("Control", "_make_custom_tooltip", "string"),
    ],
)
def test_unsupported_virtual_arguments_are_rejected(registry: Registry, generator: VirtualDispatchGenerator,
                                                    owner: str, name: str, reason: str) -> None:
    outcome = accept(registry, generator, owner, name)
    assert isinstance(outcome, Diagnostic)
    assert (outcome.owner, outcome.member) == (owner, name)
    assert reason in outcome.reason


def test_scenario_shape_draw_has_no_dispatch_entry(result: GenerationResult) -> None:
    """Shape._draw(color: enum::Mode) is rejected with a diagnostic and absent from Shape's dispatcher."""
    plan = result.plan("Shape")
    assert plan.dispatch.lookup("_draw") is None
    assert any(d.member == "_draw" and "enum" in d.reason for d in plan.diagnostics)
    assert "_draw" not in [v.method.name for v in plan.virtuals]


# ###############
# Trampolines
# ###############


def test_scalar_argument_unmarshalling(registry: Registry, generator: VirtualDispatchGenerator) -> None:
    plan = accept(registry, generator, "Node", "_process")
    assert isinstance(plan, TrampolinePlan)
    assert plan.proxy_name == "_Node_proxy__process"
    assert plan.args[0].lines == (
        "delta = SlotBuffer.at(_slots[0], ctypes.sizeof(ctypes.c_double)).load(ctypes.c_double)",
    )
    assert plan.base_body_lines() == ["pass"]
    assert plan.parameter_list == "self, delta: float"
    assert plan.proxy_lines() == [
        "def _Node_proxy__process(instance, args, ret_ptr):",
        "    if not instance:",
        "        return",
        "    target = instance_from_handle(instance)",
        "    if target is None:",
        "        return",
        "    _slots = slot_addresses(args, 1)",
        "    delta = SlotBuffer.at(_slots[0], ctypes.sizeof(ctypes.c_double)).load(ctypes.c_double)",
        "    target._process(delta)",
    ]


def test_no_argument_proxy_skips_slot_lookup(registry: Registry, generator: VirtualDispatchGenerator) -> None:
    plan = accept(registry, generator, "Node", "_ready")
    assert not any("slot_addresses" in ln for ln in plan.proxy_lines())
    assert plan.proxy_lines()[-1] == "    target._ready()"


def test_object_argument_prefers_live_object(registry: Registry, generator: VirtualDispatchGenerator) -> None:
    plan = accept(registry, generator, "Node", "_input")
    assert plan.args[0].lines == (
        "_handle_event = SlotBuffer.at(_slots[0], POINTER_SIZE).load(ctypes.c_void_p)",
        "event = (lookup_live_object(_handle_event) or InputEvent(native_handle=_handle_event)) "
        "if _handle_event else None",
    )
    assert (Origin.CLASS, "InputEvent") in plan.requires
    assert (Origin.RUNTIME, "lookup_live_object") in plan.requires


def test_struct_argument_and_bool_return(registry: Registry, generator: VirtualDispatchGenerator) -> None:
    plan = accept(registry, generator, "Control", "_has_point")
    assert plan.args[0].lines == ("point = SlotBuffer.at(_slots[0], 8).load(Vector2)",)
    assert plan.store_lines == ("SlotBuffer.at(ret_ptr, ctypes.sizeof(ctypes.c_bool)).store(result, ctypes.c_bool)",)
    assert plan.base_body_lines() == ["return False"]


def test_handle_backed_return_writes_content(registry: Registry, generator: VirtualDispatchGenerator) -> None:
    drag = accept(registry, generator, "Control", "_get_drag_data")
    assert drag.store_lines == ("SlotBuffer.at(ret_ptr, 24).write(bytes(result.content))",)
    assert drag.base_body_lines() == ["return Variant()"]

    name = accept(registry, generator, "Node", "_get_accessibility_container_name")
    assert name.store_lines == ("SlotBuffer.at(ret_ptr, 8).write(bytes(result.content))",)
    assert (Origin.RUNTIME, "GString") in name.requires
    assert (Origin.CLASS, "Node") not in name.requires


def test_struct_return_stores_by_value(registry: Registry, generator: VirtualDispatchGenerator) -> None:
    plan = accept(registry, generator, "Shape", "_get_rect")
    assert plan.store_lines == ("SlotBuffer.at(ret_ptr, 8).store(result)",)
    assert plan.proxy_lines()[-2] == "    result = target._get_rect()"


# ###############
# Dispatch Resolution
# ###############


def test_dispatch_table_holds_own_entries(result: GenerationResult) -> None:
    table = result.plan("Node").dispatch
    assert isinstance(table, DispatchTable)
    assert table.table_name == "_Node_virtuals"
    assert set(table.entries) == {"_process", "_ready", "_input", "_get_accessibility_container_name"}
    assert table.parent == "Object"


@pytest.mark.parametrize(
    "cls, method, owner",
    [
        ("Node", "_process", "Node"),
        ("Control", "_process", "Node"),
        ("VisualInstance3D", "_ready", "Node"),
        ("Control", "_has_point", "Control"),
        ("Foo", "_update", "Base"),
        ("Circle", "_get_rect", "Shape"),
    ],
)
def test_resolve_dispatch_walks_ancestors(registry: Registry, result: GenerationResult,
                                          cls: str, method: str, owner: str) -> None:
    tables: Dict[str, DispatchTable] = result.dispatch_tables
    plan = resolve_dispatch(registry, tables, cls, method)
    assert plan is not None
    assert plan.owner == owner


@pytest.mark.parametrize(
    "cls, method",
    [("Circle", "_draw"), ("Object", "_process"), ("Control", "_make_custom_tooltip"), ("Node", "_unknown")],
)
def test_resolve_dispatch_misses(registry: Registry, result: GenerationResult, cls: str, method: str) -> None:
    assert resolve_dispatch(registry, result.dispatch_tables, cls, method) is None
