"""Shared fixtures: a trimmed extension_api.json document and the registry built from it."""

import copy
from typing import Any, Dict, List

import pytest

from extension_api_bindgen.class_generator import GenerationResult, generate_all
from extension_api_bindgen.default_values import DefaultValueSynthesizer
from extension_api_bindgen.parsing.schema_parser import build_registry
from extension_api_bindgen.registry import Registry
from extension_api_bindgen.type_mapping import TypeMapper

# ###############
# Schema Builders
# ###############


def _sizes(**overrides: int) -> List[Dict[str, Any]]:
    sizes = {
        "Nil": 0,
        "bool": 1,
        "int": 8,
        "float": 8,
        "String": 8,
        "StringName": 8,
        "Vector2": 8,
        "Vector2i": 8,
        "Color": 16,
        "Transform2D": 24,
        "Array": 8,
        "Dictionary": 8,
        "Callable": 16,
        "Object": 8,
        "Variant": 24,
    }
    sizes.update(overrides)
    return [{"name": name, "size": size} for name, size in sizes.items()]


def _offsets(real_meta: str, real_size: int) -> List[Dict[str, Any]]:
    vector2 = 2 * real_size
    return [
        {
            "name": "Vector2",
            "members": [
                {"member": "x", "offset": 0, "meta": real_meta},
                {"member": "y", "offset": real_size, "meta": real_meta},
            ],
        },
        {
            "name": "Vector2i",
            "members": [
                {"member": "x", "offset": 0, "meta": "int32"},
                {"member": "y", "offset": 4, "meta": "int32"},
            ],
        },
        {
            "name": "Color",
            "members": [
                {"member": "r", "offset": 0, "meta": "float"},
                {"member": "g", "offset": 4, "meta": "float"},
                {"member": "b", "offset": 8, "meta": "float"},
                {"member": "a", "offset": 12, "meta": "float"},
            ],
        },
        {
            "name": "Transform2D",
            "members": [
                {"member": "x", "offset": 0, "meta": "Vector2"},
                {"member": "y", "offset": vector2, "meta": "Vector2"},
                {"member": "origin", "offset": 2 * vector2, "meta": "Vector2"},
            ],
        },
    ]


def _method(name: str, hash_: int, args=(), ret=None, **flags: Any) -> Dict[str, Any]:
    m: Dict[str, Any] = {"name": name, "hash": hash_, "is_const": False, "is_static": False, "is_vararg": False}
    m["arguments"] = [dict(a) for a in args]
    if ret is not None:
        m["return_value"] = dict(ret)
    m.update(flags)
    return m


def _builtin_method(name: str, hash_: int, args=(), ret: Any = None, **flags: Any) -> Dict[str, Any]:
    m: Dict[str, Any] = {"name": name, "hash": hash_, "is_const": True, "is_static": False, "is_vararg": False}
    m["arguments"] = [dict(a) for a in args]
    if ret is not None:
        m["return_type"] = ret
    m.update(flags)
    return m


def _virtual(name: str, args=(), ret=None) -> Dict[str, Any]:
    m: Dict[str, Any] = {"name": name, "is_virtual": True, "is_const": False, "is_vararg": False}
    m["arguments"] = [dict(a) for a in args]
    if ret is not None:
        m["return_value"] = dict(ret)
    return m


def _arg(name: str, type_: str, **extra: Any) -> Dict[str, Any]:
    return {"name": name, "type": type_, **extra}


def _prop(name: str, type_: str, getter: str, setter: str = "", index: Any = None) -> Dict[str, Any]:
    p: Dict[str, Any] = {"name": name, "type": type_, "getter": getter}
    if setter:
        p["setter"] = setter
    if index is not None:
        p["index"] = index
    return p


def make_schema() -> Dict[str, Any]:
    return {
        "header": {
            "version_major": 4,
            "version_minor": 2,
            "version_patch": 1,
            "version_status": "stable",
            "version_build": "official",
            "version_full_name": "Godot Engine v4.2.1.stable.official",
        },
        "builtin_class_sizes": [
            {"build_configuration": "float_32", "sizes": _sizes(String=4, StringName=4, Array=4, Dictionary=4, Object=4)},
            {"build_configuration": "float_64", "sizes": _sizes()},
            {"build_configuration": "double_64", "sizes": _sizes(Vector2=16, Transform2D=48)},
        ],
        "builtin_class_member_offsets": [
            {"build_configuration": "float_32", "classes": _offsets("float", 4)},
            {"build_configuration": "float_64", "classes": _offsets("float", 4)},
            {"build_configuration": "double_64", "classes": _offsets("double", 8)},
        ],
        "global_constants": [],
        "global_enums": [
            {"name": "Side", "is_bitfield": False, "values": [
                {"name": "SIDE_LEFT", "value": 0},
                {"name": "SIDE_TOP", "value": 1},
                {"name": "SIDE_RIGHT", "value": 2},
                {"name": "SIDE_BOTTOM", "value": 3},
            ]},
            {"name": "Mode", "is_bitfield": False, "values": [
                {"name": "MODE_FILL", "value": 1},
                {"name": "MODE_LINE", "value": 2},
            ]},
            {"name": "KeyModifierMask", "is_bitfield": True, "values": [
                {"name": "KEY_CODE_MASK", "value": 8388607},
                {"name": "KEY_MASK_SHIFT", "value": 33554432},
            ]},
            {"name": "Error", "is_bitfield": False, "values": [
                {"name": "OK", "value": 0},
                {"name": "FAILED", "value": 1},
                {"name": "ERR_UNAVAILABLE", "value": 2},
            ]},
            {"name": "Variant.Type", "is_bitfield": False, "values": [
                {"name": "TYPE_NIL", "value": 0},
                {"name": "TYPE_BOOL", "value": 1},
            ]},
            {"name": "Variant.Operator", "is_bitfield": False, "values": [
                {"name": "OP_EQUAL", "value": 0},
                {"name": "OP_NOT_EQUAL", "value": 1},
            ]},
        ],
        "utility_functions": [
            {"name": "sin", "return_type": "float", "category": "math", "is_vararg": False, "hash": 2140049587,
             "arguments": [_arg("angle_rad", "float")]},
            {"name": "randi", "return_type": "int", "category": "random", "is_vararg": False, "hash": 701202648},
            {"name": "print", "category": "general", "is_vararg": True, "hash": 2648703342,
             "arguments": [_arg("arg1", "Variant")]},
            {"name": "instance_from_id", "return_type": "Object", "category": "general", "is_vararg": False,
             "hash": 1156694636, "arguments": [_arg("instance_id", "int")]},
        ],
        "builtin_classes": [
            {"name": "Nil", "constructors": [{"index": 0}], "has_destructor": False},
            {"name": "String", "has_destructor": True, "constructors": [{"index": 0}, {"index": 1}], "operators": [
                {"name": "==", "right_type": "String", "return_type": "bool"},
                {"name": "+", "right_type": "String", "return_type": "String"},
            ], "methods": [
                _builtin_method("length", 3173160232, ret="int"),
                _builtin_method("to_upper", 3942272618, ret="String"),
            ]},
            {"name": "StringName", "has_destructor": True, "constructors": [{"index": 0}]},
            {"name": "Vector2", "has_destructor": False, "constructors": [{"index": 0}, {"index": 1}],
             "members": [{"name": "x", "type": "float"}, {"name": "y", "type": "float"}],
             "operators": [
                 {"name": "+", "right_type": "Vector2", "return_type": "Vector2"},
                 {"name": "==", "right_type": "Vector2", "return_type": "bool"},
                 {"name": "unary-", "return_type": "Vector2"},
                 {"name": "and", "right_type": "Vector2", "return_type": "bool"},
             ],
             "enums": [{"name": "Axis", "values": [{"name": "AXIS_X", "value": 0}, {"name": "AXIS_Y", "value": 1}]}],
             "methods": [
                 _builtin_method("length", 466405837, ret="float"),
                 _builtin_method("normalized", 2428350749, ret="Vector2"),
                 _builtin_method("dot", 3819070308, [_arg("with", "Vector2")], ret="float"),
                 _builtin_method("max_axis_index", 3173160232, ret="enum::Vector2.Axis"),
                 _builtin_method("from_angle", 889263119, [_arg("angle", "float")], ret="Vector2", is_static=True),
             ]},
            {"name": "Vector2i", "has_destructor": False, "constructors": [{"index": 0}],
             "members": [{"name": "x", "type": "int"}, {"name": "y", "type": "int"}]},
            {"name": "Color", "has_destructor": False, "constructors": [{"index": 0}],
             "members": [{"name": n, "type": "float"} for n in ("r", "g", "b", "a")]},
            {"name": "Transform2D", "has_destructor": False, "constructors": [{"index": 0}],
             "members": [{"name": n, "type": "Vector2"} for n in ("x", "y", "origin")]},
            {"name": "Array", "has_destructor": True, "constructors": [{"index": 0}]},
            {"name": "Dictionary", "has_destructor": True, "constructors": [{"index": 0}]},
            {"name": "Callable", "has_destructor": True, "constructors": [{"index": 0}], "methods": [
                _builtin_method("call", 3643564216, ret="Variant", is_vararg=True),
                _builtin_method("get_object", 4008621732, ret="Object"),
            ]},
        ],
        "classes": [
            {"name": "Base", "inherits": "Object", "api_type": "core", "is_refcounted": False, "is_instantiable": True,
             "methods": [
                 _virtual("_update", [_arg("delta", "float", meta="double")]),
                 _method("get_circle", 3414218830, ret={"type": "Circle"}),
             ]},
            {"name": "Circle", "inherits": "Shape", "api_type": "core", "is_refcounted": True, "is_instantiable": True,
             "methods": [
                 _method("set_radius", 373806689, [_arg("radius", "float")]),
                 _method("get_radius", 1740695150, ret={"type": "float"}, is_const=True),
             ],
             "properties": [_prop("radius", "float", "get_radius", "set_radius")]},
            {"name": "Control", "inherits": "Node", "api_type": "core", "is_refcounted": False, "is_instantiable": True,
             "methods": [
                 _virtual("_has_point", [_arg("point", "Vector2")], {"type": "bool"}),
                 _virtual("_get_drag_data", [_arg("at_position", "Vector2")], {"type": "Variant"}),
                 _virtual("_make_custom_tooltip", [_arg("for_text", "String")], {"type": "Object"}),
                 _virtual("_gui_input", [_arg("event", "InputEvent")]),
                 _method("set_offset", 4290182280, [_arg("side", "enum::Side"), _arg("offset", "float")]),
                 _method("get_offset", 2869120046, [_arg("offset", "enum::Side")], {"type": "float"}, is_const=True),
                 _method("set_position", 2436320129,
                         [_arg("position", "Vector2"), _arg("keep_offsets", "bool", default_value="false")]),
                 _method("get_position", 3341600327, ret={"type": "Vector2"}, is_const=True),
                 _method("set_shortcut_mask", 3489634142, [_arg("mask", "bitfield::KeyModifierMask")]),
                 _method("get_shortcut_mask", 2961218211, ret={"type": "bitfield::KeyModifierMask"}, is_const=True),
                 _method("set_grow_axis", 2556004045, [_arg("axis", "enum::Vector2.Axis")]),
                 _method("get_grow_axis", 3027015467, ret={"type": "enum::Vector2.Axis"}, is_const=True),
             ],
             "properties": [
                 _prop("offset_left", "float", "get_offset", "set_offset", index=0),
                 _prop("offset_top", "float", "get_offset", "set_offset", index=1),
                 _prop("position", "Vector2", "get_position", "set_position"),
             ]},
            {"name": "Foo", "inherits": "Base", "api_type": "core", "is_refcounted": False, "is_instantiable": True,
             "methods": [
                 _method("bar", 1310167498, [_arg("x", "int", meta="int32")], {"type": "float"}),
                 _method("get_shape", 522090520, ret={"type": "Shape"}, is_const=True),
                 _method("create", 2121307411, [_arg("value", "int")], {"type": "Foo"}, is_static=True),
             ]},
            {"name": "InputEvent", "inherits": "Resource", "api_type": "core", "is_refcounted": True,
             "is_instantiable": False,
             "methods": [_method("is_pressed", 36873697, ret={"type": "bool"}, is_const=True)]},
            {"name": "Node", "inherits": "Object", "api_type": "core", "is_refcounted": False, "is_instantiable": True,
             "constants": [{"name": "NOTIFICATION_ENTER_TREE", "value": 10}],
             "enums": [
                 {"name": "ProcessMode", "is_bitfield": False, "values": [
                     {"name": "PROCESS_MODE_INHERIT", "value": 0},
                     {"name": "PROCESS_MODE_PAUSABLE", "value": 1},
                     {"name": "PROCESS_MODE_WHEN_PAUSED", "value": 2},
                     {"name": "PROCESS_MODE_ALWAYS", "value": 3},
                     {"name": "PROCESS_MODE_DISABLED", "value": 4},
                 ]},
                 {"name": "InternalMode", "is_bitfield": False, "values": [
                     {"name": "INTERNAL_MODE_DISABLED", "value": 0},
                     {"name": "INTERNAL_MODE_FRONT", "value": 1},
                     {"name": "INTERNAL_MODE_BACK", "value": 2},
                 ]},
             ],
             "methods": [
                 _virtual("_process", [_arg("delta", "float", meta="double")]),
                 _virtual("_ready"),
                 _virtual("_input", [_arg("event", "InputEvent")]),
                 _virtual("_get_accessibility_container_name", [_arg("node", "Node")], {"type": "String"}),
                 _method("add_child", 3863233950, [
                     _arg("node", "Node"),
                     _arg("force_readable_name", "bool", default_value="false"),
                     _arg("internal", "enum::Node.InternalMode", default_value="0"),
                 ]),
                 _method("get_child", 541253412,
                         [_arg("idx", "int", meta="int32"), _arg("include_internal", "bool", default_value="false")],
                         {"type": "Node"}, is_const=True),
                 _method("get_children", 873284517, [_arg("include_internal", "bool", default_value="false")],
                         {"type": "typedarray::Node"}, is_const=True),
                 _method("get_parent", 3160264692, ret={"type": "Node"}, is_const=True),
                 _method("set_name", 83702148, [_arg("name", "String")]),
                 _method("get_name", 2002593661, ret={"type": "StringName"}, is_const=True),
                 _method("set_owner", 1078189570, [_arg("owner", "Node")]),
                 _method("get_owner", 3160264692, ret={"type": "Node"}, is_const=True),
                 _method("set_process_mode", 1841290486, [_arg("mode", "enum::Node.ProcessMode")]),
                 _method("get_process_mode", 739966102, ret={"type": "enum::Node.ProcessMode"}, is_const=True),
                 _method("get_scene_file_path", 201670096, ret={"type": "String"}, is_const=True),
                 _method("rpc", 4047867050, [_arg("method", "StringName")], {"type": "enum::Error"}, is_vararg=True),
                 _method("set_native_data", 1286410249, [_arg("data", "const void*")]),
             ],
             "properties": [
                 _prop("name", "StringName", "get_name", "set_name"),
                 _prop("owner", "Node", "get_owner", "set_owner"),
                 _prop("process_mode", "int", "get_process_mode", "set_process_mode"),
                 _prop("scene_file_path", "String", "get_scene_file_path"),
                 _prop("editor_description", "String", "get_editor_description", "set_editor_description"),
                 _prop("_import_path", "NodePath", "_get_import_path", "_set_import_path"),
             ]},
            {"name": "Object", "api_type": "core", "is_refcounted": False, "is_instantiable": True,
             "constants": [
                 {"name": "NOTIFICATION_POSTINITIALIZE", "value": 0},
                 {"name": "NOTIFICATION_PREDELETE", "value": 1},
             ],
             "enums": [
                 {"name": "ConnectFlags", "is_bitfield": True, "values": [
                     {"name": "CONNECT_DEFERRED", "value": 1},
                     {"name": "CONNECT_PERSIST", "value": 2},
                 ]},
             ],
             "methods": [
                 _method("get_class", 201670096, ret={"type": "String"}, is_const=True),
                 _method("is_class", 3927539163, [_arg("class", "String")], {"type": "bool"}, is_const=True),
                 _method("get_instance_id", 3905245786, ret={"type": "int", "meta": "uint64"}, is_const=True),
                 _method("set_meta", 3776071444, [_arg("name", "StringName"), _arg("value", "Variant")]),
                 _method("get_meta", 3990617847,
                         [_arg("name", "StringName"), _arg("default", "Variant", default_value="null")],
                         {"type": "Variant"}, is_const=True),
                 _method("call", 3400424181, [_arg("method", "StringName")], {"type": "Variant"}, is_vararg=True),
             ]},
            {"name": "RefCounted", "inherits": "Object", "api_type": "core", "is_refcounted": True,
             "is_instantiable": True,
             "methods": [_method("reference", 2240911060, ret={"type": "bool"})]},
            {"name": "Resource", "inherits": "RefCounted", "api_type": "core", "is_refcounted": True,
             "is_instantiable": True,
             "methods": [
                 _method("set_path", 83702148, [_arg("path", "String")]),
                 _method("get_path", 201670096, ret={"type": "String"}, is_const=True),
             ],
             "properties": [_prop("resource_path", "String", "get_path", "set_path")]},
            {"name": "Shape", "inherits": "Resource", "api_type": "core", "is_refcounted": True,
             "is_instantiable": False,
             "methods": [
                 _virtual("_draw", [_arg("color", "enum::Mode")]),
                 _virtual("_apply_state", [_arg("state", "Dictionary")]),
                 _virtual("_collect", [_arg("shapes", "typedarray::Shape")]),
                 _virtual("_set_mask", [_arg("mask", "bitfield::KeyModifierMask")]),
                 _virtual("_get_rect", ret={"type": "Vector2"}),
                 _method("set_custom_solver_bias", 373806689, [_arg("bias", "float")]),
                 _method("get_custom_solver_bias", 1740695150, ret={"type": "float"}, is_const=True),
                 _method("get_frames", 3995934104, [_arg("frames", "AudioFrame*")]),
             ],
             "properties": [_prop("custom_solver_bias", "float", "get_custom_solver_bias", "set_custom_solver_bias")]},
            {"name": "VisualInstance3D", "inherits": "Node", "api_type": "core", "is_refcounted": False,
             "is_instantiable": True,
             "methods": [
                 _method("set_layer_mask", 1286410249, [_arg("mask", "int", meta="uint32")]),
                 _method("get_layer_mask", 3905245786, ret={"type": "int", "meta": "uint32"}, is_const=True),
                 _method("set_layer_mask_value", 300928843,
                         [_arg("layer_number", "int", meta="int32"), _arg("value", "bool")]),
                 _method("get_layer_mask_value", 1116898809, [_arg("layer_number", "int", meta="int32")],
                         {"type": "bool"}, is_const=True),
                 _method("get_blend", 3919944288, [_arg("from", "float"), _arg("to", "float")], {"type": "float"}),
                 _method("set_layer_mask_triple", 4023243586,
                         [_arg("a", "int"), _arg("b", "int"), _arg("c", "int")]),
                 _method("clear_layers", 3218959716),
                 _method("rpc_set", 4047867050, [_arg("mask", "int")], is_vararg=True),
             ],
             "properties": [
                 _prop("layers", "int", "get_layer_mask", "set_layer_mask"),
                 _prop("layer_1", "bool", "get_layer_mask_value", "set_layer_mask_value", index=1),
                 _prop("blend", "float", "get_blend", "set_layer_mask"),
                 _prop("triple", "int", "get_layer_mask", "set_layer_mask_triple"),
                 _prop("cleared", "int", "clear_layers", "set_layer_mask"),
                 _prop("broadcast", "int", "get_layer_mask", "rpc_set"),
             ]},
        ],
        "singletons": [],
        "native_structures": [
            {"name": "AudioFrame", "format": "float left;float right"},
        ],
    }


# ###############
# Fixtures
# ###############


@pytest.fixture
def schema() -> Dict[str, Any]:
    return copy.deepcopy(make_schema())


@pytest.fixture
def registry(schema: Dict[str, Any]) -> Registry:
    return build_registry(schema, "float_64")


@pytest.fixture
def mapper(registry: Registry) -> TypeMapper:
    return TypeMapper(registry)


@pytest.fixture
def defaults(mapper: TypeMapper) -> DefaultValueSynthesizer:
    return DefaultValueSynthesizer(mapper)


@pytest.fixture
def result(registry: Registry) -> GenerationResult:
    return generate_all(registry)
