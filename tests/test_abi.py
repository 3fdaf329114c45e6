"""Tests for the runtime ABI helpers shipped with generated bindings."""

import ctypes
import sys
import threading
from typing import List, Tuple

import pytest

from extension_api_bindgen.abi import POINTER_SIZE, LazyBinding, SlotBuffer, slot_addresses
from extension_api_bindgen.errors import AbiError


class Pair(ctypes.Structure):
    _fields_ = [("a", ctypes.c_int32), ("b", ctypes.c_int32)]


# ###############
# SlotBuffer
# ###############


def test_read_write_within_capacity() -> None:
    buf = bytearray(8)
    slot = SlotBuffer(buf)
    slot.write(b"\x01\x02", offset=2)
    assert slot.capacity == 8
    assert slot.read(2, offset=2) == b"\x01\x02"
    assert bytes(buf) == b"\x00\x00\x01\x02\x00\x00\x00\x00"
    assert slot.read(offset=6) == b"\x00\x00"


@pytest.mark.parametrize("size, offset", [(9, 0), (1, 8), (4, -1)])
def test_out_of_bounds_reads_raise(size: int, offset: int) -> None:
    with pytest.raises(AbiError):
        SlotBuffer(bytearray(8)).read(size, offset=offset)


def test_oversized_write_raises_and_leaves_memory_untouched() -> None:
    buf = bytearray(4)
    with pytest.raises(AbiError):
        SlotBuffer(buf).write(b"\xff" * 5)
    assert bytes(buf) == b"\x00" * 4


def test_read_only_memory_rejects_writes() -> None:
    with pytest.raises(AbiError, match="read-only"):
        SlotBuffer(bytes(4)).write(b"\x01")


@pytest.mark.parametrize("address, capacity", [(0, 8), (None, 8)])
def test_null_slot_is_rejected(address: int, capacity: int) -> None:
    with pytest.raises(AbiError, match="Null"):
        SlotBuffer.at(address, capacity)


def test_negative_capacity_is_rejected() -> None:
    cell = ctypes.c_int64(0)
    with pytest.raises(AbiError):
        SlotBuffer.at(ctypes.addressof(cell), -1)


def test_load_scalars_from_raw_address() -> None:
    value = ctypes.c_double(2.5)
    assert SlotBuffer.at(ctypes.addressof(value), 8).load(ctypes.c_double) == 2.5
    handle = ctypes.c_void_p(0x1234)
    assert SlotBuffer.at(ctypes.addressof(handle), POINTER_SIZE).load(ctypes.c_void_p) == 0x1234


def test_load_structure_returns_copy() -> None:
    pair = Pair(3, 4)
    loaded = SlotBuffer.at(ctypes.addressof(pair), ctypes.sizeof(Pair)).load(Pair)
    assert (loaded.a, loaded.b) == (3, 4)
    pair.a = 99
    assert loaded.a == 3


def test_load_larger_than_slot_raises() -> None:
    with pytest.raises(AbiError):
        SlotBuffer(bytearray(4)).load(ctypes.c_double)


def test_store_converts_through_ctype() -> None:
    buf = bytearray(8)
    SlotBuffer(buf).store(7, ctypes.c_int64)
    assert int.from_bytes(bytes(buf), sys.byteorder) == 7


def test_store_structure_and_null_handle() -> None:
    cell = (ctypes.c_uint8 * 8)(*([0xFF] * 8))
    SlotBuffer.at(ctypes.addressof(cell), 8).store(Pair(1, 2))
    assert Pair.from_buffer_copy(bytes(cell)).b == 2

    handle = (ctypes.c_uint8 * POINTER_SIZE)(*([0xFF] * POINTER_SIZE))
    SlotBuffer.at(ctypes.addressof(handle), POINTER_SIZE).store(None, ctypes.c_void_p)
    assert bytes(handle) == b"\x00" * POINTER_SIZE


def test_store_too_large_value_raises() -> None:
    with pytest.raises(AbiError):
        SlotBuffer(bytearray(4)).store(1.0, ctypes.c_double)


# ###############
# Argument Arrays
# ###############


def test_slot_addresses_reads_pointer_array() -> None:
    array = (ctypes.c_void_p * 3)(0x10, 0x20, None)
    assert slot_addresses(ctypes.addressof(array), 3) == [0x10, 0x20, 0]
    assert slot_addresses(ctypes.c_void_p(ctypes.addressof(array)), 2) == [0x10, 0x20]


def test_slot_addresses_without_arguments() -> None:
    assert slot_addresses(None, 0) == []


def test_slot_addresses_null_array_raises() -> None:
    with pytest.raises(AbiError):
        slot_addresses(None, 1)


# ###############
# LazyBinding
# ###############


class CountingResolver:
    def __init__(self, result: object = 0xBEEF) -> None:
        self.result = result
        self.calls: List[Tuple[object, ...]] = []
        self._lock = threading.Lock()

    def __call__(self, *key: object) -> object:
        with self._lock:
            self.calls.append(key)
        return self.result


def test_lazy_binding_resolves_once() -> None:
    resolver = CountingResolver()
    binding = LazyBinding(("Node", "add_child", 3863233950), resolver)
    assert not binding.is_resolved
    assert binding.resolve() == 0xBEEF
    assert binding.resolve() == 0xBEEF
    assert resolver.calls == [("Node", "add_child", 3863233950)]
    assert binding.is_resolved
    assert "resolved=True" in repr(binding)


def test_lazy_binding_unwraps_void_pointer() -> None:
    binding = LazyBinding(("sin", 1), CountingResolver(ctypes.c_void_p(0x42)))
    assert binding.resolve() == 0x42


@pytest.mark.parametrize("result", [0, None, ctypes.c_void_p(None)])
def test_lazy_binding_null_result_raises(result: object) -> None:
    binding = LazyBinding(("Node", "missing", 1), CountingResolver(result))
    with pytest.raises(AbiError, match="no binding"):
        binding.resolve()
    assert not binding.is_resolved


def test_lazy_binding_is_thread_safe() -> None:
    resolver = CountingResolver()
    binding = LazyBinding(("Object", "get_class", 201670096), resolver)
    results: List[int] = []
    threads = [threading.Thread(target=lambda: results.append(binding.resolve())) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results == [0xBEEF] * 16
    assert len(resolver.calls) == 1
