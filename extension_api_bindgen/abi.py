#!/usr/bin/env python3
"""
Runtime helpers imported by generated bindings.

Generated code never reinterprets raw ABI memory directly. Argument slots
and return slots handed over by the engine are wrapped in a `SlotBuffer`,
a fixed-capacity view that checks every read and write against its
capacity. Binding handles (method binds, utility functions, constructors,
operator evaluators) are resolved lazily through `LazyBinding`.

This module only depends on ctypes so that generated packages can import it
without the generator's templating stack being exercised.
"""

from __future__ import annotations

import ctypes
import logging
import struct
import threading
from typing import Any, Callable, List, Optional, Tuple, Union

from .errors import AbiError

logger = logging.getLogger(__name__)

POINTER_SIZE = ctypes.sizeof(ctypes.c_void_p)


class SlotBuffer:
    """
    Size-checked byte view over caller-provided memory.

    - SlotBuffer(memory): wrap a writable buffer (bytearray, ctypes object, ...)
    - SlotBuffer.at(address, capacity): wrap `capacity` bytes at a raw address
    """

    __slots__ = ("_view",)

    def __init__(self, memory: Any) -> None:
        self._view = memoryview(memory).cast("B")

    @classmethod
    def at(cls, address: Optional[int], capacity: int) -> "SlotBuffer":
        if not address:
            raise AbiError("Null slot address")
        if capacity < 0:
            raise AbiError(f"Negative slot capacity {capacity}")
        return cls((ctypes.c_ubyte * capacity).from_address(address))

    @property
    def capacity(self) -> int:
        return len(self._view)

    def read(self, size: Optional[int] = None, offset: int = 0) -> bytes:
        if size is None:
            size = self.capacity - offset
        self._check(offset, size)
        return self._view[offset:offset + size].tobytes()

    def write(self, data: Union[bytes, bytearray, memoryview], offset: int = 0) -> None:
        payload = bytes(data)
        self._check(offset, len(payload))
        if self._view.readonly:
            raise AbiError("Slot is read-only")
        self._view[offset:offset + len(payload)] = payload

    def load(self, ctype: Any) -> Any:
        """
        Copy a `ctype` value out of the slot. Simple ctypes (c_int32,
        c_double, c_void_p, ...) are returned as Python values, structures
        as fresh instances.
        """
        size = ctypes.sizeof(ctype)
        self._check(0, size)
        value = ctype.from_buffer_copy(self._view[:size].tobytes())
        if isinstance(getattr(ctype, "_type_", None), str):
            return value.value
        return value

    def store(self, value: Any, ctype: Any = None) -> None:
        """
        Write `value` into the slot, converting through `ctype` first when given.
        """
        if ctype is not None and not isinstance(value, ctype):
            value = ctype(value)
        self.write(bytes(value))

    def _check(self, offset: int, size: int) -> None:
        if offset < 0 or size < 0 or offset + size > self.capacity:
            raise AbiError(f"Slot access [{offset}:{offset + size}] exceeds capacity {self.capacity}")


def slot_addresses(args: Optional[int], count: int) -> List[int]:
    """
    Read `count` argument slot addresses from an engine argument array.
    Null entries come back as 0.
    """
    if count == 0:
        return []
    if isinstance(args, ctypes.c_void_p):
        args = args.value
    raw = SlotBuffer.at(args, count * POINTER_SIZE).read()
    return list(struct.unpack(f"{count}P", raw))


class LazyBinding:
    """
    Engine handle resolved on first use and cached.

    `key` is the tuple passed to `resolver` (e.g. class name, method name,
    hash). A null result is a version mismatch between the bindings and the
    running engine and raises AbiError; it is never retried.
    """

    __slots__ = ("key", "_resolver", "_handle", "_lock")

    def __init__(self, key: Tuple[Any, ...], resolver: Callable[..., Any]) -> None:
        self.key = key
        self._resolver = resolver
        self._handle: Optional[int] = None
        self._lock = threading.Lock()

    def resolve(self) -> int:
        handle = self._handle
        if handle is not None:
            return handle
        with self._lock:
            if self._handle is None:
                result = self._resolver(*self.key)
                if isinstance(result, ctypes.c_void_p):
                    result = result.value
                if not result:
                    raise AbiError(f"Engine returned no binding for {self.key!r}")
                logger.debug("Resolved binding %r", self.key)
                self._handle = int(result)
            return self._handle

    @property
    def is_resolved(self) -> bool:
        return self._handle is not None

    def __repr__(self) -> str:
        return f"LazyBinding({self.key!r}, resolved={self.is_resolved})"


__all__ = ["POINTER_SIZE", "SlotBuffer", "slot_addresses", "LazyBinding"]
