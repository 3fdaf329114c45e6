#!/usr/bin/env python3
"""
Exception hierarchy for the binding generator.

Only fatal conditions are exceptions. Recoverable problems (unsupported ABI
shapes, unresolvable properties, rejected virtual methods) are reported as
`models.Diagnostic` records and never raised.
"""

from __future__ import annotations


class BindgenError(Exception):
    """Base class for every fatal generator error."""


class SchemaError(BindgenError, ValueError):
    """The schema document is structurally malformed (missing or inconsistent fields)."""


class MappingError(BindgenError, LookupError):
    """A mapping table has no entry for a schema value; the tables are stale for this API version."""


class LayoutError(BindgenError):
    """A fixed-layout value type does not add up to its declared byte size."""


class AbiError(RuntimeError):
    """A SlotBuffer access would leave the bounds of the ABI slot it wraps."""


__all__ = [
    "BindgenError",
    "SchemaError",
    "MappingError",
    "LayoutError",
    "AbiError",
]
