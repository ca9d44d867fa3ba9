"""Reusable builder compositions.

These helpers only use the public `AssemblyBuilder` API and work for any target class.
"""

from __future__ import annotations

import types
from collections.abc import Mapping
from typing import Any

from assemblykit.engine.assembler import AssemblyBuilder
from assemblykit.introspection import ancestors


def bypassing(
    target: type,
    fields: Mapping[str, Any] | None = None,
    **builder_kwargs: Any,
) -> AssemblyBuilder:
    """Pattern: skip the constructor entirely and write the given fields."""

    builder = AssemblyBuilder(target, **builder_kwargs).bypass_constructor()
    if fields:
        builder.set_fields(fields)
    return builder


def instance_state(instance: Any) -> dict[str, Any]:
    """Stored attribute values of `instance` (instance dict plus filled slots)."""

    state: dict[str, Any] = dict(getattr(instance, "__dict__", None) or {})
    for owner in ancestors(type(instance)):
        for attribute, raw in vars(owner).items():
            if not isinstance(raw, types.MemberDescriptorType) or attribute in state:
                continue
            try:
                state[attribute] = raw.__get__(instance, type(instance))
            except AttributeError:
                continue
    return state


def rebuild(
    instance: Any,
    *,
    overrides: Mapping[str, Any] | None = None,
    **builder_kwargs: Any,
) -> AssemblyBuilder:
    """Pattern: re-create an equivalent instance field by field, without `__init__`.

    Every stored attribute must be declared by the class hierarchy (annotated, slotted,
    or assigned in a method); `build()` raises `MissingFieldError` otherwise.
    """

    if instance is None or isinstance(instance, type):
        raise TypeError("rebuild expects an instance")
    builder = bypassing(type(instance), instance_state(instance), **builder_kwargs)
    if overrides:
        builder.set_fields(overrides)
    return builder


def nested(values: Mapping[str, Any] | None = None, /, **kwargs: Any) -> dict[str, Any]:
    """Pattern: build any `AssemblyBuilder` values so they can be used as field values."""

    merged: dict[str, Any] = dict(values or {})
    merged.update(kwargs)
    return {
        name: value.build() if isinstance(value, AssemblyBuilder) else value
        for name, value in merged.items()
    }
