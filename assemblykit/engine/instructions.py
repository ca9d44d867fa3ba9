"""Assembly instructions.

Each instruction is a frozen record carrying the sequence number it was created with.
`AssemblyBuilder` sorts them by `sort_key` (instantiate-category first, bypassing
allocation ahead of the other instantiate kinds, then creation order) and calls
`invoke()` on each against itself.

This module must not import the YAML fixture layer.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol

from assemblykit.errors import (
    AllocationError,
    AssemblyError,
    InvocationError,
    MissingFieldError,
    NullTargetError,
    type_label,
)
from assemblykit.introspection import Introspector

INSTANTIATE_PRIORITY = 0
MUTATE_PRIORITY = 1


class AssemblyContext(Protocol):
    target: type | None
    instance: Any
    introspector: Introspector
    logger: logging.Logger


def _normalize_name(value: Any, *, label: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{label} must be a string (type={type(value).__name__})")
    name = value.strip()
    if not name:
        raise ValueError(f"{label} cannot be empty")
    return name


def _normalize_args(value: Any, *, label: str) -> tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise TypeError(f"{label} must be a sequence of arguments (type={type(value).__name__})")
    return tuple(value)


def _short_repr(value: Any, *, limit: int = 80) -> str:
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


@dataclass(frozen=True)
class Instruction:
    sequence: int

    kind: ClassVar[str] = "instruction"
    priority: ClassVar[int] = MUTATE_PRIORITY
    rank: ClassVar[int] = 1

    def __post_init__(self) -> None:
        if isinstance(self.sequence, bool) or not isinstance(self.sequence, int):
            raise TypeError(
                f"Instruction sequence must be an int (type={type(self.sequence).__name__})"
            )
        if self.sequence < 1:
            raise ValueError(f"Instruction sequence must be >= 1 (got {self.sequence})")

    @property
    def is_instantiate(self) -> bool:
        return self.priority == INSTANTIATE_PRIORITY

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.priority, self.rank, self.sequence)

    def invoke(self, ctx: AssemblyContext) -> None:
        raise NotImplementedError

    def describe(self) -> dict[str, Any]:
        return {"kind": self.kind, "sequence": self.sequence}


@dataclass(frozen=True)
class InstantiateInstruction(Instruction):
    """Populates the instance slot; a no-op once the slot holds an instance."""

    priority: ClassVar[int] = INSTANTIATE_PRIORITY

    def invoke(self, ctx: AssemblyContext) -> None:
        if ctx.instance is not None:
            return
        ctx.instance = self._allocate(ctx)

    def _allocate(self, ctx: AssemblyContext) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class InstantiateBasic(InstantiateInstruction):
    kind: ClassVar[str] = "instantiate_basic"

    def _allocate(self, ctx: AssemblyContext) -> Any:
        target = ctx.target
        if target is None:
            raise AllocationError("cannot instantiate -unknown- (no target type)", target=None)
        try:
            return target()
        except Exception as exc:
            raise AllocationError(
                f"failed to instantiate {type_label(target)}", target=target
            ) from exc


@dataclass(frozen=True)
class InstantiateBypassing(InstantiateInstruction):
    kind: ClassVar[str] = "instantiate_bypassing"
    rank: ClassVar[int] = 0

    def _allocate(self, ctx: AssemblyContext) -> Any:
        target = ctx.target
        try:
            return ctx.introspector.bypass_allocate(target)  # type: ignore[arg-type]
        except Exception as exc:
            raise AllocationError(
                f"failed to allocate {type_label(target)} without its constructor",
                target=target,
            ) from exc


@dataclass(frozen=True)
class InstantiateWithArgs(InstantiateInstruction):
    args: tuple[Any, ...] = ()

    kind: ClassVar[str] = "instantiate_with_args"

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "args", _normalize_args(self.args, label="Constructor args"))

    def _allocate(self, ctx: AssemblyContext) -> Any:
        target = ctx.target
        if target is None:
            raise AllocationError("cannot instantiate -unknown- (no target type)", target=None)
        try:
            constructor = ctx.introspector.select_constructor(target, self.args)
            if constructor is None:
                ctx.logger.warning(
                    "No constructor of %s accepts %s; instance slot stays empty",
                    type_label(target),
                    ", ".join(type(arg).__name__ for arg in self.args) or "()",
                )
                return None
            return constructor.construct(target, self.args)
        except Exception as exc:
            raise AllocationError(
                f"failed to instantiate {type_label(target)} with {len(self.args)} argument(s)",
                target=target,
            ) from exc

    def describe(self) -> dict[str, Any]:
        out = super().describe()
        out["args"] = [_short_repr(arg) for arg in self.args]
        return out


@dataclass(frozen=True)
class SetField(Instruction):
    """Write a field found by walking the ancestor chain from the target type."""

    name: str
    value: Any
    value_type: type = field(init=False, repr=False, compare=False)

    kind: ClassVar[str] = "set_field"

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "name", _normalize_name(self.name, label="Field name"))
        object.__setattr__(self, "value_type", type(self.value))

    def _search_start(self, ctx: AssemblyContext) -> type:
        if ctx.target is not None:
            return ctx.target
        return type(ctx.instance)

    def invoke(self, ctx: AssemblyContext) -> None:
        instance = ctx.instance
        if instance is None:
            raise NullTargetError(
                f"cannot set field {self.name!r}: no instance of {type_label(ctx.target)} was produced",
                target=ctx.target,
            )

        start = self._search_start(ctx)
        try:
            handle = ctx.introspector.locate_field(start, self.name, instance)
        except Exception as exc:
            raise AssemblyError(
                f"field lookup for {self.name!r} on {type_label(start)} failed", target=ctx.target
            ) from exc
        if handle is None:
            raise MissingFieldError(
                f"field {self.name!r} not found on {type_label(start)} or its ancestors",
                target=ctx.target,
            )

        try:
            handle.write(instance, self.value)
        except Exception as exc:
            raise AssemblyError(
                f"could not write field {handle.attribute!r} on {type_label(handle.owner)}",
                target=ctx.target,
            ) from exc

    def describe(self) -> dict[str, Any]:
        out = super().describe()
        out["field"] = self.name
        out["value_type"] = self.value_type.__name__
        out["value"] = _short_repr(self.value)
        return out


@dataclass(frozen=True)
class SetFieldOnAncestor(SetField):
    """Like `SetField`, but the walk starts at `ancestor` to reach a masked field."""

    ancestor: type | None = None

    kind: ClassVar[str] = "set_field_on_ancestor"

    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.ancestor, type):
            raise TypeError(
                f"Ancestor for field {self.name!r} must be a class (type={type(self.ancestor).__name__})"
            )

    def _search_start(self, ctx: AssemblyContext) -> type:
        owner = ctx.target if ctx.target is not None else type(ctx.instance)
        if not issubclass(owner, self.ancestor):  # type: ignore[arg-type]
            raise MissingFieldError(
                f"field {self.name!r}: {type_label(self.ancestor)} is not an ancestor of {type_label(owner)}",
                target=ctx.target,
            )
        return self.ancestor  # type: ignore[return-value]

    def describe(self) -> dict[str, Any]:
        out = super().describe()
        out["ancestor"] = type_label(self.ancestor)
        return out


@dataclass(frozen=True)
class InvokeMethod(Instruction):
    """Call a method regardless of its visibility; the result is discarded."""

    name: str
    args: tuple[Any, ...] = ()

    kind: ClassVar[str] = "invoke_method"

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "name", _normalize_name(self.name, label="Method name"))
        object.__setattr__(self, "args", _normalize_args(self.args, label="Method args"))

    def invoke(self, ctx: AssemblyContext) -> None:
        instance = ctx.instance
        if instance is None:
            raise NullTargetError(
                f"cannot invoke {self.name!r}: no instance of {type_label(ctx.target)} was produced",
                target=ctx.target,
            )

        start = ctx.target if ctx.target is not None else type(instance)
        try:
            handle = ctx.introspector.locate_method(start, self.name, self.args)
        except Exception as exc:
            raise AssemblyError(
                f"method lookup for {self.name!r} on {type_label(start)} failed", target=ctx.target
            ) from exc
        if handle is None:
            ctx.logger.debug(
                "No method %s(%s) on %s or its ancestors; skipping",
                self.name,
                ", ".join(type(arg).__name__ for arg in self.args),
                type_label(start),
            )
            return

        try:
            handle.invoke(instance, self.args)
        except Exception as exc:
            raise InvocationError(
                f"{type_label(handle.owner)}.{self.name} raised {type(exc).__name__}: {exc}",
                target=ctx.target,
            ) from exc

    def describe(self) -> dict[str, Any]:
        out = super().describe()
        out["method"] = self.name
        out["args"] = [_short_repr(arg) for arg in self.args]
        return out
