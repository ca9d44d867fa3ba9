"""Deferred, ordered object assembly.

`AssemblyBuilder` accumulates instructions through chained calls and replays them when
`build()` is called:

1) normalize: guarantee exactly one instantiate-category instruction, sorted first;
   field writes and method calls follow in the order they were requested.
2) replay: invoke every instruction against the single instance slot, fail-fast.

This module must not import the YAML fixture layer.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Protocol

from assemblykit.engine.instructions import (
    InstantiateBasic,
    InstantiateBypassing,
    InstantiateInstruction,
    InstantiateWithArgs,
    Instruction,
    InvokeMethod,
    SetField,
    SetFieldOnAncestor,
)
from assemblykit.errors import AssemblyError, type_label
from assemblykit.introspection import DefaultIntrospector, Introspector

DEFAULT_LOGGER_NAME = "assemblykit.assembly"


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class AssemblyRecorder(Protocol):
    def on_instruction_start(
        self, builder: "AssemblyBuilder", position: int, instruction: Instruction
    ) -> None:
        ...

    def on_instruction_end(self, builder: "AssemblyBuilder", record: dict[str, Any]) -> None:
        ...

    def on_instruction_error(
        self,
        builder: "AssemblyBuilder",
        position: int,
        instruction: Instruction,
        exc: Exception,
    ) -> None:
        ...


def _instruction_subject(instruction: Instruction) -> str | None:
    subject = getattr(instruction, "name", None)
    if isinstance(subject, str) and subject.strip():
        return subject.strip()
    return None


class DefaultAssemblyRecorder:
    def on_instruction_start(
        self, builder: "AssemblyBuilder", position: int, instruction: Instruction
    ) -> None:
        tokens = [f"kind={instruction.kind}", f"sequence={instruction.sequence}"]
        subject = _instruction_subject(instruction)
        if subject:
            tokens.append(f"name={subject}")
        builder.logger.debug(
            "Instruction: %s[%d] (%s)", type_label(builder.target), position, ", ".join(tokens)
        )

    def on_instruction_end(self, builder: "AssemblyBuilder", record: dict[str, Any]) -> None:
        builder.records.append(record)
        if record.get("skipped"):
            builder.logger.debug(
                "Skipped %s #%s (instance already present)", record.get("kind"), record.get("sequence")
            )
            return
        builder.logger.debug("Completed %s #%s", record.get("kind"), record.get("sequence"))

    def on_instruction_error(
        self,
        builder: "AssemblyBuilder",
        position: int,
        instruction: Instruction,
        exc: Exception,
    ) -> None:
        builder.logger.error(
            "Instruction failed: %s[%d] %s #%d (%s)",
            type_label(builder.target),
            position,
            instruction.kind,
            instruction.sequence,
            exc,
        )


class NullAssemblyRecorder:
    def on_instruction_start(
        self, builder: "AssemblyBuilder", position: int, instruction: Instruction
    ) -> None:
        return

    def on_instruction_end(self, builder: "AssemblyBuilder", record: dict[str, Any]) -> None:
        return

    def on_instruction_error(
        self,
        builder: "AssemblyBuilder",
        position: int,
        instruction: Instruction,
        exc: Exception,
    ) -> None:
        return


class AssemblyBuilder:
    """Builds one instance of `target` from instructions accumulated via chained calls.

    Not thread-safe. Calling `build()` again keeps the instance already produced and
    replays every field write and method call against it.
    """

    target: type | None
    instance: Any
    instructions: list[Instruction]
    records: list[dict[str, Any]]

    def __init__(
        self,
        target: type | None,
        *,
        introspector: Introspector | None = None,
        recorder: AssemblyRecorder | None = None,
        logger: logging.Logger | None = None,
    ):
        if target is not None and not isinstance(target, type):
            raise TypeError(
                f"Assembly target must be a class or None (type={type(target).__name__})"
            )
        self.target = target
        self.instance = None
        self.instructions = []
        self.records = []
        self.introspector = introspector or DefaultIntrospector()
        self.logger = logger or logging.getLogger(DEFAULT_LOGGER_NAME)
        self._recorder = recorder or DefaultAssemblyRecorder()
        self._validate_recorder(self._recorder)
        self._sequence = itertools.count(1)
        self.instructions.append(InstantiateBasic(sequence=self._next_sequence()))

    def __repr__(self) -> str:
        return f"AssemblyBuilder(target={type_label(self.target)}, instructions={self.instructions!r})"

    # Chained API

    def use_default_constructor(self) -> "AssemblyBuilder":
        self._replace_instantiate(InstantiateBasic(sequence=self._next_sequence()))
        return self

    def bypass_constructor(self) -> "AssemblyBuilder":
        self._replace_instantiate(InstantiateBypassing(sequence=self._next_sequence()))
        return self

    def use_alternate_constructor(self, *args: Any) -> "AssemblyBuilder":
        self._replace_instantiate(InstantiateWithArgs(sequence=self._next_sequence(), args=args))
        return self

    def set_field(self, name: str, value: Any) -> "AssemblyBuilder":
        self.instructions.append(SetField(sequence=self._next_sequence(), name=name, value=value))
        return self

    def set_field_on_ancestor(self, name: str, value: Any, ancestor: type) -> "AssemblyBuilder":
        self.instructions.append(
            SetFieldOnAncestor(
                sequence=self._next_sequence(), name=name, value=value, ancestor=ancestor
            )
        )
        return self

    def set_fields(
        self, mapping: Mapping[str, Any] | None = None, /, **fields: Any
    ) -> "AssemblyBuilder":
        """Queue one field write per entry; order among these entries is not part of the contract."""

        if mapping is not None and not isinstance(mapping, Mapping):
            raise TypeError(f"set_fields expects a mapping (type={type(mapping).__name__})")
        merged: dict[str, Any] = dict(mapping or {})
        merged.update(fields)
        for name, value in merged.items():
            self.set_field(name, value)
        return self

    def invoke_method(self, name: str, *args: Any) -> "AssemblyBuilder":
        self.instructions.append(
            InvokeMethod(sequence=self._next_sequence(), name=name, args=args)
        )
        return self

    # Terminal operations

    def normalize(self) -> list[Instruction]:
        if not any(instruction.is_instantiate for instruction in self.instructions):
            self.instructions.insert(0, InstantiateBasic(sequence=self._next_sequence()))
        self.instructions.sort(key=lambda instruction: instruction.sort_key)
        while len(self.instructions) > 1 and self.instructions[1].is_instantiate:
            del self.instructions[1]
        return self.instructions

    def build(self) -> Any:
        self.normalize()
        self.logger.debug(
            "Assembling %s (%d instructions)", type_label(self.target), len(self.instructions)
        )
        for position, instruction in enumerate(list(self.instructions)):
            self._execute(instruction, position)
        return self.instance

    def describe(self) -> tuple[dict[str, Any], ...]:
        return tuple(instruction.describe() for instruction in self.instructions)

    # Internals

    def _next_sequence(self) -> int:
        return next(self._sequence)

    def _replace_instantiate(self, instruction: InstantiateInstruction) -> None:
        if self.instructions and self.instructions[0].is_instantiate:
            del self.instructions[0]
        self.instructions.insert(0, instruction)

    def _validate_recorder(self, recorder: AssemblyRecorder) -> None:
        required = ("on_instruction_start", "on_instruction_end", "on_instruction_error")
        for name in required:
            method = getattr(recorder, name, None)
            if method is None or not callable(method):
                raise TypeError(f"Assembly recorder missing required method: {name}")

    def _attach_assembly_error(
        self, exc: Exception, *, instruction: Instruction, position: int
    ) -> None:
        context = {
            "assembly_target": type_label(self.target),
            "assembly_kind": instruction.kind,
            "assembly_sequence": instruction.sequence,
            "assembly_position": position,
        }
        for attribute, value in context.items():
            if not hasattr(exc, attribute):
                setattr(exc, attribute, value)

    def _execute(self, instruction: Instruction, position: int) -> None:
        was_empty = self.instance is None
        try:
            self._recorder.on_instruction_start(self, position, instruction)
            instruction.invoke(self)

            record: dict[str, Any] = {
                **instruction.describe(),
                "position": position,
                "target": type_label(self.target),
                "created_at": utc_now_iso8601(),
            }
            if instruction.is_instantiate:
                record["skipped"] = not was_empty
                record["allocated"] = was_empty and self.instance is not None
            self._recorder.on_instruction_end(self, record)
        except Exception as exc:
            try:
                self._recorder.on_instruction_error(self, position, instruction, exc)
            except Exception:
                self.logger.exception(
                    "Assembly recorder failed during error handling for %s #%d",
                    instruction.kind,
                    instruction.sequence,
                )
            if isinstance(exc, AssemblyError):
                self._attach_assembly_error(exc, instruction=instruction, position=position)
                raise
            error = AssemblyError(
                f"{instruction.kind} #{instruction.sequence} raised {type(exc).__name__}: {exc}",
                target=self.target,
            )
            self._attach_assembly_error(error, instruction=instruction, position=position)
            raise error from exc
