from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from assemblykit.engine.assembler import AssemblyBuilder

FixtureConstruct = Literal["default", "bypass", "args"]
ALLOWED_CONSTRUCTS: tuple[str, ...] = ("default", "bypass", "args")

FixtureStepKind = Literal["set_field", "invoke"]
ALLOWED_STEP_KINDS: tuple[str, ...] = ("set_field", "invoke")


@dataclass(frozen=True)
class FixtureStep:
    kind: FixtureStepKind
    name: str
    value: Any = None
    args: tuple[Any, ...] = ()
    ancestor: type | None = None

    def __post_init__(self) -> None:
        if self.kind not in ALLOWED_STEP_KINDS:
            raise ValueError(f"Invalid fixture step kind: {self.kind!r}")
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("FixtureStep.name must be a non-empty string")
        object.__setattr__(self, "name", self.name.strip())
        object.__setattr__(self, "args", tuple(self.args or ()))

        if self.ancestor is not None:
            if self.kind != "set_field":
                raise ValueError(f"FixtureStep {self.name}: ancestor is only valid for set_field")
            if not isinstance(self.ancestor, type):
                raise TypeError(f"FixtureStep {self.name}: ancestor must be a class")
        if self.kind == "set_field" and self.args:
            raise ValueError(f"FixtureStep {self.name}: set_field does not take args")
        if self.kind == "invoke" and self.value is not None:
            raise ValueError(f"FixtureStep {self.name}: invoke does not take a value")

    def apply(self, builder: AssemblyBuilder) -> AssemblyBuilder:
        if self.kind == "invoke":
            return builder.invoke_method(self.name, *self.args)
        if self.ancestor is not None:
            return builder.set_field_on_ancestor(self.name, self.value, self.ancestor)
        return builder.set_field(self.name, self.value)


@dataclass(frozen=True)
class FixtureSpec:
    """A named, declarative recipe for one `AssemblyBuilder`."""

    id: str
    target: type
    construct: FixtureConstruct = "default"
    args: tuple[Any, ...] = ()
    fields: Mapping[str, Any] = field(default_factory=dict)
    steps: tuple[FixtureStep, ...] = ()
    doc: str | None = None
    tags: tuple[str, ...] = ()
    source: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise TypeError("FixtureSpec.id must be a non-empty string")
        object.__setattr__(self, "id", self.id.strip())

        if not isinstance(self.target, type):
            raise TypeError(
                f"FixtureSpec {self.id}: target must be a class (type={type(self.target).__name__})"
            )
        if self.construct not in ALLOWED_CONSTRUCTS:
            raise ValueError(
                f"FixtureSpec {self.id}: construct must be one of: {', '.join(ALLOWED_CONSTRUCTS)} "
                f"(got {self.construct!r})"
            )
        object.__setattr__(self, "args", tuple(self.args or ()))
        if self.args and self.construct != "args":
            raise ValueError(f"FixtureSpec {self.id}: args require construct='args'")

        if not isinstance(self.fields, Mapping):
            raise TypeError(f"FixtureSpec {self.id}: fields must be a mapping")
        object.__setattr__(self, "fields", dict(self.fields))
        object.__setattr__(self, "steps", tuple(self.steps))

        if self.doc is not None and (not isinstance(self.doc, str) or not self.doc.strip()):
            raise TypeError(f"FixtureSpec {self.id}: doc must be a non-empty string or None")
        if self.tags:
            object.__setattr__(
                self, "tags", tuple(str(tag).strip() for tag in self.tags if str(tag).strip())
            )

    def to_builder(self, **builder_kwargs: Any) -> AssemblyBuilder:
        builder = AssemblyBuilder(self.target, **builder_kwargs)
        if self.construct == "bypass":
            builder.bypass_constructor()
        elif self.construct == "args":
            builder.use_alternate_constructor(*self.args)
        if self.fields:
            builder.set_fields(self.fields)
        for step in self.steps:
            step.apply(builder)
        return builder

    def build(self, **builder_kwargs: Any) -> Any:
        return self.to_builder(**builder_kwargs).build()
