"""Reflective primitives used by the assembly engine.

The engine never reads `__mro__`, class namespaces or signatures itself; it asks an
`Introspector` to locate fields, methods and constructors, and to allocate instances
without running `__init__`. `DefaultIntrospector` implements those rules for ordinary
Python classes.

Lookup rules:

- The ancestor chain of a class is its MRO without `object`.
- Private names (``__name``) are mangled per class while walking, so a name that is
  masked by a more specific class resolves to that class's own storage slot.
- A class *declares* a field when the attribute is annotated on it, is one of its
  slots, is a plain class attribute, or is assigned by one of its own functions.
"""

from __future__ import annotations

import dis
import inspect
import types
import typing
import weakref
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

ROOT_TYPE: type = object

_DECLARED_FIELDS: weakref.WeakKeyDictionary[type, frozenset[str]] = weakref.WeakKeyDictionary()

_POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def ancestors(cls: type) -> tuple[type, ...]:
    if not isinstance(cls, type):
        raise TypeError(f"Ancestor walk requires a class (type={type(cls).__name__})")
    return tuple(klass for klass in cls.__mro__ if klass is not ROOT_TYPE)


def mangle(name: str, owner: type) -> str:
    """Apply Python's private-name mangling for attribute `name` declared on `owner`."""

    if not name.startswith("__") or name.endswith("__") or "." in name:
        return name
    stripped = owner.__name__.lstrip("_")
    if not stripped:
        return name
    return f"_{stripped}{name}"


def _code_objects(code: types.CodeType) -> list[types.CodeType]:
    found = [code]
    for const in code.co_consts:
        if isinstance(const, types.CodeType):
            found.extend(_code_objects(const))
    return found


def _stored_attributes(*functions: Any) -> set[str]:
    names: set[str] = set()
    for fn in functions:
        if fn is None:
            continue
        try:
            candidates = {fn, inspect.unwrap(fn)}
        except ValueError:
            candidates = {fn}
        for candidate in candidates:
            code = getattr(candidate, "__code__", None)
            if not isinstance(code, types.CodeType):
                continue
            for nested in _code_objects(code):
                for instruction in dis.get_instructions(nested):
                    if instruction.opname == "STORE_ATTR":
                        names.add(str(instruction.argval))
    return names


def declared_fields(owner: type) -> frozenset[str]:
    """Attribute names `owner` itself declares (inherited declarations excluded)."""

    cached = _DECLARED_FIELDS.get(owner)
    if cached is None:
        cached = _collect_declared_fields(owner)
        _DECLARED_FIELDS[owner] = cached
    return cached


def _collect_declared_fields(owner: type) -> frozenset[str]:
    try:
        names: set[str] = set(inspect.get_annotations(owner))
    except NameError:
        names = set()

    for attribute, raw in vars(owner).items():
        if isinstance(raw, types.MemberDescriptorType):
            names.add(attribute)
        elif isinstance(raw, property):
            names.update(_stored_attributes(raw.fget, raw.fset, raw.fdel))
        elif isinstance(raw, (staticmethod, classmethod)):
            names.update(_stored_attributes(raw.__func__))
        elif inspect.isfunction(raw):
            names.update(_stored_attributes(raw))
        elif attribute.startswith("__") and attribute.endswith("__"):
            continue
        elif inspect.isclass(raw) or callable(raw) or hasattr(type(raw), "__get__"):
            continue
        else:
            names.add(attribute)
    return frozenset(names)


def matches_type(value: Any, hint: Any) -> bool:
    """Structural check of a runtime value against a parameter annotation."""

    if hint is Any or hint is inspect.Parameter.empty:
        return True
    if isinstance(hint, (str, typing.TypeVar, typing.ForwardRef)):
        return True
    if hint is None or hint is type(None):
        return value is None

    origin = typing.get_origin(hint)
    if origin is typing.Annotated:
        return matches_type(value, typing.get_args(hint)[0])
    if origin is typing.Union or origin is types.UnionType:
        return any(matches_type(value, member) for member in typing.get_args(hint))
    if origin is typing.Literal:
        return value in typing.get_args(hint)
    if origin is not None:
        hint = origin

    if isinstance(value, bool) and hint in (float, complex):
        return False
    if hint is float and isinstance(value, int):
        return True
    if hint is complex and isinstance(value, (int, float)):
        return True
    if not isinstance(hint, type):
        return True
    try:
        return isinstance(value, hint)
    except TypeError:
        # Non runtime-checkable protocols and similar.
        return True


def _type_hints(fn: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(fn)
    except (NameError, TypeError, AttributeError):
        return dict(getattr(fn, "__annotations__", {}) or {})


def signature_accepts(fn: Any, args: Sequence[Any], *, skip_first: bool) -> bool:
    """True when `fn` binds `args` positionally and every bound value matches its hint."""

    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return False

    parameters = list(signature.parameters.values())
    if skip_first and parameters and parameters[0].kind in _POSITIONAL_KINDS:
        parameters = parameters[1:]
        signature = signature.replace(parameters=parameters)

    try:
        bound = signature.bind(*args)
    except TypeError:
        return False

    hints = _type_hints(fn)
    for param_name, value in bound.arguments.items():
        parameter = signature.parameters[param_name]
        hint = hints.get(param_name, parameter.annotation)
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            if not all(matches_type(item, hint) for item in value):
                return False
        elif parameter.kind is inspect.Parameter.VAR_KEYWORD:
            continue
        elif not matches_type(value, hint):
            return False
    return True


def bypass_allocate(target: type) -> Any:
    """Create an instance of `target` without running any `__init__`."""

    if not isinstance(target, type):
        raise TypeError(f"Cannot allocate an instance of {target!r}: not a class")
    allocator = target.__new__
    if allocator is object.__new__:
        return object.__new__(target)
    return allocator(target)


@dataclass(frozen=True)
class FieldHandle:
    owner: type
    name: str
    attribute: str

    def write(self, instance: Any, value: Any) -> None:
        object.__setattr__(instance, self.attribute, value)

    def read(self, instance: Any) -> Any:
        return object.__getattribute__(instance, self.attribute)


@dataclass(frozen=True)
class MethodHandle:
    owner: type
    name: str
    attribute: str
    descriptor: Any

    def invoke(self, instance: Any, args: Sequence[Any]) -> Any:
        bound = self.descriptor.__get__(instance, type(instance))
        return bound(*args)


@dataclass(frozen=True)
class ConstructorHandle:
    owner: type
    initializer: Any
    via: str = "__init__"

    def construct(self, target: type, args: Sequence[Any]) -> Any:
        if self.owner is target:
            return target(*args)
        if self.via == "__new__":
            return self.initializer(target, *args)
        # The matching __init__ lives on an ancestor: keep the concrete type.
        instance = bypass_allocate(target)
        self.initializer(instance, *args)
        return instance


class Introspector(Protocol):
    def locate_field(
        self, cls: type, name: str, instance: Any = None
    ) -> FieldHandle | None:
        ...

    def locate_method(
        self, cls: type, name: str, args: Sequence[Any] = ()
    ) -> MethodHandle | None:
        ...

    def select_constructor(
        self, cls: type, args: Sequence[Any] = ()
    ) -> ConstructorHandle | None:
        ...

    def bypass_allocate(self, cls: type) -> Any:
        ...


class DefaultIntrospector:
    def locate_field(
        self, cls: type, name: str, instance: Any = None
    ) -> FieldHandle | None:
        state = getattr(instance, "__dict__", None) or {}
        for owner in ancestors(cls):
            attribute = mangle(name, owner)
            if attribute in declared_fields(owner) or attribute in state:
                return FieldHandle(owner=owner, name=name, attribute=attribute)
        return None

    def locate_method(
        self, cls: type, name: str, args: Sequence[Any] = ()
    ) -> MethodHandle | None:
        for owner in ancestors(cls):
            attribute = mangle(name, owner)
            raw = vars(owner).get(attribute)
            if raw is None:
                continue
            if isinstance(raw, staticmethod):
                fn, skip_first = raw.__func__, False
            elif isinstance(raw, classmethod):
                fn, skip_first = raw.__func__, True
            elif inspect.isfunction(raw):
                fn, skip_first = raw, True
            else:
                continue
            if signature_accepts(fn, args, skip_first=skip_first):
                return MethodHandle(owner=owner, name=name, attribute=attribute, descriptor=raw)
        return None

    def select_constructor(
        self, cls: type, args: Sequence[Any] = ()
    ) -> ConstructorHandle | None:
        """Nearest `__init__` or `__new__` in the chain that accepts `args`."""

        for owner in ancestors(cls):
            namespace = vars(owner)
            initializer = namespace.get("__init__")
            if inspect.isfunction(initializer) and signature_accepts(
                initializer, args, skip_first=True
            ):
                return ConstructorHandle(owner=owner, initializer=initializer)

            allocator = namespace.get("__new__")
            if isinstance(allocator, staticmethod):
                allocator = allocator.__func__
            if inspect.isfunction(allocator) and signature_accepts(
                allocator, args, skip_first=True
            ):
                return ConstructorHandle(owner=owner, initializer=allocator, via="__new__")

        if not args and cls.__init__ is ROOT_TYPE.__init__ and cls.__new__ is ROOT_TYPE.__new__:
            return ConstructorHandle(owner=cls, initializer=ROOT_TYPE.__init__)
        return None

    def bypass_allocate(self, cls: type) -> Any:
        return bypass_allocate(cls)
