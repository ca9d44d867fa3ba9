import abc
import datetime
import functools
import logging
from dataclasses import dataclass
from typing import NamedTuple

import pytest

from assemblykit import (
    AllocationError,
    AssemblyBuilder,
    AssemblyError,
    InvocationError,
    MissingFieldError,
    NullTargetError,
)


def _quiet_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


class ConstructorCalled:
    constructor_called = False

    def __init__(self):
        self.constructor_called = True


class InstanceCounter:
    count = 0
    id = 0
    constructed = False

    def __init__(self):
        InstanceCounter.count += 1
        self.id = InstanceCounter.count
        self.constructed = True

    @classmethod
    def reset(cls):
        cls.count = 0


class SomeParameter:
    def __init__(self, some_date: datetime.date, money: float):
        self.some_date = some_date
        self.money = money

    def __eq__(self, other):
        return isinstance(other, SomeParameter) and (self.some_date, self.money) == (
            other.some_date,
            other.money,
        )


class NonBean:
    def __init__(self, param1: str, param2: int, some_parameter: SomeParameter | None = None):
        self.param1 = param1
        self.param2 = param2
        self.some_parameter = some_parameter

    def __eq__(self, other):
        if not isinstance(other, NonBean):
            return NotImplemented
        return (self.param1, self.param2, getattr(self, "some_parameter", None)) == (
            other.param1,
            other.param2,
            getattr(other, "some_parameter", None),
        )


class Exploding:
    def __init__(self):
        raise RuntimeError("boom")


class Parent:
    def __init__(self, parent_name: str):
        self.parent_name = parent_name


class Child(Parent):
    def __init__(self, child_name: str, parent_name: str):
        super().__init__(parent_name)
        self.child_name = child_name


class Principal:
    def __init__(self):
        self.__token = "principal"

    def principal_token(self):
        return self.__token


class Account(Principal):
    activated_by = None

    def __init__(self):
        super().__init__()
        self.__token = "account"
        self.balance = 0

    def account_token(self):
        return self.__token

    def __activate(self, by: str):
        self.activated_by = by

    def deposit(self, amount: int):
        if amount < 0:
            raise ValueError("negative deposit")
        self.balance += amount

    def scale(self, factor: int):
        self.balance *= factor


class Labelled:
    def __init__(self, label: str):
        self.label = label


class Priced(Labelled):
    init_calls = 0

    def __init__(self, amount: int, currency: str = "USD"):
        Priced.init_calls += 1
        super().__init__(f"{amount} {currency}")
        self.amount = amount
        self.currency = currency


class OneOfEach:
    c: str = ""
    b: bytes = b""
    i: int = 0
    f: float = 0.0
    t: bool = False
    n: object = None


@dataclass(frozen=True)
class FrozenPoint:
    x: int
    y: int


class Slotted:
    __slots__ = ("name", "__secret")

    def secret(self):
        return self.__secret


class ReadOnly:
    value: int = 0

    def __setattr__(self, name, value):
        raise AttributeError("read-only")


class Shape(abc.ABC):
    @abc.abstractmethod
    def area(self):
        ...


class Pair(NamedTuple):
    left: int
    right: str


class Span(tuple):
    def __new__(cls, start: int, end: int):
        return super().__new__(cls, (start, end))


class NamedSpan(Span):
    pass


class Plain:
    pass


def _traced(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        return fn(*args, **kwargs)

    return wrapper


class Decorated:
    @_traced
    def __init__(self, token: str):
        self.token = token


class Deferred:
    def __init__(self):
        def assign(value):
            self.late = value

        assign(1)
        self.apply = lambda value: setattr(self, "other", value)


class Tally:
    def __init__(self):
        self.hits = 0

    def hit(self):
        self.hits += 1


def _builder(target):
    return AssemblyBuilder(target, logger=_quiet_logger("test.assembly_builder"))


def test_constructor_is_called_by_default():
    instance = _builder(ConstructorCalled).build()

    assert isinstance(instance, ConstructorCalled)
    assert instance.constructor_called is True


def test_default_constructor_runs_exactly_once():
    InstanceCounter.reset()

    instance = _builder(InstanceCounter).build()

    assert InstanceCounter.count == 1
    assert instance.id == 1
    assert instance.constructed is True


def test_bypass_skips_constructor_side_effects():
    instance = _builder(ConstructorCalled).bypass_constructor().build()

    assert isinstance(instance, ConstructorCalled)
    assert instance.constructor_called is False
    assert "constructor_called" not in vars(instance)


def test_reinitializes_instance_through_fields_directly():
    expected = NonBean("someValue", 42)

    rebuilt = (
        _builder(NonBean)
        .bypass_constructor()
        .set_field("param1", "someValue")
        .set_field("param2", 42)
        .build()
    )

    assert rebuilt == expected


def test_reinitializes_composite_instance_from_nested_builders():
    today = datetime.date(2024, 5, 17)
    expected = NonBean("someValue", 42, SomeParameter(today, 0.0))

    parameter_builder = (
        _builder(SomeParameter).bypass_constructor().set_field("some_date", today).set_field("money", 0.0)
    )
    rebuilt = (
        _builder(NonBean)
        .bypass_constructor()
        .set_field("param1", "someValue")
        .set_field("param2", 42)
        .set_field("some_parameter", parameter_builder.build())
        .build()
    )

    assert rebuilt == expected
    assert rebuilt.some_parameter.some_date is today


def test_superclass_fields_are_resolved_when_building_child():
    expected = Child("child", "parent")

    rebuilt = (
        _builder(Child)
        .bypass_constructor()
        .set_field("child_name", "child")
        .set_field("parent_name", "parent")
        .build()
    )

    assert rebuilt.child_name == expected.child_name
    assert rebuilt.parent_name == expected.parent_name


def test_constructor_exception_is_wrapped_as_allocation_error():
    with pytest.raises(AllocationError, match=r"Assembly failed: failed to instantiate .*Exploding") as excinfo:
        _builder(Exploding).build()

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert isinstance(excinfo.value, AssemblyError)


def test_default_constructor_requiring_arguments_fails():
    with pytest.raises(AllocationError) as excinfo:
        _builder(NonBean).build()

    assert isinstance(excinfo.value.__cause__, TypeError)


def test_missing_target_fails_for_every_instantiate_kind():
    with pytest.raises(AllocationError, match=r"-unknown-"):
        _builder(None).build()
    with pytest.raises(AllocationError, match=r"-unknown-"):
        _builder(None).bypass_constructor().build()
    with pytest.raises(AllocationError, match=r"-unknown-"):
        _builder(None).use_alternate_constructor("x").build()


def test_abstract_target_fails_to_allocate():
    with pytest.raises(AllocationError):
        _builder(Shape).build()
    with pytest.raises(AllocationError) as excinfo:
        _builder(Shape).bypass_constructor().build()

    assert isinstance(excinfo.value.__cause__, TypeError)


def test_target_must_be_a_class_or_none():
    with pytest.raises(TypeError, match=r"must be a class or None"):
        AssemblyBuilder("NonBean")


def test_missing_field_raises_on_build():
    builder = _builder(NonBean).bypass_constructor().set_field("non_existent_field", "anything")

    with pytest.raises(MissingFieldError, match=r"non_existent_field"):
        builder.build()


def test_unmatched_method_is_silent_and_leaves_instance_untouched():
    instance = (
        _builder(NonBean)
        .bypass_constructor()
        .set_field("param1", "a")
        .set_field("param2", 1)
        .invoke_method("no_such_method", 1, 2)
        .build()
    )

    assert vars(instance) == {"param1": "a", "param2": 1}


def test_private_method_is_invoked_through_name_mangling():
    instance = _builder(Account).invoke_method("__activate", "admin").build()

    assert instance.activated_by == "admin"


def test_method_with_mismatched_argument_types_is_skipped():
    instance = _builder(Account).invoke_method("__activate", 42).build()

    assert instance.activated_by is None


def test_method_exception_is_wrapped_as_invocation_error():
    builder = _builder(Account).invoke_method("deposit", -5)

    with pytest.raises(InvocationError, match=r"deposit raised ValueError") as excinfo:
        builder.build()

    assert isinstance(excinfo.value.__cause__, ValueError)


def test_field_sets_and_method_calls_replay_in_call_order():
    instance = (
        _builder(Account)
        .set_field("balance", 2)
        .invoke_method("deposit", 3)
        .invoke_method("scale", 10)
        .set_field("activated_by", "ops")
        .build()
    )

    assert instance.balance == 50
    assert instance.activated_by == "ops"


def test_masked_field_requires_explicit_ancestor():
    instance = (
        _builder(Account)
        .set_field("__token", "outer")
        .set_field_on_ancestor("__token", "inner", Principal)
        .build()
    )

    assert instance.account_token() == "outer"
    assert instance.principal_token() == "inner"


def test_masked_field_without_ancestor_only_touches_most_specific_type():
    instance = _builder(Account).set_field("__token", "outer").build()

    assert instance.account_token() == "outer"
    assert instance.principal_token() == "principal"


def test_alternate_constructor_on_target_type():
    Priced.init_calls = 0

    instance = _builder(Priced).use_alternate_constructor(5, "EUR").build()

    assert type(instance) is Priced
    assert (instance.amount, instance.currency, instance.label) == (5, "EUR", "5 EUR")
    assert Priced.init_calls == 1


def test_alternate_constructor_falls_back_to_ancestor_signature():
    Priced.init_calls = 0

    instance = _builder(Priced).use_alternate_constructor("tag").build()

    assert type(instance) is Priced
    assert instance.label == "tag"
    assert not hasattr(instance, "amount")
    assert Priced.init_calls == 0


def test_alternate_constructor_without_match_leaves_slot_empty():
    assert _builder(Priced).use_alternate_constructor(1.5).build() is None

    builder = _builder(Priced).use_alternate_constructor(1.5).set_field("label", "x")
    with pytest.raises(NullTargetError, match=r"label"):
        builder.build()

    builder = _builder(Priced).use_alternate_constructor(1.5).invoke_method("anything")
    with pytest.raises(NullTargetError):
        builder.build()


def test_sets_one_value_of_each_builtin_type():
    instance = (
        _builder(OneOfEach)
        .bypass_constructor()
        .set_field("c", "a")
        .set_field("b", b"\x01")
        .set_field("i", 3)
        .set_field("f", 12.01)
        .set_field("t", True)
        .set_field("n", None)
        .build()
    )

    assert instance.c == "a"
    assert instance.b == b"\x01"
    assert instance.i == 3
    assert instance.f == pytest.approx(12.01)
    assert instance.t is True
    assert "n" in vars(instance) and instance.n is None


def test_set_fields_from_mapping_and_keywords():
    marker = object()

    instance = (
        _builder(OneOfEach)
        .bypass_constructor()
        .set_fields({"c": "x", "i": 7, "n": marker}, t=True)
        .build()
    )

    assert (instance.c, instance.i, instance.t) == ("x", 7, True)
    assert instance.n is marker


def test_set_fields_rejects_non_mapping():
    with pytest.raises(TypeError, match=r"expects a mapping"):
        _builder(OneOfEach).set_fields([("c", "x")])


def test_frozen_dataclass_fields_are_written_directly():
    instance = _builder(FrozenPoint).bypass_constructor().set_field("x", 1).set_field("y", 2).build()

    assert instance == FrozenPoint(1, 2)


def test_slotted_and_private_slot_fields_are_written():
    instance = (
        _builder(Slotted).bypass_constructor().set_field("name", "n").set_field("__secret", "s").build()
    )

    assert instance.name == "n"
    assert instance.secret() == "s"


def test_custom_setattr_is_bypassed():
    instance = _builder(ReadOnly).set_field("value", 5).build()

    assert instance.value == 5


def test_second_build_reuses_instance_and_replays_mutations():
    builder = _builder(Tally).invoke_method("hit")

    first = builder.build()
    second = builder.build()

    assert first is second
    assert second.hits == 2


def test_builder_can_build_an_uninitialized_builder():
    inner = _builder(AssemblyBuilder).bypass_constructor().build()

    assert isinstance(inner, AssemblyBuilder)
    with pytest.raises(AttributeError):
        inner.build()


def test_builder_can_build_a_builder_through_its_constructor():
    InstanceCounter.reset()

    inner = _builder(AssemblyBuilder).use_alternate_constructor(InstanceCounter).build()
    instance = inner.build()

    assert isinstance(instance, InstanceCounter)
    assert InstanceCounter.count == 1


def test_alternate_constructor_matches_named_tuple_new():
    instance = _builder(Pair).use_alternate_constructor(1, "x").build()

    assert instance == Pair(1, "x")
    assert type(instance) is Pair
    assert _builder(Pair).use_alternate_constructor("x", 1).build() is None


def test_alternate_constructor_uses_ancestor_new_and_keeps_concrete_type():
    instance = _builder(NamedSpan).use_alternate_constructor(2, 5).build()

    assert type(instance) is NamedSpan
    assert tuple(instance) == (2, 5)


def test_alternate_constructor_without_args_on_class_without_init():
    instance = _builder(Plain).use_alternate_constructor().build()

    assert isinstance(instance, Plain)


def test_fields_assigned_in_decorated_init_are_declared():
    instance = _builder(Decorated).bypass_constructor().set_field("token", "y").build()

    assert instance.token == "y"


def test_fields_assigned_in_nested_functions_are_declared():
    instance = (
        _builder(Deferred).bypass_constructor().set_field("late", 2).set_field("apply", None).build()
    )

    assert instance.late == 2
    assert vars(instance) == {"late": 2, "apply": None}


def test_ancestor_outside_the_target_chain_is_rejected():
    builder = _builder(Account).set_field_on_ancestor("label", "x", Labelled)

    with pytest.raises(MissingFieldError, match=r"Labelled is not an ancestor of .*Account"):
        builder.build()
