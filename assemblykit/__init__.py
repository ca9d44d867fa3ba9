"""Deferred object assembly for test fixtures.

`AssemblyBuilder` collects construction steps (instantiate, set field, invoke method)
against a target class and replays them in a fixed order on `build()`, reaching state
that public construction cannot: private or masked fields, alternate constructors, or
classes whose `__init__` must not run at all.
"""

from assemblykit.config_namespace import ConfigNamespace
from assemblykit.engine.assembler import (
    AssemblyBuilder,
    AssemblyRecorder,
    DefaultAssemblyRecorder,
    NullAssemblyRecorder,
)
from assemblykit.engine.instructions import (
    InstantiateBasic,
    InstantiateBypassing,
    InstantiateWithArgs,
    Instruction,
    InvokeMethod,
    SetField,
    SetFieldOnAncestor,
)
from assemblykit.engine.patterns import bypassing, nested, rebuild
from assemblykit.errors import (
    AllocationError,
    AssemblyError,
    InvocationError,
    MissingFieldError,
    NullTargetError,
)
from assemblykit.fixture_io import load_fixture_file, load_fixtures, parse_fixtures, resolve_target
from assemblykit.fixture_registry import FixtureRegistry
from assemblykit.fixture_types import FixtureSpec, FixtureStep
from assemblykit.introspection import DefaultIntrospector, Introspector

__all__ = [
    "AllocationError",
    "AssemblyBuilder",
    "AssemblyError",
    "AssemblyRecorder",
    "ConfigNamespace",
    "DefaultAssemblyRecorder",
    "DefaultIntrospector",
    "FixtureRegistry",
    "FixtureSpec",
    "FixtureStep",
    "InstantiateBasic",
    "InstantiateBypassing",
    "InstantiateWithArgs",
    "Instruction",
    "Introspector",
    "InvocationError",
    "InvokeMethod",
    "MissingFieldError",
    "NullAssemblyRecorder",
    "NullTargetError",
    "SetField",
    "SetFieldOnAncestor",
    "bypassing",
    "load_fixture_file",
    "load_fixtures",
    "nested",
    "parse_fixtures",
    "rebuild",
    "resolve_target",
]
