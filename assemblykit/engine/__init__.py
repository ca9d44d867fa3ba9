"""Engine primitives for accumulating and replaying assembly instructions."""

from assemblykit.engine.assembler import (
    AssemblyBuilder,
    AssemblyRecorder,
    DefaultAssemblyRecorder,
    NullAssemblyRecorder,
    utc_now_iso8601,
)
from assemblykit.engine.instructions import (
    INSTANTIATE_PRIORITY,
    MUTATE_PRIORITY,
    AssemblyContext,
    InstantiateBasic,
    InstantiateBypassing,
    InstantiateInstruction,
    InstantiateWithArgs,
    Instruction,
    InvokeMethod,
    SetField,
    SetFieldOnAncestor,
)
from assemblykit.engine.patterns import bypassing, instance_state, nested, rebuild

__all__ = [
    "INSTANTIATE_PRIORITY",
    "MUTATE_PRIORITY",
    "AssemblyBuilder",
    "AssemblyContext",
    "AssemblyRecorder",
    "DefaultAssemblyRecorder",
    "InstantiateBasic",
    "InstantiateBypassing",
    "InstantiateInstruction",
    "InstantiateWithArgs",
    "Instruction",
    "InvokeMethod",
    "NullAssemblyRecorder",
    "SetField",
    "SetFieldOnAncestor",
    "bypassing",
    "instance_state",
    "nested",
    "rebuild",
    "utc_now_iso8601",
]
