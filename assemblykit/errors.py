"""Error taxonomy raised by `AssemblyBuilder.build()`."""

from __future__ import annotations

from typing import Any


class AssemblyError(RuntimeError):
    """Assembly failed. The originating exception (if any) is chained as ``__cause__``."""

    def __init__(self, message: str, *, target: Any = None) -> None:
        text = str(message or "").strip() or "unknown failure"
        if not text.startswith("Assembly failed"):
            text = f"Assembly failed: {text}"
        super().__init__(text)
        self.target = target


class MissingFieldError(AssemblyError):
    """No class in the target's ancestor chain declares the requested field."""


class AllocationError(AssemblyError):
    """The instance could not be produced (constructor raised, abstract type, no target)."""


class InvocationError(AssemblyError):
    """A located method raised while being invoked."""


class NullTargetError(AssemblyError):
    """A field or method instruction ran while the instance slot was empty."""


def type_label(target: Any) -> str:
    if target is None:
        return "-unknown-"
    module = getattr(target, "__module__", None)
    qualname = getattr(target, "__qualname__", None) or getattr(target, "__name__", None)
    if qualname is None:
        return repr(target)
    if module and module != "builtins":
        return f"{module}.{qualname}"
    return str(qualname)
