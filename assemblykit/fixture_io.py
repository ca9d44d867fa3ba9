"""Load declarative fixture definitions from YAML.

File shape::

    fixtures:
      accounts.admin:
        target: "myapp.accounts:Account"
        construct: bypass
        fields: {owner: root}
        steps:
          - set_field: {name: __token, value: abc, ancestor: "myapp.accounts:Principal"}
          - invoke: {name: activate, args: []}

A sibling ``<name>.local.yaml`` file, when present, is deep-merged over the base file.
"""

from __future__ import annotations

import importlib
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from assemblykit.config_namespace import ConfigNamespace
from assemblykit.fixture_types import ALLOWED_CONSTRUCTS, ALLOWED_STEP_KINDS, FixtureSpec, FixtureStep

DEFAULT_ENV_VAR = "ASSEMBLYKIT_FIXTURES"


def resolve_target(ref: str) -> type:
    """Import ``"package.module:Qual.Name"`` and return the class it names."""

    if not isinstance(ref, str) or ":" not in ref:
        raise ValueError(f"Target reference must look like 'module:QualName' (got {ref!r})")
    module_name, _, qualname = ref.strip().partition(":")
    if not module_name.strip() or not qualname.strip():
        raise ValueError(f"Target reference must look like 'module:QualName' (got {ref!r})")

    obj: Any = importlib.import_module(module_name.strip())
    for part in qualname.strip().split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise ValueError(f"Cannot resolve {ref!r}: {part!r} not found") from exc
    if not isinstance(obj, type):
        raise TypeError(f"Target reference {ref!r} does not name a class (type={type(obj).__name__})")
    return obj


def _load_yaml_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Fixture file must contain a YAML mapping: {path}")
    return dict(payload)


def _deep_merge(base: Any, overlay: Any, *, path: str) -> Any:
    if overlay is None:
        return None

    if base is None:
        return overlay

    if isinstance(base, Mapping):
        if not isinstance(overlay, Mapping):
            raise ValueError(
                f"Invalid fixture overlay merge at {path}: base is mapping but overlay is {type(overlay).__name__}"
            )
        merged: dict[str, Any] = dict(base)
        for key, overlay_value in overlay.items():
            next_path = f"{path}.{key}" if path else str(key)
            if key in base:
                merged[key] = _deep_merge(base[key], overlay_value, path=next_path)
            else:
                merged[key] = overlay_value
        return merged

    if isinstance(base, (list, tuple)):
        if not isinstance(overlay, (list, tuple)):
            raise ValueError(
                f"Invalid fixture overlay merge at {path}: base is list but overlay is {type(overlay).__name__}"
            )
        return list(overlay)

    if isinstance(overlay, (Mapping, list, tuple)):
        raise ValueError(
            f"Invalid fixture overlay merge at {path}: base is {type(base).__name__} but overlay is {type(overlay).__name__}"
        )

    return overlay


def _parse_step(raw: Mapping[str, Any], *, path: str) -> FixtureStep:
    kinds = [key for key in raw.keys() if key in ALLOWED_STEP_KINDS]
    if len(raw) != 1 or len(kinds) != 1:
        raise ValueError(
            f"{path} must have exactly one of: {', '.join(ALLOWED_STEP_KINDS)} "
            f"(got {', '.join(str(k) for k in raw.keys()) or '<none>'})"
        )
    kind = kinds[0]
    body_raw = raw[kind] if raw[kind] is not None else {}
    if not isinstance(body_raw, Mapping):
        raise TypeError(f"{path}.{kind} must be a mapping (type={type(body_raw).__name__})")
    body = ConfigNamespace(dict(body_raw), path=f"{path}.{kind}")

    name = body.get_str("name")
    if kind == "invoke":
        step = FixtureStep(kind="invoke", name=name or "", args=tuple(body.get_list("args", default=[])))
    else:
        ancestor_ref = body.get_str("ancestor", default=None)
        step = FixtureStep(
            kind="set_field",
            name=name or "",
            value=body.get_value("value", default=None),
            ancestor=resolve_target(ancestor_ref) if ancestor_ref else None,
        )
    body.assert_consumed()
    return step


def _parse_fixture(fixture_id: str, ns: ConfigNamespace, *, source: str | None) -> FixtureSpec:
    target = resolve_target(ns.get_str("target") or "")
    construct = ns.get_str("construct", default="default", choices=ALLOWED_CONSTRUCTS)
    args = ns.get_list("args", default=[])
    doc = ns.get_str("doc", default=None)
    tags = ns.get_list_str("tags", default=[], allow_empty=True)
    fields = ns.get_mapping("fields", default=None)

    steps: list[FixtureStep] = []
    for idx, item in enumerate(ns.get_list("steps", default=[])):
        step_path = f"{ns.path}.steps[{idx}]"
        if not isinstance(item, Mapping):
            raise TypeError(f"{step_path} must be a mapping (type={type(item).__name__})")
        steps.append(_parse_step(item, path=step_path))

    ns.assert_consumed()
    return FixtureSpec(
        id=fixture_id,
        target=target,
        construct=construct,  # type: ignore[arg-type]
        args=tuple(args),
        fields=fields,
        steps=tuple(steps),
        doc=doc,
        tags=tuple(tags),
        source=source,
    )


def parse_fixtures(
    payload: Mapping[str, Any], *, path: str = "", source: str | None = None
) -> tuple[FixtureSpec, ...]:
    root = ConfigNamespace(payload, path=path)
    fixtures = root.namespace("fixtures")
    specs = [
        _parse_fixture(fixture_id, fixtures.namespace(fixture_id), source=source)
        for fixture_id in fixtures.keys()
    ]
    root.assert_consumed()
    return tuple(specs)


def _local_overlay_path(path: str) -> str:
    candidate = Path(path)
    return str(candidate.with_name(f"{candidate.stem}.local{candidate.suffix or '.yaml'}"))


def load_fixture_file(path: str | os.PathLike[str], *, overlay_path: str | None = None) -> tuple[FixtureSpec, ...]:
    specs, _meta = load_fixtures(path, overlay_path=overlay_path)
    return specs


def load_fixtures(
    path: str | os.PathLike[str] | None = None,
    *,
    env_var: str | None = DEFAULT_ENV_VAR,
    overlay_path: str | os.PathLike[str] | None = None,
) -> tuple[tuple[FixtureSpec, ...], dict[str, Any]]:
    """Load fixture specs from `path` (or the file named by `env_var`).

    Returns ``(specs, meta)`` where meta records how the file set was resolved.
    """

    explicit_path = None
    mode = "explicit"
    if path is not None:
        explicit_path = str(path).strip() or None
    elif env_var:
        explicit_path = os.environ.get(str(env_var), "").strip() or None
        mode = "env"
    if not explicit_path:
        raise ValueError(
            f"No fixture file given (pass a path or set {env_var or 'a fixture env var'})"
        )

    base_path = os.path.abspath(os.path.expandvars(os.path.expanduser(explicit_path)))
    if not os.path.exists(base_path):
        raise FileNotFoundError(f"Missing fixture file: {base_path}")

    payload = _load_yaml_mapping(base_path)
    loaded_paths = [base_path]

    overlay = str(overlay_path) if overlay_path is not None else _local_overlay_path(base_path)
    if overlay_path is not None and not os.path.exists(overlay):
        raise FileNotFoundError(f"Missing fixture overlay file: {overlay}")
    if os.path.exists(overlay):
        payload = _deep_merge(payload, _load_yaml_mapping(overlay), path="")
        loaded_paths.append(os.path.abspath(overlay))
        mode = f"{mode}+local"

    specs = parse_fixtures(payload, source=base_path)
    meta = {"mode": mode, "paths": loaded_paths, "env_var": env_var}
    return specs, meta
