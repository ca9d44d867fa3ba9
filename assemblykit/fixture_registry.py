from __future__ import annotations

import difflib
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable

from assemblykit.errors import type_label
from assemblykit.fixture_types import FixtureSpec


@dataclass(frozen=True)
class FixtureRegistry:
    _by_id: dict[str, FixtureSpec]

    @classmethod
    def from_specs(cls, specs: Iterable[FixtureSpec]) -> "FixtureRegistry":
        entries: dict[str, FixtureSpec] = {}
        for spec in specs:
            if spec.id in entries:
                raise ValueError(f"Duplicate fixture id: {spec.id}")
            entries[spec.id] = spec
        return cls(_by_id=entries)

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_id.keys()))

    def describe(self) -> tuple[dict[str, Any], ...]:
        rows: list[dict[str, Any]] = []
        for spec in sorted(self._by_id.values(), key=lambda s: s.id):
            rows.append(
                {
                    "fixture_id": spec.id,
                    "target": type_label(spec.target),
                    "construct": spec.construct,
                    "doc": spec.doc,
                    "source": spec.source,
                    "tags": list(spec.tags),
                    "fields": sorted(spec.fields.keys()),
                    "steps": [f"{step.kind}:{step.name}" for step in spec.steps],
                }
            )
        return tuple(rows)

    def get(self, fixture_id: str) -> FixtureSpec:
        spec = self._by_id.get((fixture_id or "").strip())
        if spec is None:
            raise ValueError(f"Unknown fixture id: {fixture_id}")
        return spec

    def resolve(self, fixture_id: str) -> FixtureSpec:
        """Exact id, or a unique dotted suffix (``admin`` for ``accounts.admin``)."""

        if not isinstance(fixture_id, str) or not fixture_id.strip():
            raise ValueError("fixture_id must be a non-empty string")
        key = fixture_id.strip()

        direct = self._by_id.get(key)
        if direct is not None:
            return direct

        matches = sorted(s for s in self._by_id.keys() if s.endswith("." + key))
        if len(matches) == 1:
            return self._by_id[matches[0]]
        if len(matches) > 1:
            raise ValueError(f"Ambiguous fixture id: {fixture_id} (matches: {', '.join(matches)})")

        available = ", ".join(self.available()) or "<none>"
        raise ValueError(f"Unknown fixture id: {fixture_id} (available: {available})")

    def suggest(self, fixture_id: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (fixture_id or "").strip()
        if not key:
            return ()

        available = self.available()
        if not available:
            return ()

        suffix_to_full: dict[str, list[str]] = defaultdict(list)
        for full in available:
            suffix_to_full[full.rsplit(".", 1)[-1]].append(full)

        suggestions = list(difflib.get_close_matches(key, list(suffix_to_full.keys()), n=limit))
        expanded: list[str] = []
        for suggestion in suggestions:
            expanded.extend(suffix_to_full.get(suggestion, []))
        if expanded:
            return tuple(expanded[:limit])
        return tuple(difflib.get_close_matches(key, list(available), n=limit))

    def build(self, fixture_id: str, **builder_kwargs: Any) -> Any:
        return self.resolve(fixture_id).build(**builder_kwargs)
