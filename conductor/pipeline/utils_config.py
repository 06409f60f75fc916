# conductor/pipeline/utils_config.py
from __future__ import annotations

import dataclasses
from typing import Any, Mapping


def coalesce_not_none(*vals: Any) -> Any:
    """Return the first value that is not None (0 is valid and must be preserved)."""
    for v in vals:
        if v is not None:
            return v
    return None


def apply_dotted_overrides(target: Any, overrides: Mapping[str, Any]) -> None:
    """
    Apply dotted-path overrides into nested dataclasses/dicts.

    Dataclass paths must name existing fields; a typo raises ValueError
    instead of silently creating a new attribute. Dict containers accept
    new keys.
    """
    for path, value in (overrides or {}).items():
        parts = str(path).split(".")
        cur = target
        for i, part in enumerate(parts):
            last = (i == len(parts) - 1)

            if isinstance(cur, dict):
                if last:
                    cur[part] = value
                    break
                nxt = cur.get(part, None)
                if nxt is None:
                    nxt = {}
                    cur[part] = nxt
                cur = nxt
                continue

            if dataclasses.is_dataclass(cur):
                names = {f.name for f in dataclasses.fields(cur)}
                if part not in names:
                    raise ValueError(f"unknown config key '{path}' (no field '{part}')")
            elif not hasattr(cur, part):
                raise ValueError(f"unknown config key '{path}'")

            if last:
                setattr(cur, part, value)
                break
            cur = getattr(cur, part)
