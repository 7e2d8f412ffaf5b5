"""Load review transition policies from YAML files.

Example file::

    terminal: [CANCELLED]
    allowed:
      APPROVED: [UNDER_REVIEW, CANCELLED]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from order_review.errors import ValidationError
from order_review.review import TransitionPolicy


def _status_list(value: Any, where: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{where} must be a list of status names")
    return value


def parse_transition_policy(data: Any, source: str = "<policy>") -> TransitionPolicy:
    """Build a policy from already-parsed YAML data."""
    if data is None:
        return TransitionPolicy.permissive()
    if not isinstance(data, dict):
        raise ValueError(f"{source}: policy must be a mapping")

    unknown_keys = set(data) - {"allowed", "terminal"}
    if unknown_keys:
        raise ValueError(f"{source}: unknown keys {sorted(unknown_keys)}")

    allowed_raw = data.get("allowed") or {}
    if not isinstance(allowed_raw, dict):
        raise ValueError(f"{source}: allowed must be a mapping")

    allowed = {
        str(source_status): _status_list(targets, f"{source}: allowed.{source_status}")
        for source_status, targets in allowed_raw.items()
    }
    terminal = _status_list(data.get("terminal"), f"{source}: terminal")

    try:
        return TransitionPolicy.from_rules(allowed=allowed, terminal=terminal)
    except ValidationError as exc:
        raise ValueError(f"{source}: {exc.message}") from exc


def load_transition_policy(path: str | Path | None) -> TransitionPolicy:
    """Load a policy file; no path means the permissive default."""
    if path is None:
        return TransitionPolicy.permissive()
    policy_path = Path(path)
    raw = policy_path.read_text(encoding="utf-8")
    return parse_transition_policy(yaml.safe_load(raw), source=policy_path.name)
