import hashlib
import json
from typing import Any, Dict


def stable_hash(payload: Dict[str, Any]) -> str:
    raw = json.dumps(_str_keys(payload), sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def run_tag(payload: Dict[str, Any]) -> str:
    """Short partition tag for outputs of one configuration/input pair."""
    return f"run={stable_hash(payload)[:8]}"


def _str_keys(value: Any) -> Any:
    # YAML season keys are ints; mixed key types cannot be sorted.
    if isinstance(value, dict):
        return {str(k): _str_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_str_keys(v) for v in value]
    return value
