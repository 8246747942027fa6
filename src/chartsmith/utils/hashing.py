"""Stable hashing of data trees and rendered markup."""

import hashlib
import json
from typing import Any


def _dumps(value: Any) -> str:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def _string_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _string_keys(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_string_keys(item) for item in value]
    return value


def canonical_json(value: Any) -> str:
    """Serialize a data tree so equal trees always produce equal text.

    Dict keys are sorted, separators are fixed and non-JSON leaves fall back
    to str().
    """
    try:
        return _dumps(value)
    except TypeError:
        # Mixed key types cannot be sorted; JSON writes every key as a string anyway
        return _dumps(_string_keys(value))


def stable_hash(value: Any, length: int = 16) -> str:
    """Return a hex digest of a data tree, independent of dict key order."""
    digest = hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()
    return digest[:length]


def content_hash(text: str, length: int = 16) -> str:
    """Return a hex digest of rendered text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]
