"""Normalization helpers.

Rewrites raw upstream JSON into the shape the rest of pywsf works with:

- object keys lose their leading capital (``VesselName`` -> ``vesselName``)
- strings in any recognised date encoding become :class:`datetime.datetime`
- empty strings become ``None`` (optional)

The rewrite never changes the tree's shape and is idempotent.
"""

from __future__ import annotations

from typing import Any

from pywsf.ingestion.dates import parse_date_string


def normalize_key(key: str) -> str:
    """Lower-case the first character of *key*, leaving the rest untouched."""
    if not key:
        return key
    return key[0].lower() + key[1:]


def normalize_string(value: str, *, empty_as_none: bool = True) -> Any:
    if value == "":
        return None if empty_as_none else value
    parsed = parse_date_string(value)
    return value if parsed is None else parsed


def normalize_payload(data: Any, *, empty_as_none: bool = True) -> Any:
    """Recursively normalize a decoded JSON value.

    - ``None``: returned as-is.
    - Lists/tuples: every element normalized, order and length kept.
    - Dicts: keys passed through :func:`normalize_key`, values normalized.
    - Strings: date detection, see :mod:`pywsf.ingestion.dates`.
    - Anything else (numbers, booleans, datetimes, models): returned as-is.
    """

    if data is None:
        return None

    if isinstance(data, (list, tuple)):
        return [normalize_payload(item, empty_as_none=empty_as_none) for item in data]

    if isinstance(data, dict):
        result: dict[Any, Any] = {}
        for key, value in data.items():
            new_key = normalize_key(key) if isinstance(key, str) else key
            # Keep the original spelling when renaming would collide with a
            # sibling; the key count must not shrink.
            if new_key != key and new_key in data:
                new_key = key
            result[new_key] = normalize_payload(value, empty_as_none=empty_as_none)
        return result

    if isinstance(data, str):
        return normalize_string(data, empty_as_none=empty_as_none)

    return data
