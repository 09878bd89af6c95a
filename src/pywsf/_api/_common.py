"""Shared helpers for ferries API endpoint modules.

It is internal to pywsf and may change at any time.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import Any
from urllib.parse import quote

from pywsf._constants import ACCESS_CODE_PARAM
from pywsf.config import WsfConfig
from pywsf.ingestion.dates import format_path_date

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def format_path_value(value: Any) -> str:
    """Render one path parameter: dates as ``YYYY-MM-DD``, the rest via ``str``."""
    if isinstance(value, date):
        return format_path_date(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate_path(template: str, params: Mapping[str, Any] | None = None) -> str:
    """Substitute ``{name}`` placeholders in *template*.

    Raises :class:`ValueError` when a placeholder has no value.
    """
    values = params or {}

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values or values[name] is None:
            raise ValueError(f"missing path parameter {name!r} for {template}")
        return quote(format_path_value(values[name]), safe="")

    return _PLACEHOLDER_RE.sub(_substitute, template)


def build_url(
    config: WsfConfig,
    domain: str,
    template: str,
    params: Mapping[str, Any] | None = None,
) -> str:
    """Build the complete upstream URL, access code included."""
    path = interpolate_path(template, params)
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{config.domain_base_url(domain)}{path}?{ACCESS_CODE_PARAM}={quote(config.access_token, safe='')}"
