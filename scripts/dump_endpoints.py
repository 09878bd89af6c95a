#!/usr/bin/env python3
"""Dump what pywsf can fetch from the ferries API.

Calls every catalogued endpoint whose path parameters can be filled and
prints the normalized payloads, plus each domain's cache flush date.
Handy for spotting new upstream fields or date formats.

Usage
-----
Set the access code and run::

    export WSDOT_ACCESS_TOKEN="your-access-code"
    python scripts/dump_endpoints.py

Options::

    --domain vessels     Only dump this domain (repeatable)
    --param routeId=9    Path parameter value (repeatable); tripDate defaults to today
    --json               Output as machine-readable JSON
    --output FILE        Write JSON output to FILE instead of stdout
    --bridge             Force the script bridge transport
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import string
import sys
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pywsf import DataDomain, WsfClient, WsfConfig, endpoints_for  # noqa: E402
from pywsf._redact import redact_for_log  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _placeholders(template: str) -> set[str]:
    return {name for _, name, _, _ in string.Formatter().parse(template) if name}


def _parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"--param expects key=value, got {pair!r}")
        params[key] = value
    return params


async def dump_domain(
    client: WsfClient,
    domain: DataDomain,
    params: dict[str, Any],
    *,
    json_mode: bool,
) -> dict[str, Any]:
    out: list[str] = [_section(f"{domain.upper()}")]
    domain_data: dict[str, Any] = {}

    flushed = await client.get_cache_flush_date(domain)
    out.append(f"  cacheflushdate: {flushed.isoformat() if flushed else None}")
    domain_data["cacheflushdate"] = flushed

    for endpoint in endpoints_for(domain):
        missing = _placeholders(endpoint.template) - params.keys()
        if missing:
            out.append(f"  -- {endpoint.name} skipped (needs {', '.join(sorted(missing))})")
            continue
        result = await client.fetch_result(endpoint, params)
        if result.ok:
            domain_data[endpoint.name] = result.value
            preview = json.dumps(redact_for_log(result.value, max_items=3), indent=2, default=str)
            out.append(f"\n  {endpoint.name}:\n{preview}")
        else:
            domain_data[endpoint.name] = {"error": str(result.error)}
            out.append(f"  !! {endpoint.name} failed: {result.error}")

    if not json_mode:
        print("\n".join(out))
    return domain_data


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump ferries API data through pywsf for debugging / development.",
    )
    parser.add_argument(
        "--domain",
        action="append",
        choices=[d.value for d in DataDomain],
        help="Only dump this domain (default: all)",
    )
    parser.add_argument("--param", action="append", default=[], help="Path parameter as key=value")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write JSON output to FILE instead of stdout")
    parser.add_argument("--bridge", action="store_true", help="Force the script bridge transport")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    params: dict[str, Any] = {"tripDate": date.today()}
    params.update(_parse_params(args.param))
    domains = [DataDomain(d) for d in args.domain] if args.domain else list(DataDomain)

    config = WsfConfig.from_env(force_bridge=True) if args.bridge else WsfConfig.from_env()
    result: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat(), "domains": {}}

    if not args.json_mode:
        print(_section("pywsf dump_endpoints"))
        print(f"  time      : {result['timestamp']}")
        print(f"  base_url  : {config.base_url}")

    async with WsfClient(config) as client:
        for domain in domains:
            result["domains"][domain.value] = await dump_domain(client, domain, params, json_mode=args.json_mode)

    payload = json.dumps(result, indent=2, default=str, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"JSON written to {args.output}", file=sys.stderr)
    elif args.json_mode:
        print(payload)


if __name__ == "__main__":
    asyncio.run(main())
