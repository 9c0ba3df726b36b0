#!/usr/bin/env python3
"""
CLI tool: permanently block a list of known-malicious IPs.

Usage:
    python -m scripts.import_blocklist blocklist.txt
    cat feed.txt | python -m scripts.import_blocklist - --reason "Abuse feed"
    python -m scripts.import_blocklist blocklist.txt --dry-run

One IP per line; blank lines and `#` comments are ignored, invalid entries are
reported and skipped. Uses REDIS_URL from the environment / .env.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Iterable

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from jobguard.config import get_settings
from jobguard.security.ip_blocking import IPBlockRegistry
from jobguard.store import get_store
from jobguard.utils.ip_utils import is_valid_ip, normalize_ip


def parse_blocklist(lines: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split raw lines into (valid IPs, rejected entries)."""
    valid: list[str] = []
    invalid: list[str] = []
    for line in lines:
        entry = line.split("#", 1)[0].strip()
        if not entry:
            continue
        if is_valid_ip(entry):
            valid.append(normalize_ip(entry))
        else:
            invalid.append(entry)
    return valid, invalid


async def run_import(ips: list[str], reason: str) -> int:
    settings = get_settings()
    store = get_store(settings)
    if not await store.connect():
        print(f"❌ Could not connect to Redis at {settings.redis_url}", file=sys.stderr)
        return 0
    try:
        registry = IPBlockRegistry(store, settings.security)
        return await registry.import_malicious_ip_list(ips, reason)
    finally:
        await store.close()


def main():
    parser = argparse.ArgumentParser(description="Import a malicious IP blocklist")
    parser.add_argument("source", help="File with one IP per line, or - for stdin")
    parser.add_argument("--reason", "-r", default="Known malicious IP", help="Block reason stored with each entry")
    parser.add_argument("--dry-run", "-n", action="store_true", help="Validate the list without writing anything")

    args = parser.parse_args()

    if args.source == "-":
        valid, invalid = parse_blocklist(sys.stdin)
    else:
        path = Path(args.source)
        if not path.is_file():
            print(f"❌ File not found: {path}", file=sys.stderr)
            sys.exit(1)
        with open(path, encoding="utf-8") as f:
            valid, invalid = parse_blocklist(f)

    for entry in invalid:
        print(f"⚠️  Skipping invalid IP: {entry}", file=sys.stderr)

    unique = list(dict.fromkeys(valid))
    print(f"Parsed {len(unique)} unique IPs ({len(invalid)} invalid)")

    if args.dry_run:
        print("Dry run: nothing written")
        return

    if not unique:
        print("Nothing to import")
        return

    imported = asyncio.run(run_import(unique, args.reason))
    if imported == 0:
        sys.exit(1)
    print(f"✅ Blocked {imported} IPs")


if __name__ == "__main__":
    main()
