#!/usr/bin/env python3
"""
Cleanup script to delete running Eburon browser sandboxes
Use this to clean up browsers left running after crashes or interrupted runs
"""

import argparse
import asyncio
from typing import List, Optional

from eburon.e2b import E2BBrowserProvider
from eburon.exceptions import ConfigurationError, SessionNotFound
from eburon.session.models import BrowserProvider, SessionSummary


async def collect_sessions(provider: BrowserProvider) -> List[SessionSummary]:
    return [s async for s in provider.list() if s.deleted_at is None]


async def delete_sessions(provider: BrowserProvider, sessions: List[SessionSummary]):
    """Delete each session; returns (deleted, failed) counts"""
    deleted_count = 0
    failed_count = 0

    for i, summary in enumerate(sessions, 1):
        print(f"  [{i}/{len(sessions)}] Deleting {summary.session_id}...", end=" ", flush=True)
        try:
            await provider.delete_by_id(summary.session_id)
            print("deleted")
            deleted_count += 1
        except SessionNotFound:
            print("already gone")
        except Exception as e:
            print(f"failed: {e}")
            failed_count += 1

    return deleted_count, failed_count


async def cleanup_all_sandboxes(
    provider: Optional[BrowserProvider] = None, assume_yes: bool = False
) -> int:
    """List the running browser sandboxes, confirm, and delete them"""
    provider = provider or E2BBrowserProvider()

    print("=" * 70)
    print("Eburon browser sandbox cleanup")
    print("=" * 70)
    print()
    print("Fetching running browser sandboxes...")

    try:
        sessions = await collect_sessions(provider)
    except ConfigurationError as e:
        print(f"Not configured: {e.message}")
        return 1

    if not sessions:
        print("No running browser sandboxes found.")
        return 0

    print(f"Found {len(sessions)} running sandbox(es):")
    print()
    for i, summary in enumerate(sessions, 1):
        print(f"  [{i}] Sandbox ID: {summary.session_id}")
        print(f"      Started: {summary.started_at or 'unknown'}")
        print()

    if not assume_yes:
        response = input(f"Delete all {len(sessions)} sandbox(es)? (y/N): ").strip().lower()
        if response != "y":
            print("Cancelled. No sandboxes deleted.")
            return 0

    print()
    deleted_count, failed_count = await delete_sessions(provider, sessions)

    print()
    print("=" * 70)
    print(f"Cleanup complete. Deleted: {deleted_count}")
    if failed_count > 0:
        print(f"Failed: {failed_count}")
    print("=" * 70)
    return 1 if failed_count else 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("-y", "--yes", action="store_true", help="skip the confirmation prompt")
    args = parser.parse_args()
    return asyncio.run(cleanup_all_sandboxes(assume_yes=args.yes))


if __name__ == "__main__":
    raise SystemExit(main())
