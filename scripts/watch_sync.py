#!/usr/bin/env python3
"""
Trigger a billing sync for one account and follow its status until it settles.

Usage:
  python scripts/watch_sync.py --account-id acct_123 --token <jwt>
  python scripts/watch_sync.py --account-id acct_123 --no-trigger
"""
from __future__ import annotations

import argparse
import os
import sys

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_BACKEND = os.path.join(_PROJECT_ROOT, 'backend')
if _BACKEND not in sys.path:
    sys.path.insert(0, _BACKEND)

from revsync.client.poller import FAILED, PolledStatus, SyncStatusPoller  # noqa: E402


def _print_status(state: PolledStatus) -> None:
    line = f'[{state.stage:>8}] {state.progress:3d}% {state.message}'
    if state.error:
        line += f' ({state.error})'
    print(line, flush=True)


def main() -> int:
    parser = argparse.ArgumentParser(description='Trigger and watch a billing sync')
    parser.add_argument('--api-url', default=os.getenv('REVSYNC_API_URL', 'http://localhost:8000'), help='API base URL')
    parser.add_argument('--account-id', required=True, help='Billing account to sync')
    parser.add_argument('--token', default=os.getenv('REVSYNC_TOKEN', ''), help='Bearer token or cron secret')
    parser.add_argument('--interval', type=float, default=3.0, help='Seconds between status reads')
    parser.add_argument('--no-trigger', action='store_true', help='Only watch, do not start a sync')
    parser.add_argument('--no-force', action='store_true', help='Let the server skip the sync when data is fresh')
    args = parser.parse_args()

    if not args.token:
        print('A token is required (--token or REVSYNC_TOKEN).', file=sys.stderr)
        return 2

    with SyncStatusPoller(args.api_url, args.account_id, args.token, interval=args.interval, on_change=_print_status) as poller:
        if not args.no_trigger:
            state = poller.trigger(force=not args.no_force)
            if state.stage == FAILED:
                return 1
        final = poller.start()
    return 0 if final.stage in ('ready', 'idle') else 1


if __name__ == '__main__':
    sys.exit(main())
