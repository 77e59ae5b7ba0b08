"""
Client-side observer of an account's sync status.

Reads `GET /api/v1/sync/status` on an interval until the stage settles. The
server never pushes; everything the poller knows comes from the last read.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

# Local-only stages: `pending` between a trigger and its first read,
# `failed` when the poller itself gave up (auth, network, bad body).
PENDING = 'pending'
FAILED = 'failed'
POLLING_STAGES = frozenset({'syncing', PENDING})


@dataclass(frozen=True)
class PolledStatus:
    stage: str = 'idle'
    progress: int = 0
    message: str = ''
    last_synced_at: datetime | None = None
    error: str | None = None


def _parse_timestamp(value) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


class SyncStatusPoller:
    def __init__(
        self,
        base_url: str,
        account_id: str,
        token: str,
        interval: float = 3.0,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
        on_change: Callable[[PolledStatus], None] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.account_id = account_id
        self.interval = max(0.0, float(interval))
        self.on_change = on_change
        self._stop = threading.Event()
        self._sleep = sleep or self._stop.wait
        self._lock = threading.Lock()
        self._state = PolledStatus()
        self._client = httpx.Client(
            base_url=base_url.rstrip('/'),
            headers={'Authorization': f'Bearer {token}'},
            timeout=timeout,
            transport=transport,
        )

    @property
    def state(self) -> PolledStatus:
        with self._lock:
            return self._state

    def _set_state(self, state: PolledStatus) -> PolledStatus:
        with self._lock:
            changed = state != self._state
            self._state = state
        if changed and self.on_change is not None:
            self.on_change(state)
        return state

    def _fail(self, error: str) -> PolledStatus:
        logger.warning('sync status polling stopped account=%s: %s', self.account_id, error)
        return self._set_state(replace(self.state, stage=FAILED, error=error))

    def close(self) -> None:
        self._stop.set()
        self._client.close()

    def __enter__(self) -> 'SyncStatusPoller':
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    def refresh(self) -> PolledStatus:
        """One status read. Any failure moves the local state to `failed`."""
        try:
            response = self._client.get('/api/v1/sync/status', params={'account_id': self.account_id})
        except httpx.HTTPError as exc:
            return self._fail(f'network error: {exc}')
        if response.status_code in (401, 403):
            return self._fail(f'not authorized ({response.status_code})')
        if response.status_code >= 400:
            return self._fail(f'status request failed ({response.status_code})')
        try:
            body = response.json()
        except ValueError:
            return self._fail('status response was not JSON')
        if not isinstance(body, dict) or 'stage' not in body:
            return self._fail('status response missing stage')
        return self._set_state(
            PolledStatus(
                stage=str(body.get('stage') or 'idle'),
                progress=int(body.get('progress') or 0),
                message=str(body.get('message') or ''),
                last_synced_at=_parse_timestamp(body.get('last_synced_at')),
            )
        )

    def start(self) -> PolledStatus:
        """Read immediately, then keep polling while the stage is in flight."""
        self._stop.clear()
        state = self.refresh()
        while state.stage in POLLING_STAGES and not self._stop.is_set():
            self._sleep(self.interval)
            if self._stop.is_set():
                break
            state = self.refresh()
        return state

    def stop(self) -> None:
        self._stop.set()

    def trigger(self, force: bool = True) -> PolledStatus:
        self._set_state(PolledStatus(stage=PENDING, progress=0, message='Sync requested...', last_synced_at=self.state.last_synced_at))
        try:
            response = self._client.post('/api/v1/sync/run', json={'account_id': self.account_id, 'force': bool(force)})
        except httpx.HTTPError as exc:
            return self._fail(f'network error: {exc}')
        if response.status_code in (401, 403):
            return self._fail(f'not authorized ({response.status_code})')
        if response.status_code >= 400:
            return self._fail(f'trigger failed ({response.status_code})')
        return self.state
