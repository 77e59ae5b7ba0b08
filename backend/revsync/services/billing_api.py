"""
HTTP boundary to the billing platform.

Speaks a Stripe-style REST dialect: `GET /v1/{resource}` with
`limit`/`starting_after` returning `{"data": [...], "has_more": bool}` and
`GET /v1/{resource}/{id}` for single records. Every failure leaves this
module as a `BillingAPIError` tagged with an `ErrorKind`, so callers never
depend on httpx exception types.
"""
from __future__ import annotations

from typing import Any

import httpx

from revsync.core.config import settings
from revsync.services.backoff import BillingAPIError, ErrorKind
from revsync.services.pagination import BillingPage

ACCOUNT_HEADER = 'Stripe-Account'


def _kind_for_status(status_code: int) -> str:
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code >= 500:
        return ErrorKind.API
    if status_code in (401, 403):
        return ErrorKind.AUTHENTICATION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    return ErrorKind.INVALID_REQUEST


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f'HTTP {response.status_code}'
    if isinstance(body, dict) and isinstance(body.get('error'), dict):
        return str(body['error'].get('message') or f'HTTP {response.status_code}')
    return f'HTTP {response.status_code}'


def _flatten_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """Encode nested filters the way the platform expects (`created[gte]=...`)."""
    out: dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                if sub_value is not None:
                    out[f'{key}[{sub_key}]'] = sub_value
        elif isinstance(value, bool):
            out[key] = 'true' if value else 'false'
        else:
            out[key] = value
    return out


class BillingAPI:
    def __init__(
        self,
        api_key: str,
        *,
        account_id: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {'Authorization': f'Bearer {api_key}', 'User-Agent': 'revsync-api'}
        if account_id:
            headers[ACCOUNT_HEADER] = account_id
        self.account_id = account_id
        self._client = httpx.Client(
            base_url=(base_url or settings.billing_api_base_url).rstrip('/'),
            headers=headers,
            timeout=timeout if timeout is not None else settings.billing_api_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> 'BillingAPI':
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._client.get(path, params=_flatten_params(params))
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise BillingAPIError(ErrorKind.CONNECTION, f'{path}: {exc}') from exc
        except httpx.HTTPError as exc:
            raise BillingAPIError(ErrorKind.API, f'{path}: {exc}') from exc
        if response.status_code >= 400:
            raise BillingAPIError(
                _kind_for_status(response.status_code),
                f'{path}: {_error_message(response)}',
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise BillingAPIError(ErrorKind.INVALID_RESPONSE, f'{path}: response was not valid JSON') from exc
        if not isinstance(body, dict):
            raise BillingAPIError(ErrorKind.INVALID_RESPONSE, f'{path}: expected a JSON object')
        return body

    def list_page(
        self,
        resource: str,
        *,
        starting_after: str | None = None,
        limit: int = 100,
        params: dict[str, Any] | None = None,
    ) -> BillingPage:
        query = dict(params or {})
        query['limit'] = limit
        if starting_after:
            query['starting_after'] = starting_after
        body = self._get(f'/v1/{resource}', query)
        data = body.get('data')
        if not isinstance(data, list):
            raise BillingAPIError(ErrorKind.INVALID_RESPONSE, f'/v1/{resource}: missing data list')
        return BillingPage(items=data, has_more=bool(body.get('has_more')))

    def retrieve(self, resource: str, resource_id: str) -> dict[str, Any]:
        return self._get(f'/v1/{resource}/{resource_id}')
