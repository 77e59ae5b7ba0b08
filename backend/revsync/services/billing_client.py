from __future__ import annotations

from typing import Any, Callable

from revsync.core.config import settings
from revsync.services.backoff import RetryOptions, execute_with_backoff
from revsync.services.billing_api import BillingAPI
from revsync.services.pagination import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE, BillingPage, fetch_all


class DeletedResourceError(LookupError):
    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f'{resource} with id {resource_id} is deleted.')


def retry_options_from_settings() -> RetryOptions:
    return RetryOptions(
        max_retries=max(1, int(settings.billing_max_retries)),
        base_delay_ms=max(0, int(settings.billing_base_delay_ms)),
        max_delay_ms=max(0, int(settings.billing_max_delay_ms)),
    )


class SafeBillingClient:
    """Typed list/get helpers with pagination and retry over a BillingAPI."""

    def __init__(
        self,
        api: BillingAPI,
        *,
        retry_options: RetryOptions | None = None,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_size: int = DEFAULT_PAGE_SIZE,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.api = api
        self.retry_options = retry_options or RetryOptions()
        self.max_pages = max_pages
        self.page_size = page_size
        self._sleep = sleep

    def close(self) -> None:
        self.api.close()

    def _list_all(self, resource: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        def _page(starting_after: str | None, limit: int) -> BillingPage:
            return self.api.list_page(resource, starting_after=starting_after, limit=limit, params=params)

        return fetch_all(
            _page,
            self.max_pages,
            page_size=self.page_size,
            options=self.retry_options,
            sleep=self._sleep,
        )

    def _retrieve(self, resource: str, resource_id: str) -> dict[str, Any]:
        kwargs = {'sleep': self._sleep} if self._sleep is not None else {}
        return execute_with_backoff(lambda: self.api.retrieve(resource, resource_id), self.retry_options, **kwargs)

    def list_all_subscriptions(self, **params: Any) -> list[dict[str, Any]]:
        return self._list_all('subscriptions', params)

    def list_all_customers(self, **params: Any) -> list[dict[str, Any]]:
        return self._list_all('customers', params)

    def list_all_invoices(self, **params: Any) -> list[dict[str, Any]]:
        return self._list_all('invoices', params)

    def list_all_charges(self, **params: Any) -> list[dict[str, Any]]:
        return self._list_all('charges', params)

    def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        return self._retrieve('subscriptions', subscription_id)

    def get_customer(self, customer_id: str) -> dict[str, Any]:
        customer = self._retrieve('customers', customer_id)
        if customer.get('deleted'):
            raise DeletedResourceError('Customer', customer_id)
        return customer


def build_billing_client(account_id: str) -> SafeBillingClient:
    """Default client factory: one BillingAPI per account, settings-driven limits."""
    return SafeBillingClient(
        BillingAPI(settings.billing_api_key, account_id=account_id),
        retry_options=retry_options_from_settings(),
        max_pages=max(1, int(settings.billing_max_pages)),
        page_size=max(1, min(100, int(settings.billing_page_size))),
    )
