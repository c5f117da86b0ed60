"""Market price and FX rate HTTP client"""

from typing import Any, Dict, Optional

import httpx

from finledger.config import settings
from finledger.domain.exceptions import PricingError
from finledger.domain.models import Bucket
from finledger.infrastructure.observability.metrics import price_fetch_failures_counter

PROVIDER_BY_BUCKET = {
    Bucket.MUTUAL_FUND: "mutual_fund",
    Bucket.IND_STOCK: "equity",
    Bucket.US_STOCK: "equity",
    Bucket.CRYPTO: "crypto",
}

# Currency each provider quotes in; crypto is quoted in whatever is asked for
NATIVE_CURRENCY = {
    Bucket.MUTUAL_FUND: "INR",
    Bucket.IND_STOCK: "INR",
    Bucket.US_STOCK: "USD",
}


def holding_currency(bucket: Bucket, local_currency: str) -> str:
    """Currency a holding in this bucket is valued in"""
    return NATIVE_CURRENCY.get(bucket, local_currency)


class PricingClient:
    """Client for external price and exchange-rate APIs"""

    def __init__(
        self,
        mutual_fund_base: str | None = None,
        equity_base: str | None = None,
        crypto_base: str | None = None,
        fx_base: str | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mutual_fund_base = mutual_fund_base or settings.mutual_fund_api_base
        self.equity_base = equity_base or settings.equity_api_base
        self.crypto_base = crypto_base or settings.crypto_api_base
        self.fx_base = fx_base or settings.fx_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def get_price(self, symbol: str, bucket: Bucket, currency: str) -> float:
        """
        Fetch the latest unit price of a symbol.

        Mutual fund NAVs and equity quotes come back in the listing currency
        (see ``holding_currency``); crypto is quoted in ``currency``.

        Raises:
            PricingError: On timeout, HTTP errors, missing or non-positive price,
                or a bucket without a price provider
        """
        provider = PROVIDER_BY_BUCKET.get(bucket)
        if provider is None:
            raise PricingError(f"No price provider for bucket {bucket.value}")

        if bucket == Bucket.MUTUAL_FUND:
            data = await self._get_json(provider, f"{self.mutual_fund_base}/mf/{symbol}")
            price = self._extract(provider, symbol, lambda: data["data"][0]["nav"])
        elif bucket in (Bucket.IND_STOCK, Bucket.US_STOCK):
            ticker = symbol
            if bucket == Bucket.IND_STOCK and "." not in symbol:
                ticker = f"{symbol}.NS"
            data = await self._get_json(
                provider,
                f"{self.equity_base}/v8/finance/chart/{ticker}",
                params={"interval": "1d", "range": "1d"},
            )
            price = self._extract(provider, symbol, lambda: data["chart"]["result"][0]["meta"]["regularMarketPrice"])
        else:
            coin_id = symbol.lower()
            vs = currency.lower()
            data = await self._get_json(
                provider,
                f"{self.crypto_base}/api/v3/simple/price",
                params={"ids": coin_id, "vs_currencies": vs},
            )
            price = self._extract(provider, symbol, lambda: data[coin_id][vs])

        return price

    async def get_fx_rate(self, from_currency: str, to_currency: str) -> float:
        """
        Units of ``to_currency`` per one unit of ``from_currency``.

        Raises:
            PricingError: On timeout, HTTP errors, or a missing rate
        """
        if from_currency.upper() == to_currency.upper():
            return 1.0

        data = await self._get_json("fx", f"{self.fx_base}/v6/latest/{from_currency.upper()}")
        if data.get("result") != "success":
            price_fetch_failures_counter.labels(provider="fx").inc()
            raise PricingError(f"FX provider returned no rates for {from_currency.upper()}")
        return self._extract("fx", f"{from_currency}/{to_currency}", lambda: data["rates"][to_currency.upper()])

    async def _get_json(self, provider: str, url: str, params: Dict[str, str] | None = None) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(url, params=params, headers={"User-Agent": "Mozilla/5.0"})
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                price_fetch_failures_counter.labels(provider=provider).inc()
                raise PricingError(f"{provider} price API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                price_fetch_failures_counter.labels(provider=provider).inc()
                raise PricingError(f"{provider} price API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                price_fetch_failures_counter.labels(provider=provider).inc()
                raise PricingError(f"{provider} price API unreachable: {e}") from e
            except ValueError as e:
                price_fetch_failures_counter.labels(provider=provider).inc()
                raise PricingError(f"Invalid JSON from {provider} price API") from e

    @staticmethod
    def _extract(provider: str, symbol: str, pick) -> float:
        try:
            value = float(pick())
        except (KeyError, IndexError, ValueError, TypeError) as e:
            price_fetch_failures_counter.labels(provider=provider).inc()
            raise PricingError(f"No price available for {symbol}") from e
        if value <= 0:
            price_fetch_failures_counter.labels(provider=provider).inc()
            raise PricingError(f"No price available for {symbol}")
        return value
