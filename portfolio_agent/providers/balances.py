import httpx
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..config import settings
from ..core.recovery.errors import ProviderAuthError, ProviderCallFailed, ProviderRateLimitError
from ..types.portfolio import BalanceSet, TokenBalance
from .base import BalanceProvider


class GlacierBalanceSource(BalanceProvider):
    """AvaCloud Glacier API provider for ERC-20 balances"""

    name = "glacier"
    max_pages = 20

    def __init__(
        self,
        api_key: Optional[str] = None,
        chain_id: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.glacier_api_key
        self.chain_id = chain_id or settings.portfolio_chain_id
        self.base_url = (base_url or settings.glacier_base_url).rstrip("/")
        self.timeout_s = settings.glacier_timeout_seconds
        self._transport = transport

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-glacier-api-key"] = self.api_key
        return headers

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(f"/v1/chains/{self.chain_id}")
                response.raise_for_status()
                return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except Exception as e:
            return {"status": "error", "reason": str(e)}

    async def list_balances(self, address: str, page_size: int = 100) -> BalanceSet:
        """Get all ERC-20 balances for address, following page tokens"""
        path = f"/v1/chains/{self.chain_id}/addresses/{address}/balances:listErc20"
        params: Dict[str, Any] = {"pageSize": page_size}
        balances: List[TokenBalance] = []

        async with self._client() as client:
            for _ in range(self.max_pages):
                data = await self._get(client, path, params)
                for raw in data.get("erc20TokenBalances") or []:
                    balances.append(_token_balance(raw))
                next_token = data.get("nextPageToken")
                if not next_token:
                    break
                params = {"pageSize": page_size, "pageToken": next_token}

        return BalanceSet(address=address, chain_id=self.chain_id, balances=balances)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout_s,
            transport=self._transport,
        )

    async def _get(self, client: httpx.AsyncClient, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise ProviderAuthError(f"Glacier authentication failed ({status})", provider=self.name) from exc
            if status == 429:
                raise ProviderRateLimitError("Glacier rate limit exceeded", provider=self.name) from exc
            raise ProviderCallFailed(f"Glacier API error ({status}): {exc.response.text}", provider=self.name) from exc
        except httpx.RequestError as exc:
            raise ProviderCallFailed(f"Glacier request error: {exc}", provider=self.name) from exc


def _token_balance(raw: Dict[str, Any]) -> TokenBalance:
    decimals = int(raw.get("decimals") or 0)
    balance_wei = str(raw.get("balance") or "0")
    try:
        formatted = Decimal(balance_wei) / (Decimal(10) ** decimals)
    except InvalidOperation:
        formatted = Decimal("0")

    price_usd: Optional[Decimal] = None
    value_usd: Optional[Decimal] = None
    price = (raw.get("price") or {}).get("value")
    if price is not None:
        price_usd = Decimal(str(price))
    balance_value = (raw.get("balanceValue") or {}).get("value")
    if balance_value is not None:
        value_usd = Decimal(str(balance_value))

    return TokenBalance(
        symbol=raw.get("symbol") or "",
        name=raw.get("name") or raw.get("symbol") or "",
        address=raw.get("address"),
        decimals=decimals,
        balance_wei=balance_wei,
        balance_formatted=f"{formatted:f}",
        price_usd=price_usd,
        value_usd=value_usd,
    )
