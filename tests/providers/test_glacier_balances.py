import httpx
import pytest
from decimal import Decimal

from portfolio_agent.core.recovery import ProviderAuthError, ProviderCallFailed, ProviderRateLimitError
from portfolio_agent.providers.balances import GlacierBalanceSource

WALLET = "0x1111111111111111111111111111111111111111"


def usdc(balance="2500000", value=2.5):
    return {
        "address": "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E",
        "symbol": "USDC",
        "name": "USD Coin",
        "decimals": 6,
        "balance": balance,
        "price": {"currencyCode": "usd", "value": 1.0},
        "balanceValue": {"currencyCode": "usd", "value": value},
    }


def source_with(handler):
    return GlacierBalanceSource(
        api_key="glacier-key",
        chain_id="43114",
        base_url="https://glacier.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_list_balances_parses_tokens():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"erc20TokenBalances": [usdc()]})

    balances = await source_with(handler).list_balances(WALLET)

    assert balances.address == WALLET
    assert balances.chain_id == "43114"
    assert balances.token_count == 1
    token = balances.balances[0]
    assert token.symbol == "USDC"
    assert token.balance_formatted == "2.5"
    assert token.value_usd == Decimal("2.5")
    assert seen[0].url.path == f"/v1/chains/43114/addresses/{WALLET}/balances:listErc20"
    assert seen[0].url.params["pageSize"] == "100"
    assert seen[0].headers["x-glacier-api-key"] == "glacier-key"


@pytest.mark.asyncio
async def test_list_balances_follows_page_tokens():
    pages = [
        {"erc20TokenBalances": [usdc(value=1)], "nextPageToken": "page-2"},
        {"erc20TokenBalances": [usdc(value=2)]},
    ]
    tokens_seen = []

    def handler(request):
        tokens_seen.append(request.url.params.get("pageToken"))
        return httpx.Response(200, json=pages[len(tokens_seen) - 1])

    balances = await source_with(handler).list_balances(WALLET, page_size=50)

    assert tokens_seen == [None, "page-2"]
    assert balances.token_count == 2
    assert balances.total_value_usd == Decimal("3")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [(401, ProviderAuthError), (429, ProviderRateLimitError), (500, ProviderCallFailed)],
)
async def test_http_errors_are_mapped(status, error):
    source = source_with(lambda request: httpx.Response(status, text="nope"))

    with pytest.raises(error):
        await source.list_balances(WALLET)
