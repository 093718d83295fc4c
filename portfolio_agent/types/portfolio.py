from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class TokenBalance(BaseModel):
    symbol: str = Field(description="Token symbol (e.g. AVAX, USDC)")
    name: str = Field(description="Full token name")
    address: Optional[str] = Field(default=None, description="Token contract address")
    decimals: int = Field(description="Token decimal places")
    balance_wei: str = Field(description="Raw balance in smallest unit")
    balance_formatted: str = Field(description="Human readable balance")
    price_usd: Optional[Decimal] = Field(default=None, description="Price per token in USD")
    value_usd: Optional[Decimal] = Field(default=None, description="Total value in USD")


class BalanceSet(BaseModel):
    address: str = Field(description="Wallet address")
    chain_id: str = Field(description="EVM chain id")
    balances: List[TokenBalance] = Field(default_factory=list, description="ERC-20 balances")

    @property
    def token_count(self) -> int:
        return len(self.balances)

    @property
    def total_value_usd(self) -> Decimal:
        return sum((b.value_usd or Decimal("0") for b in self.balances), Decimal("0"))
