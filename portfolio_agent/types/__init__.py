from .portfolio import BalanceSet, TokenBalance
from .requests import CompletionRequest, StoredMessageRequest
from .responses import CompletionResponse, ScanResponse, StoredMessage

__all__ = [
    "BalanceSet",
    "TokenBalance",
    "CompletionRequest",
    "StoredMessageRequest",
    "CompletionResponse",
    "ScanResponse",
    "StoredMessage",
]
