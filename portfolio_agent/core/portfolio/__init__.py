from .scanner import (
    PortfolioScanner,
    ScanPolicy,
    ScanReport,
    ScanState,
    get_scanner,
    set_scanner,
)

__all__ = [
    "PortfolioScanner",
    "ScanPolicy",
    "ScanReport",
    "ScanState",
    "get_scanner",
    "set_scanner",
]
