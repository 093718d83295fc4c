from .yield_scan import YieldScanConfig, YieldScanStrategy

__all__ = [
    "YieldScanConfig",
    "YieldScanStrategy",
]
