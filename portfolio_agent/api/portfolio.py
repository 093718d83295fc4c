from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..core.portfolio import PortfolioScanner, get_scanner
from ..types.responses import ScanResponse

router = APIRouter(prefix="/portfolio")


@router.post("/scan", response_model=ScanResponse)
async def trigger_scan(scanner: PortfolioScanner = Depends(get_scanner)) -> ScanResponse:
    """Run a yield scan now; skipped when one ran within the scan interval."""

    report = await scanner.scan_and_optimize()
    if report is None:
        return ScanResponse(skipped=True, status=scanner.status())
    return ScanResponse(
        skipped=False,
        report=report.model_dump(mode="json"),
        status=scanner.status(),
    )


@router.get("/scan/status")
async def scan_status(scanner: PortfolioScanner = Depends(get_scanner)) -> Dict[str, Any]:
    return scanner.status()
