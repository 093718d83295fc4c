from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class CompletionResponse(BaseModel):
    completion: str = Field(description="Raw completion text")
    provider: str = Field(description="Provider kind that produced it")


class StoredMessage(BaseModel):
    role: str
    content: str
    timestamp: datetime


class ScanResponse(BaseModel):
    skipped: bool = Field(description="True when the scan guard skipped the run or the run failed")
    report: Optional[Dict[str, Any]] = Field(default=None, description="Scan report for completed runs")
    status: Dict[str, Any] = Field(default_factory=dict, description="Scanner status after the call")
