from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class CompletionRequest(BaseModel):
    prompt: str = Field(min_length=1, description="Prompt sent to the configured provider")


class StoredMessageRequest(BaseModel):
    role: Optional[Literal["user", "agent"]] = Field(default=None, description="Message author")
    content: Optional[str] = Field(default=None, description="Message text")
    timestamp: Optional[datetime] = Field(default=None, description="When the turn happened")
