"""Audit log schemas"""
from typing import Optional

from pydantic import BaseModel, Field


class ChainVerifyResponse(BaseModel):
    """Result of walking the audit hash chain"""

    valid: bool = Field(..., description="True if the entire chain is intact")
    total_entries: int = Field(..., description="Total number of log entries checked")
    broken_at: Optional[str] = Field(
        None,
        description="log_id of the first entry whose hash does not match; null when valid=true",
    )
