"""Shared response pieces"""
from typing import Optional

from pydantic import BaseModel


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class MessageResponse(BaseModel):
    message: str


class ChainVerifyResponse(BaseModel):
    """Integrity report for one audit ledger"""

    ledger: str
    valid: bool
    total_entries: int
    broken_at: Optional[str] = None
