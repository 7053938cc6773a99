"""Pydantic schemas for bank linking."""

from typing import Optional

from pydantic import Field

from schemas.common import CamelModel


class BankLinkRequest(CamelModel):
    access_token: str = Field(min_length=1)
    enrollment_id: Optional[str] = None


class BankLinkResponse(CamelModel):
    accounts_saved: int
    accounts_rejected: int
    duplicates: int
    limit: Optional[int] = None
    current: int
    message: str
    saved_account_ids: list[str]
