from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

Condition = Literal["good", "fair", "poor"]


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=32)  # generated when omitted
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    stock: int = Field(..., ge=0)
    condition: Condition = "good"
    is_loanable: bool
    not_loanable_reason: Optional[str] = None
    image: Optional[str] = None  # base64 image or data URI

    @model_validator(mode="after")
    def reason_when_not_loanable(self):
        if not self.is_loanable and not (self.not_loanable_reason or "").strip():
            raise ValueError("not_loanable_reason is required when is_loanable is false")
        return self


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    condition: Optional[Condition] = None
    is_loanable: Optional[bool] = None
    not_loanable_reason: Optional[str] = None
    status: Optional[Literal["active", "inactive"]] = None
    image: Optional[str] = None


class ItemBrief(BaseModel):
    id: int
    name: str
    code: str
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class ItemResponse(BaseModel):
    id: int
    organization_id: int
    name: str
    code: str
    category: Optional[str] = None
    description: Optional[str] = None
    stock: int
    available_stock: int
    condition: str
    image_url: Optional[str] = None
    is_loanable: bool
    not_loanable_reason: Optional[str] = None
    is_available: bool
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ItemReportRow(ItemResponse):
    loans_count: int = 0
    active_loans_count: int = 0
