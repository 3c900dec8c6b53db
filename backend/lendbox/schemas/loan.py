from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from lendbox.models.loan import LoanStatus, ReturnCondition
from lendbox.schemas.item import ItemBrief
from lendbox.schemas.user import UserBrief


class LoanSubmit(BaseModel):
    item_id: int
    borrower_name: str = Field(..., min_length=1, max_length=255)
    borrower_class: Optional[str] = Field(None, max_length=100)
    borrower_organization: Optional[str] = Field(None, max_length=255)
    borrower_phone: str = Field(..., min_length=1, max_length=20)
    borrower_photo: str = Field(..., min_length=1)  # base64 image or data URI
    quantity: int = Field(1, ge=1)
    loan_purpose: Optional[str] = Field(None, max_length=500)
    expected_return_date: Optional[date] = None

    @field_validator("borrower_name", "borrower_phone")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank")
        return v

    @field_validator("expected_return_date")
    @classmethod
    def after_today(cls, v: Optional[date]) -> Optional[date]:
        if v is not None and v <= date.today():
            raise ValueError("Expected return date must be after today")
        return v


class LoanCode(BaseModel):
    loan_code: str = Field(..., min_length=1)


class ReturnSubmit(BaseModel):
    loan_code: str = Field(..., min_length=1)
    return_photo: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)


class LoanReject(BaseModel):
    reason: str = Field(..., max_length=500)


class ReturnComplete(BaseModel):
    condition: ReturnCondition
    notes: Optional[str] = None


class LoanResponse(BaseModel):
    id: int
    loan_code: str
    item_id: int
    organization_id: int
    item: Optional[ItemBrief] = None
    borrower_name: str
    borrower_phone: str
    borrower_class: Optional[str] = None
    borrower_organization: Optional[str] = None
    borrower_photo_url: Optional[str] = None
    loan_purpose: Optional[str] = None
    quantity: int
    status: LoanStatus
    status_label: str
    status_color: str
    can_return: bool
    loan_date: Optional[datetime] = None
    expected_return_date: Optional[datetime] = None
    actual_return_date: Optional[datetime] = None
    return_photo_url: Optional[str] = None
    return_condition_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    verified_at: Optional[datetime] = None
    return_checked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoanDetail(LoanResponse):
    verifier: Optional[UserBrief] = None
    return_checker: Optional[UserBrief] = None


class LoanStatusView(BaseModel):
    """What an unauthenticated borrower sees when checking a loan code."""

    loan_code: str
    item: str
    borrower_name: str
    status: LoanStatus
    status_label: str
    loan_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    can_return: bool
