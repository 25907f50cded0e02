from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from modules.loans.models.loan import LoanStatus


class LoanCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    interest_rate: Decimal = Field(ge=0)
    term: int = Field(gt=0, description="Term in months")
    product_type: Optional[str] = None
    borrower_id_number: Optional[str] = None
    # Staff may open a loan on behalf of a borrower
    user_id: Optional[int] = None


class LoanResponse(BaseModel):
    id: int
    user_id: int
    product_type: Optional[str] = None
    amount: Decimal
    interest_rate: Decimal
    term: int
    status: LoanStatus
    borrower_id_number: Optional[str] = None
    application_date: datetime

    model_config = {"from_attributes": True}
