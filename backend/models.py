from pydantic import BaseModel, Field
from typing import Optional, List, Union
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class Plan(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    PREMIUM_PLUS = "premiumPlus"


UNLIMITED = "Unlimited"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# STORED DOCUMENTS
# ============================================================================

class User(BaseModel):
    """A registered account with its daily usage counter and billing plan."""
    user_id: str = Field(default_factory=lambda: f"USR-{uuid.uuid4().hex[:12].upper()}")
    email: str
    password_hash: str

    # Usage - daily_count is only meaningful for the day of last_reset_date
    daily_count: int = 0
    last_reset_date: datetime = Field(default_factory=utc_now)

    # Billing - kept as a plain string so legacy values still load
    plan: str = Plan.FREE.value
    stripe_customer_id: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = {"extra": "ignore"}


class StripeEventRecord(BaseModel):
    event_id: str
    event_type: str
    status: str = "PROCESSED"
    processed_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class CredentialsRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class QueryRequest(BaseModel):
    pdf_text: Optional[str] = Field(None, alias="pdfText")
    question: Optional[str] = None

    model_config = {"populate_by_name": True}


class CheckoutRequest(BaseModel):
    plan: Optional[str] = None


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class UserPublic(BaseModel):
    email: str
    daily_count: int = Field(alias="dailyCount")
    last_reset_date: datetime = Field(alias="lastResetDate")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(
            email=user.email,
            daily_count=user.daily_count,
            last_reset_date=user.last_reset_date,
        )


class AuthResponse(BaseModel):
    token: str
    user: UserPublic


class UsageSnapshot(BaseModel):
    used_today: int = Field(alias="usedToday")
    remaining: Union[int, str]
    daily_limit: Union[int, str] = Field(alias="dailyLimit")
    reset_at: datetime = Field(alias="resetAt")
    plan: str

    model_config = {"populate_by_name": True}


class QueryResponse(BaseModel):
    answer: str
    usage: UsageSnapshot


class CheckoutResponse(BaseModel):
    redirect_url: str = Field(alias="redirectUrl")

    model_config = {"populate_by_name": True}


class PlanResponse(BaseModel):
    email: str
    plan: str


class MessageResponse(BaseModel):
    message: str


class PlanDetails(BaseModel):
    """Plan details for display on the pricing page"""
    plan: Plan
    name: str
    daily_limit: Union[int, str] = Field(alias="dailyLimit")
    price_amount: int = Field(alias="priceAmount")  # smallest currency unit, 0 for free
    currency: str = "inr"
    price_display: str = Field(alias="priceDisplay")
    features: List[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
