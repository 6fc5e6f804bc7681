"""Payment Routes

Endpoints:
- GET /api/payment/plans - Plan catalogue (public)
- POST /api/payment/create-checkout-session - Start a Stripe checkout
- POST /api/payment/webhook - Stripe webhook (raw body, signed)
- GET /api/payment/my-plan - Current plan
- POST /api/payment/downgrade - Return to the free plan
"""
from fastapi import APIRouter, HTTPException, Depends, Request, status
from typing import List
import logging

from models import (
    CheckoutRequest, CheckoutResponse, MessageResponse, PlanDetails, PlanResponse, User,
)
from middleware import get_current_user, get_billing_service
from services.stripe_service import (
    BillingService,
    BillingError,
    InvalidPlanError,
    WebhookConfigurationError,
    WebhookVerificationError,
    PLAN_CATALOGUE,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payment", tags=["payment"])


@router.get("/plans", response_model=List[PlanDetails])
async def get_plans():
    """Get available plans.

    No auth required - for display on pricing page.
    """
    return list(PLAN_CATALOGUE.values())


@router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    data: CheckoutRequest,
    user: User = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    """Create Stripe checkout session for a plan upgrade.

    Returns the hosted checkout URL to redirect the user to.
    """
    try:
        url = billing.create_checkout_session(user, data.plan)
    except InvalidPlanError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BillingError:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to create Stripe session")

    return CheckoutResponse(redirect_url=url)


@router.post("/webhook")
async def stripe_webhook(request: Request, billing: BillingService = Depends(get_billing_service)):
    """Handle Stripe webhooks. Uses the raw body for signature verification."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        outcome = await billing.process_webhook(payload, signature)
    except WebhookConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except WebhookVerificationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Webhook handler error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook handler error")

    logger.info(f"Webhook outcome: {outcome}")
    return {"received": True}


@router.get("/my-plan", response_model=PlanResponse)
async def get_my_plan(user: User = Depends(get_current_user)):
    return PlanResponse(email=user.email, plan=user.plan)


@router.post("/downgrade", response_model=MessageResponse)
async def downgrade(
    user: User = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    try:
        await billing.downgrade(user)
    except Exception as e:
        logger.error(f"Downgrade failed for user {user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to downgrade plan")

    return MessageResponse(message="Your account has been downgraded to Free plan.")
