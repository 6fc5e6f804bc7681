"""Stripe Service - Checkout sessions, webhook handling and plan changes.

This service handles:
- Creating one-off checkout sessions for premium / premiumPlus
- Verifying and applying checkout.session.completed webhooks
- Explicit downgrade to the free plan

Key Principles:
- Metadata carries userId and plan for webhook tracing
- Signature verification is mandatory; unverified payloads change nothing
- Idempotency: each event_id is applied at most once
"""
import stripe
import json
import logging
from typing import Optional, Dict, Any

from pymongo.errors import DuplicateKeyError

from config import Settings
from models import Plan, PlanDetails, StripeEventRecord, User
from services.quota import DAILY_LIMITS
from services.user_service import UserService

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CURRENCY = "inr"

# ============================================================================
# Plan Configuration
# ============================================================================

PLAN_CATALOGUE = {
    Plan.FREE: PlanDetails(
        plan=Plan.FREE,
        name="Free",
        daily_limit=DAILY_LIMITS[Plan.FREE],
        price_amount=0,
        price_display="Free",
        features=["10 questions per day", "PDF documents up to 10,000 characters"],
    ),
    Plan.PREMIUM: PlanDetails(
        plan=Plan.PREMIUM,
        name="DocQueryAI Premium Plan",
        daily_limit=DAILY_LIMITS[Plan.PREMIUM],
        price_amount=99900,  # ₹999
        price_display="₹999",
        features=["50 questions per day", "PDF documents up to 10,000 characters"],
    ),
    Plan.PREMIUM_PLUS: PlanDetails(
        plan=Plan.PREMIUM_PLUS,
        name="DocQueryAI Premium Plus Plan",
        daily_limit="Unlimited",
        price_amount=199900,  # ₹1999
        price_display="₹1999",
        features=["Unlimited questions", "PDF documents up to 10,000 characters"],
    ),
}

PURCHASABLE_PLANS = (Plan.PREMIUM, Plan.PREMIUM_PLUS)


class BillingError(Exception):
    """Stripe could not be reached or rejected the request."""


class InvalidPlanError(ValueError):
    pass


class WebhookConfigurationError(Exception):
    pass


class WebhookVerificationError(ValueError):
    pass


def parse_purchasable_plan(value: Optional[str]) -> Plan:
    try:
        plan = Plan(value)
    except ValueError:
        raise InvalidPlanError("Invalid plan selected")
    if plan not in PURCHASABLE_PLANS:
        raise InvalidPlanError("Invalid plan selected")
    return plan


class BillingService:
    """Stripe billing operations service."""

    def __init__(self, settings: Settings, database, users: UserService):
        self.api_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret
        self.frontend_url = settings.frontend_url
        self.database = database
        self.users = users

    def _get_db(self):
        return self.database.get_db()

    # =========================================================================
    # Checkout
    # =========================================================================

    def create_checkout_session(self, user: User, plan_value: Optional[str]) -> str:
        """Create a Stripe Checkout Session and return its redirect URL."""
        plan = parse_purchasable_plan(plan_value)
        if not self.api_key:
            logger.error("STRIPE_SECRET_KEY is not set; cannot create checkout session")
            raise BillingError("Stripe is not configured")

        details = PLAN_CATALOGUE[plan]
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=["card", "upi"],
                mode="payment",
                customer_email=user.email,
                line_items=[{
                    "price_data": {
                        "currency": CURRENCY,
                        "product_data": {"name": details.name},
                        "unit_amount": details.price_amount,
                    },
                    "quantity": 1,
                }],
                metadata={
                    "userId": user.user_id,
                    "plan": plan.value,
                },
                success_url=f"{self.frontend_url}/payment-success",
                cancel_url=f"{self.frontend_url}/payment-cancel",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe session creation failed for user {user.user_id}: {e}")
            raise BillingError(str(e)) from e

        logger.info(f"Created checkout session {session.id} for user {user.user_id} plan={plan.value}")
        return session.url

    # =========================================================================
    # Webhook
    # =========================================================================

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Check the Stripe-Signature header and parse the event body."""
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set")
            raise WebhookConfigurationError("Server misconfiguration")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
            stripe.Webhook.construct_event(body, signature, self.webhook_secret)
            event = json.loads(body)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise WebhookVerificationError(f"Webhook Error: {e}")
        except ValueError as e:
            logger.error(f"Webhook parse error: {e}")
            raise WebhookVerificationError(f"Webhook Error: {e}")

        if not isinstance(event, dict):
            raise WebhookVerificationError("Webhook Error: unexpected payload")
        return event

    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Webhook entry point. Returns a short outcome for logging."""
        event = self.verify_event(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type")
        logger.info(f"WEBHOOK_RECEIVED event_id={event_id} event_type={event_type}")

        db = self._get_db()
        if event_id:
            existing = await db.stripe_events.find_one({"event_id": event_id}, {"_id": 0})
            if existing:
                logger.info(f"Event {event_id} already processed - skipping")
                return {"status": "duplicate", "event_id": event_id}

        if event_type == CHECKOUT_COMPLETED:
            obj = (event.get("data") or {}).get("object") or {}
            outcome = await self._handle_checkout_completed(obj)
        else:
            outcome = "ignored"

        if event_id:
            record = StripeEventRecord(event_id=event_id, event_type=event_type or "")
            try:
                await db.stripe_events.insert_one(record.model_dump())
            except DuplicateKeyError:
                logger.info(f"Event {event_id} recorded concurrently")

        return {"status": outcome, "event_id": event_id}

    async def _handle_checkout_completed(self, session: Dict[str, Any]) -> str:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        plan = Plan.PREMIUM_PLUS if metadata.get("plan") == Plan.PREMIUM_PLUS.value else Plan.PREMIUM

        if not user_id:
            logger.error("No userId in checkout session metadata")
            return "missing_user_id"

        customer = session.get("customer")
        updated = await self.users.set_plan(
            user_id,
            plan,
            stripe_customer_id=customer if isinstance(customer, str) else None,
        )
        if not updated:
            logger.error(f"User not found for ID: {user_id}")
            return "user_not_found"
        return "upgraded"

    # =========================================================================
    # Plan changes
    # =========================================================================

    async def downgrade(self, user: User) -> None:
        await self.users.set_plan(user.user_id, Plan.FREE)
        logger.info(f"User {user.user_id} downgraded from {user.plan} to free")
