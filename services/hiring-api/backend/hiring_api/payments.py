"""Credit purchases through Stripe Checkout."""

import logging
from typing import Any, Optional

import stripe
from sqlalchemy.orm import Session

from hiring_api import ledger, models
from hiring_api.config import settings
from hiring_api.errors import InvalidSignature, NotFound, Unavailable, ValidationFailure

logger = logging.getLogger(__name__)

CREDIT_PACKAGES = (1, 10, 25)
CHECKOUT_COMPLETED = "checkout.session.completed"
PURCHASE_METADATA_TYPE = "credit_purchase"


def _configure_stripe() -> None:
    if not settings.STRIPE_SECRET_KEY:
        raise Unavailable("Payments are not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def _field(obj: Any, key: str, default: Any = None) -> Any:
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def price_in_cents(credits: int) -> int:
    return credits * settings.PRICE_PER_CREDIT_EUR * 100


def create_checkout(session: Session, company_id: str, credits: int) -> dict[str, str]:
    if credits not in CREDIT_PACKAGES:
        raise ValidationFailure(
            "Invalid credit package",
            details={"allowed": list(CREDIT_PACKAGES)},
        )
    company = session.get(models.Company, company_id)
    if company is None:
        raise NotFound("Company not found")
    _configure_stripe()

    frontend = settings.FRONTEND_URL.rstrip("/")
    try:
        checkout = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            client_reference_id=company.id,
            line_items=[
                {
                    "price_data": {
                        "currency": "eur",
                        "unit_amount": price_in_cents(credits),
                        "product_data": {
                            "name": f"{credits} credit{'s' if credits > 1 else ''}",
                            "description": f"Unlock {credits} developer report{'s' if credits > 1 else ''}",
                        },
                    },
                    "quantity": 1,
                }
            ],
            success_url=f"{frontend}/credits?checkout=success&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{frontend}/credits?checkout=cancelled",
            metadata={
                "companyId": company.id,
                "credits": str(credits),
                "type": PURCHASE_METADATA_TYPE,
            },
        )
    except stripe.StripeError as exc:
        logger.exception("Failed to create Stripe checkout for company %s", company.id)
        raise Unavailable("Unable to start the payment right now") from exc

    logger.info("Created checkout %s for company %s (%s credits)", checkout["id"], company.id, credits)
    return {"url": checkout["url"], "session_id": checkout["id"]}


def handle_webhook(session: Session, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
    """
    Verify and apply a Stripe event. Completed checkouts credit the company
    once per checkout session id; every other event is acknowledged untouched.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise Unavailable("Stripe webhook secret is not configured")
    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature or "",
            secret=settings.STRIPE_WEBHOOK_SECRET,
        )
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise InvalidSignature("Invalid webhook signature") from exc

    event_type = _field(event, "type", "")
    if event_type != CHECKOUT_COMPLETED:
        logger.info("Ignoring Stripe event %s", event_type)
        return {"received": True}

    checkout = _field(_field(event, "data", {}), "object", {})
    metadata = _field(checkout, "metadata", {})
    checkout_id = _field(checkout, "id", "")
    if _field(metadata, "type") != PURCHASE_METADATA_TYPE:
        logger.info("Ignoring checkout %s without credit purchase metadata", checkout_id)
        return {"received": True}
    if _field(checkout, "payment_status", "paid") != "paid":
        logger.info("Checkout %s completed without payment, not crediting", checkout_id)
        return {"received": True}

    company_id = _field(metadata, "companyId", "")
    try:
        credits = int(_field(metadata, "credits", 0))
    except (TypeError, ValueError):
        credits = 0
    if not company_id or credits <= 0 or not checkout_id:
        logger.error("Checkout %s has malformed metadata: %s", checkout_id, metadata)
        return {"received": True}

    try:
        transaction, created = ledger.record_purchase(session, company_id, credits, checkout_id)
    except NotFound:
        logger.error("Checkout %s references unknown company %s", checkout_id, company_id)
        return {"received": True}

    return {"received": True, "credited": created, "balance_after": transaction.balance_after}
