"""
Polar payment events.

`order.created` marks the purchasing user as paid, records the order under
`orders/{order id}`, logs the income and notifies the admin by email.
Subscription and checkout events are only logged.

The Firebase `db` client is accessed at call-time via the integration module
so it picks up the instance initialized during the FastAPI lifespan.
"""

import logging
from datetime import datetime, timezone

from app.config import settings
from app.integrations import email as email_module
from app.integrations import firebase as firebase_module
from app.services import users_service
from app.services.finance_service import FinanceCategory, log_transaction

logger = logging.getLogger(__name__)


def plan_for_product(product_id: str) -> str:
    return settings.polar_products.get(product_id or "", settings.default_plan)


def _order_email(order: dict, user_id: str, plan: str, amount_usd: float) -> str:
    return (
        "<h2>New Polar order</h2>"
        f"<p><strong>User ID:</strong> {user_id}</p>"
        f"<p><strong>Plan:</strong> {plan}</p>"
        f"<p><strong>Amount:</strong> ${amount_usd:.2f}</p>"
        f"<p><strong>Order ID:</strong> {order.get('id')}</p>"
        f"<p><strong>Customer Email:</strong> {order.get('customer_email') or 'N/A'}</p>"
        f"<p><strong>Product ID:</strong> {order.get('product_id')}</p>"
    )


async def handle_order_created(order: dict) -> dict:
    metadata = order.get("metadata")
    user_id = metadata.get("user_id") if isinstance(metadata, dict) else None
    if not user_id:
        logger.warning(f"[POLAR] Order {order.get('id')} has no user_id metadata; skipping")
        return {"status": "ignored", "reason": "missing user_id"}

    amount_cents = order.get("amount") or 0
    amount_usd = amount_cents / 100.0
    plan = plan_for_product(order.get("product_id"))
    now = datetime.now(timezone.utc)

    if users_service.get_user(user_id) is None:
        logger.warning(f"[POLAR] Order {order.get('id')} for unknown user {user_id}")
    else:
        users_service.update_user(user_id, {
            "paymentStatus": "paid",
            "amount": amount_cents,
            "planType": plan,
            "paid_at": now.isoformat(),
            "polarOrderId": order.get("id"),
            "polarCheckoutId": order.get("checkout_id"),
        })

    db = users_service._get_db()
    if order.get("id"):
        db.collection(firebase_module.ORDERS).document(str(order["id"])).set({
            "user_id": user_id,
            "amount": amount_cents,
            "currency": order.get("currency", "usd"),
            "plan": plan,
            "product_id": order.get("product_id"),
            "customer_email": order.get("customer_email"),
            "created_at": now,
        })

    log_transaction(
        FinanceCategory.POLAR, amount_usd, user_id=user_id, provider="polar", order_id=order.get("id"), plan=plan
    )
    logger.info(f"[POLAR] Processed order {order.get('id')} for {user_id}: ${amount_usd:.2f} ({plan})")

    if settings.admin_email:
        await email_module.send_email(
            settings.admin_email,
            f"New Polar Order: ${amount_usd:.2f} - {plan} Plan",
            _order_email(order, user_id, plan, amount_usd),
        )

    return {"status": "ok", "user_id": user_id, "plan": plan}


async def handle_event(event: dict) -> dict:
    event_type = event.get("type")
    data = event.get("data")
    if not isinstance(data, dict):
        data = {}

    if event_type == "order.created":
        return await handle_order_created(data)
    if event_type in ("subscription.created", "subscription.updated"):
        logger.info(f"[POLAR] {event_type}: {data.get('id')} status={data.get('status')}")
        return {"status": "ok"}
    if isinstance(event_type, str) and event_type.startswith("checkout."):
        logger.info(f"[POLAR] {event_type}: {data.get('id')}")
        return {"status": "ok"}

    logger.info(f"[POLAR] Unhandled event type: {event_type}")
    return {"status": "ignored"}
