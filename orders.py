"""
Order workflow

Placing an order:
  1. resolve every line against the live catalog (any miss aborts, nothing written)
  2. price each line from the catalog, never from the request
  3. add the delivery charge
  4. take an order number from an atomic counter
  5. persist with status "placed"
  6. clear the cart (best-effort)
  7. queue the confirmation email (best-effort)
"""
import logging
from datetime import timedelta
from typing import Optional

from fastapi import BackgroundTasks
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

import carts
from catalog import fetch_active_by_id, page_window, pagination_info
from config import Settings
from database import create_document, next_sequence, serialize_doc, to_object_id, utcnow
from errors import BadRequestError, InternalError, NotFoundError, ValidationFailed
from notifications import Notifier
from schemas import DeliveryAddress, Order, OrderCreateBody, OrderLine
from security import CurrentUser
from validation import validate_order_request

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("placed", "confirmed")


def format_order_number(created_at, seq: int) -> str:
    return f"ORD-{created_at:%Y%m%d}-{seq:06d}"


def price_lines(db: Database, body: OrderCreateBody):
    """Resolve each requested line to a catalog-priced OrderLine.

    Raises NotFoundError on the first product that is missing or inactive,
    before anything has been written.
    """
    lines = []
    subtotal = 0.0
    for item in body.items:
        product = fetch_active_by_id(db, item.product_id)
        if not product:
            raise NotFoundError(f"Product not found or unavailable: {item.product_id}")
        price = float(product["price"])
        line_total = round(price * item.quantity, 2)
        subtotal += line_total
        lines.append(OrderLine(
            product_id=str(product["_id"]),
            name=product["name"],
            price=price,
            quantity=item.quantity,
            line_total=line_total,
            measurements=item.measurements.model_copy() if item.measurements else None,
        ))
    return lines, round(subtotal, 2)


def place_order(
    db: Database,
    user: CurrentUser,
    body: OrderCreateBody,
    settings: Settings,
    notifier: Notifier,
    background_tasks: Optional[BackgroundTasks] = None,
) -> dict:
    errors = validate_order_request(body)
    if errors:
        raise ValidationFailed(errors)

    lines, subtotal = price_lines(db, body)
    delivery_charge = round(float(settings.delivery_charge), 2)
    total_amount = round(subtotal + delivery_charge, 2)

    created_at = utcnow()
    try:
        order_number = format_order_number(created_at, next_sequence(db, "order_number"))
        order = Order(
            user_id=user.id,
            order_number=order_number,
            items=lines,
            delivery_address=DeliveryAddress(**{
                k: v.strip() for k, v in body.delivery_address.model_dump().items()
            }),
            payment_method=body.payment_method,
            subtotal=subtotal,
            delivery_charge=delivery_charge,
            total_amount=total_amount,
            status="placed",
            estimated_delivery=created_at + timedelta(days=settings.delivery_days),
        ).model_dump()
        order["status_history"] = [{"status": "placed", "at": created_at}]
        order["created_at"] = created_at
        order_id = create_document(db, "order", order)
    except PyMongoError as exc:
        logger.exception("Could not persist order for user %s", user.id)
        raise InternalError("Could not persist order") from exc
    order["_id"] = to_object_id(order_id)
    logger.info("Order %s placed by %s: total %.2f", order_number, user.username, total_amount)

    try:
        carts.clear_cart(db, user.id)
    except Exception:
        logger.exception("Order %s placed but the cart of %s was not cleared", order_number, user.id)

    try:
        if background_tasks is not None:
            background_tasks.add_task(send_confirmation, db, notifier, user.id, order)
        else:
            send_confirmation(db, notifier, user.id, order)
    except Exception:
        logger.exception("Could not queue confirmation for order %s", order_number)

    return order


def send_confirmation(db: Database, notifier: Notifier, user_id: str, order: dict) -> bool:
    try:
        user_doc = db["user"].find_one({"_id": to_object_id(user_id)}, {"password_hash": 0})
    except Exception:
        logger.exception("Could not load user %s for order confirmation", user_id)
        return False
    return notifier.send_order_confirmation(user_doc, order)


def list_orders(db: Database, user_id: str, page: int = 1, limit: int = 10) -> dict:
    page, limit, skip = page_window(page, limit)
    query = {"user_id": user_id}
    total = db["order"].count_documents(query)
    cursor = db["order"].find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).skip(skip).limit(limit)
    return {
        "orders": [serialize_doc(o) for o in cursor],
        "pagination": pagination_info(page, limit, total),
    }


def _find_own_order(db: Database, user_id: str, order_id: str) -> dict:
    _id = to_object_id(order_id)
    order = db["order"].find_one({"_id": _id, "user_id": user_id}) if _id else None
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_order(db: Database, user_id: str, order_id: str) -> dict:
    return serialize_doc(_find_own_order(db, user_id, order_id))


def cancel_order(db: Database, user_id: str, order_id: str) -> dict:
    order = _find_own_order(db, user_id, order_id)
    if order["status"] not in CANCELLABLE_STATUSES:
        raise BadRequestError(f"Order cannot be cancelled once {order['status']}")
    now = utcnow()
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"status": "cancelled", "updated_at": now}, "$push": {"status_history": {"status": "cancelled", "at": now}}},
    )
    logger.info("Order %s cancelled", order["order_number"])
    return serialize_doc(db["order"].find_one({"_id": order["_id"]}))
