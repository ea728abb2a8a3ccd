"""
Cart service

One cart document per user, holding an ordered list of {product_id, quantity}
lines. Mutations are read-modify-write on the whole list; two concurrent
writers for the same user resolve as last write wins.
"""
import logging

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from catalog import fetch_active_by_id
from database import serialize_doc, to_object_id, utcnow
from errors import NotFoundError
from schemas import CartEntry

logger = logging.getLogger(__name__)


def _load_cart(db: Database, user_id: str):
    return db["cart"].find_one({"user_id": user_id})


def _load_or_create_cart(db: Database, user_id: str) -> dict:
    now = utcnow()
    return db["cart"].find_one_and_update(
        {"user_id": user_id},
        {"$setOnInsert": {"user_id": user_id, "items": [], "created_at": now, "updated_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def _line_key(product_id: str) -> str:
    _id = to_object_id(product_id)
    return str(_id) if _id is not None else product_id


def _save_items(db: Database, cart: dict, items: list) -> None:
    db["cart"].update_one({"_id": cart["_id"]}, {"$set": {"items": items, "updated_at": utcnow()}})


def add_item(db: Database, user_id: str, product_id: str, quantity: int = 1) -> dict:
    if not fetch_active_by_id(db, product_id):
        raise NotFoundError("Product not found")
    product_id = _line_key(product_id)

    cart = _load_or_create_cart(db, user_id)

    # Merge quantity if same product
    items = cart.get("items", [])
    for line in items:
        if line["product_id"] == product_id:
            line["quantity"] += quantity
            break
    else:
        items.append(CartEntry(product_id=product_id, quantity=quantity, added_at=utcnow()).model_dump())

    _save_items(db, cart, items)
    logger.debug("Cart %s: added %s x%d", user_id, product_id, quantity)
    return {"message": "Product added to cart", "items": serialize_doc({"items": items})["items"]}


def update_item(db: Database, user_id: str, product_id: str, quantity: int) -> dict:
    product_id = _line_key(product_id)
    cart = _load_cart(db, user_id)
    if not cart:
        raise NotFoundError("Cart not found")
    items = cart.get("items", [])
    line = next((l for l in items if l["product_id"] == product_id), None)
    if line is None:
        raise NotFoundError("Product not in cart")

    if quantity <= 0:
        items = [l for l in items if l["product_id"] != product_id]
        message = "Product removed from cart"
    else:
        line["quantity"] = quantity
        message = "Cart updated"
    _save_items(db, cart, items)
    return {"message": message}


def remove_item(db: Database, user_id: str, product_id: str) -> dict:
    product_id = _line_key(product_id)
    cart = _load_cart(db, user_id)
    if not cart or not any(l["product_id"] == product_id for l in cart.get("items", [])):
        raise NotFoundError("Product not in cart")
    items = [l for l in cart["items"] if l["product_id"] != product_id]
    _save_items(db, cart, items)
    return {"message": "Product removed from cart"}


def get_cart(db: Database, user_id: str) -> dict:
    cart = _load_cart(db, user_id)
    lines = cart.get("items", []) if cart else []

    ids = [ObjectId(l["product_id"]) for l in lines]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}, "is_active": True})} if ids else {}

    items = []
    subtotal = 0.0
    for line in lines:
        product = products.get(line["product_id"])
        if product is None:
            # deactivated since it was added; hidden rather than priced
            continue
        line_total = round(float(product["price"]) * line["quantity"], 2)
        subtotal += line_total
        items.append({
            "product_id": line["product_id"],
            "quantity": line["quantity"],
            "added_at": line.get("added_at"),
            "product": product,
            "line_total": line_total,
        })

    return serialize_doc({
        "user_id": user_id,
        "items": items,
        "subtotal": round(subtotal, 2),
        "item_count": sum(i["quantity"] for i in items),
        "updated_at": cart.get("updated_at") if cart else None,
    })


def clear_cart(db: Database, user_id: str) -> None:
    db["cart"].update_one({"user_id": user_id}, {"$set": {"items": [], "updated_at": utcnow()}})
