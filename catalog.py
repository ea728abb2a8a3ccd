"""
Product catalog

Read side of the shop: filter translation, pagination and the demo seed data.
"""
import logging
import math
import re
from typing import Optional

from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, serialize_doc, to_object_id
from errors import NotFoundError
from schemas import Product

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def page_window(page: int, limit: int):
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def pagination_info(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if total else 0}


def build_product_query(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
    search: Optional[str] = None,
) -> dict:
    query = {"is_active": True}
    if category:
        query["category"] = category
    if subcategory:
        query["subcategory"] = subcategory
    price = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        query["price"] = price
    if in_stock is not None:
        query["in_stock"] = in_stock
    if search and search.strip():
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]
    return query


def list_products(db: Database, query: dict, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
    page, limit, skip = page_window(page, limit)
    total = db["product"].count_documents(query)
    cursor = db["product"].find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).skip(skip).limit(limit)
    return {
        "products": [serialize_doc(p) for p in cursor],
        "pagination": pagination_info(page, limit, total),
    }


def fetch_active_by_id(db: Database, product_ref) -> Optional[dict]:
    _id = to_object_id(product_ref)
    if _id is None:
        return None
    return db["product"].find_one({"_id": _id, "is_active": True})


def get_product(db: Database, product_id: str) -> dict:
    product = fetch_active_by_id(db, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return serialize_doc(product)


def list_categories(db: Database) -> list:
    rows = db["product"].aggregate([
        {"$match": {"is_active": True}},
        {"$group": {"_id": "$category", "count": {"$sum": 1}, "subcategories": {"$addToSet": "$subcategory"}}},
        {"$sort": {"_id": 1}},
    ])
    return [
        {"category": r["_id"], "count": r["count"], "subcategories": sorted(s for s in r["subcategories"] if s)}
        for r in rows
    ]


DEMO_PRODUCTS = [
    {
        "name": "N-Checkered cotton fabric purple",
        "description": "High quality checkered cotton fabric in purple color. Perfect for tailoring custom shirts.",
        "price": 350,
        "category": "men's wear",
        "subcategory": "tailoring",
        "image": "/images/fabric1.jpg",
        "discount": 12,
        "tags": ["cotton", "checks", "shirt"],
    },
    {
        "name": "SMENS - silera camel color fabric piece",
        "description": "Premium silera fabric in camel color. Ideal for formal wear tailoring.",
        "price": 250,
        "category": "men's wear",
        "subcategory": "tailoring",
        "image": "/images/fabric2.jpg",
        "tags": ["silera", "formal"],
    },
    {
        "name": "M-cotton Reddit color, black&blue check",
        "description": "Cotton fabric with black and blue checkered pattern. Great for casual shirts.",
        "price": 300,
        "category": "men's wear",
        "subcategory": "tailoring",
        "image": "/images/fabric3.jpg",
        "tags": ["cotton", "checks", "casual"],
    },
    {
        "name": "Checks cotton regular fit men's casual shirt piece",
        "description": "Ready-to-tailor cotton fabric for casual shirts in black color.",
        "price": 400,
        "category": "men's wear",
        "subcategory": "tailoring",
        "image": "/images/fabric4.jpg",
        "tags": ["cotton", "casual", "shirt"],
    },
    {
        "name": "Mensome B-Grey check Formal cotton",
        "description": "Formal grey checkered cotton fabric for professional attire.",
        "price": 250,
        "category": "men's wear",
        "subcategory": "tailoring",
        "image": "/images/fabric5.jpg",
        "tags": ["cotton", "formal", "grey"],
    },
    {
        "name": "M-Blue square Formal premium Giza cotton",
        "description": "Premium Giza cotton with blue square pattern for formal wear.",
        "price": 200,
        "category": "men's wear",
        "subcategory": "tailoring",
        "image": "/images/fabric6.jpg",
        "tags": ["giza", "cotton", "formal"],
    },
]


def seed_products(db: Database) -> int:
    if db["product"].count_documents({}) > 0:
        return 0
    for p in DEMO_PRODUCTS:
        create_document(db, "product", Product(**p))
    logger.info("Seeded %d demo products", len(DEMO_PRODUCTS))
    return len(DEMO_PRODUCTS)
