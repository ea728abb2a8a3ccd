import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import accounts
import carts
import catalog
import database
import orders
from config import Settings, get_settings
from database import get_db, utcnow
from errors import AppError
from notifications import Notifier, get_notifier
from schemas import (
    CartAddBody,
    CartUpdateBody,
    ForgotPasswordBody,
    LoginBody,
    OrderCreateBody,
    ProfileUpdateBody,
    RegisterBody,
    ResetPasswordBody,
)
from security import CurrentUser, get_current_user

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("tailoring_shop")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db, settings.reset_token_ttl_minutes)
        if settings.seed_products:
            catalog.seed_products(database.db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; running without a database")
    yield


app = FastAPI(title="Tailoring Shop API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Errors -----------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e["loc"] if p != "body"), "message": e["msg"]}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Tailoring Shop API running"}


@app.get("/api/health")
def health():
    response = {"status": "ok", "timestamp": utcnow().isoformat(), "database": "not configured"}
    if database.db is not None:
        try:
            database.db.command("ping")
            response["database"] = "connected"
        except Exception as e:
            response["database"] = f"error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/register", status_code=201)
def register(
    body: RegisterBody,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
):
    return accounts.register(db, body, settings, notifier, background_tasks)


@app.post("/api/auth/login")
def login(body: LoginBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return accounts.login(db, body.username, body.password, settings)


@app.post("/api/auth/forgot-password")
def forgot_password(
    body: ForgotPasswordBody,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
):
    return accounts.forgot_password(db, body.email, settings, notifier, background_tasks)


@app.post("/api/auth/reset-password")
def reset_password(body: ResetPasswordBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return accounts.reset_password(db, body.token, body.new_password, settings)


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(catalog.DEFAULT_PAGE_SIZE, ge=1, le=catalog.MAX_PAGE_SIZE),
    db: Database = Depends(get_db),
):
    query = catalog.build_product_query(category, subcategory, min_price, max_price, in_stock, search)
    return catalog.list_products(db, query, page, limit)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.get("/api/categories")
def list_categories(db: Database = Depends(get_db)):
    return catalog.list_categories(db)


# ----------------------- Cart -----------------------
@app.post("/api/cart/add")
def cart_add(body: CartAddBody, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return carts.add_item(db, user.id, body.product_id, body.quantity)


@app.get("/api/cart")
def cart_get(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return carts.get_cart(db, user.id)


@app.put("/api/cart/update")
def cart_update(body: CartUpdateBody, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return carts.update_item(db, user.id, body.product_id, body.quantity)


@app.delete("/api/cart/remove/{product_id}")
def cart_remove(product_id: str, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return carts.remove_item(db, user.id, product_id)


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(
    body: OrderCreateBody,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
):
    order = orders.place_order(db, user, body, settings, notifier, background_tasks)
    return {
        "message": "Order placed successfully",
        "order_id": str(order["_id"]),
        "order_number": order["order_number"],
        "total_amount": order["total_amount"],
    }


@app.get("/api/orders")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=catalog.MAX_PAGE_SIZE),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return orders.list_orders(db, user.id, page, limit)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.get_order(db, user.id, order_id)


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.cancel_order(db, user.id, order_id)


# ----------------------- Profile -----------------------
@app.get("/api/user/profile")
def get_profile(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return accounts.get_profile(db, user.id)


@app.put("/api/user/profile")
def update_profile(body: ProfileUpdateBody, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return accounts.update_profile(db, user.id, body)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
