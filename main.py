import logging
from contextlib import asynccontextmanager
from typing import Optional, Type

from fastapi import APIRouter, Depends, FastAPI, Form, Response
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import config
import services
from database import connect, ensure_indexes, get_db
from errors import register_error_handlers
from schemas import (
    CartCreate,
    CartItemCreate,
    CartItemUpdate,
    CartUpdate,
    CategoryCreate,
    CategoryUpdate,
    CheckoutRequest,
    CommentReplyCreate,
    FeedbackCreate,
    FeedbackUpdate,
    InvoiceCreate,
    InvoiceUpdate,
    ManagerCreate,
    ManagerStatusUpdate,
    ManagerUpdate,
    OrderCreate,
    OrderStatusUpdate,
    OrderUpdate,
    PasswordChange,
    PaymentStatusUpdate,
    Permission,
    PermissionsUpdate,
    ProductCreate,
    ProductUpdate,
    ReplyCreate,
    ReplyUpdate,
    ReviewReplyCreate,
    SellerCreate,
    SellerUpdate,
    StatusUpdate,
    StoreCreate,
    StoreUpdate,
    UserCreate,
    UserUpdate,
)
from security import create_access_token, get_current_user, require_permission

logger = logging.getLogger(__name__)


def success(data) -> dict:
    body = {"status": "success"}
    if isinstance(data, list):
        body["results"] = len(data)
    body["data"] = data
    return body


NO_CONTENT = {"status_code": 204, "response_class": Response}


# ---------- Auth ----------
auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/login")
def login(email: str = Form(...), password: str = Form(...), db: Database = Depends(get_db)):
    user = services.authenticate(db, email, password)
    token = create_access_token({"sub": str(user["_id"]), "role": user.get("role")})
    return success({
        "access_token": token,
        "token_type": "bearer",
        "user": services.serialize_user(user),
    })


@auth_router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return success(services.serialize_user(user))


# ---------- Users ----------
users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.post("", status_code=201)
def create_user(payload: UserCreate, db: Database = Depends(get_db)):
    return success(services.create_user(db, payload))


@users_router.get("")
def list_users(db: Database = Depends(get_db)):
    return success(services.list_users(db))


@users_router.get("/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    return success(services.get_user(db, user_id))


@users_router.patch("/{user_id}")
def update_user(user_id: str, payload: UserUpdate, db: Database = Depends(get_db)):
    return success(services.update_user(db, user_id, payload))


@users_router.delete("/{user_id}", **NO_CONTENT)
def delete_user(user_id: str, db: Database = Depends(get_db)):
    services.delete_user(db, user_id)


# ---------- Stores ----------
stores_router = APIRouter(prefix="/stores", tags=["stores"])


@stores_router.post("", status_code=201)
def create_store(payload: StoreCreate, db: Database = Depends(get_db)):
    return success(services.create_store(db, payload))


@stores_router.get("")
def list_stores(db: Database = Depends(get_db)):
    return success(services.list_stores(db))


@stores_router.get("/{store_id}")
def get_store(store_id: str, db: Database = Depends(get_db)):
    return success(services.get_store(db, store_id))


@stores_router.patch("/{store_id}/status")
def update_store_status(store_id: str, payload: StatusUpdate, db: Database = Depends(get_db)):
    return success(services.update_store_status(db, store_id, payload.status))


@stores_router.patch("/{store_id}")
def update_store(store_id: str, payload: StoreUpdate, db: Database = Depends(get_db)):
    return success(services.update_store(db, store_id, payload))


@stores_router.delete("/{store_id}", **NO_CONTENT)
def delete_store(store_id: str, db: Database = Depends(get_db)):
    services.delete_store(db, store_id)


# ---------- Categories ----------
categories_router = APIRouter(prefix="/categories", tags=["categories"])


@categories_router.post("", status_code=201)
def create_category(payload: CategoryCreate, db: Database = Depends(get_db)):
    return success(services.create_category(db, payload))


@categories_router.get("")
def list_categories(db: Database = Depends(get_db)):
    return success(services.list_categories(db))


@categories_router.get("/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    return success(services.get_category(db, category_id))


@categories_router.get("/{category_id}/products")
def list_category_products(category_id: str, db: Database = Depends(get_db)):
    return success(services.list_category_products(db, category_id))


@categories_router.patch("/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, db: Database = Depends(get_db)):
    return success(services.update_category(db, category_id, payload))


@categories_router.delete("/{category_id}", **NO_CONTENT)
def delete_category(category_id: str, db: Database = Depends(get_db)):
    services.delete_category(db, category_id)


# ---------- Products ----------
products_router = APIRouter(prefix="/products", tags=["products"])


@products_router.post("", status_code=201)
def create_product(payload: ProductCreate, db: Database = Depends(get_db)):
    return success(services.create_product(db, payload))


@products_router.get("")
def list_products(db: Database = Depends(get_db)):
    return success(services.list_products(db))


@products_router.get("/store/{store_id}")
def list_products_by_store(store_id: str, db: Database = Depends(get_db)):
    return success(services.list_products_by_store(db, store_id))


@products_router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return success(services.get_product(db, product_id))


@products_router.patch("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, db: Database = Depends(get_db)):
    return success(services.update_product(db, product_id, payload))


@products_router.delete("/{product_id}", **NO_CONTENT)
def delete_product(product_id: str, db: Database = Depends(get_db)):
    services.delete_product(db, product_id)


@products_router.post("/{product_id}/categories/{category_id}")
def add_category_to_product(product_id: str, category_id: str, db: Database = Depends(get_db)):
    return success(services.add_category_to_product(db, product_id, category_id))


@products_router.delete("/{product_id}/categories/{category_id}")
def remove_category_from_product(product_id: str, category_id: str, db: Database = Depends(get_db)):
    return success(services.remove_category_from_product(db, product_id, category_id))


# ---------- Carts ----------
carts_router = APIRouter(prefix="/carts", tags=["carts"])


@carts_router.post("", status_code=201)
def create_cart(payload: CartCreate, db: Database = Depends(get_db)):
    return success(services.create_cart(db, payload))


@carts_router.get("")
def list_carts(db: Database = Depends(get_db)):
    return success(services.list_carts(db))


@carts_router.get("/user/{user_id}")
def get_user_cart(user_id: str, db: Database = Depends(get_db)):
    return success(services.get_user_cart(db, user_id))


@carts_router.get("/{cart_id}")
def get_cart(cart_id: str, db: Database = Depends(get_db)):
    return success(services.get_cart(db, cart_id))


@carts_router.patch("/{cart_id}")
def update_cart(cart_id: str, payload: CartUpdate, db: Database = Depends(get_db)):
    return success(services.update_cart(db, cart_id, payload))


@carts_router.delete("/{cart_id}", **NO_CONTENT)
def delete_cart(cart_id: str, db: Database = Depends(get_db)):
    services.delete_cart(db, cart_id)


@carts_router.get("/{cart_id}/items")
def list_cart_items(cart_id: str, db: Database = Depends(get_db)):
    return success(services.list_cart_items(db, cart_id))


@carts_router.post("/{cart_id}/items", status_code=201)
def add_cart_item(cart_id: str, payload: CartItemCreate, db: Database = Depends(get_db)):
    return success(services.add_cart_item(db, cart_id, payload))


@carts_router.delete("/{cart_id}/items")
def clear_cart(cart_id: str, db: Database = Depends(get_db)):
    return success(services.clear_cart(db, cart_id))


@carts_router.patch("/{cart_id}/items/{item_id}")
def update_cart_item(cart_id: str, item_id: str, payload: CartItemUpdate, db: Database = Depends(get_db)):
    return success(services.update_cart_item(db, cart_id, item_id, payload))


@carts_router.delete("/{cart_id}/items/{item_id}", **NO_CONTENT)
def remove_cart_item(cart_id: str, item_id: str, db: Database = Depends(get_db)):
    services.remove_cart_item(db, cart_id, item_id)


@carts_router.post("/{cart_id}/checkout", status_code=201)
def checkout_cart(cart_id: str, payload: Optional[CheckoutRequest] = None, db: Database = Depends(get_db)):
    return success(services.checkout_cart(db, cart_id, payload or CheckoutRequest()))


# ---------- Orders ----------
orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.post("", status_code=201)
def create_order(payload: OrderCreate, db: Database = Depends(get_db)):
    return success(services.create_order(db, payload))


@orders_router.get("")
def list_orders(db: Database = Depends(get_db)):
    return success(services.list_orders(db))


@orders_router.get("/user/{user_id}")
def list_orders_by_user(user_id: str, db: Database = Depends(get_db)):
    return success(services.list_orders_by_user(db, user_id))


@orders_router.get("/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    return success(services.get_order(db, order_id))


@orders_router.patch("/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusUpdate, db: Database = Depends(get_db)):
    return success(services.update_order_status(db, order_id, payload.status))


@orders_router.patch("/{order_id}")
def update_order(order_id: str, payload: OrderUpdate, db: Database = Depends(get_db)):
    return success(services.update_order(db, order_id, payload))


@orders_router.delete("/{order_id}", **NO_CONTENT)
def delete_order(order_id: str, db: Database = Depends(get_db)):
    services.delete_order(db, order_id)


# ---------- Invoices ----------
invoices_router = APIRouter(prefix="/invoices", tags=["invoices"])


@invoices_router.post("", status_code=201)
def create_invoice(payload: InvoiceCreate, db: Database = Depends(get_db)):
    return success(services.create_invoice(db, payload))


@invoices_router.get("")
def list_invoices(db: Database = Depends(get_db)):
    return success(services.list_invoices(db))


@invoices_router.get("/user/{user_id}")
def list_invoices_by_user(user_id: str, db: Database = Depends(get_db)):
    return success(services.list_invoices_by(db, "user_id", user_id))


@invoices_router.get("/seller/{seller_id}")
def list_invoices_by_seller(seller_id: str, db: Database = Depends(get_db)):
    return success(services.list_invoices_by(db, "seller_id", seller_id))


@invoices_router.get("/order/{order_id}")
def list_invoices_by_order(order_id: str, db: Database = Depends(get_db)):
    return success(services.list_invoices_by(db, "order_id", order_id))


@invoices_router.get("/cart/{cart_id}")
def get_invoice_by_cart(cart_id: str, db: Database = Depends(get_db)):
    return success(services.get_invoice_by_cart(db, cart_id))


@invoices_router.get("/{invoice_id}")
def get_invoice(invoice_id: str, db: Database = Depends(get_db)):
    return success(services.get_invoice(db, invoice_id))


@invoices_router.patch("/{invoice_id}/payment-status")
def update_payment_status(invoice_id: str, payload: PaymentStatusUpdate, db: Database = Depends(get_db)):
    return success(services.update_payment_status(db, invoice_id, payload.status))


@invoices_router.patch("/{invoice_id}")
def update_invoice(invoice_id: str, payload: InvoiceUpdate, db: Database = Depends(get_db)):
    return success(services.update_invoice(db, invoice_id, payload))


@invoices_router.delete("/{invoice_id}", **NO_CONTENT)
def delete_invoice(invoice_id: str, db: Database = Depends(get_db)):
    services.delete_invoice(db, invoice_id)


# ---------- Sellers ----------
sellers_router = APIRouter(prefix="/sellers", tags=["sellers"])


@sellers_router.post("", status_code=201)
def create_seller(payload: SellerCreate, db: Database = Depends(get_db)):
    return success(services.create_seller(db, payload))


@sellers_router.get("")
def list_sellers(db: Database = Depends(get_db)):
    return success(services.list_sellers(db))


@sellers_router.get("/user/{user_id}")
def get_seller_by_user(user_id: str, db: Database = Depends(get_db)):
    return success(services.get_seller_by_user(db, user_id))


@sellers_router.get("/store/{store_id}")
def list_sellers_by_store(store_id: str, db: Database = Depends(get_db)):
    return success(services.list_sellers_by_store(db, store_id))


@sellers_router.get("/{seller_id}")
def get_seller(seller_id: str, db: Database = Depends(get_db)):
    return success(services.get_seller(db, seller_id))


@sellers_router.get("/{seller_id}/store")
def get_store_by_seller(seller_id: str, db: Database = Depends(get_db)):
    return success(services.get_store_by_seller(db, seller_id))


@sellers_router.get("/{seller_id}/user")
def get_user_by_seller(seller_id: str, db: Database = Depends(get_db)):
    return success(services.get_user_by_seller(db, seller_id))


@sellers_router.patch("/{seller_id}/status")
def update_seller_status(seller_id: str, payload: StatusUpdate, db: Database = Depends(get_db)):
    return success(services.update_seller_status(db, seller_id, payload.status))


@sellers_router.patch("/{seller_id}")
def update_seller(seller_id: str, payload: SellerUpdate, db: Database = Depends(get_db)):
    return success(services.update_seller(db, seller_id, payload))


@sellers_router.delete("/{seller_id}", **NO_CONTENT)
def delete_seller(seller_id: str, db: Database = Depends(get_db)):
    services.delete_seller(db, seller_id)


# ---------- Managers ----------
managers_router = APIRouter(prefix="/managers", tags=["managers"])
can_manage_managers = require_permission(Permission.MANAGE_MANAGERS)


@managers_router.post("", status_code=201)
def create_manager(payload: ManagerCreate, db: Database = Depends(get_db),
                   _: dict = Depends(can_manage_managers)):
    return success(services.create_manager(db, payload))


@managers_router.get("")
def list_managers(db: Database = Depends(get_db)):
    return success(services.list_managers(db))


@managers_router.get("/email/{email}")
def get_manager_by_email(email: str, db: Database = Depends(get_db)):
    return success(services.get_manager_by_email(db, email))


@managers_router.get("/{manager_id}")
def get_manager(manager_id: str, db: Database = Depends(get_db)):
    return success(services.get_manager(db, manager_id))


@managers_router.patch("/{manager_id}/password")
def change_manager_password(manager_id: str, payload: PasswordChange, db: Database = Depends(get_db)):
    return success(services.change_manager_password(db, manager_id, payload.current_password, payload.new_password))


@managers_router.patch("/{manager_id}/status")
def update_manager_status(manager_id: str, payload: ManagerStatusUpdate, db: Database = Depends(get_db),
                          _: dict = Depends(can_manage_managers)):
    return success(services.update_manager_status(db, manager_id, payload.is_active))


@managers_router.patch("/{manager_id}/permissions")
def update_manager_permissions(manager_id: str, payload: PermissionsUpdate, db: Database = Depends(get_db),
                               _: dict = Depends(can_manage_managers)):
    return success(services.update_manager_permissions(db, manager_id, payload.permissions))


@managers_router.patch("/{manager_id}/last-login")
def touch_manager_last_login(manager_id: str, db: Database = Depends(get_db)):
    return success(services.touch_manager_last_login(db, manager_id))


@managers_router.patch("/{manager_id}")
def update_manager(manager_id: str, payload: ManagerUpdate, db: Database = Depends(get_db)):
    return success(services.update_manager(db, manager_id, payload))


@managers_router.delete("/{manager_id}", **NO_CONTENT)
def delete_manager(manager_id: str, db: Database = Depends(get_db)):
    services.delete_manager(db, manager_id)


# ---------- Comments / Reviews ----------
def feedback_routers(kind: services.FeedbackKind, prefix: str, reply_prefix: str, reply_model: Type[ReplyCreate]):
    """Routers for one feedback family: the entries and their replies."""
    router = APIRouter(prefix=prefix, tags=[kind.collection])
    replies = APIRouter(prefix=reply_prefix, tags=[kind.reply_collection])

    @router.post("", status_code=201)
    def create_feedback(payload: FeedbackCreate, db: Database = Depends(get_db)):
        return success(services.create_feedback(db, kind, payload))

    @router.get("")
    def list_feedback(db: Database = Depends(get_db)):
        return success(services.list_feedback(db, kind))

    @router.get("/product/{product_id}")
    def list_feedback_by_product(product_id: str, db: Database = Depends(get_db)):
        return success(services.list_feedback(db, kind, {"product_id": product_id}))

    @router.get("/product/{product_id}/average-rating")
    def get_average_rating(product_id: str, db: Database = Depends(get_db)):
        rating = services.average_rating(db, kind, product_id)
        return success({"product_id": product_id, "average_rating": rating})

    @router.get("/user/{user_id}")
    def list_feedback_by_user(user_id: str, db: Database = Depends(get_db)):
        return success(services.list_feedback(db, kind, {"user_id": user_id}))

    @router.get("/{feedback_id}")
    def get_feedback(feedback_id: str, db: Database = Depends(get_db)):
        return success(services.get_feedback(db, kind, feedback_id))

    @router.patch("/{feedback_id}")
    def update_feedback(feedback_id: str, payload: FeedbackUpdate, db: Database = Depends(get_db)):
        return success(services.update_feedback(db, kind, feedback_id, payload))

    @router.delete("/{feedback_id}", **NO_CONTENT)
    def delete_feedback(feedback_id: str, db: Database = Depends(get_db)):
        services.delete_feedback(db, kind, feedback_id)

    @replies.post("", status_code=201)
    def create_reply(payload: reply_model, db: Database = Depends(get_db)):
        return success(services.create_reply(db, kind, payload))

    @replies.get("")
    def list_replies(db: Database = Depends(get_db)):
        return success(services.list_replies(db, kind))

    @replies.get(f"/{kind.label}/{{parent_id}}")
    def list_replies_by_parent(parent_id: str, db: Database = Depends(get_db)):
        return success(services.list_replies(db, kind, {kind.parent_field: parent_id}))

    @replies.get("/user/{user_id}")
    def list_replies_by_user(user_id: str, db: Database = Depends(get_db)):
        return success(services.list_replies(db, kind, {"user_id": user_id}))

    @replies.get("/{reply_id}")
    def get_reply(reply_id: str, db: Database = Depends(get_db)):
        return success(services.get_reply(db, kind, reply_id))

    @replies.patch("/{reply_id}")
    def update_reply(reply_id: str, payload: ReplyUpdate, db: Database = Depends(get_db)):
        return success(services.update_reply(db, kind, reply_id, payload))

    @replies.delete("/{reply_id}", **NO_CONTENT)
    def delete_reply(reply_id: str, db: Database = Depends(get_db)):
        services.delete_reply(db, kind, reply_id)

    return router, replies


comments_router, comment_replies_router = feedback_routers(
    services.COMMENTS, "/comments", "/comment-replies", CommentReplyCreate
)
reviews_router, review_replies_router = feedback_routers(
    services.REVIEWS, "/reviews", "/review-replies", ReviewReplyCreate
)

ROUTERS = [
    auth_router,
    users_router,
    stores_router,
    categories_router,
    products_router,
    carts_router,
    orders_router,
    invoices_router,
    sellers_router,
    managers_router,
    comments_router,
    comment_replies_router,
    reviews_router,
    review_replies_router,
]


def create_app(db: Optional[Database] = None) -> FastAPI:
    """
    Build the API around a database handle.

    With ``db`` given (tests), that handle is used as-is. Otherwise a
    client is opened from DATABASE_URL on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_client = None
        if app.state.db is None:
            app.state.db = connect()
            owned_client = app.state.db.client
        ensure_indexes(app.state.db)
        logger.info("Database %s ready", app.state.db.name)
        yield
        if owned_client is not None:
            owned_client.close()
            app.state.db = None

    app = FastAPI(title=config.APP_TITLE, lifespan=lifespan)
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/")
    def read_root():
        return {"message": f"{config.APP_TITLE} is running"}

    @app.get("/test")
    def test_database(db: Database = Depends(get_db)):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": None,
            "collections": [],
        }
        try:
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()[:20]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            logger.warning("Database check failed: %s", e)
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        return response

    for router in ROUTERS:
        app.include_router(router)
    return app


config.configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
