"""
Resource services

One section per resource. Every function takes the injected MongoDB handle
first and returns plain dicts ready for the response envelope (``_id``
replaced by ``id``, password hashes stripped). Failures are raised as
``errors.AppError`` subclasses.
"""
import logging
import uuid
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import (
    create_document,
    delete_document,
    get_document,
    get_documents,
    now,
    serialize_doc,
    to_object_id,
    update_document,
)
from errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from schemas import (
    CartCreate,
    CartItemCreate,
    CartItemUpdate,
    CartStatus,
    CartUpdate,
    CategoryCreate,
    CategoryUpdate,
    CheckoutRequest,
    FeedbackCreate,
    FeedbackUpdate,
    InvoiceCreate,
    InvoiceUpdate,
    ManagerCreate,
    ManagerUpdate,
    OrderCreate,
    OrderStatus,
    OrderUpdate,
    PaymentStatus,
    ProductCreate,
    ProductUpdate,
    ReplyCreate,
    ReplyUpdate,
    Role,
    SellerCreate,
    SellerUpdate,
    StoreCreate,
    StoreUpdate,
    UpdateModel,
    UserCreate,
    UserUpdate,
)
from security import hash_password, verify_password

logger = logging.getLogger(__name__)


def _changes(payload: UpdateModel) -> dict:
    # only fields the client actually sent; null never clears a field
    return payload.model_dump(exclude_unset=True, exclude_none=True)


def _insert(db: Database, collection_name: str, data, conflict_message: str) -> str:
    try:
        return create_document(db, collection_name, data)
    except DuplicateKeyError:
        logger.warning("Duplicate key inserting into %s", collection_name)
        raise ConflictError(conflict_message)


def _find_by_ids(db: Database, collection_name: str, ids: List[str]) -> List[dict]:
    oids = [to_object_id(i) for i in ids]
    if not oids:
        return []
    return list(db[collection_name].find({"_id": {"$in": oids}}))


def _find_optional(db: Database, collection_name: str, doc_id: Optional[str]) -> Optional[dict]:
    if not doc_id:
        return None
    try:
        oid = to_object_id(doc_id)
    except ValidationError:
        return None
    return db[collection_name].find_one({"_id": oid})


# ---------- Users ----------
def serialize_user(doc: Optional[dict]) -> Optional[dict]:
    d = serialize_doc(doc)
    if d is not None:
        d.pop("password_hash", None)
    return d


def create_user(db: Database, payload: UserCreate) -> dict:
    data = payload.model_dump(exclude={"password"})
    data["password_hash"] = hash_password(payload.password)
    data["role"] = Role.USER.value
    user_id = _insert(db, "users", data, "Email already exists")
    logger.info("Created user %s with role %s", user_id, data["role"])
    return get_user(db, user_id)


def list_users(db: Database) -> List[dict]:
    return [serialize_user(u) for u in get_documents(db, "users")]


def get_user(db: Database, user_id: str) -> dict:
    return serialize_user(get_document(db, "users", user_id, "user"))


def update_user(db: Database, user_id: str, payload: UserUpdate) -> dict:
    changes = _changes(payload)
    if "password" in changes:
        changes["password_hash"] = hash_password(changes.pop("password"))
    try:
        doc = update_document(db, "users", user_id, changes, "user")
    except DuplicateKeyError:
        raise ConflictError("Email already exists")
    return serialize_user(doc)


def delete_user(db: Database, user_id: str) -> None:
    """Delete the user along with the cart, seller profile and manager profile it owns."""
    delete_document(db, "users", user_id, "user")
    cart = db["carts"].find_one_and_delete({"user_id": user_id})
    if cart:
        db["cart_items"].delete_many({"cart_id": str(cart["_id"])})
    db["sellers"].delete_many({"user_id": user_id})
    db["managers"].delete_many({"user_id": user_id})
    logger.info("Deleted user %s", user_id)


def authenticate(db: Database, email: str, password: str) -> dict:
    user = db["users"].find_one({"email": email})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise UnauthorizedError("Invalid credentials")
    if user.get("role") == Role.MANAGER.value:
        db["managers"].update_one({"user_id": str(user["_id"])}, {"$set": {"last_login": now()}})
    return user


# ---------- Stores ----------
def _with_products(db: Database, store: dict) -> dict:
    d = serialize_doc(store)
    d["products"] = [serialize_doc(p) for p in get_documents(db, "products", {"store_id": d["id"]})]
    return d


def create_store(db: Database, payload: StoreCreate) -> dict:
    store_id = create_document(db, "stores", payload)
    logger.info("Created store %s", store_id)
    return get_store(db, store_id)


def list_stores(db: Database) -> List[dict]:
    return [_with_products(db, s) for s in get_documents(db, "stores")]


def get_store(db: Database, store_id: str) -> dict:
    return _with_products(db, get_document(db, "stores", store_id, "store"))


def update_store(db: Database, store_id: str, payload: StoreUpdate) -> dict:
    return _with_products(db, update_document(db, "stores", store_id, _changes(payload), "store"))


def update_store_status(db: Database, store_id: str, status: str) -> dict:
    return _with_products(db, update_document(db, "stores", store_id, {"status": status}, "store"))


def delete_store(db: Database, store_id: str) -> None:
    delete_document(db, "stores", store_id, "store")
    logger.info("Deleted store %s", store_id)


# ---------- Categories ----------
def create_category(db: Database, payload: CategoryCreate) -> dict:
    category_id = create_document(db, "categories", payload)
    return get_category(db, category_id)


def list_categories(db: Database) -> List[dict]:
    return [serialize_doc(c) for c in get_documents(db, "categories")]


def get_category(db: Database, category_id: str) -> dict:
    return serialize_doc(get_document(db, "categories", category_id, "category"))


def update_category(db: Database, category_id: str, payload: CategoryUpdate) -> dict:
    return serialize_doc(update_document(db, "categories", category_id, _changes(payload), "category"))


def delete_category(db: Database, category_id: str) -> None:
    delete_document(db, "categories", category_id, "category")
    db["product_categories"].delete_many({"category_id": category_id})


def list_category_products(db: Database, category_id: str) -> List[dict]:
    get_document(db, "categories", category_id, "category")
    links = get_documents(db, "product_categories", {"category_id": category_id})
    products = _find_by_ids(db, "products", [link["product_id"] for link in links])
    return [_with_categories(db, p) for p in products]


# ---------- Products ----------
def _with_categories(db: Database, product: dict) -> dict:
    d = serialize_doc(product)
    links = get_documents(db, "product_categories", {"product_id": d["id"]})
    categories = _find_by_ids(db, "categories", [link["category_id"] for link in links])
    d["categories"] = [serialize_doc(c) for c in categories]
    return d


def create_product(db: Database, payload: ProductCreate) -> dict:
    get_document(db, "stores", payload.store_id, "store")
    product_id = create_document(db, "products", payload)
    logger.info("Created product %s in store %s", product_id, payload.store_id)
    return get_product(db, product_id)


def list_products(db: Database) -> List[dict]:
    return [_with_categories(db, p) for p in get_documents(db, "products")]


def get_product(db: Database, product_id: str) -> dict:
    return _with_categories(db, get_document(db, "products", product_id, "product"))


def update_product(db: Database, product_id: str, payload: ProductUpdate) -> dict:
    return _with_categories(db, update_document(db, "products", product_id, _changes(payload), "product"))


def delete_product(db: Database, product_id: str) -> None:
    delete_document(db, "products", product_id, "product")
    db["product_categories"].delete_many({"product_id": product_id})
    logger.info("Deleted product %s", product_id)


def list_products_by_store(db: Database, store_id: str) -> List[dict]:
    return [_with_categories(db, p) for p in get_documents(db, "products", {"store_id": store_id})]


def add_category_to_product(db: Database, product_id: str, category_id: str) -> dict:
    """Link a category to a product; linking an already linked pair is a no-op."""
    get_document(db, "products", product_id, "product")
    get_document(db, "categories", category_id, "category")
    db["product_categories"].update_one(
        {"product_id": product_id, "category_id": category_id},
        {"$setOnInsert": {"product_id": product_id, "category_id": category_id, "created_at": now()}},
        upsert=True,
    )
    return get_product(db, product_id)


def remove_category_from_product(db: Database, product_id: str, category_id: str) -> dict:
    get_document(db, "products", product_id, "product")
    get_document(db, "categories", category_id, "category")
    db["product_categories"].delete_one({"product_id": product_id, "category_id": category_id})
    return get_product(db, product_id)


# ---------- Carts ----------
def _cart_items(db: Database, cart_id: str) -> List[dict]:
    return [serialize_doc(i) for i in get_documents(db, "cart_items", {"cart_id": cart_id})]


def _with_items(db: Database, cart: dict) -> dict:
    d = serialize_doc(cart)
    d["items"] = _cart_items(db, d["id"])
    return d


def cart_total(items: List[dict]) -> float:
    return round(sum(float(i["price"]) * int(i["quantity"]) for i in items), 2)


def _refresh_cart_total(db: Database, cart_id: str) -> float:
    total = cart_total(get_documents(db, "cart_items", {"cart_id": cart_id}))
    db["carts"].update_one({"_id": to_object_id(cart_id)}, {"$set": {"total": total, "updated_at": now()}})
    return total


def _active_cart(db: Database, cart_id: str) -> dict:
    cart = get_document(db, "carts", cart_id, "cart")
    if cart.get("status") != CartStatus.ACTIVE.value:
        raise ValidationError("Cart is being checked out")
    return cart


def create_cart(db: Database, payload: CartCreate) -> dict:
    get_document(db, "users", payload.user_id, "user")
    if db["carts"].find_one({"user_id": payload.user_id}):
        raise ConflictError("Cart already exists for this user")
    data = {"user_id": payload.user_id, "total": 0.0, "status": CartStatus.ACTIVE.value}
    cart_id = _insert(db, "carts", data, "Cart already exists for this user")
    logger.info("Created cart %s for user %s", cart_id, payload.user_id)
    return get_cart(db, cart_id)


def list_carts(db: Database) -> List[dict]:
    return [_with_items(db, c) for c in get_documents(db, "carts")]


def get_cart(db: Database, cart_id: str) -> dict:
    return _with_items(db, get_document(db, "carts", cart_id, "cart"))


def get_user_cart(db: Database, user_id: str) -> dict:
    cart = db["carts"].find_one({"user_id": user_id})
    if not cart:
        raise NotFoundError("No cart found for this user")
    return _with_items(db, cart)


def update_cart(db: Database, cart_id: str, payload: CartUpdate) -> dict:
    return _with_items(db, update_document(db, "carts", cart_id, _changes(payload), "cart"))


def delete_cart(db: Database, cart_id: str) -> None:
    delete_document(db, "carts", cart_id, "cart")
    db["cart_items"].delete_many({"cart_id": cart_id})
    logger.info("Deleted cart %s", cart_id)


def list_cart_items(db: Database, cart_id: str) -> List[dict]:
    get_document(db, "carts", cart_id, "cart")
    return _cart_items(db, cart_id)


def add_cart_item(db: Database, cart_id: str, payload: CartItemCreate) -> dict:
    """
    Add a product to the cart.

    The unit price is captured from the product when the line is created
    (offer price if set, else standard price). Adding a product that is
    already in the cart bumps the quantity of the existing line and keeps
    its original price.
    """
    _active_cart(db, cart_id)
    product = get_document(db, "products", payload.product_id, "product")
    existing = db["cart_items"].find_one({"cart_id": cart_id, "product_id": payload.product_id})
    if existing:
        item = db["cart_items"].find_one_and_update(
            {"_id": existing["_id"]},
            {"$inc": {"quantity": payload.quantity}, "$set": {"updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )
    else:
        offer = product.get("offer_price")
        price = float(offer if offer is not None else product["standard_price"])
        item_id = create_document(db, "cart_items", {
            "cart_id": cart_id,
            "product_id": payload.product_id,
            "quantity": payload.quantity,
            "price": price,
        })
        item = db["cart_items"].find_one({"_id": to_object_id(item_id)})
    _refresh_cart_total(db, cart_id)
    return serialize_doc(item)


def update_cart_item(db: Database, cart_id: str, item_id: str, payload: CartItemUpdate) -> dict:
    _active_cart(db, cart_id)
    item = db["cart_items"].find_one_and_update(
        {"_id": to_object_id(item_id), "cart_id": cart_id},
        {"$set": {"quantity": payload.quantity, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not item:
        raise NotFoundError("No cart item found with that ID")
    _refresh_cart_total(db, cart_id)
    return serialize_doc(item)


def remove_cart_item(db: Database, cart_id: str, item_id: str) -> None:
    _active_cart(db, cart_id)
    result = db["cart_items"].delete_one({"_id": to_object_id(item_id), "cart_id": cart_id})
    if result.deleted_count == 0:
        raise NotFoundError("No cart item found with that ID")
    _refresh_cart_total(db, cart_id)


def clear_cart(db: Database, cart_id: str) -> dict:
    _active_cart(db, cart_id)
    db["cart_items"].delete_many({"cart_id": cart_id})
    _refresh_cart_total(db, cart_id)
    return get_cart(db, cart_id)


def _generate_order_number() -> str:
    return f"ORD-{now():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def _restore_stock(db: Database, items: List[dict]) -> None:
    for item in items:
        logger.warning("Restoring %s units of product %s", item["quantity"], item["product_id"])
        db["products"].update_one(
            {"_id": to_object_id(item["product_id"])},
            {"$inc": {"quantity": int(item["quantity"])}, "$set": {"updated_at": now()}},
        )


def checkout_cart(db: Database, cart_id: str, payload: CheckoutRequest) -> dict:
    """
    Turn the cart into an order.

    The cart is claimed first (active -> checking_out) so a second checkout
    or an item mutation cannot run against it at the same time. Stock is
    then decremented per line with a conditional update that only matches
    while enough units remain. If any step fails, the decrements already
    applied are put back and the cart is released unchanged. On success
    the ordered lines are deleted and the cart is released for reuse.
    """
    oid = to_object_id(cart_id)
    cart = db["carts"].find_one_and_update(
        {"_id": oid, "status": CartStatus.ACTIVE.value},
        {"$set": {"status": CartStatus.CHECKING_OUT.value, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if cart is None:
        if db["carts"].find_one({"_id": oid}) is None:
            raise NotFoundError("No cart found with that ID")
        raise ValidationError("Cart is already being checked out")

    decremented = []
    try:
        items = get_documents(db, "cart_items", {"cart_id": cart_id})
        if not items:
            raise ValidationError("Cannot check out an empty cart")
        for item in items:
            quantity = int(item["quantity"])
            product_oid = to_object_id(item["product_id"])
            product = db["products"].find_one_and_update(
                {"_id": product_oid, "quantity": {"$gte": quantity}},
                {"$inc": {"quantity": -quantity}, "$set": {"updated_at": now()}},
            )
            if product is None:
                if db["products"].find_one({"_id": product_oid}) is None:
                    raise NotFoundError(f"Product {item['product_id']} no longer exists")
                raise ValidationError(f"Insufficient stock for product {item['product_id']}")
            decremented.append(item)

        user = _find_optional(db, "users", cart["user_id"]) or {}
        order = {
            "order_number": _generate_order_number(),
            "status": OrderStatus.PENDING.value,
            "order_date": now(),
            "cart_id": cart_id,
            "user_id": cart["user_id"],
            "payment_info": payload.payment_info,
            "country": payload.country,
            "city": payload.city,
            "street_address": payload.street_address or user.get("address"),
            "phone": payload.phone or user.get("phone"),
            "email": payload.email or user.get("email"),
            "items": [
                {"product_id": i["product_id"], "quantity": int(i["quantity"]), "price": float(i["price"])}
                for i in items
            ],
            "total": cart_total(items),
        }
        order_id = _insert(db, "orders", order, "Order number already exists")
    except Exception:
        _restore_stock(db, decremented)
        db["carts"].update_one({"_id": oid}, {"$set": {"status": CartStatus.ACTIVE.value, "updated_at": now()}})
        raise

    # lines added after the read stay in the cart
    db["cart_items"].delete_many({"_id": {"$in": [i["_id"] for i in items]}})
    db["carts"].update_one({"_id": oid}, {"$set": {"status": CartStatus.ACTIVE.value, "updated_at": now()}})
    _refresh_cart_total(db, cart_id)
    logger.info("Checked out cart %s into order %s", cart_id, order_id)
    return get_order(db, order_id)


# ---------- Orders ----------
def _with_user_and_cart(db: Database, order: dict) -> dict:
    d = serialize_doc(order)
    d["user"] = serialize_user(_find_optional(db, "users", d.get("user_id")))
    d["cart"] = serialize_doc(_find_optional(db, "carts", d.get("cart_id")))
    return d


def create_order(db: Database, payload: OrderCreate) -> dict:
    get_document(db, "users", payload.user_id, "user")
    get_document(db, "carts", payload.cart_id, "cart")
    data = payload.model_dump()
    data["order_number"] = data["order_number"] or _generate_order_number()
    data["order_date"] = data["order_date"] or now()
    data["total"] = cart_total(data["items"])
    order_id = _insert(db, "orders", data, "Order number already exists")
    logger.info("Created order %s (%s)", order_id, data["order_number"])
    return get_order(db, order_id)


def list_orders(db: Database) -> List[dict]:
    return [_with_user_and_cart(db, o) for o in get_documents(db, "orders")]


def get_order(db: Database, order_id: str) -> dict:
    return _with_user_and_cart(db, get_document(db, "orders", order_id, "order"))


def list_orders_by_user(db: Database, user_id: str) -> List[dict]:
    return [_with_user_and_cart(db, o) for o in get_documents(db, "orders", {"user_id": user_id})]


def update_order(db: Database, order_id: str, payload: OrderUpdate) -> dict:
    return _with_user_and_cart(db, update_document(db, "orders", order_id, _changes(payload), "order"))


def update_order_status(db: Database, order_id: str, status: str) -> dict:
    return _with_user_and_cart(db, update_document(db, "orders", order_id, {"status": status}, "order"))


def delete_order(db: Database, order_id: str) -> None:
    delete_document(db, "orders", order_id, "order")
    logger.info("Deleted order %s", order_id)


# ---------- Invoices ----------
def _with_parties(db: Database, invoice: dict) -> dict:
    d = serialize_doc(invoice)
    d["user"] = serialize_user(_find_optional(db, "users", d.get("user_id")))
    d["seller"] = serialize_doc(_find_optional(db, "sellers", d.get("seller_id")))
    return d


def create_invoice(db: Database, payload: InvoiceCreate) -> dict:
    """Bill an order (or, without one, a cart); the amount comes from its total."""
    if payload.order_id:
        order = get_document(db, "orders", payload.order_id, "order")
        source = {"order_id": payload.order_id, "cart_id": order.get("cart_id"),
                  "user_id": order["user_id"], "amount": float(order.get("total", 0.0))}
    elif payload.cart_id:
        cart = get_document(db, "carts", payload.cart_id, "cart")
        source = {"order_id": None, "cart_id": payload.cart_id,
                  "user_id": cart["user_id"], "amount": float(cart.get("total", 0.0))}
    else:
        raise ValidationError("order_id or cart_id is required")
    if payload.seller_id:
        get_document(db, "sellers", payload.seller_id, "seller")
    data = dict(source,
                seller_id=payload.seller_id,
                payment_method=payload.payment_method,
                payment_status=PaymentStatus.PENDING.value,
                payment_date=None)
    invoice_id = create_document(db, "invoices", data)
    logger.info("Created invoice %s for %s", invoice_id, data["order_id"] or data["cart_id"])
    return get_invoice(db, invoice_id)


def list_invoices(db: Database) -> List[dict]:
    return [_with_parties(db, i) for i in get_documents(db, "invoices")]


def get_invoice(db: Database, invoice_id: str) -> dict:
    return _with_parties(db, get_document(db, "invoices", invoice_id, "invoice"))


def update_invoice(db: Database, invoice_id: str, payload: InvoiceUpdate) -> dict:
    changes = _changes(payload)
    if "seller_id" in changes:
        get_document(db, "sellers", changes["seller_id"], "seller")
    return _with_parties(db, update_document(db, "invoices", invoice_id, changes, "invoice"))


def update_payment_status(db: Database, invoice_id: str, status: str) -> dict:
    invoice = get_document(db, "invoices", invoice_id, "invoice")
    changes = {"payment_status": status}
    if status == PaymentStatus.PAID.value and invoice.get("payment_status") != PaymentStatus.PAID.value:
        changes["payment_date"] = now()
    return _with_parties(db, update_document(db, "invoices", invoice_id, changes, "invoice"))


def delete_invoice(db: Database, invoice_id: str) -> None:
    delete_document(db, "invoices", invoice_id, "invoice")


def list_invoices_by(db: Database, field: str, value: str) -> List[dict]:
    return [_with_parties(db, i) for i in get_documents(db, "invoices", {field: value})]


def get_invoice_by_cart(db: Database, cart_id: str) -> dict:
    invoice = db["invoices"].find_one({"cart_id": cart_id})
    if not invoice:
        raise NotFoundError("No invoice found for that cart")
    return _with_parties(db, invoice)


# ---------- Sellers ----------
def create_seller(db: Database, payload: SellerCreate) -> dict:
    user = get_document(db, "users", payload.user_id, "user")
    get_document(db, "stores", payload.store_id, "store")
    seller_id = _insert(db, "sellers", payload, "Seller profile already exists for this user")
    if user.get("role") == Role.USER.value:
        db["users"].update_one({"_id": user["_id"]}, {"$set": {"role": Role.SELLER.value, "updated_at": now()}})
    logger.info("Created seller %s for user %s", seller_id, payload.user_id)
    return get_seller(db, seller_id)


def list_sellers(db: Database) -> List[dict]:
    return [serialize_doc(s) for s in get_documents(db, "sellers")]


def get_seller(db: Database, seller_id: str) -> dict:
    return serialize_doc(get_document(db, "sellers", seller_id, "seller"))


def update_seller(db: Database, seller_id: str, payload: SellerUpdate) -> dict:
    changes = _changes(payload)
    if "store_id" in changes:
        get_document(db, "stores", changes["store_id"], "store")
    return serialize_doc(update_document(db, "sellers", seller_id, changes, "seller"))


def update_seller_status(db: Database, seller_id: str, status: str) -> dict:
    return serialize_doc(update_document(db, "sellers", seller_id, {"status": status}, "seller"))


def delete_seller(db: Database, seller_id: str) -> None:
    delete_document(db, "sellers", seller_id, "seller")


def get_seller_by_user(db: Database, user_id: str) -> dict:
    seller = db["sellers"].find_one({"user_id": user_id})
    if not seller:
        raise NotFoundError("No seller found for this user")
    return serialize_doc(seller)


def list_sellers_by_store(db: Database, store_id: str) -> List[dict]:
    return [serialize_doc(s) for s in get_documents(db, "sellers", {"store_id": store_id})]


def get_store_by_seller(db: Database, seller_id: str) -> dict:
    seller = get_document(db, "sellers", seller_id, "seller")
    return get_store(db, seller["store_id"])


def get_user_by_seller(db: Database, seller_id: str) -> dict:
    seller = get_document(db, "sellers", seller_id, "seller")
    return get_user(db, seller["user_id"])


# ---------- Managers ----------
def _with_user(db: Database, manager: dict) -> dict:
    d = serialize_doc(manager)
    d["user"] = serialize_user(_find_optional(db, "users", d.get("user_id")))
    return d


def create_manager(db: Database, payload: ManagerCreate) -> dict:
    """Create the MANAGER user account and its manager profile together."""
    user = create_user(db, UserCreate(
        name=payload.name,
        email=payload.email,
        password=payload.password,
        phone=payload.phone,
        address=payload.address,
        role=Role.MANAGER,
    ))
    data = {
        "user_id": user["id"],
        "permissions": list(dict.fromkeys(payload.permissions)),
        "is_active": True,
        "last_login": None,
    }
    try:
        manager_id = _insert(db, "managers", data, "Manager profile already exists for this user")
    except ConflictError:
        db["users"].delete_one({"_id": to_object_id(user["id"])})
        raise
    logger.info("Created manager %s", manager_id)
    return get_manager(db, manager_id)


def list_managers(db: Database) -> List[dict]:
    return [_with_user(db, m) for m in get_documents(db, "managers")]


def get_manager(db: Database, manager_id: str) -> dict:
    return _with_user(db, get_document(db, "managers", manager_id, "manager"))


def update_manager(db: Database, manager_id: str, payload: ManagerUpdate) -> dict:
    manager = get_document(db, "managers", manager_id, "manager")
    changes = _changes(payload)
    if changes:
        update_user(db, manager["user_id"], UserUpdate(**changes))
    return get_manager(db, manager_id)


def delete_manager(db: Database, manager_id: str) -> None:
    manager = get_document(db, "managers", manager_id, "manager")
    delete_document(db, "managers", manager_id, "manager")
    db["users"].delete_one({"_id": to_object_id(manager["user_id"])})
    logger.info("Deleted manager %s and user %s", manager_id, manager["user_id"])


def get_manager_by_email(db: Database, email: str) -> dict:
    user = db["users"].find_one({"email": email, "role": Role.MANAGER.value})
    if not user:
        raise NotFoundError("No manager found with that email")
    manager = db["managers"].find_one({"user_id": str(user["_id"])})
    if not manager:
        raise NotFoundError("No manager found with that email")
    return _with_user(db, manager)


def change_manager_password(db: Database, manager_id: str, current_password: str, new_password: str) -> dict:
    manager = get_document(db, "managers", manager_id, "manager")
    user = get_document(db, "users", manager["user_id"], "user")
    if not verify_password(current_password, user.get("password_hash", "")):
        raise UnauthorizedError("Current password is incorrect")
    update_document(db, "users", manager["user_id"], {"password_hash": hash_password(new_password)}, "user")
    logger.info("Password changed for manager %s", manager_id)
    return get_manager(db, manager_id)


def update_manager_status(db: Database, manager_id: str, is_active: bool) -> dict:
    return _with_user(db, update_document(db, "managers", manager_id, {"is_active": is_active}, "manager"))


def update_manager_permissions(db: Database, manager_id: str, permissions: List[str]) -> dict:
    permissions = list(dict.fromkeys(permissions))
    return _with_user(db, update_document(db, "managers", manager_id, {"permissions": permissions}, "manager"))


def touch_manager_last_login(db: Database, manager_id: str) -> dict:
    return _with_user(db, update_document(db, "managers", manager_id, {"last_login": now()}, "manager"))


# ---------- Comments / Reviews ----------
class FeedbackKind:
    """Names the collections and labels of one feedback family (comments or reviews)."""

    def __init__(self, label: str, collection: str, reply_collection: str, parent_field: str):
        self.label = label
        self.collection = collection
        self.reply_label = f"{label} reply"
        self.reply_collection = reply_collection
        self.parent_field = parent_field


COMMENTS = FeedbackKind("comment", "comments", "comment_replies", "comment_id")
REVIEWS = FeedbackKind("review", "reviews", "review_replies", "review_id")


def _with_replies(db: Database, kind: FeedbackKind, doc: dict) -> dict:
    d = serialize_doc(doc)
    d["replies"] = [serialize_doc(r) for r in get_documents(db, kind.reply_collection, {kind.parent_field: d["id"]})]
    return d


def create_feedback(db: Database, kind: FeedbackKind, payload: FeedbackCreate) -> dict:
    get_document(db, "users", payload.user_id, "user")
    get_document(db, "products", payload.product_id, "product")
    feedback_id = create_document(db, kind.collection, payload)
    logger.info("Created %s %s on product %s", kind.label, feedback_id, payload.product_id)
    return get_feedback(db, kind, feedback_id)


def list_feedback(db: Database, kind: FeedbackKind, filter_dict: Optional[dict] = None) -> List[dict]:
    return [_with_replies(db, kind, d) for d in get_documents(db, kind.collection, filter_dict)]


def get_feedback(db: Database, kind: FeedbackKind, feedback_id: str) -> dict:
    return _with_replies(db, kind, get_document(db, kind.collection, feedback_id, kind.label))


def update_feedback(db: Database, kind: FeedbackKind, feedback_id: str, payload: FeedbackUpdate) -> dict:
    doc = update_document(db, kind.collection, feedback_id, _changes(payload), kind.label)
    return _with_replies(db, kind, doc)


def delete_feedback(db: Database, kind: FeedbackKind, feedback_id: str) -> None:
    delete_document(db, kind.collection, feedback_id, kind.label)
    db[kind.reply_collection].delete_many({kind.parent_field: feedback_id})


def average_rating(db: Database, kind: FeedbackKind, product_id: str) -> float:
    """Mean rating of the product's active feedback, one decimal; 0 when there is none."""
    docs = get_documents(db, kind.collection, {"product_id": product_id, "status": "active"})
    if not docs:
        return 0
    return round(sum(d["rating"] for d in docs) / len(docs), 1)


def create_reply(db: Database, kind: FeedbackKind, payload: ReplyCreate) -> dict:
    parent_id = getattr(payload, kind.parent_field)
    get_document(db, kind.collection, parent_id, kind.label)
    get_document(db, "users", payload.user_id, "user")
    reply_id = create_document(db, kind.reply_collection, payload)
    return get_reply(db, kind, reply_id)


def list_replies(db: Database, kind: FeedbackKind, filter_dict: Optional[dict] = None) -> List[dict]:
    return [serialize_doc(r) for r in get_documents(db, kind.reply_collection, filter_dict)]


def get_reply(db: Database, kind: FeedbackKind, reply_id: str) -> dict:
    return serialize_doc(get_document(db, kind.reply_collection, reply_id, kind.reply_label))


def update_reply(db: Database, kind: FeedbackKind, reply_id: str, payload: ReplyUpdate) -> dict:
    return serialize_doc(update_document(db, kind.reply_collection, reply_id, _changes(payload), kind.reply_label))


def delete_reply(db: Database, kind: FeedbackKind, reply_id: str) -> None:
    delete_document(db, kind.reply_collection, reply_id, kind.reply_label)
