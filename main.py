import logging
from contextlib import asynccontextmanager
from datetime import datetime, time
from pathlib import Path

from fastapi import (
    FastAPI,
    Request,
    Query,
    Header,
    Depends,
    HTTPException,
    BackgroundTasks,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from schemas import *
from database import *
from mailer import send_email
from roles import Role, menu_for, parse_role
from services import (
    AuthError,
    AuthService,
    CartService,
    FirebaseAuthService,
    PaymentError,
    PaymentService,
    StripePaymentService,
)

config.configure_logging()
logger = logging.getLogger("oshudh.api")

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

# ------------------------------------------------------------
# App
# ------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(get_database())
    yield


app = FastAPI(title="Oshudh API", lifespan=lifespan)
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------

_auth_service = FirebaseAuthService()
_payment_service = StripePaymentService()


def get_db() -> Database:
    return get_database()


def get_auth_service() -> AuthService:
    return _auth_service


def get_payment_service() -> PaymentService:
    return _payment_service


def get_cart_service(db: Database = Depends(get_db)) -> CartService:
    return CartService(db)


def read_token(request: Request) -> str | None:
    """authToken cookie first, then an Authorization: Bearer header."""
    token = request.cookies.get(config.AUTH_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization") or ""
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


def get_current_user(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    token = read_token(request)
    if not token:
        raise AuthError("No valid authorization token provided", clear_cookie=False)
    return auth.verify_token(token)


def require_role(*roles: Role):
    """Dependency returning the stored user when their role is one of `roles`."""
    allowed = [r.value for r in roles]

    def checker(
        claims: dict = Depends(get_current_user),
        db: Database = Depends(get_db),
    ) -> dict:
        user = get_user_by_email(db, claims["email"])
        current = user.get("role") if user else None
        if current not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Requires {' or '.join(allowed)} role, current role: {current or 'none'}",
            )
        return user

    return checker


require_admin = require_role(Role.ADMIN)
require_seller = require_role(Role.SELLER)

# ------------------------------------------------------------
# Responses & Error Handling
# ------------------------------------------------------------


def ok(data=None, **extra) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = serialize(data)
    body.update(serialize(extra))
    return body


def fail(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


def clear_auth_cookie(response) -> None:
    response.delete_cookie(
        config.AUTH_COOKIE_NAME,
        httponly=True,
        secure=config.IS_PRODUCTION,
        samesite="strict",
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    response = fail(status.HTTP_401_UNAUTHORIZED, exc.message)
    if exc.clear_cookie:
        clear_auth_cookie(response)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        return fail(404, "Route not found", path=request.url.path)
    return fail(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return fail(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(InvalidIdError)
async def invalid_id_handler(request: Request, exc: InvalidIdError):
    return fail(status.HTTP_400_BAD_REQUEST, "Invalid id")


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return fail(status.HTTP_409_CONFLICT, str(exc))


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    return fail(status.HTTP_502_BAD_GATEWAY, str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if config.IS_PRODUCTION else str(exc)
    return fail(status.HTTP_500_INTERNAL_SERVER_ERROR, message)

# ------------------------------------------------------------
# Health
# ------------------------------------------------------------


@app.get("/health")
def health(db: Database = Depends(get_db)):
    try:
        db.command("ping")
        database_state = "connected"
    except PyMongoError:
        database_state = "disconnected"
    return {
        "status": "OK",
        "timestamp": datetime.utcnow().isoformat(),
        "database": database_state,
    }

# ------------------------------------------------------------
# Medicines (public)
# ------------------------------------------------------------


@app.get("/medicines")
def list_medicines(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    category: str = "",
    sortBy: str = "itemName",
    sortOrder: str = "asc",
    db: Database = Depends(get_db),
):
    docs, total = search_medicines(db, page, limit, search, category, sortBy, sortOrder)
    return ok(docs, pagination=pagination_meta(page, limit, total, len(docs)))


@app.get("/medicines/discount-products")
def discount_products(db: Database = Depends(get_db)):
    return ok(get_discount_products(db))


@app.get("/medicines/{medicine_id}")
def medicine_details(medicine_id: str, db: Database = Depends(get_db)):
    medicine = get_medicine_by_id(db, medicine_id)
    if not medicine:
        raise HTTPException(status_code=404, detail="Medicine not found")
    return ok(medicine)

# ------------------------------------------------------------
# Categories (public)
# ------------------------------------------------------------


@app.get("/categories")
def list_categories(db: Database = Depends(get_db)):
    return ok(list_categories_with_counts(db))


@app.get("/categories/{category_id}")
def category_details(category_id: str, db: Database = Depends(get_db)):
    category = get_category_by_id(db, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return ok(category)


@app.get("/categories/{category_name}/medicines")
def category_medicines(
    category_name: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    sortBy: str = "itemName",
    sortOrder: str = "asc",
    db: Database = Depends(get_db),
):
    docs, total = search_medicines(db, page, limit, search, category_name, sortBy, sortOrder)
    return ok(docs, pagination=pagination_meta(page, limit, total, len(docs)))

# ------------------------------------------------------------
# Advertisements (public)
# ------------------------------------------------------------


@app.get("/advertisements/active")
def active_advertisements(db: Database = Depends(get_db)):
    return ok(list_active_advertisements(db))

# ------------------------------------------------------------
# Auth / Users
# ------------------------------------------------------------


@app.post("/auth/users")
@app.post("/auth/register")
@app.post("/auth/profile")
@app.post("/auth/google-login")
def save_user(
    payload: UserUpsert | None = None,
    claims: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    data = payload.model_dump(exclude_none=True) if payload else {}
    user = upsert_user(db, claims, data)
    logger.info("Profile saved for %s (role=%s)", user["email"], user["role"])
    return ok(user, message="User saved successfully")


@app.post("/auth/session")
def create_session(
    request: Request,
    claims: dict = Depends(get_current_user),
):
    """Store the verified bearer token in the authToken cookie."""
    response = JSONResponse(content={"success": True, "message": "Session started", "email": claims["email"]})
    response.set_cookie(
        key=config.AUTH_COOKIE_NAME,
        value=read_token(request),
        max_age=config.AUTH_COOKIE_MAX_AGE,
        httponly=True,
        secure=config.IS_PRODUCTION,
        samesite="strict",
    )
    return response


@app.post("/auth/logout")
def logout():
    response = JSONResponse(content={"success": True, "message": "Logged out"})
    clear_auth_cookie(response)
    return response


@app.get("/auth/profile")
@app.get("/user/profile")
def user_profile(claims: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user = get_user_by_email(db, claims["email"])
    if not user:
        return fail(
            404,
            "User profile not found. Please complete your registration.",
            shouldRegister=True,
        )
    return ok(user)


@app.put("/user/profile")
def update_profile(
    payload: ProfileUpdate,
    claims: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user = update_user_profile(db, claims["email"], payload.model_dump())
    if not user:
        raise HTTPException(status_code=404, detail="User profile not found")
    return ok(user, message="Profile updated successfully")


@app.get("/user/menu")
def user_menu(claims: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user = get_user_by_email(db, claims["email"])
    role = parse_role(user.get("role")) if user else None
    if role is None:
        raise HTTPException(status_code=403, detail="No valid role assigned to this account")
    return ok(menu_for(role))


@app.get("/user/dashboard")
def dashboard_for_user(claims: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return ok(user_dashboard(db, claims["email"]))

# ------------------------------------------------------------
# Cart
# ------------------------------------------------------------


@app.get("/cart")
def cart_items(claims: dict = Depends(get_current_user), carts: CartService = Depends(get_cart_service)):
    return ok(carts.list_items(claims["email"]))


@app.get("/cart/summary")
def cart_summary(claims: dict = Depends(get_current_user), carts: CartService = Depends(get_cart_service)):
    return ok(carts.summary(claims["email"]))


@app.post("/cart")
def add_to_cart(
    payload: CartAddIn,
    claims: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    try:
        row = carts.add_item(claims["email"], payload.medicineId, payload.quantity)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ok(row, message="Added to cart successfully")


@app.patch("/cart/clear")
def clear_cart(claims: dict = Depends(get_current_user), carts: CartService = Depends(get_cart_service)):
    removed = carts.clear(claims["email"])
    return ok(message="Cart cleared successfully", removed=removed)


@app.put("/cart/{item_id}")
def update_cart_item(
    item_id: str,
    payload: CartQuantityIn,
    claims: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    try:
        row = carts.update_quantity(claims["email"], item_id, payload.quantity)
    except InvalidIdError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not row:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return ok(row, message="Cart updated successfully")


@app.delete("/cart/{item_id}")
def remove_from_cart(
    item_id: str,
    claims: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    if not carts.remove_item(claims["email"], item_id):
        raise HTTPException(status_code=404, detail="Cart item not found")
    return ok(message="Item removed from cart")

# ------------------------------------------------------------
# Payments / Orders
# ------------------------------------------------------------

PAYABLE_INTENT_STATUSES = {"succeeded", "processing"}
ORDER_NOT_SAVED = "Payment received but the order could not be saved. Please contact support."


@app.get("/payment/config")
def payment_config():
    return ok({"publishableKey": config.STRIPE_PUBLISHABLE_KEY, "currency": config.STRIPE_CURRENCY})


@app.post("/payment/create-intent")
def create_payment_intent(
    claims: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
    payments: PaymentService = Depends(get_payment_service),
):
    # amounts in the request body are ignored, the cart is the source of truth
    summary = carts.summary(claims["email"])
    if not summary["items"]:
        raise HTTPException(status_code=400, detail="Cart is empty")

    intent = payments.create_intent(summary["totalAmount"], {"userEmail": claims["email"]})
    logger.info("PaymentIntent %s created for %s (%.2f)", intent["id"], claims["email"], summary["totalAmount"])

    return ok(
        clientSecret=intent["client_secret"],
        paymentIntentId=intent["id"],
        subtotal=summary["subtotal"],
        tax=summary["tax"],
        deliveryCharge=summary["deliveryCharge"],
        totalAmount=summary["totalAmount"],
    )


def send_order_confirmation(order: dict) -> None:
    html = templates.get_template("invoice.html").render(order=order)
    send_email(f"Your Oshudh order {order['orderId']}", html, order["userEmail"])


@app.post("/payment/save-order")
def save_order(
    payload: SaveOrderIn,
    background_tasks: BackgroundTasks,
    claims: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    carts: CartService = Depends(get_cart_service),
    payments: PaymentService = Depends(get_payment_service),
):
    email = claims["email"]

    existing = get_order_by_payment_intent(db, payload.paymentIntentId)
    if existing:
        if existing.get("userEmail") != email:
            raise HTTPException(status_code=409, detail="Payment already recorded for another account")
        return ok(existing, orderId=str(existing["_id"]), message="Order already saved")

    cart = carts.list_items(email)
    if not cart:
        raise HTTPException(status_code=400, detail="Cart is empty")

    intent = payments.retrieve_intent(payload.paymentIntentId)
    if intent["metadata"].get("userEmail") != email:
        raise HTTPException(status_code=403, detail="Payment does not belong to this account")
    if intent["status"] not in PAYABLE_INTENT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Payment not completed (status: {intent['status']})")

    totals = compute_cart_totals(cart)
    if intent["amount"] != to_minor_units(totals["totalAmount"]):
        if intent["status"] == "succeeded":
            # money already captured, the cart moved underneath it
            logger.error(
                "Captured payment %s for %s does not match cart total %s, order not saved",
                intent["id"], intent["amount"], to_minor_units(totals["totalAmount"]),
            )
            raise HTTPException(status_code=500, detail=ORDER_NOT_SAVED)
        logger.warning(
            "Amount mismatch on %s: intent=%s cart=%s",
            intent["id"], intent["amount"], to_minor_units(totals["totalAmount"]),
        )
        raise HTTPException(status_code=400, detail="Payment amount does not match cart total")

    user = get_user_by_email(db, email) or upsert_user(db, claims, {"username": payload.userName})
    try:
        order = create_order(
            db,
            user,
            cart,
            intent,
            payment_method=payload.paymentMethod,
            transaction_id=payload.transactionId,
            status="paid" if intent["status"] == "succeeded" else "pending",
        )
    except PyMongoError:
        logger.exception("Order save failed after payment %s", intent["id"])
        raise HTTPException(status_code=500, detail=ORDER_NOT_SAVED)

    carts.clear(email)
    background_tasks.add_task(send_order_confirmation, order)
    logger.info("Order %s saved for %s (%.2f)", order["orderId"], email, order["totalAmount"])

    return ok(order, orderId=str(order["_id"]), message="Order placed successfully")


@app.post("/payment/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    db: Database = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    body = await request.body()
    try:
        event = payments.parse_webhook(body, stripe_signature)
    except PaymentError as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        return fail(400, str(e))

    if event["type"] == "payment_intent.succeeded" and event.get("object_id"):
        if mark_order_paid_by_intent(db, event["object_id"]):
            logger.info("Order for %s marked paid by webhook", event["object_id"])

    return {"success": True, "received": True}


@app.get("/orders")
@app.get("/user/payment-history")
@app.get("/payment/history/user")
def my_orders(claims: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return ok(list_orders_for_user(db, claims["email"]))


def load_visible_order(db: Database, order_id: str, claims: dict) -> dict:
    order = get_order(db, order_id)
    if order and order.get("userEmail") != claims["email"]:
        viewer = get_user_by_email(db, claims["email"])
        if not viewer or viewer.get("role") != Role.ADMIN.value:
            order = None
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.get("/orders/{order_id}")
def order_details(order_id: str, claims: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return ok(load_visible_order(db, order_id, claims))


@app.get("/orders/{order_id}/invoice", response_class=HTMLResponse)
def order_invoice(
    request: Request,
    order_id: str,
    claims: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    order = load_visible_order(db, order_id, claims)
    return templates.TemplateResponse(request, "invoice.html", {"order": order})

# ------------------------------------------------------------
# Seller
# ------------------------------------------------------------


@app.get("/seller/dashboard")
def seller_dashboard_view(seller: dict = Depends(require_seller), db: Database = Depends(get_db)):
    return ok(seller_dashboard(db, seller["email"]))


@app.get("/seller/medicines")
def seller_medicines(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    seller: dict = Depends(require_seller),
    db: Database = Depends(get_db),
):
    docs, total = list_seller_medicines(db, seller["email"], page, limit)
    return ok(docs, pagination=pagination_meta(page, limit, total, len(docs)))


@app.post("/seller/medicines")
def add_medicine(
    payload: MedicineIn,
    seller: dict = Depends(require_seller),
    db: Database = Depends(get_db),
):
    try:
        medicine = create_medicine(db, seller["email"], payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Seller %s added medicine %s", seller["email"], medicine["_id"])
    return ok(medicine, message="Medicine added successfully")


@app.put("/seller/medicines/{medicine_id}")
def edit_medicine(
    medicine_id: str,
    payload: MedicineUpdate,
    seller: dict = Depends(require_seller),
    db: Database = Depends(get_db),
):
    try:
        medicine = update_medicine(db, medicine_id, seller["email"], payload.model_dump())
    except InvalidIdError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not medicine:
        raise HTTPException(status_code=404, detail="Medicine not found or unauthorized")
    return ok(medicine, message="Medicine updated successfully")


@app.delete("/seller/medicines/{medicine_id}")
def remove_medicine(
    medicine_id: str,
    seller: dict = Depends(require_seller),
    db: Database = Depends(get_db),
):
    if not delete_medicine(db, medicine_id, seller["email"]):
        raise HTTPException(status_code=404, detail="Medicine not found or unauthorized")
    return ok(message="Medicine deleted successfully")


@app.get("/seller/payment-history")
@app.get("/payment/history/seller")
def seller_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    status: str = "",
    seller: dict = Depends(require_seller),
    db: Database = Depends(get_db),
):
    result = seller_payment_history(db, seller["email"], page, limit, search, status)
    return ok(result["data"], pagination=result["pagination"], stats=result["stats"])


@app.get("/seller/advertisements")
def seller_advertisements(seller: dict = Depends(require_seller), db: Database = Depends(get_db)):
    return ok(list_advertisements(db, seller["email"]))


@app.post("/seller/advertisements")
def request_advertisement(
    payload: AdvertisementIn,
    seller: dict = Depends(require_seller),
    db: Database = Depends(get_db),
):
    try:
        ad = create_advertisement(db, seller, payload.model_dump())
    except InvalidIdError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info("Advertisement %s requested by %s", ad["_id"], seller["email"])
    return ok(ad, message="Advertisement request submitted successfully")

# ------------------------------------------------------------
# Admin
# ------------------------------------------------------------


@app.get("/admin/stats")
@app.get("/admin/dashboard")
def admin_dashboard(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return ok(admin_stats(db))


@app.get("/admin/users")
def admin_users(
    search: str = "",
    role: str = "",
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return ok(list_users(db, search, role))


@app.patch("/admin/users/{user_id}/role")
def admin_update_role(
    user_id: str,
    payload: RoleUpdate,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    try:
        user = update_user_role(db, user_id, payload.role, admin["email"])
    except InvalidIdError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info("%s changed role of %s to %s", admin["email"], user["email"], payload.role)
    return ok(
        {"userId": user_id, "newRole": payload.role},
        message=f"User role updated to {payload.role}",
    )


@app.get("/admin/categories")
def admin_categories(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return ok(list_categories_with_counts(db))


@app.post("/admin/categories")
def admin_add_category(
    payload: CategoryIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    try:
        category = create_category(db, payload.model_dump())
    except ConflictError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ok(category, message="Category added successfully")


@app.put("/admin/categories/{category_id}")
def admin_update_category(
    category_id: str,
    payload: CategoryUpdate,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    category = update_category(db, category_id, payload.model_dump())
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return ok(category, message="Category updated successfully")


@app.delete("/admin/categories/{category_id}")
def admin_delete_category(
    category_id: str,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    try:
        deleted = delete_category(db, category_id)
    except InvalidIdError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Category not found")
    logger.info("%s deleted category %s", admin["email"], category_id)
    return ok(message="Category deleted successfully")


@app.get("/admin/payments")
def admin_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: str = "",
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    docs, total = list_payments(db, status, page, limit)
    return ok(docs, pagination=pagination_meta(page, limit, total, len(docs)))


@app.patch("/admin/payments/{payment_id}/status")
def admin_update_payment_status(
    payment_id: str,
    payload: PaymentStatusIn | None = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    new_status = payload.status if payload else "paid"
    try:
        order = update_payment_status(db, payment_id, new_status)
    except InvalidIdError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not order:
        raise HTTPException(status_code=404, detail="Payment not found")

    logger.info("%s set payment %s to %s", admin["email"], payment_id, new_status)
    return ok(order, message="Payment status updated successfully")


def parse_report_date(value: str, end_of_day: bool = False) -> datetime | None:
    value = (value or "").strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return parsed.replace(tzinfo=None)


@app.get("/admin/sales-report")
def admin_sales_report(
    startDate: str = "",
    endDate: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    report = sales_report(
        db,
        parse_report_date(startDate),
        parse_report_date(endDate, end_of_day=True),
        page,
        limit,
    )
    return ok(report["data"], pagination=report["pagination"], totalRevenue=report["totalRevenue"])


@app.get("/admin/advertisements")
def admin_advertisements(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return ok(list_advertisements(db))


@app.patch("/admin/advertisements/{ad_id}/toggle")
def admin_toggle_advertisement(
    ad_id: str,
    payload: AdvertisementToggle,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    try:
        ad = toggle_advertisement(db, ad_id, payload.action, payload.priority)
    except InvalidIdError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ad:
        raise HTTPException(status_code=404, detail="Advertisement not found")

    logger.info("%s applied %s to advertisement %s", admin["email"], payload.action, ad_id)
    return ok(ad, message=AD_ACTION_MESSAGES[payload.action])
