# database.py
import re
import logging
from datetime import datetime
from typing import Any, Dict, List, Tuple

import certifi
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient, ReturnDocument, ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError
from pymongo.server_api import ServerApi

import config
from roles import Role, SELF_ASSIGNABLE_ROLES, parse_role

logger = logging.getLogger("oshudh.database")

# ------------------------------------------------------------
# MongoDB connection
# ------------------------------------------------------------

_client: MongoClient | None = None


def get_client() -> MongoClient:
    """Create the process-wide MongoClient on first use."""
    global _client
    if _client is None:
        kwargs: Dict[str, Any] = {"server_api": ServerApi("1")}
        if config.MONGO_URI.startswith("mongodb+srv://"):
            kwargs["tlsCAFile"] = certifi.where()
        _client = MongoClient(config.MONGO_URI, **kwargs)
        logger.info("MongoDB client created for database %s", config.MONGO_DB_NAME)
    return _client


def get_database() -> Database:
    return get_client()[config.MONGO_DB_NAME]


def ensure_indexes(db: Database) -> None:
    try:
        db["users"].create_index([("email", ASCENDING)], unique=True)
        db["medicines"].create_index([("itemName", ASCENDING)])
        db["medicines"].create_index([("category", ASCENDING)])
        db["medicines"].create_index([("sellerEmail", ASCENDING)])
        db["cart"].create_index([("userEmail", ASCENDING), ("medicineId", ASCENDING)], unique=True)
        db["orders"].create_index([("userEmail", ASCENDING)])
        db["orders"].create_index([("sellerEmails", ASCENDING)])
        db["orders"].create_index([("paymentIntentId", ASCENDING)])
        db["categories"].create_index([("categoryName", ASCENDING)], unique=True)
    except PyMongoError as e:
        logger.warning("Index creation failed: %s", e)

# ------------------------------------------------------------
# Errors
# ------------------------------------------------------------


class InvalidIdError(ValueError):
    pass


class ConflictError(ValueError):
    pass

# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.utcnow()


def to_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise InvalidIdError(f"Invalid id: {value}")


def serialize(value: Any) -> Any:
    """Make Mongo documents JSON friendly (ObjectId -> str), recursively."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def safe_str(val: Any) -> str:
    return str(val or "").strip()


def regex_contains(text: str) -> Dict[str, Any]:
    """Case-insensitive 'contains' regex on escaped user input."""
    return {"$regex": re.escape(safe_str(text)), "$options": "i"}


def regex_exact(text: str) -> Dict[str, Any]:
    """Case-insensitive whole-value match, ignoring surrounding spaces."""
    return {"$regex": f"^\\s*{re.escape(safe_str(text))}\\s*$", "$options": "i"}


def pagination_meta(page: int, limit: int, total: int, count: int) -> Dict[str, int]:
    return {
        "current": page,
        "total": (total + limit - 1) // limit if limit else 0,
        "count": count,
        "totalCount": total,
    }


def _sum_field(collection, match: Dict[str, Any], field: str) -> float:
    rows = list(collection.aggregate([
        {"$match": match},
        {"$group": {"_id": None, "total": {"$sum": f"${field}"}}},
    ]))
    return round(float(rows[0]["total"]), 2) if rows else 0.0


def next_sequence(db: Database, name: str) -> int:
    doc = db["counters"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])

# ------------------------------------------------------------
# Pricing
# ------------------------------------------------------------


def current_price(per_unit_price: Any, discount_percentage: Any) -> float:
    price = float(per_unit_price or 0)
    discount = min(max(float(discount_percentage or 0), 0.0), 100.0)
    return round(price * (1 - discount / 100), 2)


def delivery_charge_for(subtotal: float) -> float:
    return 0.0 if subtotal > config.FREE_DELIVERY_THRESHOLD else float(config.DELIVERY_CHARGE)


def compute_totals(subtotal: float) -> dict:
    subtotal = round(max(0.0, float(subtotal)), 2)
    tax = round(subtotal * config.TAX_RATE, 2)
    delivery = delivery_charge_for(subtotal)
    return {
        "subtotal": subtotal,
        "tax": tax,
        "deliveryCharge": delivery,
        "totalAmount": round(subtotal + tax + delivery, 2),
    }


def compute_cart_totals(items: List[Dict[str, Any]]) -> dict:
    subtotal = sum(float(i.get("currentPrice", 0)) * int(i.get("quantity", 0)) for i in items)
    totals = compute_totals(subtotal)
    totals["itemCount"] = sum(int(i.get("quantity", 0)) for i in items)
    return totals


def to_minor_units(amount: float) -> int:
    return int(round(float(amount) * 100))

# ------------------------------------------------------------
# USERS
# ------------------------------------------------------------


def get_user_by_email(db: Database, email: str) -> dict | None:
    return db["users"].find_one({"email": safe_str(email).lower()})


def upsert_user(db: Database, claims: dict, payload: dict) -> dict:
    """
    Create or refresh the caller's profile.

    New users may choose "user" or "seller"; anything else falls back to "user".
    Existing users keep the role they have, role changes go through admins.
    """
    email = safe_str(claims.get("email")).lower()
    existing = get_user_by_email(db, email)
    now = _utcnow()

    if existing:
        role = existing.get("role", Role.USER.value)
    else:
        requested = parse_role(payload.get("role"))
        role = requested.value if requested in SELF_ASSIGNABLE_ROLES else Role.USER.value

    updates = {
        "email": email,
        "uid": claims.get("uid"),
        "name": claims.get("name") or payload.get("username"),
        "role": role,
        "updatedAt": now,
    }
    if payload.get("username"):
        updates["username"] = payload["username"]
    elif not existing:
        updates["username"] = claims.get("name") or email.split("@")[0]
    if payload.get("photoURL") is not None:
        updates["photoURL"] = payload["photoURL"]

    db["users"].update_one(
        {"email": email},
        {"$set": updates, "$setOnInsert": {"createdAt": now}},
        upsert=True,
    )
    return get_user_by_email(db, email)


def update_user_profile(db: Database, email: str, updates: dict) -> dict | None:
    fields = {k: v for k, v in updates.items() if k in ("username", "photoURL") and v is not None}
    fields["updatedAt"] = _utcnow()
    return db["users"].find_one_and_update(
        {"email": safe_str(email).lower()},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )


def list_users(db: Database, search: str = "", role: str = "") -> List[dict]:
    query: Dict[str, Any] = {}
    if safe_str(search):
        query["$or"] = [
            {"username": regex_contains(search)},
            {"email": regex_contains(search)},
        ]
    if role and role != "all":
        query["role"] = role
    return list(db["users"].find(query).sort("createdAt", DESCENDING))


def update_user_role(db: Database, user_id: str, new_role: str, acting_email: str) -> dict | None:
    """
    Change a user's role.

    Admins cannot change their own role, and the last remaining admin
    can never be demoted. Raises ValueError for those cases.
    """
    oid = to_object_id(user_id)
    target = db["users"].find_one({"_id": oid})
    if not target:
        return None

    if target.get("email") == safe_str(acting_email).lower() and new_role != target.get("role"):
        raise ValueError("You cannot change your own role.")

    if target.get("role") == "admin" and new_role != "admin":
        if db["users"].count_documents({"role": "admin"}) <= 1:
            raise ValueError("Cannot demote the last admin.")

    return db["users"].find_one_and_update(
        {"_id": oid},
        {"$set": {"role": new_role, "updatedAt": _utcnow()}},
        return_document=ReturnDocument.AFTER,
    )

# ------------------------------------------------------------
# MEDICINES
# ------------------------------------------------------------

SORTABLE_MEDICINE_FIELDS = {
    "itemName",
    "genericName",
    "company",
    "category",
    "perUnitPrice",
    "discountPercentage",
    "createdAt",
    "stock",
    "sales",
}


def medicine_sort(sort_by: str, sort_order: str) -> List[Tuple[str, int]]:
    field = sort_by if sort_by in SORTABLE_MEDICINE_FIELDS else "itemName"
    direction = DESCENDING if (sort_order or "").lower() == "desc" else ASCENDING
    return [(field, direction)]


def medicine_search_clause(search: str) -> Dict[str, Any]:
    if not safe_str(search):
        return {}
    return {"$or": [
        {"itemName": regex_contains(search)},
        {"genericName": regex_contains(search)},
        {"company": regex_contains(search)},
    ]}


def find_medicines_page(
    db: Database,
    query: Dict[str, Any],
    page: int = 1,
    limit: int = 10,
    sort_by: str = "itemName",
    sort_order: str = "asc",
) -> Tuple[List[dict], int]:
    skip = (page - 1) * limit
    docs = list(
        db["medicines"].find(query)
        .sort(medicine_sort(sort_by, sort_order))
        .skip(skip)
        .limit(limit)
    )
    total = db["medicines"].count_documents(query)
    return docs, total


def search_medicines(
    db: Database,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    category: str = "",
    sort_by: str = "itemName",
    sort_order: str = "asc",
) -> Tuple[List[dict], int]:
    query = medicine_search_clause(search)
    if safe_str(category):
        query["category"] = regex_exact(category)
    return find_medicines_page(db, query, page, limit, sort_by, sort_order)


def get_discount_products(db: Database, limit: int = 20) -> List[dict]:
    return list(
        db["medicines"].find({"discountPercentage": {"$gt": 0}})
        .sort("discountPercentage", DESCENDING)
        .limit(limit)
    )


def get_medicine_by_id(db: Database, medicine_id: str) -> dict | None:
    return db["medicines"].find_one({"_id": to_object_id(medicine_id)})


def create_medicine(db: Database, seller_email: str, data: dict) -> dict:
    category = get_category_by_name(db, data.get("category"))
    if not category:
        raise ValueError(f"Unknown category: {data.get('category')}")

    now = _utcnow()
    doc = {
        **data,
        "category": category["categoryName"],
        "currentPrice": current_price(data.get("perUnitPrice"), data.get("discountPercentage")),
        "sellerEmail": seller_email,
        "sales": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    result = db["medicines"].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def update_medicine(db: Database, medicine_id: str, seller_email: str, updates: dict) -> dict | None:
    oid = to_object_id(medicine_id)
    existing = db["medicines"].find_one({"_id": oid, "sellerEmail": seller_email})
    if not existing:
        return None

    fields = {k: v for k, v in updates.items() if v is not None}
    if "category" in fields:
        category = get_category_by_name(db, fields["category"])
        if not category:
            raise ValueError(f"Unknown category: {fields['category']}")
        fields["category"] = category["categoryName"]

    price = fields.get("perUnitPrice", existing.get("perUnitPrice"))
    discount = fields.get("discountPercentage", existing.get("discountPercentage"))
    fields["currentPrice"] = current_price(price, discount)
    fields["updatedAt"] = _utcnow()

    return db["medicines"].find_one_and_update(
        {"_id": oid},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )


def delete_medicine(db: Database, medicine_id: str, seller_email: str) -> bool:
    result = db["medicines"].delete_one({"_id": to_object_id(medicine_id), "sellerEmail": seller_email})
    return result.deleted_count > 0


def list_seller_medicines(db: Database, seller_email: str, page: int = 1, limit: int = 10) -> Tuple[List[dict], int]:
    return find_medicines_page(db, {"sellerEmail": seller_email}, page, limit, "createdAt", "desc")

# ------------------------------------------------------------
# CATEGORIES
# ------------------------------------------------------------


def count_medicines_in_category(db: Database, category_name: str) -> int:
    return db["medicines"].count_documents({"category": regex_exact(category_name)})


def list_categories_with_counts(db: Database) -> List[dict]:
    docs = list(db["categories"].find({}).sort("categoryName", ASCENDING))
    for doc in docs:
        doc["medicineCount"] = count_medicines_in_category(db, doc.get("categoryName", ""))
    return docs


def get_category_by_id(db: Database, category_id: str) -> dict | None:
    doc = db["categories"].find_one({"_id": to_object_id(category_id)})
    if doc:
        doc["medicineCount"] = count_medicines_in_category(db, doc.get("categoryName", ""))
    return doc


def get_category_by_name(db: Database, name: str) -> dict | None:
    if not safe_str(name):
        return None
    return db["categories"].find_one({"categoryName": regex_exact(name)})


def create_category(db: Database, data: dict) -> dict:
    name = safe_str(data.get("categoryName"))
    if not name:
        raise ValueError("Category name is required.")
    if get_category_by_name(db, name):
        raise ConflictError(f"Category already exists: {name}")

    now = _utcnow()
    doc = {
        "categoryName": name,
        "categoryImage": safe_str(data.get("categoryImage")),
        "createdAt": now,
        "updatedAt": now,
    }
    result = db["categories"].insert_one(doc)
    doc["_id"] = result.inserted_id
    doc["medicineCount"] = 0
    return doc


def update_category(db: Database, category_id: str, updates: dict) -> dict | None:
    """Update a category; a rename is carried over to its medicines."""
    oid = to_object_id(category_id)
    existing = db["categories"].find_one({"_id": oid})
    if not existing:
        return None

    fields: Dict[str, Any] = {"updatedAt": _utcnow()}
    if updates.get("categoryImage") is not None:
        fields["categoryImage"] = safe_str(updates["categoryImage"])

    new_name = safe_str(updates.get("categoryName"))
    old_name = existing.get("categoryName", "")
    if new_name and new_name != old_name:
        clash = get_category_by_name(db, new_name)
        if clash and clash["_id"] != oid:
            raise ConflictError(f"Category already exists: {new_name}")
        fields["categoryName"] = new_name
        db["medicines"].update_many(
            {"category": regex_exact(old_name)},
            {"$set": {"category": new_name}},
        )

    db["categories"].update_one({"_id": oid}, {"$set": fields})
    return get_category_by_id(db, category_id)


def delete_category(db: Database, category_id: str) -> bool:
    """
    Delete a category only when no medicine references it.
    Raises ValueError with the linked count otherwise.
    """
    oid = to_object_id(category_id)
    doc = db["categories"].find_one({"_id": oid})
    if not doc:
        return False

    name = doc.get("categoryName", "")
    linked = count_medicines_in_category(db, name)
    if linked > 0:
        raise ValueError(f'Cannot delete category "{name}": it still has {linked} medicine(s)')

    db["categories"].delete_one({"_id": oid})
    return True

# ------------------------------------------------------------
# ORDERS / PAYMENTS
# ------------------------------------------------------------

PAYMENT_STATUSES = {"pending", "paid", "cancelled"}

ALLOWED_PAYMENT_TRANSITIONS = {
    "pending": {"paid", "cancelled"},
    "paid": set(),
    "cancelled": set(),
}

STATUS_TS_FIELD = {
    "paid": "paidAt",
    "cancelled": "cancelledAt",
}


def can_transition_payment_status(current_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_PAYMENT_TRANSITIONS.get(safe_str(current_status), set())


def build_order_items(cart_items: List[dict]) -> List[dict]:
    items = []
    for row in cart_items:
        quantity = int(row.get("quantity", 0))
        line_total = round(float(row.get("currentPrice", 0)) * quantity, 2)
        commission = round(line_total * config.PLATFORM_COMMISSION_RATE, 2)
        items.append({
            "medicineId": str(row.get("medicineId")),
            "itemName": row.get("itemName"),
            "genericName": row.get("genericName"),
            "company": row.get("company"),
            "category": row.get("category"),
            "imageUrl": row.get("imageUrl"),
            "perUnitPrice": row.get("perUnitPrice"),
            "discountPercentage": row.get("discountPercentage", 0),
            "currentPrice": row.get("currentPrice"),
            "quantity": quantity,
            "lineTotal": line_total,
            "commission": commission,
            "sellerEarning": round(line_total - commission, 2),
            "sellerEmail": row.get("sellerEmail"),
        })
    return items


def create_order(
    db: Database,
    user: dict,
    cart_items: List[dict],
    payment: dict,
    payment_method: str = "stripe",
    transaction_id: str | None = None,
    status: str = "pending",
) -> dict:
    """
    Persist an order built from the caller's cart.
    Totals are recomputed here from the cart snapshot. An order whose
    payment already succeeded is stored as paid.
    """
    if status not in ("pending", "paid"):
        raise ValueError(f"Invalid order status: {status}")
    items = build_order_items(cart_items)
    totals = compute_cart_totals(cart_items)
    now = _utcnow()

    seller_emails: List[str] = []
    for item in items:
        if item["sellerEmail"] and item["sellerEmail"] not in seller_emails:
            seller_emails.append(item["sellerEmail"])

    primary_seller = seller_emails[0] if seller_emails else None
    seller_doc = get_user_by_email(db, primary_seller) if primary_seller else None

    commission = round(sum(i["commission"] for i in items), 2)

    doc = {
        "orderId": f"ORD-{next_sequence(db, 'orderId'):06d}",
        "transactionId": transaction_id or payment["id"],
        "paymentIntentId": payment["id"],
        "items": items,
        "subtotal": totals["subtotal"],
        "tax": totals["tax"],
        "deliveryCharge": totals["deliveryCharge"],
        "totalAmount": totals["totalAmount"],
        "commission": commission,
        "sellerEarning": round(totals["subtotal"] - commission, 2),
        "status": status,
        "paymentMethod": payment_method,
        "userEmail": user["email"],
        "userName": user.get("username") or user.get("name") or user["email"],
        "sellerEmail": primary_seller,
        "sellerName": (seller_doc or {}).get("username") or (seller_doc or {}).get("name"),
        "sellerEmails": seller_emails,
        "createdAt": now,
        "updatedAt": now,
        "paidAt": now if status == "paid" else None,
    }
    result = db["orders"].insert_one(doc)
    doc["_id"] = result.inserted_id

    for item in items:
        try:
            db["medicines"].update_one(
                {"_id": to_object_id(item["medicineId"])},
                {"$inc": {"sales": item["quantity"]}},
            )
        except InvalidIdError:
            logger.warning("Order %s has item with bad medicine id %s", doc["orderId"], item["medicineId"])

    return doc


def get_order_by_payment_intent(db: Database, payment_intent_id: str) -> dict | None:
    return db["orders"].find_one({"paymentIntentId": safe_str(payment_intent_id)})


def get_order(db: Database, order_id: str) -> dict | None:
    return db["orders"].find_one({"_id": to_object_id(order_id)})


def list_orders_for_user(db: Database, email: str) -> List[dict]:
    return list(db["orders"].find({"userEmail": email}).sort("createdAt", DESCENDING))


def list_payments(db: Database, status: str = "", page: int = 1, limit: int = 10) -> Tuple[List[dict], int]:
    query: Dict[str, Any] = {}
    if status and status != "all":
        query["status"] = status
    docs = list(
        db["orders"].find(query)
        .sort("createdAt", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return docs, db["orders"].count_documents(query)


def update_payment_status(db: Database, order_id: str, new_status: str) -> dict | None:
    """
    Admin transition of a payment record.
        pending -> paid (sets paidAt)
        pending -> cancelled (sets cancelledAt)
    paid and cancelled are terminal. Raises ValueError on any other move.
    """
    oid = to_object_id(order_id)
    existing = db["orders"].find_one({"_id": oid})
    if not existing:
        return None

    current_status = existing.get("status") or "pending"
    if new_status not in PAYMENT_STATUSES or not can_transition_payment_status(current_status, new_status):
        raise ValueError(f"Invalid status transition: {current_status} -> {new_status}")

    now = _utcnow()
    updates = {"status": new_status, "updatedAt": now, STATUS_TS_FIELD[new_status]: now}

    # conditional on the status read above so a concurrent accept cannot apply twice
    updated = db["orders"].find_one_and_update(
        {"_id": oid, "status": current_status},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ValueError("Payment status changed concurrently, reload and retry")
    return updated


def mark_order_paid_by_intent(db: Database, payment_intent_id: str) -> bool:
    now = _utcnow()
    result = db["orders"].update_one(
        {"paymentIntentId": safe_str(payment_intent_id), "status": "pending"},
        {"$set": {"status": "paid", "paidAt": now, "updatedAt": now}},
    )
    return result.modified_count > 0


def user_dashboard(db: Database, email: str) -> dict:
    return {
        "orderCount": db["orders"].count_documents({"userEmail": email}),
        "totalSpent": _sum_field(db["orders"], {"userEmail": email, "status": "paid"}, "totalAmount"),
    }


def sales_report(
    db: Database,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """Paid orders flattened to one row per order line, paged by line."""
    query: Dict[str, Any] = {"status": "paid"}
    if start_date or end_date:
        query["createdAt"] = {}
        if start_date:
            query["createdAt"]["$gte"] = start_date
        if end_date:
            query["createdAt"]["$lte"] = end_date

    lines = [
        {"$match": query},
        {"$sort": {"createdAt": DESCENDING, "_id": DESCENDING}},
        {"$unwind": "$items"},
    ]
    counted = list(db["orders"].aggregate(lines + [{"$group": {"_id": None, "n": {"$sum": 1}}}]))
    total = int(counted[0]["n"]) if counted else 0

    rows = []
    for line in db["orders"].aggregate(lines + [{"$skip": (page - 1) * limit}, {"$limit": limit}]):
        item = line["items"]
        quantity = int(item.get("quantity", 0))
        unit_price = float(item.get("currentPrice") or item.get("perUnitPrice") or 0)
        rows.append({
            "_id": line["_id"],
            "orderId": line.get("orderId") or line.get("transactionId"),
            "medicineName": item.get("itemName"),
            "genericName": item.get("genericName"),
            "company": item.get("company"),
            "category": item.get("category"),
            "quantity": quantity,
            "unitPrice": unit_price,
            "totalPrice": round(unit_price * quantity, 2),
            "buyerName": line.get("userName"),
            "buyerEmail": line.get("userEmail"),
            "sellerEmail": item.get("sellerEmail"),
            "saleDate": line.get("createdAt"),
            "paymentStatus": line.get("status"),
        })

    return {
        "data": rows,
        "pagination": pagination_meta(page, limit, total, len(rows)),
        "totalRevenue": _sum_field(db["orders"], query, "totalAmount"),
    }


def _seller_item_sum(db: Database, match: Dict[str, Any], seller_email: str, field: str) -> float:
    rows = list(db["orders"].aggregate([
        {"$match": match},
        {"$unwind": "$items"},
        {"$match": {"items.sellerEmail": seller_email}},
        {"$group": {"_id": None, "total": {"$sum": f"$items.{field}"}}},
    ]))
    return round(float(rows[0]["total"]), 2) if rows else 0.0


def seller_payment_history(
    db: Database,
    seller_email: str,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    status: str = "",
) -> dict:
    query: Dict[str, Any] = {"sellerEmails": seller_email}
    if status and status != "all":
        query["status"] = status
    if safe_str(search):
        query["$or"] = [
            {"orderId": regex_contains(search)},
            {"transactionId": regex_contains(search)},
            {"userEmail": regex_contains(search)},
            {"userName": regex_contains(search)},
            {"items.itemName": regex_contains(search)},
            {"items.genericName": regex_contains(search)},
        ]

    total = db["orders"].count_documents(query)
    payments = list(
        db["orders"].find(query)
        .sort("createdAt", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )

    paid_query = {**query, "status": "paid"}
    pending_query = {**query, "status": "pending"}
    stats = {
        "total": total,
        "paid": db["orders"].count_documents(paid_query),
        "pending": db["orders"].count_documents(pending_query),
        "totalEarnings": _seller_item_sum(db, paid_query, seller_email, "sellerEarning"),
        "pendingEarnings": _seller_item_sum(db, pending_query, seller_email, "sellerEarning"),
        "totalCommission": _seller_item_sum(db, paid_query, seller_email, "commission"),
    }
    return {
        "data": payments,
        "pagination": {
            "total": total,
            "pages": (total + limit - 1) // limit,
            "currentPage": page,
            "limit": limit,
        },
        "stats": stats,
    }

# ------------------------------------------------------------
# ADVERTISEMENTS
# ------------------------------------------------------------


def create_advertisement(db: Database, seller: dict, data: dict) -> dict:
    medicine = db["medicines"].find_one({
        "_id": to_object_id(data.get("medicineId")),
        "sellerEmail": seller["email"],
    })
    if not medicine:
        raise LookupError("Medicine not found or not owned by you")

    now = _utcnow()
    doc = {
        "medicineId": str(medicine["_id"]),
        "medicineName": data.get("medicineName") or medicine.get("itemName"),
        "medicineImage": data.get("medicineImage") or medicine.get("imageUrl"),
        "description": data.get("description"),
        "category": medicine.get("category"),
        "sellerEmail": seller["email"],
        "sellerName": seller.get("username") or seller.get("name"),
        "adminStatus": "pending",
        "isActive": False,
        "priority": None,
        "requestedAt": now,
        "activatedAt": None,
        "createdAt": now,
        "updatedAt": now,
    }
    result = db["advertisements"].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def list_advertisements(db: Database, seller_email: str | None = None) -> List[dict]:
    query = {"sellerEmail": seller_email} if seller_email else {}
    return list(db["advertisements"].find(query).sort("createdAt", DESCENDING))


def list_active_advertisements(db: Database) -> List[dict]:
    return list(
        db["advertisements"].find({"isActive": True, "adminStatus": "approved"})
        .sort([("priority", ASCENDING), ("activatedAt", DESCENDING)])
    )


def next_ad_priority(db: Database) -> int:
    top = db["advertisements"].find_one(
        {"isActive": True, "priority": {"$ne": None}},
        sort=[("priority", DESCENDING)],
    )
    return int(top["priority"]) + 1 if top else 1


AD_ACTION_MESSAGES = {
    "approve": "Advertisement approved successfully",
    "reject": "Advertisement rejected",
    "activate": "Advertisement activated and added to homepage slider",
    "deactivate": "Advertisement deactivated and removed from slider",
}


def toggle_advertisement(db: Database, ad_id: str, action: str, priority: int | None = None) -> dict | None:
    """
    Moderation pipeline:
        approve / reject  -> adminStatus (reject also drops the slot)
        activate          -> only for approved ads, assigns a slider priority
        deactivate        -> removes from slider
    """
    oid = to_object_id(ad_id)
    ad = db["advertisements"].find_one({"_id": oid})
    if not ad:
        return None

    now = _utcnow()
    updates: Dict[str, Any] = {"updatedAt": now}

    if action == "approve":
        updates["adminStatus"] = "approved"
        updates["approvedAt"] = now
    elif action == "reject":
        updates["adminStatus"] = "rejected"
        updates["rejectedAt"] = now
        updates["isActive"] = False
    elif action == "activate":
        if ad.get("adminStatus") != "approved":
            raise ValueError("Advertisement must be approved before activation")
        updates["isActive"] = True
        updates["activatedAt"] = now
        updates["priority"] = priority if priority is not None else next_ad_priority(db)
    elif action == "deactivate":
        updates["isActive"] = False
        updates["deactivatedAt"] = now
    else:
        raise ValueError("Invalid action. Use: approve, reject, activate, or deactivate")

    return db["advertisements"].find_one_and_update(
        {"_id": oid},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )

# ------------------------------------------------------------
# DASHBOARDS
# ------------------------------------------------------------


def admin_stats(db: Database) -> dict:
    by_status = {
        row["_id"]: row
        for row in db["orders"].aggregate([
            {"$match": {"status": {"$in": ["paid", "pending"]}}},
            {"$group": {"_id": "$status", "total": {"$sum": "$totalAmount"}, "count": {"$sum": 1}}},
        ])
    }
    paid_total = round(float(by_status.get("paid", {}).get("total", 0)), 2)
    pending_total = round(float(by_status.get("pending", {}).get("total", 0)), 2)

    return {
        "totalSalesRevenue": round(paid_total + pending_total, 2),
        "paidTotal": paid_total,
        "pendingTotal": pending_total,
        "paidOrders": int(by_status.get("paid", {}).get("count", 0)),
        "pendingOrders": int(by_status.get("pending", {}).get("count", 0)),
        "totalUsers": db["users"].count_documents({}),
        "totalSellers": db["users"].count_documents({"role": "seller"}),
        "totalMedicines": db["medicines"].count_documents({}),
        "totalOrders": db["orders"].count_documents({}),
        "totalCategories": db["categories"].count_documents({}),
    }


def seller_dashboard(db: Database, seller_email: str) -> dict:
    base = {"sellerEmails": seller_email}
    return {
        "totalRevenue": _seller_item_sum(db, {**base, "status": "paid"}, seller_email, "sellerEarning"),
        "pendingRevenue": _seller_item_sum(db, {**base, "status": "pending"}, seller_email, "sellerEarning"),
        "totalMedicines": db["medicines"].count_documents({"sellerEmail": seller_email}),
        "totalOrders": db["orders"].count_documents(base),
        "activeAdvertisements": db["advertisements"].count_documents(
            {"sellerEmail": seller_email, "isActive": True}
        ),
    }
