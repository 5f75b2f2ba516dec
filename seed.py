import random
import logging
from datetime import datetime, timedelta

from pymongo.database import Database

import config
from database import (
    get_database,
    ensure_indexes,
    create_category,
    get_category_by_name,
    current_price,
    build_order_items,
    compute_cart_totals,
    next_sequence,
)

logger = logging.getLogger("oshudh.seed")

CATEGORIES = [
    ("Tablet", "https://i.ibb.co/tablet.png"),
    ("Syrup", "https://i.ibb.co/syrup.png"),
    ("Capsule", "https://i.ibb.co/capsule.png"),
    ("Injection", "https://i.ibb.co/injection.png"),
    ("Ointment", "https://i.ibb.co/ointment.png"),
]

MEDICINES = [
    ("Napa", "Paracetamol", "Tablet", "Beximco", "500 mg", 12.0, 0),
    ("Napa Extra", "Paracetamol + Caffeine", "Tablet", "Beximco", "500 mg", 25.0, 10),
    ("Seclo", "Omeprazole", "Capsule", "Square", "20 mg", 60.0, 5),
    ("Fexo", "Fexofenadine", "Tablet", "Square", "120 mg", 90.0, 15),
    ("Tusca", "Dextromethorphan", "Syrup", "Incepta", "100 ml", 85.0, 0),
    ("Ceftron", "Ceftriaxone", "Injection", "ACI", "1 g", 220.0, 8),
    ("Betnovate", "Betamethasone", "Ointment", "GSK", "15 g", 110.0, 0),
    ("Maxpro", "Esomeprazole", "Capsule", "Renata", "20 mg", 70.0, 12),
]

SELLERS = ["seller1@oshudh.test", "seller2@oshudh.test"]
BUYERS = ["buyer1@oshudh.test", "buyer2@oshudh.test", "buyer3@oshudh.test"]
ADMIN_EMAIL = "admin@oshudh.test"


def random_past_datetime(days_back: int = 60) -> datetime:
    return datetime.utcnow() - timedelta(
        days=random.randint(0, days_back),
        hours=random.randint(0, 23),
        minutes=random.randint(0, 59),
    )


def seed_users(db: Database) -> None:
    now = datetime.utcnow()
    people = [(ADMIN_EMAIL, "admin")] + [(e, "seller") for e in SELLERS] + [(e, "user") for e in BUYERS]
    for email, role in people:
        db["users"].update_one(
            {"email": email},
            {
                "$setOnInsert": {
                    "email": email,
                    "username": email.split("@")[0],
                    "role": role,
                    "photoURL": "",
                    "createdAt": now,
                    "updatedAt": now,
                }
            },
            upsert=True,
        )


def seed_categories(db: Database) -> int:
    created = 0
    for name, image in CATEGORIES:
        if get_category_by_name(db, name):
            continue
        create_category(db, {"categoryName": name, "categoryImage": image})
        created += 1
    return created


def seed_medicines(db: Database) -> int:
    created = 0
    for i, (item, generic, category, company, unit, price, discount) in enumerate(MEDICINES):
        if db["medicines"].find_one({"itemName": item}):
            continue
        now = datetime.utcnow()
        db["medicines"].insert_one({
            "itemName": item,
            "genericName": generic,
            "shortDescription": f"{generic} {unit}",
            "imageUrl": "",
            "category": category,
            "company": company,
            "massUnit": unit,
            "perUnitPrice": price,
            "discountPercentage": discount,
            "currentPrice": current_price(price, discount),
            "sellerEmail": SELLERS[i % len(SELLERS)],
            "stock": random.randint(20, 200),
            "sales": 0,
            "createdAt": now,
            "updatedAt": now,
        })
        created += 1
    return created


def generate_sample_order(db: Database) -> dict:
    medicines = list(db["medicines"].find({}))
    picks = random.sample(medicines, k=min(len(medicines), random.randint(1, 3)))
    cart = [
        {
            "medicineId": str(m["_id"]),
            "itemName": m["itemName"],
            "genericName": m.get("genericName"),
            "company": m.get("company"),
            "category": m.get("category"),
            "perUnitPrice": m["perUnitPrice"],
            "discountPercentage": m.get("discountPercentage", 0),
            "currentPrice": m["currentPrice"],
            "quantity": random.randint(1, 5),
            "sellerEmail": m["sellerEmail"],
        }
        for m in picks
    ]
    items = build_order_items(cart)
    totals = compute_cart_totals(cart)
    status = random.choice(["pending", "paid"])
    created_at = random_past_datetime()
    sellers = list(dict.fromkeys(i["sellerEmail"] for i in items))
    commission = round(sum(i["commission"] for i in items), 2)
    buyer = random.choice(BUYERS)
    intent_id = f"pi_seed_{random.getrandbits(48):012x}"

    return {
        "orderId": f"ORD-{next_sequence(db, 'orderId'):06d}",
        "transactionId": intent_id,
        "paymentIntentId": intent_id,
        "items": items,
        "subtotal": totals["subtotal"],
        "tax": totals["tax"],
        "deliveryCharge": totals["deliveryCharge"],
        "totalAmount": totals["totalAmount"],
        "commission": commission,
        "sellerEarning": round(totals["subtotal"] - commission, 2),
        "status": status,
        "paymentMethod": "stripe",
        "userEmail": buyer,
        "userName": buyer.split("@")[0],
        "sellerEmail": sellers[0],
        "sellerName": sellers[0].split("@")[0],
        "sellerEmails": sellers,
        "createdAt": created_at,
        "updatedAt": created_at,
        "paidAt": created_at + timedelta(hours=2) if status == "paid" else None,
    }


def seed_orders(db: Database, count: int = 20) -> int:
    if not db["medicines"].count_documents({}):
        return 0
    docs = [generate_sample_order(db) for _ in range(count)]
    db["orders"].insert_many(docs)
    return len(docs)


def seed_all(db: Database, orders: int = 20) -> dict:
    seed_users(db)
    result = {
        "categories": seed_categories(db),
        "medicines": seed_medicines(db),
        "orders": seed_orders(db, orders),
    }
    logger.info("Seeded %s", result)
    return result


if __name__ == "__main__":
    config.configure_logging()
    database = get_database()
    ensure_indexes(database)
    seed_all(database)
