# services.py
"""
Service objects handed to request handlers through FastAPI dependencies.

Each external concern (identity, cart storage, payments) sits behind a small
class so tests can swap in fakes with ``app.dependency_overrides``.
"""
import logging
from typing import Any, Dict, List

import firebase_admin
import stripe
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import (
    _utcnow,
    compute_cart_totals,
    get_medicine_by_id,
    to_object_id,
    to_minor_units,
    current_price,
)

logger = logging.getLogger("oshudh.services")

# ------------------------------------------------------------
# Auth
# ------------------------------------------------------------


class AuthError(Exception):
    """Raised when a caller's token is missing, invalid or expired."""

    def __init__(self, message: str = "Invalid or expired token", clear_cookie: bool = True):
        super().__init__(message)
        self.message = message
        self.clear_cookie = clear_cookie


class AuthService:
    def verify_token(self, token: str) -> Dict[str, Any]:
        """Return {uid, email, name} for a valid ID token, raise AuthError otherwise."""
        raise NotImplementedError


class FirebaseAuthService(AuthService):
    def __init__(self, credentials_path: str = config.FIREBASE_CREDENTIALS):
        self.credentials_path = credentials_path
        self._app = None

    def _get_app(self):
        if self._app is None:
            try:
                self._app = firebase_admin.get_app()
            except ValueError:
                cred = credentials.Certificate(self.credentials_path)
                self._app = firebase_admin.initialize_app(cred)
        return self._app

    def verify_token(self, token: str) -> Dict[str, Any]:
        try:
            decoded = firebase_auth.verify_id_token(token, app=self._get_app())
        except (ValueError, FirebaseError) as e:
            logger.warning("Token verification failed: %s", e)
            raise AuthError("Invalid or expired token")

        email = (decoded.get("email") or "").strip().lower()
        if not email:
            raise AuthError("Token has no email claim")

        return {
            "uid": decoded.get("uid"),
            "email": email,
            "name": decoded.get("name"),
        }

# ------------------------------------------------------------
# Cart
# ------------------------------------------------------------


class CartService:
    """
    Server-side cart, one row per (userEmail, medicineId).
    Prices and seller are snapshotted from the medicine document.
    """

    def __init__(self, db: Database):
        self.db = db
        self.rows = db["cart"]

    def list_items(self, email: str) -> List[dict]:
        return list(self.rows.find({"userEmail": email}).sort("createdAt", 1))

    def _snapshot(self, medicine: dict) -> dict:
        return {
            "itemName": medicine.get("itemName"),
            "genericName": medicine.get("genericName"),
            "company": medicine.get("company"),
            "category": medicine.get("category"),
            "imageUrl": medicine.get("imageUrl"),
            "perUnitPrice": medicine.get("perUnitPrice"),
            "discountPercentage": medicine.get("discountPercentage", 0),
            "currentPrice": current_price(medicine.get("perUnitPrice"), medicine.get("discountPercentage")),
            "sellerEmail": medicine.get("sellerEmail"),
        }

    def _check_stock(self, medicine: dict, quantity: int) -> None:
        stock = medicine.get("stock")
        if stock is not None and quantity > int(stock):
            raise ValueError(f"Only {int(stock)} unit(s) of {medicine.get('itemName')} in stock")

    def add_item(self, email: str, medicine_id: str, quantity: int = 1) -> dict:
        """
        Add a medicine to the cart. Adding one that is already there
        increments its quantity instead of creating a second row.
        """
        medicine = get_medicine_by_id(self.db, medicine_id)
        if not medicine:
            raise LookupError("Medicine not found")

        key = {"userEmail": email, "medicineId": str(medicine["_id"])}
        for attempt in range(2):
            existing = self.rows.find_one(key)
            new_quantity = quantity + (int(existing["quantity"]) if existing else 0)
            self._check_stock(medicine, new_quantity)

            now = _utcnow()
            try:
                return self.rows.find_one_and_update(
                    key,
                    {
                        "$inc": {"quantity": quantity},
                        "$set": {**self._snapshot(medicine), "updatedAt": now},
                        "$setOnInsert": {"createdAt": now},
                    },
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                # a concurrent first add inserted the row, the retry merges into it
                if attempt:
                    raise
                logger.info("Concurrent cart add for %s / %s, merging", email, key["medicineId"])

    def update_quantity(self, email: str, item_id: str, quantity: int) -> dict | None:
        oid = to_object_id(item_id)
        row = self.rows.find_one({"_id": oid, "userEmail": email})
        if not row:
            return None

        medicine = get_medicine_by_id(self.db, row["medicineId"])
        if medicine:
            self._check_stock(medicine, quantity)

        return self.rows.find_one_and_update(
            {"_id": oid, "userEmail": email},
            {"$set": {"quantity": quantity, "updatedAt": _utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    def remove_item(self, email: str, item_id: str) -> bool:
        result = self.rows.delete_one({"_id": to_object_id(item_id), "userEmail": email})
        return result.deleted_count > 0

    def clear(self, email: str) -> int:
        return self.rows.delete_many({"userEmail": email}).deleted_count

    def summary(self, email: str) -> dict:
        items = self.list_items(email)
        return {"items": items, **compute_cart_totals(items)}

# ------------------------------------------------------------
# Payments
# ------------------------------------------------------------


class PaymentError(Exception):
    pass


class PaymentService:
    def create_intent(self, amount: float, metadata: Dict[str, str]) -> Dict[str, Any]:
        raise NotImplementedError

    def retrieve_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def parse_webhook(self, payload: bytes, signature: str | None) -> Dict[str, Any]:
        raise NotImplementedError


def _intent_to_dict(intent) -> Dict[str, Any]:
    metadata = intent.metadata or {}
    return {
        "id": intent.id,
        "status": intent.status,
        "amount": int(intent.amount),
        "currency": intent.currency,
        "client_secret": intent.client_secret,
        "metadata": {k: metadata[k] for k in metadata.keys()},
    }


class StripePaymentService(PaymentService):
    def __init__(
        self,
        secret_key: str = config.STRIPE_SECRET_KEY,
        webhook_secret: str = config.STRIPE_WEBHOOK_SECRET,
        currency: str = config.STRIPE_CURRENCY,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def _require_key(self) -> None:
        if not self.secret_key:
            raise PaymentError("Stripe not configured.")
        stripe.api_key = self.secret_key

    def create_intent(self, amount: float, metadata: Dict[str, str]) -> Dict[str, Any]:
        self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=self.currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error("PaymentIntent creation failed: %s", e)
            raise PaymentError(getattr(e, "user_message", None) or str(e))
        return _intent_to_dict(intent)

    def retrieve_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error("PaymentIntent %s lookup failed: %s", payment_intent_id, e)
            raise PaymentError(getattr(e, "user_message", None) or str(e))
        return _intent_to_dict(intent)

    def parse_webhook(self, payload: bytes, signature: str | None) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise PaymentError("Webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self.webhook_secret,
            )
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise PaymentError(f"Invalid webhook: {e}")

        obj = event.data.object
        return {"type": event.type, "object_id": getattr(obj, "id", None)}
