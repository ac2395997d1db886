"""
Payout methods writers expose to readers.

A user has at most one active profile per payment type. Writes go through
`_upsert_active`, which updates the active profile of that type in place or
creates it.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from loguru import logger
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as SchemaError
from pymongo import ReturnDocument

from database import PAYMENTS, get_db, utcnow
from errors import ValidationError
from schemas import PaymentProfile
from security import Session

UPI = "upi"
PAYPAL = "paypal"
UPI_ID_PATTERN = re.compile(r"^[\w.\-]+@[\w\-]+$")

_email = TypeAdapter(EmailStr)


def is_valid_upi_id(upi_id: Optional[str]) -> bool:
    return bool(upi_id) and UPI_ID_PATTERN.match(upi_id) is not None


def upi_snapshot(profile: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not profile:
        return None
    return {"upi_id": profile.get("upi_id"), "upi_qr_image": profile.get("upi_qr_image")}


def paypal_snapshot(profile: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not profile:
        return None
    return {"paypal_email": profile.get("paypal_email"), "paypal_username": profile.get("paypal_username")}


def _upsert_active(user_id: ObjectId, payment_type: str, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    try:
        PaymentProfile(user_id=user_id, payment_type=payment_type, **fields)
    except SchemaError as exc:
        raise ValidationError(exc.errors()[0].get("msg", "Invalid payment details"))

    now = utcnow()
    selector = {"user_id": user_id, "payment_type": payment_type, "is_active": True}
    collection = get_db()[PAYMENTS]
    created = collection.find_one(selector, {"_id": 1}) is None
    profile = collection.find_one_and_update(
        selector,
        {"$set": {**fields, "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info(f"{'Created' if created else 'Updated'} {payment_type} payment profile for user {user_id}")
    return profile, created


def upsert_upi_profile(
    session: Session, upi_id: str, upi_qr_image: Optional[str] = None
) -> Tuple[Dict[str, Any], bool]:
    """Save the user's UPI details. Returns (public snapshot, created)."""
    upi_id = (upi_id or "").strip()
    if not upi_id:
        raise ValidationError("UPI ID is required")
    if not is_valid_upi_id(upi_id):
        raise ValidationError("UPI ID must look like name@bank")

    fields = {"upi_id": upi_id}
    if upi_qr_image:
        fields["upi_qr_image"] = upi_qr_image
    profile, created = _upsert_active(session.user_id, UPI, fields)
    return upi_snapshot(profile), created


def upsert_paypal_profile(
    session: Session, paypal_email: str, paypal_username: Optional[str] = None
) -> Tuple[Dict[str, Any], bool]:
    """Save the user's PayPal details. Returns (public snapshot, created)."""
    paypal_email = (paypal_email or "").strip()
    if not paypal_email:
        raise ValidationError("PayPal email is required")
    try:
        _email.validate_python(paypal_email)
    except SchemaError:
        raise ValidationError("PayPal email is not a valid email address")

    fields = {"paypal_email": paypal_email}
    if paypal_username:
        fields["paypal_username"] = paypal_username
    profile, created = _upsert_active(session.user_id, PAYPAL, fields)
    return paypal_snapshot(profile), created


def save_payment_method(
    session: Session,
    payment_type: str,
    upi_id: Optional[str] = None,
    upi_qr_image: Optional[str] = None,
    paypal_email: Optional[str] = None,
    paypal_username: Optional[str] = None,
) -> Tuple[Dict[str, Any], bool]:
    if payment_type == UPI:
        return upsert_upi_profile(session, upi_id, upi_qr_image)
    if payment_type == PAYPAL:
        return upsert_paypal_profile(session, paypal_email, paypal_username)
    raise ValidationError("Payment type must be 'upi' or 'paypal'")


def list_active_payments(session: Session) -> List[Dict[str, Any]]:
    return list(get_db()[PAYMENTS].find({"user_id": session.user_id, "is_active": True}))


def deactivate_all_payments(session: Session) -> int:
    result = get_db()[PAYMENTS].update_many(
        {"user_id": session.user_id, "is_active": True},
        {"$set": {"is_active": False, "updated_at": utcnow()}},
    )
    logger.info(f"Deactivated {result.modified_count} payment profiles for user {session.user_id}")
    return result.modified_count


def get_payment_settings(user_id: ObjectId) -> Dict[str, Optional[Dict[str, Any]]]:
    """Public view of a user's active UPI and PayPal details."""
    active = {
        p["payment_type"]: p
        for p in get_db()[PAYMENTS].find({"user_id": user_id, "is_active": True})
    }
    return {
        "upi_payment": upi_snapshot(active.get(UPI)),
        "paypal_payment": paypal_snapshot(active.get(PAYPAL)),
    }
