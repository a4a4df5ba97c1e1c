# partner_api/services/validation.py
"""Validation of offer and coupon payloads before they reach the store."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from partner_api.core.exceptions import ValidationError
from partner_api.models.enums import DiscountType, OfferType

OFFER_REQUIRED_FIELDS = (
    "course_id",
    "name",
    "offer_type",
    "total_amount",
    "installments",
    "installment_frequency",
)

# Fields an owner may change after creation
OFFER_UPDATABLE_FIELDS = (
    "name",
    "total_amount",
    "installments",
    "installment_frequency",
    "custom_payment_plan",
    "is_active",
)


def _error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def payment_plan_errors(plan: Any) -> List[Dict[str, str]]:
    if plan is None:
        return []
    if not isinstance(plan, list) or not plan:
        return [_error("custom_payment_plan", "must be a non-empty list of payments")]
    errors = []
    for index, payment in enumerate(plan):
        amount = _to_decimal(payment.get("amount")) if isinstance(payment, Mapping) else None
        if amount is None or amount <= 0:
            errors.append(_error(f"custom_payment_plan[{index}].amount", "must be a positive number"))
    return errors


def offer_errors(data: Mapping[str, Any], *, partial: bool = False) -> List[Dict[str, str]]:
    """Collect every problem with an offer payload."""
    errors: List[Dict[str, str]] = []

    if not partial:
        for name in OFFER_REQUIRED_FIELDS:
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(_error(name, "is required"))

    if "name" in data and data["name"] is not None and not str(data["name"]).strip():
        errors.append(_error("name", "must not be blank"))

    if data.get("offer_type") is not None:
        valid = [t.value for t in OfferType]
        if data["offer_type"] not in valid:
            errors.append(_error("offer_type", f"must be one of {valid}"))

    if data.get("total_amount") is not None:
        amount = _to_decimal(data["total_amount"])
        if amount is None or amount <= 0:
            errors.append(_error("total_amount", "must be greater than zero"))

    for name in ("installments", "installment_frequency"):
        if data.get(name) is not None and not _positive_int(data[name]):
            errors.append(_error(name, "must be a positive integer"))

    if data.get("course_id") is not None and not _positive_int(data["course_id"]):
        errors.append(_error("course_id", "must be a positive integer"))

    errors.extend(payment_plan_errors(data.get("custom_payment_plan")))
    return errors


def validate_offer(data: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    errors = offer_errors(data, partial=partial)
    if errors:
        raise ValidationError(
            message="Invalid offer",
            code="invalid_offer",
            details={"field": errors[0]["field"], "errors": errors},
        )

    fields = OFFER_UPDATABLE_FIELDS if partial else OFFER_REQUIRED_FIELDS + ("custom_payment_plan",)
    clean = {}
    for name in fields:
        # custom_payment_plan may be cleared explicitly with null
        if name in data and (data[name] is not None or name == "custom_payment_plan"):
            clean[name] = data[name]
    if "total_amount" in clean:
        clean["total_amount"] = _to_decimal(clean["total_amount"])
    if "name" in clean:
        clean["name"] = clean["name"].strip()
    return clean


def validate_coupon(data: Mapping[str, Any]) -> Dict[str, Any]:
    errors: List[Dict[str, str]] = []

    code = (data.get("code") or "").strip()
    if not code:
        errors.append(_error("code", "is required"))

    discount_type = data.get("discount_type")
    valid_types = [t.value for t in DiscountType]
    if discount_type not in valid_types:
        errors.append(_error("discount_type", f"must be one of {valid_types}"))
    elif discount_type == DiscountType.FIXED.value:
        amount = _to_decimal(data.get("discount_amount"))
        if amount is None or amount <= 0:
            errors.append(_error("discount_amount", "must be greater than zero"))
    else:
        percent = _to_decimal(data.get("discount_percent"))
        if percent is None or percent <= 0 or percent > 100:
            errors.append(_error("discount_percent", "must be between 0 and 100"))

    if data.get("max_uses") is not None and not _positive_int(data["max_uses"]):
        errors.append(_error("max_uses", "must be a positive integer"))

    valid_from, valid_until = data.get("valid_from"), data.get("valid_until")
    if valid_from is not None and valid_until is not None and valid_until <= valid_from:
        errors.append(_error("valid_until", "must be after valid_from"))

    if errors:
        raise ValidationError(
            message="Invalid coupon",
            code="invalid_coupon",
            details={"field": errors[0]["field"], "errors": errors},
        )

    return {
        "code": code,
        "discount_type": discount_type,
        "discount_amount": _to_decimal(data["discount_amount"]) if discount_type == DiscountType.FIXED.value else None,
        "discount_percent": _to_decimal(data["discount_percent"]) if discount_type == DiscountType.PERCENT.value else None,
        "max_uses": data.get("max_uses"),
        "valid_from": valid_from,
        "valid_until": valid_until,
    }
