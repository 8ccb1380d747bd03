from __future__ import annotations

import logging
import math
from datetime import date
from typing import TYPE_CHECKING, Any, Mapping

from app.mortgage_dashboard.constants import CATEGORY_OPTIONS, DEFAULT_CATEGORY
from app.mortgage_dashboard.modules.mortgage_packages.tags import compute_feature_tag

if TYPE_CHECKING:
    from app.mortgage_dashboard.modules.mortgage_packages.models import MortgagePackage
    from app.mortgage_dashboard.store import PackageStore

logger = logging.getLogger(__name__)

FORM_FIELDS = (
    "bank",
    "property_type",
    "category",
    "min_loan_size",
    "package_name",
    "lockin_period",
    "rates",
    "features",
    "subsidies",
    "remarks",
    "last_updated",
)

REQUIRED_FIELDS = {
    "bank": "Bank is required",
    "property_type": "Property type is required",
    "category": "Category is required",
    "package_name": "Package name is required",
    "lockin_period": "Lock-in period is required",
    "rates": "Rates are required",
}

OPTIONAL_TEXT_FIELDS = ("features", "subsidies", "remarks")

EARLIEST_DATE = date(1900, 1, 1)


class PackageValidationError(ValueError):
    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


def default_form_values(today: date | None = None) -> dict[str, str]:
    values = {name: "" for name in FORM_FIELDS}
    values["category"] = DEFAULT_CATEGORY
    values["min_loan_size"] = "0"
    values["last_updated"] = (today or date.today()).isoformat()
    return values


def form_values_from_request(form: Mapping[str, Any]) -> dict[str, str]:
    return {name: str(form.get(name) or "") for name in FORM_FIELDS}


def form_values_from_package(pkg: "MortgagePackage") -> dict[str, str]:
    return {
        "bank": pkg.bank,
        "property_type": pkg.property_type,
        "category": pkg.category or DEFAULT_CATEGORY,
        "min_loan_size": str(pkg.min_loan_size),
        "package_name": pkg.package_name,
        "lockin_period": pkg.lockin_period,
        "rates": pkg.rates,
        "features": pkg.features or "",
        "subsidies": pkg.subsidies or "",
        "remarks": pkg.remarks or "",
        "last_updated": pkg.last_updated.isoformat(),
    }


def _parse_amount(raw: str) -> float | None:
    try:
        n = float((raw or "").strip())
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def _parse_date(raw: str) -> date | None:
    try:
        return date.fromisoformat((raw or "").strip())
    except ValueError:
        return None


def validate_package_form(values: Mapping[str, str], *, today: date | None = None) -> dict[str, str]:
    """Validate create/edit form values. Returns field -> error message (empty when valid)."""
    errors: dict[str, str] = {}
    for name, message in REQUIRED_FIELDS.items():
        if not (values.get(name) or "").strip():
            errors[name] = message

    category = (values.get("category") or "").strip()
    if category and category not in CATEGORY_OPTIONS:
        errors["category"] = f"Category must be one of: {', '.join(CATEGORY_OPTIONS)}"

    amount = _parse_amount(values.get("min_loan_size") or "")
    if amount is None:
        errors["min_loan_size"] = "Minimum loan size must be a number"
    elif amount < 1:
        errors["min_loan_size"] = "Minimum loan size must be greater than 0"

    last_updated = _parse_date(values.get("last_updated") or "")
    if last_updated is None:
        errors["last_updated"] = "Last updated must be a valid date"
    elif last_updated > (today or date.today()) or last_updated < EARLIEST_DATE:
        errors["last_updated"] = "Last updated must be between 1900-01-01 and today"
    return errors


def build_payload(values: Mapping[str, str]) -> dict[str, Any]:
    """
    Map validated form values to the store row shape.
    Empty optional text becomes None; the feature tag is derived here, once per write.
    """
    amount = float(values["min_loan_size"])
    payload: dict[str, Any] = {
        "bank": values["bank"].strip(),
        "property_type": values["property_type"].strip(),
        "category": values["category"].strip(),
        "min_loan_size": int(amount) if amount.is_integer() else amount,
        "package_name": values["package_name"].strip(),
        "lockin_period": values["lockin_period"].strip(),
        "rates": values["rates"].strip(),
        "last_updated": date.fromisoformat(values["last_updated"].strip()).isoformat(),
    }
    for name in OPTIONAL_TEXT_FIELDS:
        payload[name] = (values.get(name) or "").strip() or None
    tag = compute_feature_tag(payload["features"])
    payload["feature_tag"] = tag.value if tag else None
    return payload


def save_package(
    store: "PackageStore",
    values: Mapping[str, str],
    *,
    package_id: str | None = None,
    access_token: str | None = None,
    today: date | None = None,
) -> "MortgagePackage | None":
    """
    Validate, then issue exactly one insert (no id) or one update (existing id).
    Raises PackageValidationError before any store call; StoreError propagates.
    """
    errors = validate_package_form(values, today=today)
    if errors:
        raise PackageValidationError(errors)

    payload = build_payload(values)
    if package_id:
        store.update(package_id, payload, access_token=access_token)
        logger.info("Updated mortgage package id=%s", package_id)
        return None
    created = store.insert(payload, access_token=access_token)
    logger.info("Created mortgage package id=%s", created.id)
    return created


def delete_package(
    store: "PackageStore",
    package_id: str,
    *,
    confirmed: bool,
    access_token: str | None = None,
) -> bool:
    """Delete after user confirmation. Returns False (and touches nothing) when not confirmed."""
    if not confirmed:
        return False
    store.delete(package_id, access_token=access_token)
    logger.info("Deleted mortgage package id=%s", package_id)
    return True
