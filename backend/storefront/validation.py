from __future__ import annotations
import re
from datetime import datetime
from storefront.time_utils import end_of_day, is_date_only, parse_iso_datetime, utcnow

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidInputError


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MAX_STOCK = 1_000_000

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

ISO_CURRENCY_RE = re.compile(r"[A-Za-z]{3}")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: rejects bools, floats, decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidInputError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise InvalidInputError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise InvalidInputError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise InvalidInputError(f"{field} must be an integer")
    if isinstance(value, float):
        raise InvalidInputError(f"{field} must be an integer, not a decimal")
    raise InvalidInputError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise InvalidInputError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise InvalidInputError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise InvalidInputError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise InvalidInputError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise InvalidInputError(f"{col.key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise InvalidInputError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise InvalidInputError(f"Field not allowed: {k}")
        if k not in cols:
            raise InvalidInputError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise InvalidInputError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise InvalidInputError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise InvalidInputError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    if patch.get("price_cents") is not None:
        price = patch["price_cents"]
        if price < 0:
            raise InvalidInputError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise InvalidInputError(f"price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")

    if patch.get("stock") is not None:
        if patch["stock"] < 0:
            raise InvalidInputError("stock must be >= 0")
        if patch["stock"] > MAX_STOCK:
            raise InvalidInputError(f"stock cannot exceed {MAX_STOCK}")

    if patch.get("currency") is not None:
        if not ISO_CURRENCY_RE.fullmatch(patch["currency"]):
            raise InvalidInputError("currency must be a 3-letter ISO code")
        patch["currency"] = patch["currency"].upper()


def require_positive_quantity(value: Any, field: str = "quantity") -> int:
    quantity = coerce_int(value, field)
    if quantity <= 0:
        raise InvalidInputError(f"{field} must be greater than zero")
    return quantity


# =============================================================================
# PAGINATION & DATE RANGES
# =============================================================================

def validate_pagination(page: Any, page_size: Any, max_page_size: int = MAX_PAGE_SIZE) -> tuple[int, int]:
    page = 1 if page is None else coerce_int(page, "page")
    page_size = DEFAULT_PAGE_SIZE if page_size is None else coerce_int(page_size, "page_size")

    if page_size > max_page_size:
        raise InvalidInputError(f"page_size cannot exceed {max_page_size}")
    if page <= 0 or page_size <= 0:
        raise InvalidInputError("page and page_size must be greater than 0")
    return page, page_size


def validate_date_range(
    start_date: datetime | str | None,
    end_date: datetime | str | None,
) -> tuple[datetime | None, datetime | None]:
    """
    Normalize an optional [start, end] filter.

    Rules: start <= end, and neither bound may lie in the future. A
    date-only end_date ("2024-01-31") covers that whole day.
    """
    start = _as_datetime(start_date, "start_date")
    end = _as_datetime(end_date, "end_date")

    if start is not None and end is not None and start > end:
        raise InvalidInputError("start_date must be less than or equal to end_date")

    now = utcnow()
    if (start is not None and start > now) or (end is not None and end > now):
        raise InvalidInputError("Dates cannot be in the future")

    if end is not None and is_date_only(end_date):
        end = end_of_day(end)
    return start, end


def _as_datetime(value, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field} must be an ISO-8601 datetime")


# =============================================================================
# CARD DETAILS
# =============================================================================

CARD_NUMBER_RE = re.compile(r"[0-9]{13,19}")
EXP_MONTH_RE = re.compile(r"(0[1-9]|1[0-2])")
EXP_YEAR_RE = re.compile(r"[0-9]{4}")
CVC_RE = re.compile(r"[0-9]{3,4}")


def normalize_card_number(number: str) -> str:
    """Strip the spaces and dashes customers type between digit groups."""
    return number.replace(" ", "").replace("-", "")


def luhn_checksum_ok(number: str) -> bool:
    total = 0
    alternate = False
    for ch in reversed(number):
        n = int(ch)
        if alternate:
            n *= 2
            if n > 9:
                n -= 9
        total += n
        alternate = not alternate
    return total % 10 == 0


def is_valid_card_number(number: str) -> bool:
    number = normalize_card_number(number)
    if not CARD_NUMBER_RE.fullmatch(number):
        return False
    return luhn_checksum_ok(number)


def validate_card_fields(
    *,
    holder_name: str,
    number: str,
    exp_month: str,
    exp_year: str,
    cvc: str,
    currency: str,
    now: datetime | None = None,
) -> None:
    """
    Syntactic card validation performed before any gateway call.

    Raises InvalidInputError naming the first offending field.
    """
    if not holder_name or not holder_name.strip():
        raise InvalidInputError("Card holder name is required")
    if len(holder_name) > 100:
        raise InvalidInputError("Card holder name is too long")

    if not number or not is_valid_card_number(number):
        raise InvalidInputError("Card number is invalid")

    if not EXP_MONTH_RE.fullmatch(exp_month or ""):
        raise InvalidInputError("Expiration month must be in MM format (01-12)")
    if not EXP_YEAR_RE.fullmatch(exp_year or ""):
        raise InvalidInputError("Expiration year must be in YYYY format")

    now = now or utcnow()
    if (int(exp_year), int(exp_month)) < (now.year, now.month):
        raise InvalidInputError("Card is expired")

    if not CVC_RE.fullmatch(cvc or ""):
        raise InvalidInputError("Invalid CVC format. Use 3 or 4 digits")

    if not ISO_CURRENCY_RE.fullmatch(currency or ""):
        raise InvalidInputError("Currency must be a 3-letter ISO code")


def optional_int(value: Any, field: str) -> int | None:
    """Query-string helper: missing or blank -> None, else a strict int."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return coerce_int(value, field)
