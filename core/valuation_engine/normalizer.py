"""
Normalizer

Turns heterogeneous raw transaction records into canonical Transaction
objects. This is a data-quality filter, not a validator that fails: a
record that cannot be normalised is dropped, logged and counted.

Required per record: a positive price (or rent), a positive built area
and a parseable ISO-8601 transaction date. Everything else is optional;
an optional field that fails to parse becomes None and the record
survives.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from collections import Counter
from datetime import date, datetime
from typing import Any, Final, Iterable, Mapping, Optional, Tuple

from .config import DEFAULT_CONFIG, ValuationConfig
from .models import NormalizationResult, Transaction

logger = logging.getLogger(__name__)


# =============================================================================
# Field Aliases
# =============================================================================

# Canonical field -> accepted raw keys, first match wins
FIELD_ALIASES: Final[dict[str, Tuple[str, ...]]] = {
    "id": ("id", "_id", "transaction_id"),
    "price": ("price", "dealAmount", "deal_amount", "monthly_rent", "rent"),
    "area": ("area", "builtArea", "built_area", "size_sqm"),
    "transaction_date": ("transaction_date", "date", "dealDate", "deal_date"),
    "street": ("street", "streetName", "street_name"),
    "house_number": ("house_number", "houseNumber"),
    "city": ("city", "cityName", "city_name", "town"),
    "neighborhood": ("neighborhood", "neighbourhood"),
    "rooms": ("rooms", "roomCount"),
    "floor": ("floor", "floorNumber"),
    "condition": ("condition",),
    "building_class": ("building_class", "buildingClass"),
    "build_year": ("build_year", "buildYear", "year_built"),
    "parking_spaces": ("parking_spaces", "parking", "parkingSpaces"),
    "has_elevator": ("has_elevator", "elevator"),
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lng", "lon"),
    "distance_meters": ("distance_meters", "distance"),
    "reliability": ("reliability",),
}


# =============================================================================
# Rejection Codes
# =============================================================================

REJECTION_CODES: Final[dict[str, str]] = {
    "NOT_A_RECORD": "Raw record is not a key/value mapping",
    "MISSING_PRICE": "Required field 'price' not provided",
    "INVALID_PRICE": "Price is not a finite positive number",
    "MISSING_AREA": "Required field 'area' not provided",
    "INVALID_AREA": "Area is not a finite positive number",
    "MISSING_DATE": "Required field 'transaction_date' not provided",
    "INVALID_DATE": "Transaction date is not an ISO-8601 date",
    "PRICE_PER_AREA_BELOW_THRESHOLD": "Price per unit area below the profile minimum",
    "PRICE_PER_AREA_ABOVE_THRESHOLD": "Price per unit area above the profile maximum",
    "INVALID_RECORD": "Record failed Transaction validation",
}

_CURRENCY_AND_SPACE = re.compile(r"[\s₪$€£]+")
_THOUSANDS = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")
_WHITESPACE = re.compile(r"\s+")
_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0"}


# =============================================================================
# Field Parsers
# =============================================================================

def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric field from an int, float or formatted string.

    Strings lose currency symbols and spaces ("₪ 2,150,000" -> 2150000.0).
    Commas are accepted only as thousands separators, and whatever is
    left must be a whole float literal: "12abc" and "1.234,5" are not
    numbers, "2.15e6" is. Booleans, NaN and infinities are not numbers
    here either.

    Returns:
        The finite float, or None if the value is not numeric
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = _CURRENCY_AND_SPACE.sub("", value)
        if not cleaned:
            return None
        if "," in cleaned:
            if not _THOUSANDS.match(cleaned):
                return None
            cleaned = cleaned.replace(",", "")
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO-8601 date or datetime; None if unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def clean_text(value: Any) -> str:
    """Trim and collapse internal whitespace; non-strings are stringified."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def _optional_text(value: Any) -> Optional[str]:
    return clean_text(value) or None


def _optional_int(value: Any, minimum: Optional[int] = None) -> Optional[int]:
    number = parse_number(value)
    if number is None or not number.is_integer():
        return None
    number = int(number)
    if minimum is not None and number < minimum:
        return None
    return number


def _optional_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _pick(record: Mapping[str, Any], field_name: str) -> Any:
    for key in FIELD_ALIASES[field_name]:
        if key in record and record[key] is not None:
            return record[key]
    return None


def generate_transaction_id(fields: Mapping[str, Any]) -> str:
    """
    Derive a stable id from normalised content.

    Same content always yields the same id, so normalising the same raw
    input twice gives identical output.
    """
    content = str(sorted((k, str(v)) for k, v in fields.items()))
    return f"txn-{hashlib.sha256(content.encode()).hexdigest()[:16]}"


# =============================================================================
# Normalizer
# =============================================================================

def normalize_record(
    record: Any,
    config: Optional[ValuationConfig] = None,
) -> Tuple[Optional[Transaction], Optional[str]]:
    """
    Normalise one raw record.

    Args:
        record: Raw mapping from an upstream data source
        config: Supplies the optional price-per-unit-area band

    Returns:
        Tuple of (Transaction, None) on success or (None, rejection code)
    """
    config = config or DEFAULT_CONFIG

    if not isinstance(record, Mapping):
        return None, "NOT_A_RECORD"

    # Required field: price
    raw_price = _pick(record, "price")
    if raw_price is None:
        return None, "MISSING_PRICE"
    price = parse_number(raw_price)
    if price is None or price <= 0:
        return None, "INVALID_PRICE"

    # Required field: area
    raw_area = _pick(record, "area")
    if raw_area is None:
        return None, "MISSING_AREA"
    area = parse_number(raw_area)
    if area is None or area <= 0:
        return None, "INVALID_AREA"

    # Required field: transaction_date
    raw_date = _pick(record, "transaction_date")
    if raw_date is None:
        return None, "MISSING_DATE"
    transaction_date = parse_date(raw_date)
    if transaction_date is None:
        return None, "INVALID_DATE"

    # Optional sanity band
    ppua = price / area
    if config.min_price_per_unit_area is not None and ppua < config.min_price_per_unit_area:
        return None, "PRICE_PER_AREA_BELOW_THRESHOLD"
    if config.max_price_per_unit_area is not None and ppua > config.max_price_per_unit_area:
        return None, "PRICE_PER_AREA_ABOVE_THRESHOLD"

    rooms = parse_number(_pick(record, "rooms"))
    if rooms is not None and rooms < 0:
        rooms = None

    latitude = parse_number(_pick(record, "latitude"))
    longitude = parse_number(_pick(record, "longitude"))
    if latitude is None or longitude is None or not (
        -90 <= latitude <= 90 and -180 <= longitude <= 180
    ):
        latitude = None
        longitude = None

    distance = parse_number(_pick(record, "distance_meters"))
    if distance is not None and distance < 0:
        distance = None

    reliability = parse_number(_pick(record, "reliability"))
    if reliability is not None and not 0 <= reliability <= 1:
        reliability = None

    fields = {
        "street": clean_text(_pick(record, "street")),
        "house_number": clean_text(_pick(record, "house_number")),
        "city": clean_text(_pick(record, "city")),
        "transaction_date": transaction_date,
        "price": price,
        "area": area,
        "neighborhood": _optional_text(_pick(record, "neighborhood")),
        "rooms": rooms,
        "floor": _optional_int(_pick(record, "floor")),
        "condition": _optional_text(_pick(record, "condition")),
        "building_class": _optional_text(_pick(record, "building_class")),
        "build_year": _optional_int(_pick(record, "build_year"), minimum=1),
        "parking_spaces": _optional_int(_pick(record, "parking_spaces"), minimum=0),
        "has_elevator": _optional_bool(_pick(record, "has_elevator")),
        "latitude": latitude,
        "longitude": longitude,
        "distance_meters": distance,
        "reliability": reliability,
    }

    transaction_id = clean_text(_pick(record, "id")) or generate_transaction_id(fields)

    try:
        return Transaction(id=transaction_id, **fields), None
    except ValueError as e:
        logger.error("Validation error creating Transaction %s: %s", transaction_id, e)
        return None, "INVALID_RECORD"


def normalize(
    raw_records: Iterable[Any],
    config: Optional[ValuationConfig] = None,
) -> NormalizationResult:
    """
    Normalise a batch of raw transaction records.

    Records are processed in input order; malformed ones are dropped and
    counted by rejection code. No counters or random ids leak into the
    output, so the function is idempotent.

    Args:
        raw_records: Raw mappings from an upstream data source
        config: Tunable constants (default: DEFAULT_CONFIG)

    Returns:
        NormalizationResult with transactions and drop counts
    """
    transactions = []
    rejections: Counter = Counter()
    total = 0

    for index, record in enumerate(raw_records):
        total += 1
        transaction, code = normalize_record(record, config)
        if transaction is None:
            rejections[code] += 1
            logger.warning(
                "Rejected record %d: %s (%s)",
                index,
                code,
                REJECTION_CODES.get(code, "unknown"),
            )
            continue
        transactions.append(transaction)

    dropped = sum(rejections.values())
    logger.info(
        "Normalised %d of %d records (%d dropped)",
        len(transactions),
        total,
        dropped,
    )

    return NormalizationResult(
        transactions=tuple(transactions),
        total_records=total,
        dropped_count=dropped,
        rejections_by_code=dict(sorted(rejections.items())),
    )
