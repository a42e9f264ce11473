"""Dispense record normalization.

Turns raw dispense-like records into validated, date-sorted FillRecords.
Accepted shapes:

* FillRecord instances (already valid by construction)
* flat mappings: ``fill_date``/``fillDate``, ``days_supply``/``daysSupply``,
  ``medication_key``/``medicationKey`` and optional ``status``,
  ``reversed``, ``voided``
* FHIR MedicationDispense JSON: ``whenHandedOver``, ``daysSupply.value``,
  ``status`` and ``medicationCodeableConcept``

Invalid records are dropped, never raised: zero or negative supply, a
missing or unparseable date, or a voided/reversed marker.
"""

from collections import Counter
from datetime import date, datetime
from operator import attrgetter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

from ..core.models import FillRecord

logger = structlog.get_logger()

RXNORM_SYSTEM = "http://www.nlm.nih.gov/research/umls/rxnorm"

VOIDED_STATUSES = frozenset({"cancelled", "entered-in-error", "stopped", "declined"})

_DATE_KEYS = ("fill_date", "fillDate", "whenHandedOver")
_SUPPLY_KEYS = ("days_supply", "daysSupply")
_MEDICATION_KEYS = ("medication_key", "medicationKey")


class FillNormalizer:
    """Validates and sorts dispense records."""

    def __init__(self):
        """Initialize normalizer."""
        self.last_drop_counts: Dict[str, int] = {}

    def normalize(self, records: Iterable[Any]) -> List[FillRecord]:
        """Return valid fills sorted by fill date; ties keep input order."""
        fills = []
        drops: Counter = Counter()

        for record in records:
            fill, reason = self._to_fill(record)
            if fill is None:
                drops[reason] += 1
                continue
            fills.append(fill)

        self.last_drop_counts = dict(drops)
        if drops:
            logger.debug("dropped_dispense_records", **self.last_drop_counts)

        # sorted() is stable, so same-day fills stay in input order
        return sorted(fills, key=attrgetter("fill_date"))

    def _to_fill(self, record: Any) -> Tuple[Optional[FillRecord], str]:
        """Convert one record, returning (fill, "") or (None, drop reason)."""
        if isinstance(record, FillRecord):
            return record, ""
        if not isinstance(record, Mapping):
            return None, "unsupported_record"

        if self._is_voided(record):
            return None, "voided"

        fill_date = parse_fill_date(_first_present(record, _DATE_KEYS))
        if fill_date is None:
            return None, "invalid_date"

        days_supply = parse_days_supply(_first_present(record, _SUPPLY_KEYS))
        if days_supply is None:
            return None, "invalid_supply"

        return FillRecord(
            fill_date=fill_date,
            days_supply=days_supply,
            medication_key=extract_medication_key(record),
        ), ""

    def _is_voided(self, record: Mapping) -> bool:
        status = record.get("status")
        if isinstance(status, str) and status.strip().lower() in VOIDED_STATUSES:
            return True
        return bool(record.get("reversed") or record.get("voided"))


def normalize_fills(records: Iterable[Any]) -> List[FillRecord]:
    """Normalize records with a fresh FillNormalizer."""
    return FillNormalizer().normalize(records)


def parse_fill_date(value: Any) -> Optional[date]:
    """Parse a date, datetime or ISO-8601 string; time parts are dropped."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def parse_days_supply(value: Any) -> Optional[int]:
    """Parse a positive whole number of days, or return None."""
    if isinstance(value, Mapping):
        # FHIR SimpleQuantity
        value = value.get("value")
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int) or value <= 0:
        return None
    return value


def extract_medication_key(record: Mapping) -> str:
    """Medication key from a flat record, else the RxNorm code of a FHIR dispense."""
    key = _first_present(record, _MEDICATION_KEYS)
    if key is not None:
        return str(key)

    concept = record.get("medicationCodeableConcept")
    if not isinstance(concept, Mapping):
        return ""
    for coding in concept.get("coding") or []:
        if isinstance(coding, Mapping) and coding.get("system") == RXNORM_SYSTEM and coding.get("code"):
            return str(coding["code"])
    return str(concept.get("text") or "")


def _first_present(record: Mapping, keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None
