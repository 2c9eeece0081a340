"""Versioned review-form snapshot: parsing, legacy upgrade, merge and serialization"""

from dataclasses import asdict, dataclass, fields, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from authorization_gateway.domain.models import (
    ApplicantProfile,
    AuthorizationData,
    Competitor,
    FinancialAggregates,
    FinancingTerms,
    MonthlyFinancialEntry,
    VehicleDetails,
)
from authorization_gateway.domain.exceptions import ValidationError
from authorization_gateway.domain.viability import REVIEWED_MONTHS, compute_aggregates
from authorization_gateway.utils.date_utils import review_month_labels

CURRENT_SCHEMA_VERSION = 2

INT_FIELDS = {"age", "term_months", "vehicle_year"}
STR_FIELDS = {
    "company",
    "applicant_name",
    "position",
    "marital_status",
    "dealership",
    "vehicle_brand",
    "vehicle_model",
}

SECTION_TYPES = {
    "applicant": ApplicantProfile,
    "financing": FinancingTerms,
    "vehicle": VehicleDetails,
}

# Spanish keys used by the first version of the review form
LEGACY_MONTH_KEYS = {
    "nomina": "payroll",
    "comisiones": "commissions",
    "negocio": "business",
    "efectivo": "cash",
    "compromisos": "committed_debt",
    "gastos_personales": "personal_expenses",
    "gastos_negocio": "business_expenses",
}

def _coerce(key: str, value: Any) -> Any:
    """Normalize form input: blank strings become None, numbers are parsed"""
    if value is None:
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    if key in STR_FIELDS:
        return str(value)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Field '{key}' must be numeric, got {value!r}") from e
    if key in INT_FIELDS:
        return int(number)
    return number


def _build(cls: type, raw: Dict[str, Any], section: str) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ValidationError(f"Unknown {section} fields: {', '.join(sorted(unknown))}")
    return cls(**{key: _coerce(key, value) for key, value in raw.items()})


def _merge_section(current: Any, raw: Any, section: str) -> Any:
    if not isinstance(raw, dict):
        raise ValidationError(f"Section '{section}' must be an object")
    updates = _build(type(current), raw, section)
    return replace(current, **{key: getattr(updates, key) for key in raw})


def _merge_months(current: List[MonthlyFinancialEntry], raw: Any) -> List[MonthlyFinancialEntry]:
    if not isinstance(raw, list) or len(raw) > REVIEWED_MONTHS:
        raise ValidationError(f"'months' must be a list of at most {REVIEWED_MONTHS} entries")
    merged = list(current)
    for index, month in enumerate(raw):
        if month is None:
            continue
        if not isinstance(month, dict):
            raise ValidationError(f"Month {index + 1} must be an object")
        updates = _build(MonthlyFinancialEntry, month, f"month {index + 1}")
        merged[index] = replace(merged[index], **{key: getattr(updates, key) for key in month})
    return merged


def _parse_competitors(raw: Any) -> List[Competitor]:
    if not isinstance(raw, list):
        raise ValidationError("'competitors' must be a list")
    competitors = []
    for item in raw:
        if isinstance(item, Competitor):
            competitors.append(item)
            continue
        if not isinstance(item, dict):
            raise ValidationError("Each competitor must be an object with name and price")
        competitors.append(Competitor(name=str(item.get("name") or ""), price=_coerce("price", item.get("price")) or 0))
    return competitors


def _parse_labels(raw: Any) -> List[str]:
    if not isinstance(raw, list) or len(raw) != REVIEWED_MONTHS:
        raise ValidationError(f"'month_labels' must list exactly {REVIEWED_MONTHS} labels")
    return [str(label) for label in raw]


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw is None or isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw))
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp: {raw!r}") from e


@dataclass
class LegacyAuthorizationData:
    """Flat, unversioned blob written by the first review form"""

    raw: Dict[str, Any]

    def upgrade(self) -> AuthorizationData:
        raw = self.raw
        sections = {}
        for name, cls in SECTION_TYPES.items():
            keys = {f.name for f in fields(cls)}
            sections[name] = cls(**{key: _coerce(key, raw.get(key)) for key in keys})

        months = []
        for index in range(1, REVIEWED_MONTHS + 1):
            values = {
                target: _coerce(target, raw.get(f"mes{index}_{legacy}"))
                for legacy, target in LEGACY_MONTH_KEYS.items()
            }
            months.append(MonthlyFinancialEntry(**values))

        labels = raw.get("month_labels")
        return AuthorizationData(
            schema_version=CURRENT_SCHEMA_VERSION,
            months=months,
            month_labels=_parse_labels(labels) if labels else [],
            month_labels_frozen=bool(labels),
            competitors=_parse_competitors(raw.get("competitors") or []),
            comments=raw.get("comments") or None,
            auto_saved_at=_parse_timestamp(raw.get("auto_saved_at")),
            **sections,
        )


AnyAuthorizationData = Union[LegacyAuthorizationData, AuthorizationData]


def load_authorization_data(raw: Optional[Dict[str, Any]]) -> AnyAuthorizationData:
    """Read a stored blob into its tagged shape without upgrading it"""
    if not raw:
        return AuthorizationData()
    version = raw.get("schema_version")
    if version is None:
        return LegacyAuthorizationData(raw=dict(raw))
    if version != CURRENT_SCHEMA_VERSION:
        raise ValidationError(f"Unsupported authorization data schema version: {version}")
    data = merge_authorization_data(AuthorizationData(), raw)
    stored = raw.get("aggregates")
    if isinstance(stored, dict):
        known = {f.name for f in fields(FinancialAggregates)}
        data.aggregates = FinancialAggregates(**{key: value for key, value in stored.items() if key in known})
    return data


def parse_authorization_data(raw: Union[AuthorizationData, Dict[str, Any], None]) -> AuthorizationData:
    """Current-shape snapshot for any stored version"""
    if isinstance(raw, AuthorizationData):
        return raw
    loaded = load_authorization_data(raw)
    if isinstance(loaded, LegacyAuthorizationData):
        return loaded.upgrade()
    return loaded


def merge_authorization_data(
    data: AuthorizationData,
    partial: Dict[str, Any],
    monthly_payment: Optional[float] = None,
) -> AuthorizationData:
    """
    Apply a section-wise partial update and recompute aggregates.

    Accepted keys: applicant, financing, vehicle (field-level merge), months
    (index-aligned field-level merge), month_labels (when non-empty, replaces and freezes
    them unless month_labels_frozen says otherwise), competitors (replaces the
    list), comments, auto_saved_at. schema_version and aggregates are accepted
    so a full serialized snapshot can be merged back; aggregates are always
    recomputed.
    """
    accepted = set(SECTION_TYPES) | {
        "schema_version",
        "months",
        "month_labels",
        "month_labels_frozen",
        "competitors",
        "comments",
        "aggregates",
        "auto_saved_at",
    }
    unknown = set(partial) - accepted
    if unknown:
        raise ValidationError(f"Unknown authorization data sections: {', '.join(sorted(unknown))}")
    version = partial.get("schema_version", CURRENT_SCHEMA_VERSION)
    if version != CURRENT_SCHEMA_VERSION:
        raise ValidationError(f"Cannot merge schema version {version} into version {CURRENT_SCHEMA_VERSION}")

    updates: Dict[str, Any] = {}
    for name in SECTION_TYPES:
        if name in partial:
            updates[name] = _merge_section(getattr(data, name), partial[name], name)
    if "months" in partial:
        updates["months"] = _merge_months(data.months, partial["months"])
    if partial.get("month_labels"):
        updates["month_labels"] = _parse_labels(partial["month_labels"])
        updates["month_labels_frozen"] = bool(partial.get("month_labels_frozen", True))
    if "competitors" in partial:
        updates["competitors"] = _parse_competitors(partial["competitors"])
    if "comments" in partial:
        updates["comments"] = partial["comments"] or None
    if "auto_saved_at" in partial:
        updates["auto_saved_at"] = _parse_timestamp(partial["auto_saved_at"])

    merged = replace(data, **updates)
    merged.aggregates = compute_aggregates(merged.months, monthly_payment)
    return merged


def ensure_month_labels(data: AuthorizationData, reference: date) -> AuthorizationData:
    """Fill default labels derived from `reference` unless the reviewer froze their own"""
    if data.month_labels_frozen or data.month_labels:
        return data
    return replace(data, month_labels=review_month_labels(reference, count=REVIEWED_MONTHS))


def authorization_data_to_dict(data: AuthorizationData) -> Dict[str, Any]:
    """JSON-ready dict in the current schema"""
    payload = asdict(data)
    payload["auto_saved_at"] = data.auto_saved_at.isoformat() if data.auto_saved_at else None
    return payload


def snapshot_fields(data: AuthorizationData) -> Dict[str, Any]:
    """Request-level snapshot fields mirrored from answered form fields"""
    candidates = {
        "client_name": data.applicant.applicant_name,
        "vehicle_brand": data.vehicle.vehicle_brand,
        "vehicle_model": data.vehicle.vehicle_model,
        "vehicle_year": data.vehicle.vehicle_year,
        "vehicle_value": data.vehicle.sale_value,
        "requested_amount": data.financing.requested_amount,
        "term_months": data.financing.term_months,
        "agency_name": data.vehicle.dealership,
        "dealer_name": data.vehicle.dealership,
        "client_comments": data.comments,
    }
    projected = {key: value for key, value in candidates.items() if value not in (None, "", 0)}
    if data.competitors:
        projected["competitors_data"] = list(data.competitors)
    return projected
