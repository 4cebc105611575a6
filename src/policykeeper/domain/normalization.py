"""Normalization of loosely-typed candidate policy records.

Responsibilities of this stage:
- map the field aliases used by extraction payloads and spreadsheets onto
  canonical field names
- coerce money, dates and identifiers into canonical types
- collect every fatal issue before rejecting a record
- avoid persistence side effects

A field the candidate does not supply (missing key, ``None`` or blank text) is
*absent*: it is left out of ``NormalizedPolicy.values`` so later stages can tell
"not provided" apart from "provided".
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Final, cast

from policykeeper.domain.errors import FieldIssue, IssueCode, ValidationError
from policykeeper.domain.installments import add_months
from policykeeper.domain.model import DocumentType, InstallmentStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

log = logging.getLogger(__name__)

CENT: Final[Decimal] = Decimal("0.01")
ZERO: Final[Decimal] = Decimal("0.00")
DEFAULT_COHERENCE_TOLERANCE: Final[Decimal] = Decimal("0.15")

_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "insurer": ("insurer", "seguradora"),
    "policy_number": ("policy_number", "policyNumber", "numero_apolice"),
    "insured_name": ("insured_name", "insuredName", "name", "segurado"),
    "document_id": ("document_id", "documento"),
    "document_type": ("document_type", "documento_tipo"),
    "policy_type": ("policy_type", "type", "tipo_seguro"),
    "broker": ("broker", "entity", "corretora"),
    "state": ("state", "uf"),
    "payment_method": ("payment_method", "category", "forma_pagamento"),
    "phone": ("phone", "telefone"),
    "email": ("email",),
    "start_date": ("start_date", "startDate", "inicio_vigencia"),
    "end_date": ("end_date", "endDate", "fim_vigencia", "expirationDate"),
    "premium": ("premium", "valor_premio"),
    "monthly_amount": ("monthly_amount", "monthlyAmount", "custo_mensal", "valor_parcela"),
    "deductible": ("deductible", "franquia"),
    "installment_count": ("installment_count", "installmentCount", "quantidade_parcelas"),
    "vehicle_brand": ("vehicle_brand", "marca"),
    "vehicle_model": ("vehicle_model", "vehicleModel", "modelo_veiculo"),
    "vehicle_plate": ("vehicle_plate", "placa"),
    "vehicle_year": ("vehicle_year", "ano_modelo"),
    "vehicle_value": ("vehicle_value", "valor_fipe"),
}
_VEHICLE_CONTAINERS: Final[tuple[str, ...]] = ("vehicle", "vehicleDetails", "veiculo")
_VEHICLE_KEYS: Final[dict[str, tuple[str, ...]]] = {
    "vehicle_brand": ("brand", "marca"),
    "vehicle_model": ("model", "modelo"),
    "vehicle_plate": ("plate", "placa"),
    "vehicle_year": ("year", "ano"),
    "vehicle_value": ("value", "valor"),
}
_COVERAGE_KEYS: Final[tuple[str, ...]] = ("coverages", "coberturas")
_INSTALLMENT_KEYS: Final[tuple[str, ...]] = ("installments", "parcelas")

_MONEY_FIELDS: Final[frozenset[str]] = frozenset(
    {"premium", "monthly_amount", "deductible", "vehicle_value"}
)
_DATE_FIELDS: Final[frozenset[str]] = frozenset({"start_date", "end_date"})
_INT_FIELDS: Final[frozenset[str]] = frozenset({"installment_count", "vehicle_year"})

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DMY_DATE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$")
_YEAR = re.compile(r"\d{4}")
_MONEY_NOISE = re.compile(r"[^\d,.\-]")

_INSTALLMENT_STATUS_ALIASES: Final[dict[str, InstallmentStatus]] = {
    "paid": InstallmentStatus.PAID,
    "paga": InstallmentStatus.PAID,
    "pago": InstallmentStatus.PAID,
    "upcoming": InstallmentStatus.UPCOMING,
    "pendente": InstallmentStatus.UPCOMING,
    "a vencer": InstallmentStatus.UPCOMING,
    "overdue": InstallmentStatus.OVERDUE,
    "vencida": InstallmentStatus.OVERDUE,
    "atrasada": InstallmentStatus.OVERDUE,
    "cancelled": InstallmentStatus.CANCELLED,
    "cancelada": InstallmentStatus.CANCELLED,
}


@dataclass(frozen=True, slots=True)
class NormalizedCoverage:
    description: str
    limit_amount: Decimal | None = None


@dataclass(frozen=True, slots=True)
class NormalizedInstallment:
    number: int
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.UPCOMING


@dataclass(frozen=True, slots=True, kw_only=True)
class NormalizedPolicy:
    """Canonical form of a candidate record.

    ``coverages``/``installments`` are ``None`` when the candidate did not carry
    the collection at all, and an empty tuple when it carried an empty one.
    """

    insurer: str
    policy_number: str
    values: Mapping[str, object]
    coverages: tuple[NormalizedCoverage, ...] | None = None
    installments: tuple[NormalizedInstallment, ...] | None = None
    warnings: tuple[str, ...] = ()

    def get(self, name: str) -> object | None:
        return self.values.get(name)

    def with_value(self, name: str, value: object) -> NormalizedPolicy:
        return replace(self, values={**self.values, name: value})


def normalize_candidate(
    candidate: object,
    *,
    today: date,
    tolerance: Decimal = DEFAULT_COHERENCE_TOLERANCE,
) -> NormalizedPolicy:
    """Validate and canonicalize ``candidate``.

    Raises ``ValidationError`` listing every offending field. Unparseable money
    becomes ``0.00`` and unparseable dates become ``today``; both are reported as
    warnings, not errors.
    """

    if not isinstance(candidate, Mapping):
        raise ValidationError(
            [FieldIssue("record", IssueCode.INVALID_RECORD, "candidate record must be a mapping")]
        )
    record = cast("Mapping[str, object]", candidate)

    issues: list[FieldIssue] = []
    warnings: list[str] = []

    insurer = _clean_text(_lookup(record, "insurer"))
    policy_number = _clean_text(_lookup(record, "policy_number"))
    if insurer is None:
        issues.append(
            FieldIssue("insurer", IssueCode.MISSING_REQUIRED_FIELD, "insurer is required")
        )
    if policy_number is None:
        issues.append(
            FieldIssue(
                "policy_number", IssueCode.MISSING_REQUIRED_FIELD, "policy number is required"
            )
        )

    values: dict[str, object] = {}
    for name in _ALIASES:
        if name in {"insurer", "policy_number"}:
            continue
        raw = _lookup(record, name)
        if _is_blank(raw):
            continue
        value = _coerce(name, raw, today=today, warnings=warnings)
        if value is not None:
            values[name] = value

    _infer_document_type(values)

    start_date = cast("date | None", values.get("start_date"))
    end_date = cast("date | None", values.get("end_date"))
    date_issue = check_date_order(start_date, end_date)
    if date_issue is not None:
        issues.append(date_issue)

    coherence = check_amount_coherence(
        cast("Decimal | None", values.get("premium")),
        cast("Decimal | None", values.get("monthly_amount")),
        tolerance=tolerance,
    )
    if coherence is not None:
        warnings.append(coherence)

    coverages = _normalize_coverages(record, warnings=warnings)
    installments = _normalize_installments(
        record, start_date=start_date, today=today, warnings=warnings
    )

    if issues or insurer is None or policy_number is None:
        raise ValidationError(issues)

    for warning in warnings:
        log.warning("Policy %s/%s: %s", insurer, policy_number, warning)

    return NormalizedPolicy(
        insurer=normalize_insurer(insurer),
        policy_number=policy_number,
        values=values,
        coverages=coverages,
        installments=installments,
        warnings=tuple(warnings),
    )


def normalize_insurer(value: str) -> str:
    return value.strip().upper()


def check_date_order(start_date: date | None, end_date: date | None) -> FieldIssue | None:
    """Return an issue when both dates are known and the end is not after the start."""

    if start_date is None or end_date is None:
        return None
    if end_date <= start_date:
        return FieldIssue(
            "end_date",
            IssueCode.INVALID_DATE_ORDER,
            f"end date {end_date.isoformat()} must be after start date {start_date.isoformat()}",
        )
    return None


def check_amount_coherence(
    premium: Decimal | None,
    monthly_amount: Decimal | None,
    *,
    tolerance: Decimal = DEFAULT_COHERENCE_TOLERANCE,
) -> str | None:
    if not premium or not monthly_amount:
        return None
    annualized = monthly_amount * 12
    if abs(annualized - premium) > abs(premium) * tolerance:
        return (
            f"monthly amount {monthly_amount} x 12 = {annualized} deviates from "
            f"premium {premium} by more than {tolerance:.0%}"
        )
    return None


def coerce_field(name: str, value: object, *, today: date) -> object | None:
    """Coerce one explicitly supplied value (e.g. from a confirmation)."""

    if _is_blank(value):
        return None
    warnings: list[str] = []
    coerced = _coerce(name, value, today=today, warnings=warnings)
    for warning in warnings:
        log.warning("Field %s: %s", name, warning)
    if name == "document_type" and isinstance(coerced, str):
        return coerced.upper()
    return coerced


def parse_money(value: object) -> Decimal | None:
    """Parse a monetary amount into a 2-place ``Decimal``; ``None`` if unparseable.

    The last of ``,``/``.`` is the decimal separator when both appear, so both
    ``1.234,56`` and ``1,234.56`` read as ``1234.56``. A repeated separator with no
    other separator is a thousands separator.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, int | float):
        candidate = Decimal(str(value))
    elif isinstance(value, str):
        text = _MONEY_NOISE.sub("", value)
        negative = text.startswith("-")
        text = text.replace("-", "")
        text = _canonical_separators(text)
        if not text or text == ".":
            return None
        try:
            candidate = Decimal(text)
        except InvalidOperation:
            return None
        if negative:
            candidate = -candidate
    else:
        return None
    if not candidate.is_finite():
        return None
    return candidate.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_date(value: object) -> date | None:
    """Parse ISO (``2024-01-10``) and day-first (``10/01/2024``) dates."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if _ISO_DATE.match(text):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    match = _DMY_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None


def parse_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
    return None


def parse_year(value: object) -> int | None:
    """Read a model year; ``2020/2021`` (manufacture/model) yields the model year."""

    if isinstance(value, str):
        years = _YEAR.findall(value)
        return int(years[-1]) if years else None
    return parse_int(value)


# Internals -------------------------------------------------------------------

def _lookup(record: Mapping[str, object], name: str) -> object | None:
    for alias in _ALIASES.get(name, (name,)):
        value = record.get(alias)
        if not _is_blank(value):
            return value
    vehicle_keys = _VEHICLE_KEYS.get(name)
    if vehicle_keys is None:
        return None
    for container in _VEHICLE_CONTAINERS:
        nested = record.get(container)
        if not isinstance(nested, Mapping):
            continue
        nested_map = cast("Mapping[str, object]", nested)
        for key in vehicle_keys:
            value = nested_map.get(key)
            if not _is_blank(value):
                return value
    return None


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _clean_text(value: object) -> str | None:
    if _is_blank(value):
        return None
    text = " ".join(str(value).split())
    return text or None


def _coerce(name: str, raw: object, *, today: date, warnings: list[str]) -> object | None:
    if name in _MONEY_FIELDS:
        amount = parse_money(raw)
        if amount is None:
            warnings.append(f"{name}: unparseable amount {raw!r}, using 0.00")
            return ZERO
        return amount
    if name in _DATE_FIELDS:
        parsed = parse_date(raw)
        if parsed is None:
            warnings.append(f"{name}: unparseable date {raw!r}, using {today.isoformat()}")
            return today
        return parsed
    if name == "vehicle_year":
        year = parse_year(raw)
        if year is None:
            warnings.append(f"{name}: unparseable year {raw!r}, ignored")
        return year
    if name in _INT_FIELDS:
        number = parse_int(raw)
        if number is None or number < 1:
            warnings.append(f"{name}: expected a positive integer, got {raw!r}, ignored")
            return None
        return number
    return _TEXT_COERCERS.get(name, _clean_text)(raw)


def _document_digits(raw: object) -> str | None:
    text = _clean_text(raw)
    if text is None:
        return None
    digits = "".join(ch for ch in text if ch.isdigit())
    return digits or text


def _document_type(raw: object) -> str | None:
    text = _clean_text(raw)
    if text is None:
        return None
    upper = text.upper()
    return upper if upper in {member.value for member in DocumentType} else text


def _upper(raw: object) -> str | None:
    text = _clean_text(raw)
    return text.upper() if text else None


def _plate(raw: object) -> str | None:
    text = _clean_text(raw)
    if text is None:
        return None
    return text.replace(" ", "").replace("-", "").upper()


def _email(raw: object) -> str | None:
    text = _clean_text(raw)
    return text.lower() if text else None


_TEXT_COERCERS: Final[dict[str, Callable[[object], str | None]]] = {
    "document_id": _document_digits,
    "document_type": _document_type,
    "state": _upper,
    "vehicle_plate": _plate,
    "email": _email,
}


def _infer_document_type(values: dict[str, object]) -> None:
    if "document_type" in values:
        return
    document_id = values.get("document_id")
    if not isinstance(document_id, str) or not document_id.isdigit():
        return
    if len(document_id) == 11:
        values["document_type"] = DocumentType.CPF.value
    elif len(document_id) == 14:
        values["document_type"] = DocumentType.CNPJ.value


def _canonical_separators(text: str) -> str:
    last_comma = text.rfind(",")
    last_dot = text.rfind(".")
    if last_comma >= 0 and last_dot >= 0:
        decimal_sep = "," if last_comma > last_dot else "."
        thousands_sep = "." if decimal_sep == "," else ","
        text = text.replace(thousands_sep, "")
        return text.replace(decimal_sep, ".")
    for separator in (",", "."):
        if text.count(separator) > 1:
            return text.replace(separator, "")
    return text.replace(",", ".")


def _collection(record: Mapping[str, object], keys: Sequence[str]) -> list[object] | None:
    for key in keys:
        if key not in record:
            continue
        value = record[key]
        if value is None:
            return None
        if isinstance(value, list | tuple):
            return list(cast("Sequence[object]", value))
        return []
    return None


def _normalize_coverages(
    record: Mapping[str, object],
    *,
    warnings: list[str],
) -> tuple[NormalizedCoverage, ...] | None:
    items = _collection(record, _COVERAGE_KEYS)
    if items is None:
        return None
    coverages: list[NormalizedCoverage] = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, Mapping):
            warnings.append(f"coverage #{index}: not a mapping, skipped")
            continue
        entry = cast("Mapping[str, object]", item)
        description = _clean_text(
            entry.get("description") or entry.get("descricao") or entry.get("name")
        )
        if description is None:
            warnings.append(f"coverage #{index}: missing description, skipped")
            continue
        raw_limit = next(
            (
                entry[key]
                for key in ("limit_amount", "limit", "lmi")
                if not _is_blank(entry.get(key))
            ),
            None,
        )
        limit = parse_money(raw_limit) if raw_limit is not None else None
        if raw_limit is not None and limit is None:
            warnings.append(f"coverage {description!r}: unparseable limit {raw_limit!r}, using 0.00")
            limit = ZERO
        coverages.append(NormalizedCoverage(description=description, limit_amount=limit))
    return tuple(coverages)


def _normalize_installments(
    record: Mapping[str, object],
    *,
    start_date: date | None,
    today: date,
    warnings: list[str],
) -> tuple[NormalizedInstallment, ...] | None:
    items = _collection(record, _INSTALLMENT_KEYS)
    if items is None:
        return None
    installments: list[NormalizedInstallment] = []
    seen: set[int] = set()
    for index, item in enumerate(items, start=1):
        if not isinstance(item, Mapping):
            warnings.append(f"installment #{index}: not a mapping, skipped")
            continue
        entry = cast("Mapping[str, object]", item)
        number = parse_int(entry.get("number", entry.get("numero", entry.get("numero_parcela"))))
        if number is None or number < 1:
            number = index
        if number in seen:
            warnings.append(f"installment #{number}: duplicate number, skipped")
            continue
        seen.add(number)

        raw_amount = entry.get("amount", entry.get("valor"))
        amount = parse_money(raw_amount) if raw_amount is not None else None
        if amount is None:
            warnings.append(f"installment #{number}: unparseable amount {raw_amount!r}, using 0.00")
            amount = ZERO

        raw_due = entry.get("due_date", entry.get("data", entry.get("data_vencimento")))
        due_date = parse_date(raw_due)
        if due_date is None:
            fallback = add_months(start_date, number - 1) if start_date is not None else today
            if raw_due is not None:
                warnings.append(
                    f"installment #{number}: unparseable due date {raw_due!r}, "
                    f"using {fallback.isoformat()}"
                )
            due_date = fallback

        status = _installment_status(entry.get("status"))
        installments.append(
            NormalizedInstallment(number=number, amount=amount, due_date=due_date, status=status)
        )
    return tuple(installments)


def _installment_status(raw: object) -> InstallmentStatus:
    if not isinstance(raw, str):
        return InstallmentStatus.UPCOMING
    return _INSTALLMENT_STATUS_ALIASES.get(raw.strip().lower(), InstallmentStatus.UPCOMING)
