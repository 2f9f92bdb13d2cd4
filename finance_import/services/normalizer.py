"""Normalize decoded bank records into transaction candidates.

A decoder hands over raw field values exactly as the bank exported them. This
module turns each one into a TransactionCandidate:

- payee/memo ambiguity is resolved (banks often truncate NAME but keep the full
  text in MEMO)
- a readable source string is built from the account descriptor
- a stable external id is passed through or derived from the content

Normalization is per record: a bad record yields a RecordError and the rest of
the batch continues.
"""

import hashlib
import re
from collections.abc import Iterable
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import ValidationError

from finance_import.logger import get_logger
from finance_import.schemas.imports import (
    AccountDescriptor,
    RawBankRecord,
    RecordError,
    TransactionCandidate,
)
from finance_import.utils.exceptions import FieldError, ImportReviewError

logger = get_logger(__name__)

SOURCE_SEPARATOR = " - "

PAYEE_MAX_LENGTH = 200
MEMO_MAX_LENGTH = 1000
SOURCE_MAX_LENGTH = 200
EXTERNAL_ID_MAX_LENGTH = 100
# Numeric(18, 2) columns
AMOUNT_QUANTUM = Decimal("0.01")
AMOUNT_MAX_ABS = Decimal(10) ** 16

_WHITESPACE = re.compile(r"\s+")


class NormalizationError(ImportReviewError):
    """A raw record could not be turned into a candidate."""

    def __init__(
        self,
        row_index: int,
        message: str,
        *,
        txn_date: date | None = None,
        field_errors: list[FieldError] | None = None,
    ) -> None:
        super().__init__(message)
        self.row_index = row_index
        self.message = message
        self.txn_date = txn_date
        self.field_errors = field_errors or []

    def to_record_error(self) -> RecordError:
        return RecordError(
            row_index=self.row_index,
            txn_date=self.txn_date,
            message=self.message,
            field_errors=self.field_errors,
        )


def _collapse_whitespace(text: str | None) -> str:
    if text is None or not text.strip():
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def _clean(text: str | None) -> str | None:
    if text is None or not text.strip():
        return None
    return text.strip()


def _name_is_truncated_memo(name: str, memo: str) -> bool:
    return _collapse_whitespace(memo).casefold().startswith(_collapse_whitespace(name).casefold())


def resolve_payee_and_memo(name: str | None, memo: str | None) -> tuple[str | None, str | None]:
    """Pick the payee and memo from the raw NAME and MEMO fields.

    1. NAME blank: MEMO is the payee, memo is empty.
    2. MEMO starts with NAME (whitespace collapsed, case-insensitive): NAME was
       truncated, so MEMO is the payee and memo is empty.
    3. Otherwise NAME is the payee and MEMO stays the memo.
    """
    if _clean(name) is None or (_clean(memo) is not None and _name_is_truncated_memo(name, memo)):
        return _clean(memo), None
    return _clean(name), _clean(memo)


def format_account_type(account_type: str) -> str:
    """CHECKING -> Checking"""
    return account_type[:1].upper() + account_type[1:].lower()


def build_source(account: AccountDescriptor | None) -> str:
    """Build "<institution> - <AccountType> (<account id>)", skipping empty parts."""
    if account is None:
        return ""

    parts = []
    institution = _clean(account.institution)
    if institution:
        parts.append(institution)

    account_type = _clean(account.account_type)
    account_id = _clean(account.account_id)
    if account_type and account_id:
        parts.append(f"{format_account_type(account_type)} ({account_id})")
    elif account_type:
        parts.append(format_account_type(account_type))

    return SOURCE_SEPARATOR.join(parts)


def generate_external_id(
    txn_date: date,
    amount: Decimal,
    payee: str,
    memo: str | None,
    source: str,
) -> str:
    """Derive a stable id for records that came without a bank transaction id.

    Hash = SHA256(date|amount|payee|memo|source), amount fixed to 2 places.
    """
    components = [
        txn_date.isoformat(),
        str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)),
        payee,
        memo or "",
        source,
    ]
    hash_input = "|".join(components).encode("utf-8")
    return hashlib.sha256(hash_input).hexdigest()


def validate_candidate(candidate: TransactionCandidate) -> list[FieldError]:
    """Check a candidate against the stored column limits."""
    errors: list[FieldError] = []
    if not candidate.amount.is_finite():
        errors.append(FieldError("amount", "Amount must be a finite number"))
    elif abs(candidate.amount) >= AMOUNT_MAX_ABS:
        errors.append(FieldError("amount", "Amount is too large"))
    elif candidate.amount != candidate.amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP):
        errors.append(FieldError("amount", "Amount cannot have more than 2 decimal places"))
    if not candidate.payee.strip():
        errors.append(FieldError("payee", "Payee is required"))
    elif len(candidate.payee) > PAYEE_MAX_LENGTH:
        errors.append(FieldError("payee", f"Payee cannot exceed {PAYEE_MAX_LENGTH} characters"))
    if candidate.memo is not None and len(candidate.memo) > MEMO_MAX_LENGTH:
        errors.append(FieldError("memo", f"Memo cannot exceed {MEMO_MAX_LENGTH} characters"))
    if len(candidate.source) > SOURCE_MAX_LENGTH:
        errors.append(FieldError("source", f"Source cannot exceed {SOURCE_MAX_LENGTH} characters"))
    if candidate.external_id is not None and len(candidate.external_id) > EXTERNAL_ID_MAX_LENGTH:
        errors.append(
            FieldError("external_id", f"External id cannot exceed {EXTERNAL_ID_MAX_LENGTH} characters")
        )
    return errors


def normalize_record(record: RawBankRecord, row_index: int = 0) -> TransactionCandidate:
    """Normalize one decoded record.

    Raises:
        NormalizationError: payee could not be resolved or a field is out of range
    """
    txn_date = record.txn_date.date() if isinstance(record.txn_date, datetime) else record.txn_date

    payee, memo = resolve_payee_and_memo(record.name, record.memo)
    if payee is None:
        raise NormalizationError(
            row_index,
            f"Transaction on {txn_date.isoformat()} has no payee name "
            "(NAME and MEMO fields both missing or empty)",
            txn_date=txn_date,
            field_errors=[FieldError("payee", "Payee is required")],
        )

    source = build_source(record.account)
    external_id = record.transaction_id
    if external_id is None or not external_id.strip():
        external_id = generate_external_id(txn_date, record.amount, payee, memo, source)

    try:
        candidate = TransactionCandidate(
            txn_date=txn_date,
            amount=record.amount,
            payee=payee,
            memo=memo,
            source=source,
            external_id=external_id,
        )
    except ValidationError as exc:
        raise NormalizationError(
            row_index,
            f"Transaction on {txn_date.isoformat()} is invalid",
            txn_date=txn_date,
            field_errors=[
                FieldError(".".join(str(loc) for loc in err["loc"]), err["msg"]) for err in exc.errors()
            ],
        ) from exc

    field_errors = validate_candidate(candidate)
    if field_errors:
        raise NormalizationError(
            row_index,
            f"Transaction on {txn_date.isoformat()} is invalid: "
            + "; ".join(error.message for error in field_errors),
            txn_date=txn_date,
            field_errors=field_errors,
        )

    return candidate


def normalize_batch(
    records: Iterable[RawBankRecord],
) -> tuple[list[TransactionCandidate], list[RecordError]]:
    """Normalize every record, collecting per-record errors instead of stopping."""
    candidates: list[TransactionCandidate] = []
    errors: list[RecordError] = []

    for row_index, record in enumerate(records):
        try:
            candidates.append(normalize_record(record, row_index))
        except NormalizationError as exc:
            errors.append(exc.to_record_error())

    if errors:
        logger.warning(
            "Records rejected during normalization",
            rejected=len(errors),
            accepted=len(candidates),
        )
    return candidates, errors
