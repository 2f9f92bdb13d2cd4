from finance_import.schemas.base import BaseResponse, PaginatedResponse, PaginationMetadata
from finance_import.schemas.imports import (
    AccountDescriptor,
    BankFileDecoder,
    ImportBatchResult,
    RawBankRecord,
    RecordError,
    TransactionCandidate,
)
from finance_import.schemas.payee_rule import PayeeRuleEdit, PayeeRuleResponse, RuleSortBy
from finance_import.schemas.review import (
    AcceptResult,
    CompleteReviewResult,
    ReviewPage,
    ReviewSummary,
    SelectionResult,
    StagedItemResponse,
)

__all__ = [
    "BaseResponse",
    "PaginatedResponse",
    "PaginationMetadata",
    "AccountDescriptor",
    "BankFileDecoder",
    "RawBankRecord",
    "TransactionCandidate",
    "RecordError",
    "ImportBatchResult",
    "PayeeRuleEdit",
    "PayeeRuleResponse",
    "RuleSortBy",
    "StagedItemResponse",
    "ReviewSummary",
    "ReviewPage",
    "SelectionResult",
    "AcceptResult",
    "CompleteReviewResult",
]
