"""Pydantic schemas for payee matching rules."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from finance_import.schemas.base import BaseResponse


class RuleSortBy(str, Enum):
    PATTERN = "pattern"
    CATEGORY = "category"
    LAST_USED = "last_used"


class PayeeRuleEdit(BaseModel):
    """Fields a user supplies when creating or editing a rule.

    Validation is explicit (see validate_rule_edit) so that every problem is
    reported at once instead of failing on the first one.
    """

    pattern: str | None = None
    is_regex: bool = False
    category: str | None = None


class PayeeRuleResponse(BaseResponse):
    key: UUID
    pattern: str
    is_regex: bool
    category: str
    created_at: datetime
    modified_at: datetime
    last_used_at: datetime | None
    match_count: int
