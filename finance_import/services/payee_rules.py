"""Payee matching rule management."""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_import.config import settings
from finance_import.logger import get_logger
from finance_import.models import PayeeMatchingRule
from finance_import.schemas.base import PaginatedResponse
from finance_import.schemas.payee_rule import PayeeRuleEdit, PayeeRuleResponse, RuleSortBy
from finance_import.services.payee_matching import PayeeRuleMatcher, RuleValidationError, validate_rule_edit
from finance_import.utils.categories import sanitize_category
from finance_import.utils.exceptions import ResourceNotFoundError
from finance_import.utils.pagination import calculate_pagination, normalize_page

logger = get_logger(__name__)


class PayeeRuleNotFoundError(ResourceNotFoundError):
    """Rule does not exist for this tenant."""

    def __init__(self, key: UUID) -> None:
        super().__init__("Payee matching rule", key)


def _validated(edit: PayeeRuleEdit) -> PayeeRuleEdit:
    errors = validate_rule_edit(edit)
    if errors:
        raise RuleValidationError(errors)
    return edit


async def get_rule(db: AsyncSession, key: UUID, *, tenant_id: UUID) -> PayeeMatchingRule:
    result = await db.execute(
        select(PayeeMatchingRule)
        .where(PayeeMatchingRule.tenant_id == tenant_id)
        .where(PayeeMatchingRule.key == key)
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        raise PayeeRuleNotFoundError(key)
    return rule


async def create_rule(db: AsyncSession, edit: PayeeRuleEdit, *, tenant_id: UUID) -> PayeeMatchingRule:
    """Validate and store a new rule.

    Raises:
        RuleValidationError: the edit is invalid; nothing is stored
    """
    _validated(edit)
    now = datetime.now(UTC)
    rule = PayeeMatchingRule(
        tenant_id=tenant_id,
        pattern=edit.pattern,
        is_regex=edit.is_regex,
        category=sanitize_category(edit.category),
        created_at=now,
        modified_at=now,
        match_count=0,
    )
    db.add(rule)
    await db.flush()
    await db.refresh(rule)
    logger.info("Payee rule created", tenant_id=str(tenant_id), rule_key=str(rule.key), is_regex=rule.is_regex)
    return rule


async def update_rule(
    db: AsyncSession,
    key: UUID,
    edit: PayeeRuleEdit,
    *,
    tenant_id: UUID,
) -> PayeeMatchingRule:
    """Replace a rule's pattern and category. Usage statistics are kept."""
    _validated(edit)
    rule = await get_rule(db, key, tenant_id=tenant_id)
    rule.pattern = edit.pattern
    rule.is_regex = edit.is_regex
    rule.category = sanitize_category(edit.category)
    rule.modified_at = datetime.now(UTC)
    await db.flush()
    await db.refresh(rule)
    logger.info("Payee rule updated", tenant_id=str(tenant_id), rule_key=str(key))
    return rule


async def delete_rule(db: AsyncSession, key: UUID, *, tenant_id: UUID) -> None:
    rule = await get_rule(db, key, tenant_id=tenant_id)
    await db.delete(rule)
    await db.flush()
    logger.info("Payee rule deleted", tenant_id=str(tenant_id), rule_key=str(key))


async def list_rules(
    db: AsyncSession,
    *,
    tenant_id: UUID,
    page_number: int | None = None,
    sort_by: RuleSortBy = RuleSortBy.PATTERN,
    search: str | None = None,
) -> PaginatedResponse[PayeeRuleResponse]:
    """List rules a page at a time.

    Sorting by last use puts the most recent first and never-used rules last.
    `search` matches pattern or category, case-insensitively.
    """
    page_size = settings.rule_list_page_size
    page_number, page_size = normalize_page(page_number, page_size, default_size=page_size)

    filters = [PayeeMatchingRule.tenant_id == tenant_id]
    if search and search.strip():
        term = search.strip()
        filters.append(
            or_(
                PayeeMatchingRule.pattern.icontains(term, autoescape=True),
                PayeeMatchingRule.category.icontains(term, autoescape=True),
            )
        )

    if sort_by == RuleSortBy.CATEGORY:
        ordering = [PayeeMatchingRule.category, PayeeMatchingRule.pattern]
    elif sort_by == RuleSortBy.LAST_USED:
        ordering = [PayeeMatchingRule.last_used_at.desc().nulls_last()]
    else:
        ordering = [PayeeMatchingRule.pattern]

    total = (await db.execute(select(func.count()).select_from(PayeeMatchingRule).where(*filters))).scalar_one()
    result = await db.execute(
        select(PayeeMatchingRule)
        .where(*filters)
        .order_by(*ordering, PayeeMatchingRule.id)
        .limit(page_size)
        .offset((page_number - 1) * page_size)
    )

    return PaginatedResponse[PayeeRuleResponse](
        items=[PayeeRuleResponse.model_validate(rule) for rule in result.scalars()],
        metadata=calculate_pagination(page_number, page_size, total),
    )


async def find_best_match(db: AsyncSession, payee: str | None, *, tenant_id: UUID) -> str | None:
    """Category the tenant's rules would assign to a payee.

    Lookup only: usage statistics are not updated.
    """
    matcher = await PayeeRuleMatcher.load(db, tenant_id=tenant_id)
    rule = matcher.find_category(payee)
    return rule.category if rule is not None else None
