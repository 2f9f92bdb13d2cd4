"""Common exception types shared across the import services."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class FieldError:
    """A validation failure attached to one input field."""

    field: str
    message: str


class ImportReviewError(Exception):
    """Base exception for import review errors."""


class ResourceNotFoundError(ImportReviewError):
    """A tenant-scoped resource does not exist (or belongs to another tenant)."""

    def __init__(self, resource_name: str, key: UUID) -> None:
        super().__init__(f"{resource_name} {key} not found")
        self.resource_name = resource_name
        self.key = key


class ConcurrencyError(ImportReviewError):
    """Another operation holds the tenant's review queue; retry later."""

    def __init__(self, tenant_id: UUID, timeout: float) -> None:
        super().__init__(f"Review queue for tenant {tenant_id} is busy (waited {timeout}s)")
        self.tenant_id = tenant_id
        self.timeout = timeout
