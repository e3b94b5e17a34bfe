"""
Category taxonomy model.

A category is a (kind, main, sub) triple with a usage counter used only
for ranking. Transactions reference the triple by value.
"""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from ledger.models.transaction import TransactionKind


class Category(BaseModel):
    """One entry of the learned category taxonomy."""
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    kind: TransactionKind
    main_category: str = Field(..., min_length=1)
    sub_category: str = Field(..., min_length=1)
    usage_count: int = Field(
        default=0,
        ge=0,
        description="Monotonic counter, affects ranking only"
    )
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind.value, self.main_category, self.sub_category)
