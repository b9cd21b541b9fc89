"""Per-item bookkeeping shared by the batch scans"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UPDATED = "updated"
SKIPPED = "skipped"
FAILED = "failed"


class ItemOutcome(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    item_id: str
    outcome: str  # updated, skipped, failed
    error: Optional[str] = None


class ScanResult(BaseModel):
    """Aggregate counts plus what happened to each matched row"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    checked: int = 0
    updated: int = 0
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def record(self, item_id: str, outcome: str, error: Optional[str] = None) -> None:
        self.outcomes.append(ItemOutcome(item_id=item_id, outcome=outcome, error=error))
        if outcome == UPDATED:
            self.updated += 1
        elif outcome == FAILED and error:
            self.errors.append(f"{item_id}: {error}")

    @property
    def failed(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.outcome == FAILED]

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)
