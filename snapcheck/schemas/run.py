"""Run-time flow and assertion schemas.

Defines the request-scoped view of a checklist run: the Assertion that
combines a stored snapshot with a freshly observed value, the Flow that
groups ordered assertions, the per-flow FlowRunSummary, and the
ObservedFlow shape exchanged with workers.
"""

from __future__ import annotations

import re
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# Trailing "[n]" (n >= 2) appended to the second and later occurrences of a name
_NUMBER_SUFFIX = re.compile(r"^(?P<base>.*)\[(?P<number>[2-9]|[1-9]\d+)\]$", re.DOTALL)


class AssertionResult(StrEnum):
    """Classification of an assertion against its stored snapshot."""

    NEW = "NEW"
    MATCH = "MATCH"
    MISS = "MISS"


class FlowRunSummary(BaseModel):
    """Tally of assertion results within one flow."""

    match: int = Field(default=0, ge=0, description="Assertions equal to their snapshot")
    miss: int = Field(default=0, ge=0, description="Assertions that differ from their snapshot")
    new: int = Field(default=0, ge=0, description="Assertions seen for the first time")

    def record(self, result: AssertionResult) -> None:
        """Count one assertion result (keyed by its lower-cased name)."""
        key = result.value.lower()
        setattr(self, key, getattr(self, key) + 1)

    @classmethod
    def total(cls, summaries: list[FlowRunSummary]) -> FlowRunSummary:
        """Sum several flow summaries into one."""
        return cls(
            match=sum(s.match for s in summaries),
            miss=sum(s.miss for s in summaries),
            new=sum(s.new for s in summaries),
        )


class Assertion(BaseModel):
    """One named check within a flow.

    ``snapshot`` holds the observed value in run output, or the stored
    value when built from a persisted Snapshot. ``expected_snapshot`` is
    only set on a MISS.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = Field(default=None, exclude=True, description="Snapshot row id, if persisted")
    name: str = Field(description="Effective (possibly disambiguated) assertion name")
    snapshot: str = Field(default="", description="Serialized assertion value")
    result: AssertionResult | None = Field(default=None, description="Run classification")
    expected_snapshot: str | None = Field(
        default=None,
        alias="expectedSnapshot",
        description="Stored value, attached when the result is MISS",
    )

    def name_without_number(self) -> str:
        """Strip the ``[n]`` disambiguation suffix (``check[2]`` -> ``check``)."""
        match = _NUMBER_SUFFIX.match(self.name)
        if match:
            return match.group("base")
        return self.name


class Flow(BaseModel):
    """An ordered, named group of assertions within a checklist."""

    id: int | None = Field(default=None, exclude=True, description="Flow row id")
    checklist_id: int | None = Field(default=None, exclude=True, description="Owning checklist id")
    name: str = Field(description="Flow name, unique within its checklist")
    assertions: list[Assertion] = Field(default_factory=list)
    summary: FlowRunSummary = Field(default_factory=FlowRunSummary)

    def to_response(self) -> dict:
        """Render the flow as returned by the run endpoint."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ObservedAssertion(BaseModel):
    """An assertion as exchanged with a worker: ``{name, snapshot}``."""

    name: str
    snapshot: str | None = ""


class ObservedFlow(BaseModel):
    """A flow as exchanged with a worker."""

    name: str
    assertions: list[ObservedAssertion] = Field(default_factory=list)
