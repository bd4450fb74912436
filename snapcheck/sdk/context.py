"""Checklist definitions for workers.

A RunContext holds the flows a worker knows how to execute. Each flow is
an ordered list of steps: ``act`` steps drive the system under test and
``check`` steps record the value they receive as an observed snapshot.

Usage:
    ctx = RunContext()

    with ctx.flow("todos") as f:
        f.act("create", create_todo)
        f.check("created")
        f.act("list", list_todos)
        f.check("listed", strip_ids)

    observed = await ctx.run()
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict, deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from snapcheck.schemas.run import ObservedAssertion, ObservedFlow

logger = logging.getLogger(__name__)

StepFn = Callable[[Any], Any]


def serialize_snapshot(value: Any) -> str:
    """Compact JSON rendering used for every recorded snapshot."""
    return json.dumps(value, separators=(",", ":"), default=str)


async def _call(fn: StepFn, data: Any) -> Any:
    result = fn(data)
    if asyncio.iscoroutine(result):
        result = await result
    return result


@dataclass
class _Step:
    kind: str  # "act" | "check"
    name: str
    fn: StepFn | None = None


@dataclass
class FlowBuilder:
    """Collects the steps of one flow."""

    name: str
    steps: list[_Step] = field(default_factory=list)

    def act(self, name: str, fn: StepFn) -> FlowBuilder:
        """Add an action; its return value feeds the next step."""
        self.steps.append(_Step("act", name, fn))
        return self

    def check(self, name: str, fn: StepFn | None = None) -> FlowBuilder:
        """Add a check recording ``fn(data)``, or ``data`` itself without ``fn``.

        The check passes the data it received on to the next step unchanged.
        """
        self.steps.append(_Step("check", name, fn))
        return self

    @property
    def check_names(self) -> list[str]:
        return [s.name for s in self.steps if s.kind == "check"]


class RunContext:
    """Registry of the flows one worker can execute."""

    def __init__(self) -> None:
        self._flows: dict[str, FlowBuilder] = {}
        self._current: FlowBuilder | None = None

    @property
    def flows(self) -> list[FlowBuilder]:
        return list(self._flows.values())

    @contextmanager
    def flow(self, name: str) -> Iterator[FlowBuilder]:
        """Define a flow. Flows cannot be nested and names must be unique."""
        if self._current is not None:
            raise RuntimeError(
                f"Cannot define flow {name!r} inside flow {self._current.name!r}"
            )
        if name in self._flows:
            raise RuntimeError(f"Flow {name!r} is already defined")

        builder = FlowBuilder(name)
        self._current = builder
        try:
            yield builder
        finally:
            self._current = None
        self._flows[name] = builder

    async def run(self, known_flows: list[ObservedFlow] | None = None) -> list[ObservedFlow]:
        """Execute every flow in definition order.

        Args:
            known_flows: Flows as sent by the manager, with their stored
                snapshots. Only used to log local mismatches; the manager
                does the classification.

        Returns:
            One ObservedFlow per defined flow, assertions in check order.
        """
        known_by_flow = {f.name: f for f in known_flows or []}
        observed: list[ObservedFlow] = []

        for builder in self._flows.values():
            known = known_by_flow.get(builder.name)
            observed.append(await self._run_flow(builder, known))

        return observed

    async def _run_flow(self, builder: FlowBuilder, known: ObservedFlow | None) -> ObservedFlow:
        # Stored snapshots per raw check name, consumed in order
        expected: dict[str, deque[str | None]] = defaultdict(deque)
        if known is not None:
            for assertion in known.assertions:
                expected[assertion.name].append(assertion.snapshot)

        logger.info("FLOW: %s", builder.name)
        assertions: list[ObservedAssertion] = []
        data: Any = None

        for step in builder.steps:
            try:
                if step.kind == "act":
                    logger.debug("  ACT: %s", step.name)
                    data = await _call(step.fn, data)
                    continue

                logger.debug("CHECK: %s", step.name)
                value = await _call(step.fn, data) if step.fn else data
            except Exception:
                logger.exception("Step %r of flow %r failed", step.name, builder.name)
                break

            snapshot = serialize_snapshot(value)
            assertions.append(ObservedAssertion(name=step.name, snapshot=snapshot))

            stored = expected[step.name].popleft() if expected[step.name] else None
            if stored and _differs(stored, value):
                logger.info("  MISS: %s\n    %s\n    !=\n    %s", step.name, snapshot, stored)

        return ObservedFlow(name=builder.name, assertions=assertions)


def _differs(stored: str, value: Any) -> bool:
    try:
        return json.loads(stored) != json.loads(serialize_snapshot(value))
    except ValueError:
        return True
