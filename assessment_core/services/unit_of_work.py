# =============================================================================
# assessment_core/services/unit_of_work.py
# Ordered group of remote writes that can be retried until complete
# =============================================================================
"""
The relational store offers no transaction across tables, so a multi-row
change (a department and its staff, a year archive) is recorded as a list of
steps. Every step is an idempotent upsert or delete, which means a partially
applied unit is completed by running the failed steps again, never undone.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from assessment_core.errors import MutationError
from assessment_core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class WriteStep:
    """One recorded write."""
    description: str
    action: Callable[[], Awaitable[bool]]
    kind: Optional[str] = None
    entity_id: Optional[str] = None
    done: bool = False
    attempts: int = 0


@dataclass
class UnitOfWork:
    """
    Usage:
        unit = UnitOfWork("add department")
        unit.upsert(gateway, "department", department, hospital_id)
        for member in staff:
            unit.upsert(gateway, "staff", member, department["id"])
        if not await unit.run():
            await unit.retry()
    """
    name: str
    steps: List[WriteStep] = field(default_factory=list)
    stop_on_failure: bool = True

    def add(
        self,
        description: str,
        action: Callable[[], Awaitable[bool]],
        kind: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> UnitOfWork:
        self.steps.append(WriteStep(description, action, kind, entity_id))
        return self

    def upsert(self, gateway, kind: str, entity: Dict[str, Any], parent_id: Optional[str] = None) -> UnitOfWork:
        # Validate now so a bad entity fails at record time, not mid-run
        gateway.to_record(kind, entity, parent_id)
        return self.add(
            f"upsert {kind} {entity['id']}",
            lambda: gateway.upsert(kind, entity, parent_id),
            kind=kind,
            entity_id=entity["id"],
        )

    def delete(self, gateway, kind: str, entity_id: str, cascade: bool = True) -> UnitOfWork:
        return self.add(
            f"delete {kind} {entity_id}",
            lambda: gateway.delete(kind, entity_id, cascade),
            kind=kind,
            entity_id=entity_id,
        )

    @property
    def pending(self) -> List[WriteStep]:
        return [step for step in self.steps if not step.done]

    @property
    def failed(self) -> List[WriteStep]:
        """Steps that were attempted and did not succeed."""
        return [step for step in self.steps if not step.done and step.attempts > 0]

    @property
    def is_complete(self) -> bool:
        return all(step.done for step in self.steps)

    async def run(self) -> bool:
        """
        Execute every pending step in recording order.

        With ``stop_on_failure`` the first failing step halts the run so that
        rows depending on it are not written before it.

        Returns:
            True once every step has succeeded
        """
        for step in self.pending:
            step.attempts += 1
            try:
                step.done = bool(await step.action())
            except Exception as e:
                logger.error(f"[{self.name}] {step.description} raised: {e}")
                step.done = False
            if not step.done:
                logger.warning(f"[{self.name}] {step.description} failed (attempt {step.attempts})")
                if self.stop_on_failure:
                    break

        if self.is_complete:
            logger.info(f"[{self.name}] completed {len(self.steps)} write(s)")
        return self.is_complete

    async def retry(self, attempts: int = 1) -> bool:
        """Run the remaining steps again, up to ``attempts`` times."""
        for _ in range(attempts):
            if self.is_complete:
                break
            await self.run()
        return self.is_complete

    def raise_for_failures(self) -> None:
        """
        Raises:
            MutationError: if any step is still pending
        """
        remaining = self.pending
        if not remaining:
            return
        first = remaining[0]
        raise MutationError(
            f"{self.name}: {len(remaining)} of {len(self.steps)} write(s) incomplete",
            table=first.kind,
            operation=first.description.split(" ", 1)[0],
            entity_id=first.entity_id,
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "total": len(self.steps),
            "done": sum(1 for step in self.steps if step.done),
            "pending": [step.description for step in self.pending],
        }
