# =============================================================================
# assessment_core/services/base_service.py
# Shared plumbing for services that write to the remote store
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass

from assessment_core.logging import get_logger, LogContext
from assessment_core.errors import handle_error, AssessmentSyncError
from assessment_core.services.unit_of_work import UnitOfWork


@dataclass
class ServiceResult:
    """
    Outcome of a service call.

    ``data`` holds what was written (a row, a subtree, a count);
    ``metadata`` carries the unit of work for multi-row writes.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def unit(self) -> Optional[UnitOfWork]:
        return (self.metadata or {}).get("unit")

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        data: Any = None,
        metadata: Dict[str, Any] = None
    ) -> ServiceResult:
        return cls(success=False, data=data, error=error, error_code=error_code, metadata=metadata)

    @classmethod
    def written(cls, accepted: bool, row: Any, action: str) -> ServiceResult:
        """Result of a single gateway write that reported ``accepted``."""
        if accepted:
            return cls.ok(row)
        return cls.fail(f"Could not {action}", error_code="MUT_001", data=row)

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        if isinstance(e, AssessmentSyncError):
            return cls(success=False, error=e.message, error_code=e.code, metadata=e.details)
        return cls(success=False, error=str(e), error_code="EXCEPTION")


class BaseService(ABC):
    """
    Base class for services built on the mutation gateway.

    Holds a per-class logger, an optional progress callback and the list of
    units of work that did not complete, so callers can retry them later.

    Usage:
        class RosterService(BaseService):
            async def move_staff(self, ...) -> ServiceResult:
                unit = UnitOfWork("move staff")
                ...
                return await self.run_unit(unit, data=staff)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)
        self._progress_callback: Optional[Callable[[int, str], None]] = None
        self.pending_units: List[UnitOfWork] = []

    def set_progress_callback(self, callback: Callable[[int, str], None]) -> None:
        """
        Args:
            callback: Function that takes (percentage: int, message: str)
        """
        self._progress_callback = callback

    def _update_progress(self, percentage: int, message: str = "") -> None:
        if self._progress_callback:
            self._progress_callback(percentage, message)

    def log_operation(self, operation: str) -> LogContext:
        """
        Usage:
            with self.log_operation("Restoring backup"):
                ...
        """
        return LogContext(self.logger, operation)

    # =========================================================================
    # UNITS OF WORK
    # =========================================================================

    async def run_unit(
        self,
        unit: UnitOfWork,
        data: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        """
        Run ``unit``; an incomplete unit is kept in ``pending_units``.

        Returns:
            ServiceResult with the unit and its summary in ``metadata``
        """
        complete = await unit.run()
        metadata = {"unit": unit, **(metadata or {}), **unit.summary()}
        if complete:
            return ServiceResult.ok(data, metadata=metadata)

        self.pending_units.append(unit)
        return ServiceResult.fail(
            f"{unit.name}: {len(unit.pending)} write(s) pending",
            error_code="MUT_001",
            data=data,
            metadata=metadata,
        )

    async def retry_pending(self) -> bool:
        """Re-run every incomplete unit of work; True when none remain."""
        still_pending = []
        for unit in self.pending_units:
            if not await unit.retry():
                still_pending.append(unit)
        self.pending_units = still_pending
        return not still_pending

    async def safe_execute(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        **kwargs
    ) -> ServiceResult:
        """
        Await ``func(*args, **kwargs)`` and wrap the outcome.

        Returns:
            ServiceResult.ok with the return value, or a failed result
            carrying the error code of the raised exception
        """
        with self.log_operation(operation):
            try:
                return ServiceResult.ok(await func(*args, **kwargs))
            except AssessmentSyncError as e:
                handle_error(e)
                return ServiceResult.from_exception(e)
            except Exception as e:
                self.logger.error(f"{operation} failed: {e}", exc_info=True)
                return ServiceResult.fail(str(e))
