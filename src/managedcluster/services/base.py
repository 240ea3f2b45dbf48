"""Generic reconciler service: converge one resource kind to a list of specs.

The service pattern:
1. Ask the scope for the desired specs of this kind
2. For each spec, look up the live resource by the spec's stable key
3. Create it if absent; leave it alone if present (these resource kinds
   cannot be mutated in place once created, so there is no update branch)
4. Attempt every spec independently and report failures as one aggregate

SECURITY: Timeouts are enforced on all Azure API calls to prevent indefinite
hangs. Cancellation of the awaiting task propagates immediately.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar, Generic, Protocol, TypeVar

from azure.core.exceptions import AzureError

from ..config import Config
from ..errors import CloudAPIError, ReconcileAggregateError
from ..scope import CredentialsScope

logger = logging.getLogger(__name__)


class KeyedSpec(Protocol):
    @property
    def key(self) -> str: ...


SpecT = TypeVar("SpecT", bound=KeyedSpec)
ScopeT = TypeVar("ScopeT", bound=CredentialsScope)


class SpecOutcome(str, Enum):
    """What happened to a single spec during a pass."""

    CREATED = "Created"
    EXISTS = "Exists"
    DELETED = "Deleted"
    ABSENT = "Absent"
    FAILED = "Failed"


@dataclass
class ReconcileSummary:
    """Result of a reconcile or delete pass over one resource kind."""

    kind: str
    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    outcomes: dict[str, SpecOutcome] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)

    def count(self, outcome: SpecOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        return not self.failures


class ReconcilerService(ABC, Generic[ScopeT, SpecT]):
    """Base class for services that converge one Azure resource kind.

    Subclasses supply the spec list and three blocking SDK operations
    (``_get``, ``_create``, ``_delete``); this class handles ordering,
    bounded concurrency, timeouts, error wrapping and aggregation.
    """

    kind: ClassVar[str] = "resource"

    def __init__(self, scope: ScopeT, config: Config | None = None) -> None:
        self._scope = scope
        self._config = config or Config()

    @property
    def scope(self) -> ScopeT:
        return self._scope

    @abstractmethod
    def specs(self) -> list[SpecT]:
        """Desired specs for this pass, in processing order."""

    async def _connect(self) -> None:
        """Build SDK clients before the first call. Default: nothing to do."""
        return None

    @abstractmethod
    def _get(self, spec: SpecT) -> Any:
        """Fetch the live resource. Raises ResourceNotFoundError if absent."""

    @abstractmethod
    def _create(self, spec: SpecT) -> None:
        """Create the resource and wait for completion."""

    @abstractmethod
    def _delete(self, spec: SpecT) -> None:
        """Delete the resource and wait for completion."""

    async def _call(self, operation: str, func: Callable[[SpecT], Any], spec: SpecT) -> Any:
        """Run a blocking SDK call off the event loop with a timeout.

        Raises:
            CloudAPIError: On any Azure SDK error or timeout.
        """
        loop = asyncio.get_running_loop()
        timeout = self._config.cloud_call_timeout_seconds
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, functools.partial(func, spec)),
                timeout=timeout,
            )
        except TimeoutError as e:
            raise CloudAPIError(
                f"{operation} {self.kind} {spec.key} timed out after {timeout}s"
            ) from e
        except AzureError as e:
            raise CloudAPIError.from_azure_error(e, f"{operation} {self.kind} {spec.key}") from e

    async def _exists(self, spec: SpecT) -> bool:
        try:
            await self._call("get", self._get, spec)
        except CloudAPIError as e:
            if e.not_found:
                return False
            raise
        return True

    async def _reconcile_spec(self, spec: SpecT) -> SpecOutcome:
        if await self._exists(spec):
            self._scope.logger.debug(f"{self.kind} {spec.key} already exists")
            return SpecOutcome.EXISTS

        self._scope.logger.info(f"Creating {self.kind} {spec.key}")
        await self._call("create", self._create, spec)
        self._scope.logger.info(f"Created {self.kind} {spec.key}")
        return SpecOutcome.CREATED

    async def _delete_spec(self, spec: SpecT) -> SpecOutcome:
        if not await self._exists(spec):
            return SpecOutcome.ABSENT

        self._scope.logger.info(f"Deleting {self.kind} {spec.key}")
        await self._call("delete", self._delete, spec)
        return SpecOutcome.DELETED

    async def reconcile(self) -> ReconcileSummary:
        """Ensure every desired spec exists.

        Raises:
            ReconcileAggregateError: If any spec failed; every spec is
                attempted first.
        """
        return await self._run("reconcile", self._reconcile_spec)

    async def delete(self) -> ReconcileSummary:
        """Remove the resource behind every spec; absent resources are skipped.

        Raises:
            ReconcileAggregateError: If any spec failed.
        """
        return await self._run("delete", self._delete_spec)

    async def _run(
        self,
        operation: str,
        handler: Callable[[SpecT], Awaitable[SpecOutcome]],
    ) -> ReconcileSummary:
        summary = ReconcileSummary(kind=self.kind, operation=operation)
        specs = self.specs()

        if specs:
            await self._connect()
            semaphore = asyncio.Semaphore(self._config.max_concurrent_operations)

            async def attempt(spec: SpecT) -> tuple[str, SpecOutcome, Exception | None]:
                async with semaphore:
                    try:
                        return spec.key, await handler(spec), None
                    except Exception as e:
                        self._scope.logger.warning(
                            f"Failed to {operation} {self.kind} {spec.key}: {e}",
                            extra={
                                "spec_key": spec.key,
                                "error_type": type(e).__name__,
                                "retryable": getattr(e, "retryable", None),
                            },
                        )
                        return spec.key, SpecOutcome.FAILED, e

            for key, outcome, error in await asyncio.gather(*(attempt(s) for s in specs)):
                summary.outcomes[key] = outcome
                if error is not None:
                    summary.failures[key] = error

        summary.end_time = datetime.now(UTC)
        self._scope.logger.info(
            f"{self.kind} {operation} complete: "
            f"{summary.count(SpecOutcome.CREATED)} created, "
            f"{summary.count(SpecOutcome.EXISTS)} existing, "
            f"{summary.count(SpecOutcome.DELETED)} deleted, "
            f"{len(summary.failures)} failed, "
            f"duration={summary.duration_seconds:.1f}s"
        )

        if summary.failures:
            raise ReconcileAggregateError(self.kind, summary.failures, summary)
        return summary
