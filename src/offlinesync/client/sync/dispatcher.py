"""Operation dispatcher.

Maps an operation to the RecordService call that applies it and turns the
result into an Outcome:

    | Service result              | Outcome                              |
    |-----------------------------|--------------------------------------|
    | rows returned               | Success(data)                        |
    | ConflictDetected (23505)    | Conflict(current server record)      |
    | OperationFailure / other    | Failure(error)                       |
    | no handler for the type     | Failure(permanent=True)              |

Handlers are registered per OperationType. The default registry covers
every type; a registry missing one is logged at construction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from offlinesync.client.api import describe_error
from offlinesync.client.sync.types import (
    Conflict,
    Failure,
    Operation,
    OperationMethod,
    OperationType,
    Outcome,
    Success,
    SyncContext,
    utcnow,
)
from offlinesync.core.errors import (
    ConflictDetected,
    OperationFailure,
    UnsupportedOperationType,
)

if TYPE_CHECKING:
    from offlinesync.client.api import RecordService

logger = logging.getLogger(__name__)


class OperationHandler:
    """Applies operations of one type.

    Subclasses override build_row() and/or apply(). key_field names the
    column used to look up the server record after a conflict.
    """

    key_field = "id"

    def build_row(self, op: Operation, context: SyncContext) -> dict[str, Any]:
        """Row sent for insert/upsert."""
        return {**op.payload, "user_id": context.caller_id}

    def record_key(self, op: Operation, context: SyncContext) -> dict[str, Any] | None:
        """Key identifying the record, or None if the payload has none."""
        value = op.payload.get(self.key_field)
        if value is None:
            return None
        return {self.key_field: value}

    def apply(self, service: RecordService, op: Operation, context: SyncContext) -> Any:
        """Run the service call for op.method."""
        if op.method == OperationMethod.INSERT:
            return service.insert(op.target, self.build_row(op, context))
        if op.method in (OperationMethod.UPDATE, OperationMethod.DELETE):
            key = self.record_key(op, context)
            if key is None:
                raise OperationFailure(
                    f"{op.method.value} on {op.target} requires '{self.key_field}'"
                )
            if op.method == OperationMethod.UPDATE:
                return service.update(op.target, key, op.payload)
            return service.delete(op.target, key)
        return service.upsert(op.target, self.build_row(op, context))


class SessionHandler(OperationHandler):
    """Focus sessions are always upserted and stamped with synced_at."""

    def apply(self, service: RecordService, op: Operation, context: SyncContext) -> Any:
        row = {
            **op.payload,
            "user_id": context.caller_id,
            "synced_at": utcnow().isoformat(),
        }
        return service.upsert(op.target, row)


class SettingsHandler(OperationHandler):
    """One settings row per user, holding the settings document."""

    key_field = "user_id"

    def record_key(self, op: Operation, context: SyncContext) -> dict[str, Any]:
        return {"user_id": context.caller_id}

    def apply(self, service: RecordService, op: Operation, context: SyncContext) -> Any:
        settings = op.payload or dict(context.settings)
        row = {
            "user_id": context.caller_id,
            "settings": settings,
            "updated_at": utcnow().isoformat(),
        }
        return service.upsert(op.target, row)


class StatsHandler(OperationHandler):
    """One stats row per user."""

    key_field = "user_id"

    def record_key(self, op: Operation, context: SyncContext) -> dict[str, Any]:
        return {"user_id": context.caller_id}

    def apply(self, service: RecordService, op: Operation, context: SyncContext) -> Any:
        row = {
            "user_id": context.caller_id,
            **op.payload,
            "updated_at": utcnow().isoformat(),
        }
        return service.upsert(op.target, row)


def default_handlers() -> dict[OperationType, OperationHandler]:
    """Handler for every OperationType."""
    return {
        OperationType.SESSION: SessionHandler(),
        OperationType.SETTINGS: SettingsHandler(),
        OperationType.STATS: StatsHandler(),
        OperationType.TASK: OperationHandler(),
        OperationType.NOTE: OperationHandler(),
    }


class OperationDispatcher:
    """Applies operations through a RecordService and classifies the result."""

    def __init__(
        self,
        service: RecordService,
        handlers: Mapping[OperationType, OperationHandler] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            service: Backend the handlers call
            handlers: Handler registry (defaults to default_handlers())
        """
        self._service = service
        self._handlers = dict(handlers) if handlers is not None else default_handlers()

        missing = [t.value for t in OperationType if t not in self._handlers]
        if missing:
            logger.warning("No handler registered for: %s", ", ".join(missing))

    def process(self, op: Operation, context: SyncContext) -> Outcome:
        """Apply one operation.

        Never raises: every error is returned as a Failure.
        """
        handler = self._handlers.get(op.type)
        if handler is None:
            error = UnsupportedOperationType(op.type.value)
            logger.error("Cannot process %r: %s", op, error)
            return Failure(str(error), permanent=True)

        try:
            data = handler.apply(self._service, op, context)
        except ConflictDetected as e:
            logger.info("Conflict on %r: %s", op, e)
            return Conflict(server_data=self._server_record(handler, op, context, e))
        except OperationFailure as e:
            code = getattr(e, "code", None)
            logger.warning("Failed to process %r: %s", op, e)
            return Failure(describe_error(code, str(e)), code=code)
        except Exception as e:
            logger.exception("Error processing %r", op)
            return Failure(str(e) or type(e).__name__)

        logger.debug("Processed %r", op)
        return Success(data)

    def _server_record(
        self,
        handler: OperationHandler,
        op: Operation,
        context: SyncContext,
        error: ConflictDetected,
    ) -> dict[str, Any] | None:
        """Fetch the record the operation collided with."""
        if error.server_data is not None:
            return error.server_data

        key = handler.record_key(op, context)
        if key is None:
            return None
        try:
            return self._service.fetch(op.target, key)
        except OperationFailure as e:
            logger.warning("Could not fetch server record for %r: %s", op, e)
            return None
