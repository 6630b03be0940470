"""Dispatch — the per-call pipeline: lookup -> validate -> authenticate -> scope -> invoke.

Invariants:
    - Unknown capability returns a not_found outcome (never raises)
    - Invalid input returns every violation at once; the handler never runs
    - An auth challenge short-circuits before the handler and before any secret fetch
    - Secrets are visible to the handler only inside its secret_scope()
    - Handler exceptions are caught HERE and only here, becoming an internal outcome
    - asyncio.CancelledError (BaseException) passes through uncaught

Design Decisions:
    - CallOutcome is a value: the protocol layer picks the wire shape per kind
      (JSON-RPC error vs isError result) without re-inspecting exceptions
    - Internal outcomes carry the exception type, never its message: handler
      exceptions may contain secrets
"""

import inspect
import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any

from toolhost.core.auth_types import AuthChallenge
from toolhost.core.domain_types import CapabilityKind
from toolhost.core.errors import MissingConfigurationError, ToolhostError
from toolhost.core.request_context import RequestContext, current_request, request_scope
from toolhost.core.secret_scope import secret_scope
from toolhost.services.auth_gate import AuthGate
from toolhost.services.registrar import RouteEntry, RoutingTable

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass(frozen=True)
class CallOutcome:
    """Result of one dispatched call: `{result}` or `{error: {kind, message, detail?}}`."""
    kind: OutcomeKind
    result: Any = None
    message: str | None = None
    detail: dict | None = None
    challenge: AuthChallenge | None = None
    entry: RouteEntry | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    def to_dict(self) -> dict:
        if self.ok:
            return {"result": self.result}
        error: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.detail:
            error["detail"] = self.detail
        return {"error": error}


class Dispatcher:
    """Routes one call through the routing table and the auth gate."""

    def __init__(self, table: RoutingTable, gate: AuthGate):
        self.table = table
        self._gate = gate

    async def call(
        self,
        kind: CapabilityKind,
        name: str,
        arguments: dict | None = None,
        credential: str | None = None,
    ) -> CallOutcome:
        entry = self.table.lookup(kind, name)
        if entry is None:
            return CallOutcome(
                OutcomeKind.NOT_FOUND,
                message=f"Unknown {kind.value}: {name}",
                detail={"name": name},
            )

        value = None
        if entry.input_schema is not None:
            validation = entry.input_schema.validate(arguments)
            if not validation.ok:
                return CallOutcome(
                    OutcomeKind.VALIDATION,
                    message=f"Invalid arguments for {kind.value} '{name}'",
                    detail={"violations": [v.to_dict() for v in validation.errors]},
                    entry=entry,
                )
            value = validation.value

        try:
            decision = await self._gate.check(entry.auth, credential)
        except ToolhostError as e:
            logger.error(
                f"Auth gate failed for {name}: {e.message}",
                extra={"capability": name, "error_code": e.code},
            )
            return CallOutcome(
                OutcomeKind.INTERNAL, message=e.message,
                detail={"code": e.code}, entry=entry,
            )
        if isinstance(decision, AuthChallenge):
            logger.info(
                f"Auth challenge for {name}: {decision.error_code.value}",
                extra={"capability": name, "error_code": decision.error_code.value},
            )
            return CallOutcome(
                OutcomeKind.AUTHENTICATION,
                message=decision.description,
                detail=decision.to_result()["challenge"],
                challenge=decision,
                entry=entry,
            )

        if entry.deprecated:
            logger.warning(
                f"Deprecated {kind.value} called: {name} ({entry.deprecated})",
                extra={"capability": name},
            )

        ctx = current_request() or RequestContext(credential=credential)
        scope = (
            secret_scope(decision.secrets)
            if decision.secrets is not None else nullcontext()
        )
        started = time.perf_counter()
        try:
            with request_scope(ctx.with_identity(decision.identity)), scope:
                result = await _invoke(entry, value, arguments)
        except MissingConfigurationError as e:
            logger.warning(
                f"Missing configuration for {name}: {e.missing_keys}",
                extra={"capability": name, "error_code": e.code},
            )
            return CallOutcome(
                OutcomeKind.CONFIGURATION, message=e.message,
                detail=e.detail(), entry=entry,
            )
        except Exception as e:
            logger.error(
                f"Handler {entry.qualified_name} raised {type(e).__name__}",
                exc_info=True,
                extra={"capability": name, "session_id": ctx.session_id},
            )
            return CallOutcome(
                OutcomeKind.INTERNAL,
                message=f"Internal error while executing {kind.value} '{name}'",
                detail={"errorType": type(e).__name__},
                entry=entry,
            )

        logger.info(
            f"Dispatched {kind.value} {name}",
            extra={
                "capability": name,
                "session_id": ctx.session_id,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return CallOutcome(OutcomeKind.OK, result=result, entry=entry)


async def _invoke(entry: RouteEntry, value: dict | None, arguments: dict | None) -> Any:
    if entry.input_schema is not None:
        args: tuple = (entry.input_schema.instantiate(value or {}),)
    elif entry.accepts_arguments:
        args = (dict(arguments or {}),)
    else:
        args = ()
    result = entry.handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
