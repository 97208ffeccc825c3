"""
Asynchronous audit recorder.

Callers hand an event to AuditRecorder.record() after their business change
has committed. record() serializes the before/after snapshots, queues the
event, and returns immediately. Background worker tasks write each event in
their own session and transaction, so:

- the caller never waits on, or sees errors from, the audit write
- a rollback of the caller's transaction does not remove an audit row that
  was already queued (at-least-once, not exactly-once)
- a cancelled request does not cancel its queued audit event
- ordering between events is not guaranteed

Every failure inside the recorder is logged and discarded.
"""

import asyncio
import dataclasses
import json
import logging
import threading
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID

from fastapi import Request
from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.principal import Principal
from app.core.exceptions import AuditWriteFailed
from app.models.audit import AuditAction, AuditLog

logger = logging.getLogger("hse.audit")

# Checked in order; the first usable value wins
FORWARDED_IP_HEADERS = (
    "X-Forwarded-For",
    "Proxy-Client-IP",
    "WL-Proxy-Client-IP",
    "HTTP_X_FORWARDED_FOR",
    "HTTP_X_FORWARDED",
    "HTTP_X_CLUSTER_CLIENT_IP",
    "HTTP_CLIENT_IP",
    "HTTP_FORWARDED_FOR",
    "HTTP_FORWARDED",
    "HTTP_VIA",
    "REMOTE_ADDR",
)

# Never written into before/after snapshots
SENSITIVE_FIELDS = frozenset({"password", "password_hash"})

MAX_USER_AGENT_LENGTH = 500
SYSTEM_TABLE = "system"


# =============================================================================
# Client metadata
# =============================================================================

@dataclasses.dataclass(frozen=True)
class ClientMeta:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def get_client_ip(request: Request) -> str:
    """
    Extract the originating client IP.

    Proxy forwarding headers are checked first; for a comma-separated chain
    the left-most (original client) entry is used.
    """
    for header in FORWARDED_IP_HEADERS:
        value = request.headers.get(header)
        if value and value.strip() and value.strip().lower() != "unknown":
            return value.split(",")[0].strip()

    # Fall back to direct connection
    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> str:
    """Extract user agent from request headers."""
    return request.headers.get("User-Agent", "unknown")[:MAX_USER_AGENT_LENGTH]


def client_meta_from_request(request: Request) -> ClientMeta:
    return ClientMeta(ip_address=get_client_ip(request), user_agent=get_user_agent(request))


# =============================================================================
# Events
# =============================================================================

@dataclasses.dataclass(frozen=True)
class Actor:
    """Who performed an audited action. Copied into the row as plain values."""
    user_id: Optional[int] = None
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_principal(cls, principal: Optional[Principal]) -> "Actor":
        if principal is None:
            return cls()
        return cls(user_id=principal.user_id, email=principal.subject, name=principal.full_name)


@dataclasses.dataclass(frozen=True)
class AuditEvent:
    actor: Actor
    table_name: str
    record_id: Optional[int]
    action: AuditAction
    old_values: Optional[str]
    new_values: Optional[str]
    description: Optional[str]
    client: ClientMeta
    created_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(timezone.utc))

    def to_model(self) -> AuditLog:
        return AuditLog(
            user_id=self.actor.user_id,
            user_email=self.actor.email,
            user_name=self.actor.name,
            table_name=self.table_name,
            record_id=self.record_id,
            action=self.action,
            old_values=self.old_values,
            new_values=self.new_values,
            description=self.description,
            ip_address=self.client.ip_address,
            user_agent=self.client.user_agent,
            created_at=self.created_at,
        )


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=repr)
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", exclude=set(SENSITIVE_FIELDS))
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {k: v for k, v in dataclasses.asdict(obj).items() if k not in SENSITIVE_FIELDS}

    # SQLAlchemy mapped instance: plain column values
    try:
        state = sa_inspect(obj)
    except NoInspectionAvailable:
        state = None
    if state is not None and hasattr(state, "mapper"):
        return {
            attr.key: getattr(obj, attr.key)
            for attr in state.mapper.column_attrs
            if attr.key not in SENSITIVE_FIELDS
        }

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _fallback_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return f"<unserializable {type(value).__name__}>"


def to_json(value: Any) -> Optional[str]:
    """
    Serialize a snapshot to JSON text.

    Falls back to repr() (and then a type placeholder) instead of raising.
    """
    if value is None:
        return None
    try:
        return json.dumps(value, default=_json_default, ensure_ascii=False)
    except Exception as e:
        logger.error("Could not serialize %s for audit: %s", type(value).__name__, e)
        return _fallback_repr(value)


# =============================================================================
# Recorder
# =============================================================================

class AuditRecorder:
    """
    Fire-and-forget audit writer backed by an asyncio queue and worker tasks.

    start() must run inside the event loop that serves requests. record() is
    safe to call from that loop or from worker threads.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        workers: int = 1,
        max_queue_size: int = 10000,
    ):
        self._session_factory = session_factory
        self._worker_count = max(1, workers)
        self._max_queue_size = max_queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._workers: list[asyncio.Task] = []
        self.written = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return bool(self._workers) and not all(w.done() for w in self._workers)

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._workers = [
            asyncio.create_task(self._worker(), name=f"audit-worker-{n}")
            for n in range(self._worker_count)
        ]
        logger.info("Audit recorder started with %d worker(s)", self._worker_count)

    async def drain(self) -> None:
        """Wait until every queued event has been written or discarded."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 10.0) -> None:
        """Drain pending events (bounded by timeout), then stop the workers."""
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Audit recorder stopped with %d event(s) unwritten", self._queue.qsize())
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Audit recorder stopped (written=%d, failed=%d)", self.written, self.failed)

    def record(
        self,
        actor: Union[Actor, Principal, None],
        table: str,
        record_id: Optional[int],
        action: Union[AuditAction, str],
        before: Any = None,
        after: Any = None,
        description: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> None:
        """
        Queue an audit event. Never raises and never blocks on persistence.

        Args:
            actor: Who acted (an Actor, or the request Principal)
            table: Target table name
            record_id: Target record id
            action: One of the AuditAction kinds
            before: State before the change (any JSON-able object)
            after: State after the change
            description: Free text
            client: IP address and user agent of the caller
        """
        try:
            if not isinstance(actor, Actor):
                actor = Actor.from_principal(actor)
            event = AuditEvent(
                actor=actor,
                table_name=table,
                record_id=int(record_id) if record_id is not None else None,
                action=AuditAction(action),
                old_values=to_json(before),
                new_values=to_json(after),
                description=description,
                client=client or ClientMeta(),
            )
            self._submit(event)
        except Exception:
            self.failed += 1
            logger.exception("Failed to queue audit event for %s", table)

    def record_simple(
        self,
        actor: Union[Actor, Principal, None],
        action: Union[AuditAction, str],
        description: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> None:
        """Audit an action that has no target record or state (login, logout)."""
        self.record(actor, SYSTEM_TABLE, None, action, description=description, client=client)

    def _submit(self, event: AuditEvent) -> None:
        if not self.running or self._loop is None or self._loop.is_closed():
            raise AuditWriteFailed("Audit recorder is not running")
        if threading.get_ident() == self._loop_thread:
            self._enqueue(event)
        else:
            self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: AuditEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.failed += 1
            logger.error(
                "Audit queue full; dropped %s on %s#%s by %s",
                event.action.value, event.table_name, event.record_id, event.actor.email,
            )

    async def _worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._write(event)
                self.written += 1
                logger.info(
                    "Audit recorded: %s - %s on %s#%s",
                    event.action.value, event.actor.name or event.actor.email, event.table_name, event.record_id,
                )
            except Exception as e:
                self.failed += 1
                logger.error("%s: %s %s#%s: %s", AuditWriteFailed.default_message,
                             event.action.value, event.table_name, event.record_id, e, exc_info=True)
            finally:
                self._queue.task_done()

    async def _write(self, event: AuditEvent) -> None:
        async with self._session_factory() as session:
            session.add(event.to_model())
            await session.commit()
