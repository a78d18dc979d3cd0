"""Protocol session boundary.

A protocol session owns the socket and turns one request into a stream of raw
events. :class:`PqSession` implements it on top of libpq through
``psycopg.pq``; tests substitute scripted sessions with the same shape.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Callable, Iterator, List, Optional, Protocol, Sequence, Tuple, Union

from .bindings import PgNativeError, get_pq
from .conninfo import ConnectionParameters
from .exceptions import PgConnectionError
from .types import Field, Notice, Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowDescription:
    fields: Tuple[Field, ...]


@dataclass(frozen=True)
class DataRow:
    values: Tuple[Optional[bytes], ...]


@dataclass(frozen=True)
class CommandComplete:
    tag: str


@dataclass(frozen=True)
class ErrorResponse:
    """Server error for the current statement."""

    severity: str
    message: str
    code: Optional[str] = None
    detail: Optional[str] = None
    hint: Optional[str] = None


Event = Union[RowDescription, DataRow, CommandComplete, ErrorResponse]


class ProtocolSession(Protocol):
    """What the dispatcher needs from a wire-protocol session."""

    notice_handler: Optional[Callable[[Notice], Any]]
    notification_handler: Optional[Callable[[Notification], Any]]

    def connect(self, params: ConnectionParameters) -> None: ...

    def close(self) -> None: ...

    def run_simple(self, query: str) -> Iterator[Event]: ...

    def run_extended(self, query: str, params: Sequence[Any]) -> Iterator[Event]: ...


def encode_param(value: Any) -> Optional[bytes]:
    """Render a parameter in PostgreSQL text input format."""
    if value is None:
        return None
    if isinstance(value, bool):
        return b"t" if value else b"f"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return b"\\x" + bytes(value).hex().encode("ascii")
    if isinstance(value, (datetime, date, time)):
        return value.isoformat().encode("ascii")
    if isinstance(value, (dict, list)):
        return json.dumps(value).encode("utf-8")
    return str(value).encode("utf-8")


def _opt_text(raw: Optional[bytes]) -> Optional[str]:
    if raw is None:
        return None
    return raw.decode("utf-8", "replace")


class PqSession:
    """libpq-backed protocol session.

    Rows of extended queries are fetched in single-row mode, so a streaming
    consumer never holds more than one row at a time. Notices and
    notifications are queued while libpq reads and handed to the registered
    handlers between results, from Python code, so handler exceptions
    propagate to the caller.
    """

    def __init__(self) -> None:
        self._pgconn: Any = None
        self._pending_notices: List[Notice] = []
        self.notice_handler: Optional[Callable[[Notice], Any]] = None
        self.notification_handler: Optional[Callable[[Notification], Any]] = None

    def connect(self, params: ConnectionParameters) -> None:
        """Open the libpq connection.

        Raises:
            PgConnectionError: If libpq is unavailable or the server rejects
                or cannot be reached.
        """
        try:
            pq = get_pq()
        except PgNativeError as e:
            raise PgConnectionError(str(e)) from e

        if "client_encoding" not in params.options:
            params = params.with_overrides(client_encoding="UTF8")

        logger.debug(f"Connecting to {params}")
        pgconn = pq.PGconn.connect(params.to_conninfo().encode("utf-8"))
        if pgconn.status != pq.ConnStatus.OK:
            message = _opt_text(pgconn.error_message) or "unknown error"
            pgconn.finish()
            raise PgConnectionError(f"Failed to connect to {params}: {message.strip()}")

        pgconn.notice_handler = self._queue_notice
        self._pgconn = pgconn
        logger.debug(f"Connected to {params} (backend pid {pgconn.backend_pid})")

    def close(self) -> None:
        pgconn, self._pgconn = self._pgconn, None
        self._pending_notices.clear()
        if pgconn is not None:
            pgconn.finish()
            logger.debug("Session closed")

    def _require(self) -> Any:
        pq = get_pq()
        if self._pgconn is None:
            raise PgConnectionError("connection is not open")
        if self._pgconn.status != pq.ConnStatus.OK:
            raise PgConnectionError("connection is broken")
        return self._pgconn

    def run_simple(self, query: str) -> Iterator[Event]:
        import psycopg

        pgconn = self._require()
        try:
            pgconn.send_query(query.encode("utf-8"))
        except psycopg.Error as e:
            raise PgConnectionError(f"Failed to send query: {e}") from e
        return self._results(pgconn)

    def run_extended(self, query: str, params: Sequence[Any]) -> Iterator[Event]:
        import psycopg

        pq = get_pq()
        pgconn = self._require()
        values = [encode_param(p) for p in params]
        try:
            pgconn.send_query_params(
                query.encode("utf-8"), values, result_format=pq.Format.TEXT
            )
            pgconn.set_single_row_mode()
        except psycopg.Error as e:
            raise PgConnectionError(f"Failed to send query: {e}") from e
        return self._results(pgconn)

    def _queue_notice(self, res: Any) -> None:
        pq = get_pq()
        diag = pq.DiagnosticField
        self._pending_notices.append(
            Notice(
                severity=_opt_text(res.error_field(diag.SEVERITY)) or "NOTICE",
                message=_opt_text(res.error_field(diag.MESSAGE_PRIMARY)) or "",
                code=_opt_text(res.error_field(diag.SQLSTATE)),
                detail=_opt_text(res.error_field(diag.MESSAGE_DETAIL)),
                hint=_opt_text(res.error_field(diag.MESSAGE_HINT)),
            )
        )

    def _deliver_async(self, pgconn: Any) -> None:
        notices, self._pending_notices = self._pending_notices, []
        for notice in notices:
            if self.notice_handler is not None:
                self.notice_handler(notice)

        while True:
            notify = pgconn.notifies()
            if notify is None:
                break
            notification = Notification(
                channel=_opt_text(notify.relname) or "",
                payload=_opt_text(notify.extra) or "",
                pid=notify.be_pid,
            )
            if self.notification_handler is not None:
                self.notification_handler(notification)

    def _error_from(self, res: Any) -> ErrorResponse:
        diag = get_pq().DiagnosticField
        message = _opt_text(res.error_field(diag.MESSAGE_PRIMARY))
        if message is None:
            message = (_opt_text(res.error_message) or "unknown error").strip()
        return ErrorResponse(
            severity=_opt_text(res.error_field(diag.SEVERITY)) or "ERROR",
            message=message,
            code=_opt_text(res.error_field(diag.SQLSTATE)),
            detail=_opt_text(res.error_field(diag.MESSAGE_DETAIL)),
            hint=_opt_text(res.error_field(diag.MESSAGE_HINT)),
        )

    def _next_result(self, pgconn: Any) -> Any:
        import psycopg

        try:
            return pgconn.get_result()
        except psycopg.Error as e:
            raise PgConnectionError(f"Connection lost: {e}") from e

    def _results(self, pgconn: Any) -> Iterator[Event]:
        pq = get_pq()
        status_ = pq.ExecStatus
        described = False
        finished = False
        failed = False
        try:
            while True:
                res = self._next_result(pgconn)
                if res is None:
                    finished = True
                    self._deliver_async(pgconn)
                    return
                self._deliver_async(pgconn)

                events: List[Event] = []
                status = res.status
                if status == status_.SINGLE_TUPLE:
                    if not described:
                        events.append(RowDescription(_fields(res)))
                        described = True
                    events.append(DataRow(_row(res, 0)))
                elif status == status_.TUPLES_OK:
                    if not described:
                        events.append(RowDescription(_fields(res)))
                    events.extend(DataRow(_row(res, r)) for r in range(res.ntuples))
                    events.append(CommandComplete(_opt_text(res.command_status) or ""))
                    described = False
                elif status in (status_.COMMAND_OK, status_.EMPTY_QUERY):
                    events.append(CommandComplete(_opt_text(res.command_status) or ""))
                elif status in (status_.COPY_IN, status_.COPY_OUT, status_.COPY_BOTH):
                    self._refuse_copy(pgconn, status)
                    events.append(ErrorResponse("ERROR", "COPY is not supported"))
                    failed = True
                else:
                    events.append(self._error_from(res))
                    failed = True
                res.clear()

                yield from events
        finally:
            if not finished and self._pgconn is pgconn:
                self._abandon(pgconn, cancel=not failed)

    def _refuse_copy(self, pgconn: Any, status: Any) -> None:
        pq = get_pq()
        if status == pq.ExecStatus.COPY_IN:
            pgconn.put_copy_end(b"COPY is not supported")
        else:
            while pgconn.get_copy_data(0)[0] >= 0:
                pass

    def _abandon(self, pgconn: Any, cancel: bool) -> None:
        """Discard the rest of an in-flight request so the next one can start."""
        import psycopg

        if cancel:
            logger.debug("Cancelling abandoned query")
            try:
                pgconn.get_cancel().cancel()
            except psycopg.Error as e:
                logger.debug(f"Cancel request failed: {e}")

        while True:
            try:
                res = pgconn.get_result()
            except psycopg.Error as e:
                logger.warning(f"Connection lost while discarding results: {e}")
                return
            if res is None:
                return
            res.clear()


def _fields(res: Any) -> Tuple[Field, ...]:
    return tuple(
        Field(name=_opt_text(res.fname(c)) or "?column?", type_oid=res.ftype(c))
        for c in range(res.nfields)
    )


def _row(res: Any, row: int) -> Tuple[Optional[bytes], ...]:
    return tuple(res.get_value(row, c) for c in range(res.nfields))
