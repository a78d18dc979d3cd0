"""Query dispatch: protocol path selection and row delivery."""

import logging
from typing import Iterator, List, Optional, Tuple

from .decoder import ResultDecoder
from .exceptions import PgQueryError
from .session import (
    CommandComplete,
    DataRow,
    ErrorResponse,
    Event,
    ProtocolSession,
    RowDescription,
)
from .types import ExecMode, ExecRequest, Field, Result, Row, RowHandler

logger = logging.getLogger(__name__)


class ResultMaterializer:
    """Buffers decoded rows into a Result."""

    def __init__(self) -> None:
        self.fields: Tuple[Field, ...] = ()
        self._rows: List[Row] = []

    def describe(self, fields: Tuple[Field, ...]) -> None:
        self.fields = fields

    def accept(self, row: Row) -> None:
        self._rows.append(row)

    def result(self) -> Result:
        return Result(self.fields, self._rows)


class ResultStreamer:
    """Hands each decoded row to the caller's handler and keeps nothing."""

    def __init__(self, handler: RowHandler) -> None:
        self.handler = handler
        self.fields: Tuple[Field, ...] = ()

    def describe(self, fields: Tuple[Field, ...]) -> None:
        self.fields = fields

    def accept(self, row: Row) -> None:
        self.handler(row, self.fields)


def query_error(event: ErrorResponse) -> PgQueryError:
    return PgQueryError(
        event.message,
        code=event.code,
        detail=event.detail,
        severity=event.severity,
        hint=event.hint,
    )


class QueryDispatcher:
    """Drives a protocol session for one request at a time.

    Extended requests always go through bind/execute, even without
    parameters, so every result carries column types.
    """

    def __init__(self, session: ProtocolSession):
        self.session = session

    def dispatch(self, request: ExecRequest) -> Optional[Result]:
        """Execute a request on the extended path.

        Returns:
            Result for materialized requests, None for streamed ones.

        Raises:
            PgQueryError: Server rejected the statement.
            PgDecodeError: A row did not match the declared types.
        """
        decoder = ResultDecoder(request.types)
        if request.mode is ExecMode.streamed:
            sink = ResultStreamer(request.handler)
        else:
            sink = ResultMaterializer()

        logger.debug(
            f"Extended query ({request.mode.value}, {len(request.params)} params): {request.query}"
        )
        events = self.session.run_extended(request.query, request.params)
        try:
            self._consume(events, decoder, sink)
        finally:
            _close(events)

        if isinstance(sink, ResultMaterializer):
            return sink.result()
        return None

    def dispatch_simple(self, query: str) -> None:
        """Execute one or more statements on the simple path, discarding rows."""
        logger.debug(f"Simple query: {query}")
        events = self.session.run_simple(query)
        try:
            for event in events:
                if isinstance(event, ErrorResponse):
                    raise query_error(event)
        finally:
            _close(events)

    def _consume(self, events: Iterator[Event], decoder: ResultDecoder, sink) -> None:
        fields: Tuple[Field, ...] = ()
        for event in events:
            if isinstance(event, DataRow):
                sink.accept(decoder.decode(event.values, fields))
            elif isinstance(event, RowDescription):
                fields = event.fields
                sink.describe(fields)
            elif isinstance(event, ErrorResponse):
                raise query_error(event)
            elif isinstance(event, CommandComplete):
                logger.debug(f"Command complete: {event.tag}")


def _close(events: Iterator[Event]) -> None:
    close = getattr(events, "close", None)
    if callable(close):
        close()
