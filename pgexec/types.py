"""Core types for query execution and result typing."""

from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union
from uuid import UUID

# Closed set of values produced by untyped decoding. JSON columns decode to
# whatever json.loads returns.
PgValue = Union[None, bool, int, float, Decimal, str, bytes, date, time, datetime, UUID, dict, list]

TypeSchema = Sequence[Any]
Params = Sequence[Any]


class ConnectionState(Enum):
    """Lifecycle of a connection handle."""

    disconnected = "disconnected"
    connected = "connected"
    closed = "closed"


class ExecMode(Enum):
    """How decoded rows are delivered to the caller."""

    materialized = "materialized"
    streamed = "streamed"


@dataclass(frozen=True)
class Field:
    """Column metadata from the row description."""

    name: str
    type_oid: int

    def __repr__(self) -> str:
        return f"Field({self.name!r}, oid={self.type_oid})"


class Row:
    """Ordered decoded values paired with their column metadata.

    Supports positional access, lookup by column name, and attribute access.
    """

    __slots__ = ("_values", "_fields")

    def __init__(self, values: Sequence[Any], fields: Sequence[Field]):
        self._values = tuple(values)
        self._fields = tuple(fields)

    @property
    def values(self) -> Tuple[Any, ...]:
        return self._values

    @property
    def fields(self) -> Tuple[Field, ...]:
        return self._fields

    def _index_of(self, name: str) -> int:
        for idx, f in enumerate(self._fields):
            if f.name == name:
                return idx
        raise KeyError(name)

    def __getitem__(self, key: Union[int, slice, str]) -> Any:
        if isinstance(key, str):
            return self._values[self._index_of(key)]
        return self._values[key]

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"Column '{name}' not found") from None

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._values == other._values and self._fields == other._fields
        if isinstance(other, (tuple, list)):
            return self._values == tuple(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._values, self._fields))

    def __repr__(self) -> str:
        return f"Row{self._values!r}"

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def as_dict(self) -> dict:
        """Map column names to values. Later duplicate names win."""
        return {f.name: v for f, v in zip(self._fields, self._values)}


class Result:
    """Materialized result set: rows in arrival order plus shared field metadata.

    Immutable once constructed.
    """

    __slots__ = ("_fields", "_rows")

    def __init__(self, fields: Sequence[Field] = (), rows: Sequence[Row] = ()):
        self._fields = tuple(fields)
        self._rows = tuple(rows)

    @property
    def fields(self) -> Tuple[Field, ...]:
        return self._fields

    @property
    def rows(self) -> Tuple[Row, ...]:
        return self._rows

    @property
    def column_names(self) -> List[str]:
        return [f.name for f in self._fields]

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __getitem__(self, index: int) -> Row:
        return self._rows[index]

    def __repr__(self) -> str:
        return f"Result(columns={self.column_names}, rows={len(self._rows)})"

    def one(self) -> Row:
        """Get exactly one row.

        Raises:
            PgError: If result has 0 or more than 1 row.
        """
        from .exceptions import PgError

        if len(self._rows) != 1:
            raise PgError(f"Expected exactly 1 row, got {len(self._rows)}")
        return self._rows[0]

    def first(self) -> Optional[Row]:
        """Get first row or None."""
        return self._rows[0] if self._rows else None

    def scalar(self) -> Any:
        """Get first column of first row.

        Raises:
            PgError: If result has no rows or no columns.
        """
        from .exceptions import PgError

        row = self.first()
        if row is None or len(row) == 0:
            raise PgError("Result is empty")
        return row[0]

    def to_dicts(self) -> List[dict]:
        """Convert every row to a column-name mapping."""
        return [row.as_dict() for row in self._rows]


@dataclass(frozen=True)
class Notice:
    """Informational message from the server (NOTICE, WARNING, INFO, ...)."""

    severity: str
    message: str
    code: Optional[str] = None
    detail: Optional[str] = None
    hint: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    """LISTEN/NOTIFY message."""

    channel: str
    payload: str
    pid: int


class Version(NamedTuple):
    """Server version as reported by version()."""

    major: int
    minor: int
    patch: int


RowHandler = Callable[[Row, Tuple[Field, ...]], Any]
NoticeHandler = Callable[[Notice], Any]
NotificationHandler = Callable[[Notification], Any]


@dataclass(frozen=True)
class ExecRequest:
    """Normalized description of one exec call.

    An empty ``types`` means untyped decoding.
    """

    query: str
    params: Tuple[Any, ...] = ()
    types: Tuple[Any, ...] = ()
    mode: ExecMode = ExecMode.materialized
    handler: Optional[RowHandler] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.mode is ExecMode.streamed and self.handler is None:
            raise ValueError("streamed request requires a row handler")

    @classmethod
    def build(
        cls,
        query: str,
        params: Optional[Params] = None,
        types: Optional[TypeSchema] = None,
        handler: Optional[RowHandler] = None,
    ) -> "ExecRequest":
        mode = ExecMode.materialized if handler is None else ExecMode.streamed
        return cls(
            query=query,
            params=tuple(params or ()),
            types=tuple(types or ()),
            mode=mode,
            handler=handler,
        )
