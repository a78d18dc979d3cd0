"""Row decoding from the PostgreSQL text format.

Untyped decoding picks a converter from the column's type OID. Typed decoding
validates each value against the caller's declared type with pydantic.
"""

import json
import re
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from .exceptions import PgDecodeError
from .types import Field, Row

RawValue = Union[bytes, str, None]

# pg_type OIDs
BOOL = 16
BYTEA = 17
CHAR = 18
NAME = 19
INT8 = 20
INT2 = 21
INT4 = 23
TEXT = 25
OID = 26
JSON = 114
FLOAT4 = 700
FLOAT8 = 701
UNKNOWN = 705
BPCHAR = 1042
VARCHAR = 1043
DATE = 1082
TIME = 1083
TIMESTAMP = 1114
TIMESTAMPTZ = 1184
TIMETZ = 1266
NUMERIC = 1700
UUID = 2950
JSONB = 3802

_TIME_RE = re.compile(
    r"(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,6}))?"
    r"(?:([+-])(\d{2})(?::?(\d{2}))?(?::?(\d{2}))?)?$"
)
_DATE_RE = re.compile(r"(\d{4,})-(\d{2})-(\d{2})")


def _parse_bool(text: str) -> bool:
    if text == "t":
        return True
    if text == "f":
        return False
    raise ValueError(f"invalid boolean {text!r}")


def _parse_bytea(text: str) -> bytes:
    if not text.startswith("\\x"):
        raise ValueError("only the hex bytea output format is supported")
    return bytes.fromhex(text[2:])


def _parse_date(text: str) -> date:
    m = _DATE_RE.fullmatch(text)
    if m is None:
        raise ValueError(f"invalid date {text!r}")
    return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def _parse_time(text: str) -> time:
    m = _TIME_RE.match(text)
    if m is None:
        raise ValueError(f"invalid time {text!r}")
    hour, minute, second, frac, sign, oh, om, os_ = m.groups()
    micro = int(frac.ljust(6, "0")) if frac else 0
    tzinfo = None
    if sign:
        offset = timedelta(hours=int(oh), minutes=int(om or 0), seconds=int(os_ or 0))
        tzinfo = timezone(-offset if sign == "-" else offset)
    return time(int(hour), int(minute), int(second), micro, tzinfo=tzinfo)


def _parse_timestamp(text: str) -> datetime:
    date_part, sep, time_part = text.partition(" ")
    if not sep:
        date_part, sep, time_part = text.partition("T")
    if not sep:
        raise ValueError(f"invalid timestamp {text!r}")
    return datetime.combine(_parse_date(date_part), _parse_time(time_part))


def _parse_decimal(text: str) -> Decimal:
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ValueError(f"invalid numeric {text!r}") from None


# Converters for the closed set of natural values; other OIDs stay text.
CONVERTERS: Dict[int, Callable[[str], Any]] = {
    BOOL: _parse_bool,
    BYTEA: _parse_bytea,
    INT2: int,
    INT4: int,
    INT8: int,
    OID: int,
    FLOAT4: float,
    FLOAT8: float,
    NUMERIC: _parse_decimal,
    DATE: _parse_date,
    TIME: _parse_time,
    TIMETZ: _parse_time,
    TIMESTAMP: _parse_timestamp,
    TIMESTAMPTZ: _parse_timestamp,
    UUID: uuid.UUID,
    JSON: json.loads,
    JSONB: json.loads,
}


def _text(raw: Union[bytes, str]) -> str:
    if isinstance(raw, str):
        return raw
    return raw.decode("utf-8")


def decode_value(raw: RawValue, type_oid: int, column: int = 0) -> Any:
    """Decode one text-format value to its natural Python type.

    Raises:
        PgDecodeError: If the text is not valid for the column's type.
    """
    if raw is None:
        return None
    converter = CONVERTERS.get(type_oid)
    try:
        text = _text(raw)
        return text if converter is None else converter(text)
    except ValueError as e:
        raise PgDecodeError(
            f"Cannot decode column {column} (oid {type_oid}): {e}", column=column
        ) from e


_adapters: Dict[Any, TypeAdapter] = {}


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


def type_adapter(tp: Any) -> TypeAdapter:
    """Cached pydantic adapter for a declared column type."""
    try:
        return _adapters[tp]
    except KeyError:
        adapter = _adapters[tp] = TypeAdapter(tp)
        return adapter
    except TypeError:
        # unhashable type expression
        return TypeAdapter(tp)


class ResultDecoder:
    """Converts raw data rows into Rows.

    Args:
        types: Declared type per output column. Empty means untyped decoding.
    """

    def __init__(self, types: Sequence[Any] = ()):
        self.types: Tuple[Any, ...] = tuple(types)
        self._adapters: Tuple[Optional[TypeAdapter], ...] = tuple(
            None if tp is str else type_adapter(tp) for tp in self.types
        )

    def decode(self, raw_row: Sequence[RawValue], fields: Sequence[Field]) -> Row:
        if not self.types:
            values = [
                decode_value(raw, f.type_oid, idx)
                for idx, (raw, f) in enumerate(zip(raw_row, fields))
            ]
            return Row(values, fields)

        if len(raw_row) != len(self.types):
            raise PgDecodeError(
                f"Row has {len(raw_row)} columns but {len(self.types)} types were given"
            )
        values = [
            self._decode_typed(raw, f, idx)
            for idx, (raw, f) in enumerate(zip(raw_row, fields))
        ]
        return Row(values, fields)

    def _decode_typed(self, raw: RawValue, f: Field, column: int) -> Any:
        if raw is None:
            return None
        adapter = self._adapters[column]
        if adapter is None:
            try:
                return _text(raw)
            except UnicodeDecodeError as e:
                raise PgDecodeError(
                    f"Cannot decode column {column} ({f.name!r}) as text: {e}", column=column
                ) from e

        value = decode_value(raw, f.type_oid, column)
        try:
            return adapter.validate_python(value)
        except ValidationError as e:
            raise PgDecodeError(
                f"Cannot decode column {column} ({f.name!r}, oid {f.type_oid}) "
                f"as {_type_name(self.types[column])}: {value!r}",
                column=column,
                detail=str(e),
            ) from e
