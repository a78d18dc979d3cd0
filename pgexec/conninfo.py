"""Resolved connection parameters.

Connection strings are parsed by ``psycopg.conninfo``; this module only
fills in defaults and normalizes the different ways a caller may describe a
server (nothing, a URL, a key=value string, a mapping).
"""

import getpass
import logging
import os
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import PgConnectionError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432

# Searched in order when PGHOST is unset.
UNIX_SOCKET_DIRS = ("/var/run/postgresql", "/run/postgresql", "/tmp")

_FIELD_ALIASES = {"database": "dbname", "username": "user"}

_ENV_VARS = {
    "host": "PGHOST",
    "port": "PGPORT",
    "user": "PGUSER",
    "password": "PGPASSWORD",
    "dbname": "PGDATABASE",
    "sslmode": "PGSSLMODE",
    "application_name": "PGAPPNAME",
    "connect_timeout": "PGCONNECT_TIMEOUT",
}


def _default_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "postgres"


def _default_host(port: Any) -> str:
    try:
        port = int(port)
    except (TypeError, ValueError):
        port = DEFAULT_PORT
    for directory in UNIX_SOCKET_DIRS:
        if os.path.exists(os.path.join(directory, f".s.PGSQL.{port}")):
            return directory
    return "localhost"


class ConnectionParameters(BaseModel):
    """Everything needed to open one session.

    Instances are immutable; use :meth:`with_overrides` to derive a variant.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = "localhost"
    port: int = DEFAULT_PORT
    user: str
    password: Optional[str] = Field(default=None, repr=False)
    dbname: str
    sslmode: Optional[str] = None
    application_name: Optional[str] = None
    connect_timeout: Optional[int] = None
    options: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "ConnectionParameters":
        """Defaults: PG* environment variables, local socket, current OS user."""
        return cls.from_mapping({})

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ConnectionParameters":
        """Build from libpq keywords, filling the gaps with environment defaults.

        ``database`` is accepted for ``dbname``. Unknown keywords, and a string
        ``options`` (libpq's server options keyword), are kept in ``options`` and
        passed through to libpq. Keywords libpq does not know are rejected.
        """
        values: Dict[str, Any] = {}
        options: Dict[str, str] = {}

        for key, value in mapping.items():
            if value is None or value == "":
                continue
            key = _FIELD_ALIASES.get(key, key)
            if key == "options":
                if isinstance(value, Mapping):
                    options.update({str(k): str(v) for k, v in value.items()})
                else:
                    # libpq's own "options" keyword (server command-line options)
                    options["options"] = str(value)
            elif key in cls.model_fields:
                values[key] = value
            else:
                options[key] = str(value)

        for name, var in _ENV_VARS.items():
            if name not in values and os.environ.get(var):
                values[name] = os.environ[var]

        values.setdefault("host", _default_host(values.get("port", DEFAULT_PORT)))
        values.setdefault("user", _default_user())
        values.setdefault("dbname", values["user"])
        values["options"] = options
        return cls._validated(values)

    @classmethod
    def from_conninfo(cls, conninfo: str) -> "ConnectionParameters":
        """Parse a ``postgres://`` URL or a ``key=value`` conninfo string."""
        import psycopg
        from psycopg.conninfo import conninfo_to_dict

        try:
            parsed = conninfo_to_dict(conninfo)
        except psycopg.Error as e:
            raise PgConnectionError(f"Invalid connection string: {e}") from e
        return cls.from_mapping(parsed)

    @classmethod
    def _validated(cls, values: Mapping[str, Any]) -> "ConnectionParameters":
        try:
            params = cls(**values)
        except ValidationError as e:
            raise PgConnectionError(f"Invalid connection parameters: {e}") from e
        params.to_conninfo()
        return params

    def with_overrides(self, **overrides: Any) -> "ConnectionParameters":
        if not overrides:
            return self
        values = self.model_dump()
        options = dict(values.pop("options"))
        for key, value in overrides.items():
            key = _FIELD_ALIASES.get(key, key)
            if key in type(self).model_fields and key != "options":
                values[key] = value
            else:
                options[key] = str(value)
        values["options"] = options
        return self._validated(values)

    def to_conninfo(self) -> str:
        """Render as a libpq conninfo string.

        Raises:
            PgConnectionError: If libpq rejects a keyword or value.
        """
        import psycopg
        from psycopg.conninfo import make_conninfo

        kwargs = {
            name: str(value)
            for name, value in self.model_dump(exclude={"options"}).items()
            if value is not None
        }
        kwargs.update(self.options)
        try:
            return make_conninfo("", **kwargs)
        except psycopg.Error as e:
            raise PgConnectionError(f"Invalid connection parameters: {e}") from e

    def __str__(self) -> str:
        return f"postgres://{self.user}@{self.host}:{self.port}/{self.dbname}"


ConnInfoSource = Union[None, ConnectionParameters, str, Mapping[str, Any]]


def resolve(source: ConnInfoSource = None, **overrides: Any) -> ConnectionParameters:
    """Turn any supported connection description into ConnectionParameters.

    Args:
        source: None (environment defaults), ConnectionParameters, a URL or
            conninfo string, or a mapping of libpq keywords.
        **overrides: Keywords applied on top of the resolved parameters.

    Raises:
        TypeError: If ``source`` has an unsupported type.
        PgConnectionError: If the description cannot be parsed.
    """
    if source is None:
        params = ConnectionParameters.from_env()
    elif isinstance(source, ConnectionParameters):
        params = source
    elif isinstance(source, str):
        params = ConnectionParameters.from_conninfo(source)
    elif isinstance(source, Mapping):
        params = ConnectionParameters.from_mapping(source)
    else:
        raise TypeError(f"Unsupported connection source: {type(source).__name__}")

    params = params.with_overrides(**overrides)
    logger.debug(f"Resolved connection parameters: {params}")
    return params
