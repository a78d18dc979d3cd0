"""Access to the libpq wrapper provided by psycopg.

psycopg ships libpq bindings in several flavours (C extension, binary wheel,
ctypes). The module is imported lazily so importing ``pgexec`` never fails
just because libpq is missing; the failure surfaces on first connect.
"""

from types import ModuleType
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class PgNativeError(Exception):
    """Error loading the libpq wrapper."""

    pass


_pq: Optional[ModuleType] = None


def _load_pq() -> ModuleType:
    """Import psycopg's libpq wrapper.

    Returns:
        The ``psycopg.pq`` module.

    Raises:
        PgNativeError: If psycopg or libpq cannot be loaded.
    """
    try:
        from psycopg import pq
    except ImportError as e:
        raise PgNativeError(
            f"Could not load libpq through psycopg: {e}. "
            "Install with: pip install 'psycopg[binary]'"
        ) from e

    logger.debug(f"Loaded libpq {pq.version()} via psycopg.pq ({pq.__impl__} implementation)")
    return pq


def get_pq() -> ModuleType:
    """Get loaded libpq wrapper (lazy initialization)."""
    global _pq
    if _pq is None:
        _pq = _load_pq()
    return _pq
