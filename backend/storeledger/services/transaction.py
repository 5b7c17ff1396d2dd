# Overview: Unit-of-work boundary shared by every ledger service.

"""
Scoped transactions.

Every core operation is one short transaction: begin, read what it needs,
check invariants, write, then commit. Any exception inside the block rolls
the whole unit back before it propagates, so readers never see a partial
settlement, receipt or audit completion.

Nesting: a service that runs inside another service's transaction (the
allocator inside settlement, the demand-notice cascade inside a stock
credit) joins the outer unit instead of committing on its own.

SQLite ignores SELECT ... FOR UPDATE, so the outermost block issues
BEGIN IMMEDIATE there; concurrent writers queue on the database lock
instead of interleaving their read-check-write sequences.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, OperationalError

from ..errors import StoreUnavailable
from ..extensions import db


logger = logging.getLogger(__name__)

_DEPTH_KEY = "storeledger.transaction_depth"


def lock_for_update(query):
    """
    Apply row-level locking for critical reads.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; BEGIN IMMEDIATE covers it there.
    """
    return query.with_for_update()


def _begin_immediate(session) -> None:
    conn = session.connection()
    if conn.dialect.name != "sqlite":
        return
    raw = conn.connection.dbapi_connection
    # Pending writes from the caller mean the driver already opened a transaction
    if not raw.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def in_transaction() -> bool:
    return bool(db.session.info.get(_DEPTH_KEY))


@contextmanager
def scoped_transaction():
    """
    Run the enclosed block as one atomic unit of work.

    Commits on normal exit of the outermost block, rolls back on any
    exception. Store transport failures surface as StoreUnavailable.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)

    if depth:
        session.info[_DEPTH_KEY] = depth + 1
        try:
            yield session
        finally:
            session.info[_DEPTH_KEY] = depth
        return

    session.info[_DEPTH_KEY] = 1
    try:
        try:
            _begin_immediate(session)
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
    except OperationalError as exc:
        logger.warning("Store operation failed, transaction rolled back: %s", exc)
        raise StoreUnavailable("Database is unavailable or locked, please retry") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise StoreUnavailable("Database connection was lost, please retry") from exc
        raise
    finally:
        session.info.pop(_DEPTH_KEY, None)
