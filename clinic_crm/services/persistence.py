"""
Commit / rollback helpers shared by the services

All store failures leave the session rolled back and surface as CrmError
subclasses; callers never see raw SQLAlchemy exceptions.
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from clinic_crm.db import db
from clinic_crm.errors import CrmError, PartialFailureError, PersistenceError, StaleWriteError

logger = logging.getLogger(__name__)


def rollback_or_partial(context: str, original: BaseException):
    """Roll back; if even that fails the store may hold partial writes"""
    try:
        db.session.rollback()
    except SQLAlchemyError as rb_error:
        logger.error(f"[{context}] Rollback failed after {original!r}: {rb_error}", exc_info=True)
        raise PartialFailureError(details={"context": context}) from rb_error


def commit_session(context: str, integrity_handler=None):
    """
    Commit the current session.

    Args:
        context: Log tag of the calling operation
        integrity_handler: Optional callable(IntegrityError) returning an
            exception to raise instead of the generic PersistenceError
            (used to turn unique-index hits back into conflict errors)
    """
    try:
        db.session.commit()
    except StaleDataError as e:
        rollback_or_partial(context, e)
        logger.warning(f"[{context}] Concurrent modification detected: {e}")
        raise StaleWriteError() from e
    except IntegrityError as e:
        rollback_or_partial(context, e)
        logger.warning(f"[{context}] Integrity error: {e.orig}")
        if integrity_handler is not None:
            mapped = integrity_handler(e)
            if mapped is not None:
                raise mapped from e
        raise PersistenceError.from_exception(e) from e
    except SQLAlchemyError as e:
        rollback_or_partial(context, e)
        logger.error(f"[{context}] Commit failed: {e}", exc_info=True)
        raise PersistenceError.from_exception(e) from e


def check_version(record, expected_version):
    """Optimistic concurrency: the caller must have seen the current version"""
    if expected_version is None:
        return
    if int(expected_version) != record.version:
        raise StaleWriteError(details={
            "expected_version": int(expected_version),
            "current_version": record.version,
        })


def flush_session(context: str, integrity_handler=None):
    """
    Flush pending writes (to obtain ids) with the same error mapping as
    commit_session; the transaction stays open on success.
    """
    try:
        db.session.flush()
    except IntegrityError as e:
        rollback_or_partial(context, e)
        logger.warning(f"[{context}] Integrity error on flush: {e.orig}")
        if integrity_handler is not None:
            mapped = integrity_handler(e)
            if mapped is not None:
                raise mapped from e
        raise PersistenceError.from_exception(e) from e
    except SQLAlchemyError as e:
        rollback_or_partial(context, e)
        logger.error(f"[{context}] Flush failed: {e}", exc_info=True)
        raise PersistenceError.from_exception(e) from e


@contextmanager
def write_transaction(context: str):
    """
    Multi-step write block. CrmErrors raised inside have already rolled
    back; anything else rolls back here before propagating.
    """
    try:
        yield
    except CrmError:
        raise
    except Exception as e:
        rollback_or_partial(context, e)
        logger.error(f"[{context}] Write aborted: {e}", exc_info=True)
        raise
