"""Shared utility functions for service layer."""
import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.exceptions import ConflictError, ServiceError, TransientError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def atomic(
    db: AsyncSession,
    operation: str,
    timeout_seconds: float,
) -> AsyncGenerator[None]:
    """
    Run the enclosed block as one all-or-nothing transaction.

    Commits when the block exits normally. On any error the transaction is rolled
    back before the error propagates, so no partial row/counter state is ever
    committed:

    - ServiceError (NotFound, Conflict, ...) is re-raised unchanged.
    - IntegrityError becomes ConflictError (a concurrent writer won a uniqueness race).
    - Other DBAPIError and a timeout become TransientError (safe to retry).

    Callers must only touch the cache after this context exits successfully.
    """
    try:
        async with asyncio.timeout(timeout_seconds):
            yield
            await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        logger.warning("transaction_conflict", extra={"operation": operation, "error": str(e.orig)})
        raise ConflictError(f"{operation} conflicted with a concurrent change") from e
    except DBAPIError as e:
        await db.rollback()
        logger.warning("transaction_failed", extra={"operation": operation, "error": str(e.orig)})
        raise TransientError(f"{operation} failed, store unavailable") from e
    except TimeoutError as e:
        await db.rollback()
        logger.warning(
            "transaction_timeout",
            extra={"operation": operation, "timeout_seconds": timeout_seconds},
        )
        raise TransientError(f"{operation} timed out after {timeout_seconds}s") from e
    except Exception:
        await db.rollback()
        logger.exception("transaction_error", extra={"operation": operation})
        raise

