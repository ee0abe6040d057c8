import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockledger.errors import NotFoundError, OrderStateError


logger = logging.getLogger(__name__)


def http_error(db: Session, exc: Exception) -> HTTPException:
    """Roll back the command and map a service error to an HTTP error."""
    db.rollback()
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, OrderStateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StaleDataError):
        logger.warning("Concurrent modification rejected: %s", exc)
        return HTTPException(status_code=409, detail="Inventory changed concurrently; retry the request.")
    return HTTPException(status_code=400, detail=str(exc))
