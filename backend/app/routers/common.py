import logging

from fastapi import HTTPException

from ..exceptions import (
    CodecDecodeError,
    EmptyRoute,
    IndexOutOfRange,
    InsufficientPoints,
    InvalidSpeed,
    RouteEngineError,
    RouteNotFound,
    StoreError,
    TripLimitExceeded,
    TripNotFound,
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (TripNotFound, 404),
    (RouteNotFound, 404),
    (TripLimitExceeded, 409),
    (EmptyRoute, 422),
    (InvalidSpeed, 422),
    (CodecDecodeError, 400),
    (InsufficientPoints, 400),
    (IndexOutOfRange, 400),
    (StoreError, 503),
)


def http_error(error: RouteEngineError) -> HTTPException:
    """Translate an engine error into the matching HTTP error."""
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            if status_code >= 500:
                logger.error(f"Route store failure: {str(error)}")
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
