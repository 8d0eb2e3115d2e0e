"""
Error taxonomy shared by the store, the lending workflow and the routes.

Every failure that reaches a client is one of the ``ApiError``
subclasses below and is rendered as::

    {"success": false, "message": "...", "error": "..."}

``message`` is the human readable signal; ``error`` carries the raw
driver or validation detail for diagnostics only.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Type

from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class ValidationError(ApiError):
    """Missing or malformed input, or a duplicate unique key."""

    status_code = 400


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    """A lending state-machine precondition does not hold."""

    status_code = 400


class StoreUnavailable(ApiError):
    status_code = 500


@contextmanager
def store_errors(message: str, rejected: Type[ApiError] = StoreUnavailable) -> Iterator[None]:
    """Translate driver exceptions raised inside the block.

    ``DuplicateKeyError`` always becomes a ``ValidationError``.  Other
    operations the server refused (``OperationFailure``, e.g. a malformed
    client filter or a duplicate inside a bulk insert) become ``rejected``.
    Anything else, such as an unreachable server, is a ``StoreUnavailable``.
    ``message`` is what the client sees, the driver text is kept as the
    ``error`` detail.
    """
    try:
        yield
    except DuplicateKeyError as e:
        logger.warning("%s: duplicate key (%s)", message, e)
        raise ValidationError(message, _driver_detail(e)) from e
    except OperationFailure as e:
        logger.warning("%s: rejected by the server (%s)", message, e)
        raise rejected(message, _driver_detail(e)) from e
    except PyMongoError as e:
        logger.exception(message)
        raise StoreUnavailable(message, _driver_detail(e)) from e


def _driver_detail(exc: PyMongoError) -> str:
    details = getattr(exc, "details", None)
    if isinstance(details, dict) and details.get("errmsg"):
        return str(details["errmsg"])
    return str(exc)
