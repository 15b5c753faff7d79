"""
Error types - Ingestion engine errors and standardized API error responses
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# Ingestion Engine Errors
# ============================================================================

class IngestionError(Exception):
    """Base class for errors raised inside the ingestion pipeline"""


class LLMServiceError(IngestionError):
    """An LLM provider could not be reached or answered with an error"""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class NormalizationError(IngestionError):
    """The normalization service failed, timed out or returned a malformed record"""


class ListNotFoundError(IngestionError):
    """The target shopping list does not exist (or was deleted concurrently)"""

    def __init__(self, list_id: str):
        self.list_id = list_id
        super().__init__(f"Shopping list not found: {list_id}")


class PersistenceWriteError(IngestionError):
    """Writing a list's items to the store failed"""

    def __init__(self, list_id: str, reason: str):
        self.list_id = list_id
        self.reason = reason
        super().__init__(f"Failed to write shopping list {list_id}: {reason}")


class NoOpenProposalError(IngestionError):
    """A proposal decision was submitted while no merge proposal is open"""

    def __init__(self):
        super().__init__("No merge proposal is awaiting a decision")


# ============================================================================
# API Errors
# ============================================================================

class APIError(HTTPException):
    """
    Base API error with standardized format.

    All API errors use this format for consistency:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable message",
            "details": {...}  # Optional additional info
        }
    }
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "error": {
                    "code": code,
                    "message": message,
                    "details": self.details
                }
            }
        )


class NotFoundError(APIError):
    """Resource not found"""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message += f": {identifier}"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            message=message,
            details={"resource": resource, "identifier": identifier}
        )


class ConflictError(APIError):
    """Request conflicts with the current state"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code="CONFLICT",
            message=message,
            details=details
        )


class InvalidInputError(APIError):
    """Invalid input data"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="INVALID_INPUT",
            message=message,
            details=details
        )


class InternalServerError(APIError):
    """Internal server error"""

    def __init__(self, message: str = "An internal server error occurred"):
        # Log the error but don't expose details to client
        logger.error(f"Internal server error: {message}")

        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="INTERNAL_SERVER_ERROR",
            message="An internal server error occurred. Please try again later."
        )


class ServiceUnavailableError(APIError):
    """Service temporarily unavailable"""

    def __init__(self, service: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="SERVICE_UNAVAILABLE",
            message=f"{service} is temporarily unavailable. Please try again later.",
            details={"service": service}
        )


# ============================================================================
# Helper Functions
# ============================================================================

def to_api_error(error: IngestionError) -> APIError:
    """
    Map an ingestion engine error to the API error a router should raise.

    Args:
        error: The engine error

    Returns:
        The matching APIError instance
    """
    if isinstance(error, ListNotFoundError):
        return NotFoundError("Shopping list", error.list_id)
    if isinstance(error, NoOpenProposalError):
        return ConflictError(str(error))
    if isinstance(error, PersistenceWriteError):
        logger.error(f"Persistence failure: {error}")
        return ServiceUnavailableError("Shopping list storage")
    if isinstance(error, (NormalizationError, LLMServiceError)):
        return ServiceUnavailableError("Item understanding service")
    return InternalServerError(str(error))


def handle_unexpected_error(error: Exception, context: str):
    """
    Handle unexpected errors with logging.

    Args:
        error: The caught exception
        context: Description of where the error occurred

    Raises:
        InternalServerError: With generic message (hides implementation details)
    """
    logger.error(f"Unexpected error in {context}: {str(error)}", exc_info=True)
    raise InternalServerError(f"Error in {context}")
