"""
Error taxonomy for the booking engine.

Services raise these; the handler registered in ``icebath.main`` renders them
as ``{"error": code, "message": message}`` with the matching HTTP status.
Messages are customer-facing.
"""

from typing import Any, Dict, Optional


class BookingEngineError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(BookingEngineError):
    code = "not_found"
    status_code = 404


class Conflict(BookingEngineError):
    code = "conflict"
    status_code = 409


class InvalidInput(BookingEngineError):
    code = "invalid_input"
    status_code = 422


class InsufficientFunds(BookingEngineError):
    code = "insufficient_funds"
    status_code = 402


class UpstreamFailure(BookingEngineError):
    code = "upstream_failure"
    status_code = 502


class Unauthorized(BookingEngineError):
    code = "unauthorized"
    status_code = 401
