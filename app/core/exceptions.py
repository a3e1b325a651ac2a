# app/core/exceptions.py
"""Custom exceptions for the HR chat application."""
from fastapi import HTTPException
from typing import Any, Dict, List, Optional


class HRChatException(HTTPException):
    """Base exception for the HR chat application."""
    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(HRChatException):
    """Raised when a resource does not exist (or is not visible to the caller)."""
    def __init__(self, resource: str, id: Optional[str] = None):
        message = f"{resource} not found"
        if id:
            message += f" with id: {id}"
        super().__init__(status_code=404, detail=message)


class ValidationError(HRChatException):
    """Raised for validation errors that are detected past request parsing."""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(status_code=422, detail=message)
        self.fields: List[str] = [field] if field else []


class UnauthorizedError(HRChatException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            status_code=401,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(HRChatException):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(status_code=403, detail=message)
