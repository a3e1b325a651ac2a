# app/utils/responses.py
"""Success envelope shared by every endpoint."""
from typing import Any, Optional


def success_response(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"status": "success"}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body
