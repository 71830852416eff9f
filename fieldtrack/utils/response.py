"""
Standard API response envelope.
"""

from typing import Any

from pydantic import BaseModel


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_jsonable(item) for item in data]
    return data


def success_response(data: Any = None, message: str = "Success") -> dict:
    return {"success": True, "data": _jsonable(data), "message": message}


def error_response(message: str = "Error", data: Any = None) -> dict:
    return {"success": False, "data": data, "message": message}
