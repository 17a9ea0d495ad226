# api/_resp.py
from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_jsonable(d) for d in data]
    return data


def ok(data: Any = None, **extras):
    payload = {"status": "success"}
    if data is not None:
        payload["data"] = _jsonable(data)
    if extras:
        payload.update(extras)
    return payload


def fail(status: int, message: str):
    raise HTTPException(status, message)
