"""
Response Envelope

Every API response is ``{success, message?, data?, error?}``.
"""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from tokenops.errors import TokenOpsError


def ok(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=body)


def fail(message: str, status_code: int, error: Optional[dict] = None) -> JSONResponse:
    body: dict = {"success": False, "message": message}
    if error:
        body["error"] = error
    return JSONResponse(status_code=status_code, content=body)


def from_error(error: TokenOpsError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if error.status_code == 401 else None
    response = fail(error.message, error.status_code, error.to_dict())
    if headers:
        response.headers.update(headers)
    return response
