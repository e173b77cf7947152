from typing import Any, Optional

from fastapi.responses import JSONResponse


def json_response(content: Any, status: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status, content=content)


def message_response(message: str, status: int = 200, **extra: Any) -> JSONResponse:
    content = {"message": message}
    content.update(extra)
    return JSONResponse(status_code=status, content=content)


def error_response(error: str, status: int = 400, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": error},
        headers=headers,
    )
