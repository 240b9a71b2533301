from fastapi import Request
from fastapi.responses import JSONResponse
from typing import Any, Optional

def api_response(
    data: Any = None,
    message: Optional[str] = None,
    success: bool = True,
    status_code: int = 200,
    headers: dict = None,
):
    payload = {
        "success": success,
        "message": message,
        "data": data
    }

    return JSONResponse(
        content=payload,
        status_code=status_code,
        headers=headers
    )


def client_ip(request: Request) -> str:
    # first hop of X-Forwarded-For when running behind the reverse proxy
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
