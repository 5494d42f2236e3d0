from __future__ import annotations

from fastapi import Request, Response

ALLOWED_ORIGINS = ["*"]
ALLOWED_METHODS = ["GET", "POST", "OPTIONS", "HEAD"]
ALLOWED_HEADERS = ["authorization", "x-user-authorization", "x-client-info", "apikey", "content-type"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
    "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
}


async def options_preflight(request: Request, call_next):
    """Answer bare OPTIONS requests that are not CORS preflights.

    Browser preflights (Origin plus Access-Control-Request-Method) are
    answered by CORSMiddleware before reaching this dispatch.
    """
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    return await call_next(request)
