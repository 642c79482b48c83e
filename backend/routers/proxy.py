import logging
from urllib.parse import urlsplit

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from backend.config import get_settings
from backend.dependencies import get_upstream_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ollama", tags=["proxy"])

SERVER_HEADER = "x-ollama-server"

# Hop-by-hop or proxy-specific request headers that must not reach upstream
_DROPPED_REQUEST_HEADERS = {
    "host", "content-length", "connection", "transfer-encoding",
    "accept-encoding", SERVER_HEADER,
}


def resolve_target(header_value: str | None) -> str:
    """Pick the generation server for this request and validate it."""
    settings = get_settings()
    target = (header_value or "").strip().rstrip("/") or settings.ollama_default_server.rstrip("/")
    parts = urlsplit(target)
    if parts.scheme not in settings.allowed_upstream_schemes or not parts.netloc:
        raise HTTPException(status_code=400, detail=f"Invalid generation server: {target}")
    return target


@router.api_route("/{path:path}", methods=["GET", "POST", "DELETE", "HEAD"])
async def proxy(
    path: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_upstream_client),
):
    """Forward a request to the generation server and stream the answer back."""
    try:
        target = resolve_target(request.headers.get(SERVER_HEADER))
    except HTTPException:
        await client.aclose()
        raise

    url = f"{target}/{path.lstrip('/')}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    headers = {
        k: v for k, v in request.headers.items() if k.lower() not in _DROPPED_REQUEST_HEADERS
    }
    body = await request.body()

    upstream_request = client.build_request(
        request.method, url, headers=headers, content=body or None
    )
    try:
        upstream = await client.send(upstream_request, stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        logger.warning("Upstream %s unreachable: %s", target, e)
        raise HTTPException(status_code=502, detail=f"Generation server unreachable: {e}")

    logger.info("%s %s -> %s", request.method, url, upstream.status_code)

    async def _close():
        await upstream.aclose()
        await client.aclose()

    return StreamingResponse(
        upstream.aiter_bytes(),
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
        headers={"Cache-Control": "no-store"},
        background=BackgroundTask(_close),
    )
