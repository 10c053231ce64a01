import asyncio

from fastapi import APIRouter, HTTPException, Request, status
from web_fetch.schemas import FetchRequest, FetchResponse
from web_fetch.core.config import resolve_answer_config
from web_fetch.core.process import CancelToken
from web_fetch.services.pipeline import process_fetch_request

router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.5

@router.post("/fetch", response_model=FetchResponse)
async def fetch_url(body: FetchRequest, request: Request):
    """
    Fetch a web page and return its main content as markdown.

    With a prompt, an LLM distills the page down to the requested information.
    Without one, the extracted markdown is returned (or a structured summary
    when the page is large). Extracted text is cached per URL for 15 minutes.
    Cross-host redirects are reported rather than followed.
    """
    token = CancelToken()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, token))

    def on_progress(message: str) -> None:
        print(f"PROGRESS {body.url}: {message}")

    try:
        return await process_fetch_request(
            body.url,
            body.prompt,
            cache=request.app.state.cache,
            token=token,
            on_progress=on_progress,
            answer_config=resolve_answer_config(request.app.state.answer_overrides),
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Fetch failed: {str(e)}"
        )
    finally:
        watcher.cancel()

async def _cancel_on_disconnect(request: Request, token: CancelToken):
    """Fire the request's cancellation token when the client goes away."""
    while not token.cancelled:
        if await request.is_disconnected():
            print(f"CLIENT DISCONNECTED, aborting {request.url.path}")
            token.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)

@router.get("/cache/stats")
async def cache_statistics(request: Request):
    """Get cache statistics for debugging"""
    return request.app.state.cache.stats()

@router.delete("/cache/clear")
async def clear_cache(request: Request):
    """Clear all cache entries"""
    request.app.state.cache.clear()
    return {"message": "Cache cleared successfully"}

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Web Fetch"}
