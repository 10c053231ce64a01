from fastapi import FastAPI
from contextlib import asynccontextmanager
from web_fetch.api.routes import router
from web_fetch.cache.memory import ResponseCache
from web_fetch.core.config import load_answer_config, resolve_answer_config
from web_fetch.fetch import extractor

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Start the cache sweep and probe external tools on startup; stop the sweep on shutdown.
    """
    # Startup
    print("Initializing Web Fetch service...")
    app.state.cache = ResponseCache()
    app.state.cache.start()

    app.state.answer_overrides = load_answer_config()
    model = resolve_answer_config(app.state.answer_overrides)["model"]
    print(f"Answer model: {model or 'none configured, LLM processing disabled'}")

    await extractor.detect_runner()

    yield

    # Shutdown
    print("Shutting down Web Fetch service...")
    app.state.cache.stop()

app = FastAPI(
    title="Web Fetch",
    description="Fetch web pages, extract their main content and optionally distill it with an LLM",
    version="1.0.0",
    lifespan=lifespan
)

# Include API routes
app.include_router(router)

@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "service": "Web Fetch",
        "version": "1.0.0",
        "endpoints": {
            "fetch": "POST /fetch",
            "health": "GET /health",
            "cache_stats": "GET /cache/stats",
            "cache_clear": "DELETE /cache/clear"
        }
    }
