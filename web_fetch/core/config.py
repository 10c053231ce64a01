import json
import os
from typing import Optional

class Settings:
    # Cache
    CACHE_TTL_SECONDS: float = float(os.getenv("CACHE_TTL_SECONDS", "900"))
    CACHE_SWEEP_INTERVAL_SECONDS: float = float(os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "300"))

    # Process supervision
    PROCESS_GRACE_SECONDS: float = float(os.getenv("PROCESS_GRACE_SECONDS", "5"))
    RUNNER_PROBE_TIMEOUT_SECONDS: float = float(os.getenv("RUNNER_PROBE_TIMEOUT_SECONDS", "5"))

    # Scraping
    REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "30"))
    USER_AGENT: str = os.getenv("USER_AGENT", "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36")
    # Playwright / JS rendering
    PLAYWRIGHT_HEADLESS: bool = os.getenv("PLAYWRIGHT_HEADLESS", "1").lower() in ("1", "true", "yes")
    BROWSER_EXECUTABLE_PATH: Optional[str] = os.getenv("BROWSER_EXECUTABLE_PATH") or None
    JS_WAIT_TIMEOUT_MS: int = int(os.getenv("JS_WAIT_TIMEOUT_MS", "10000"))

    # Extraction tool (empty means auto-detect a Python tool runner)
    EXTRACTOR_COMMAND: Optional[str] = os.getenv("EXTRACTOR_COMMAND") or None

    # Answering sub-process
    ANSWER_COMMAND: str = os.getenv("ANSWER_COMMAND", "pi")
    ANSWER_MODEL: Optional[str] = os.getenv("ANSWER_MODEL") or None
    ANSWER_THINKING_LEVEL: str = os.getenv("ANSWER_THINKING_LEVEL", "low")
    CONFIG_PATH: str = os.getenv(
        "WEB_FETCH_CONFIG_PATH",
        os.path.join(os.path.expanduser("~"), ".web_fetch", "config.json"),
    )

    # Output strategy
    CONTENT_SIZE_THRESHOLD: int = int(os.getenv("CONTENT_SIZE_THRESHOLD", "50000"))
    TRUNCATE_MAX_LINES: int = int(os.getenv("TRUNCATE_MAX_LINES", "2000"))
    TRUNCATE_MAX_BYTES: int = int(os.getenv("TRUNCATE_MAX_BYTES", str(50 * 1024)))

settings = Settings()


def load_answer_config(path: Optional[str] = None) -> dict:
    """
    Read model overrides from the optional JSON config file.

    Returns a dict with ``model`` and ``thinking_level`` keys (either may be None).
    A missing or unreadable file silently yields no overrides.
    """
    path = path or settings.CONFIG_PATH
    overrides = {"model": None, "thinking_level": None}
    try:
        with open(path, encoding="utf-8") as fh:
            raw = json.load(fh)
    except (OSError, ValueError):
        return overrides

    if not isinstance(raw, dict):
        return overrides

    model = raw.get("model")
    thinking = raw.get("thinkingLevel")
    if isinstance(model, str) and model.strip():
        overrides["model"] = model.strip()
    if isinstance(thinking, str) and thinking.strip():
        overrides["thinking_level"] = thinking.strip()
    return overrides


def resolve_answer_config(overrides: Optional[dict] = None) -> dict:
    """Merge file overrides over the service defaults. ``model`` is None when no answerer is configured."""
    overrides = overrides or {}
    return {
        "model": overrides.get("model") or settings.ANSWER_MODEL,
        "thinking_level": overrides.get("thinking_level") or settings.ANSWER_THINKING_LEVEL,
    }
