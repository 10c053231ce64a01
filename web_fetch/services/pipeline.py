from typing import Callable, Optional

from web_fetch.cache.memory import ResponseCache
from web_fetch.core.config import resolve_answer_config, settings
from web_fetch.core.errors import InvalidLocator
from web_fetch.core.outcomes import (
    AnswerPrompt,
    Answered,
    Decision,
    Failed,
    FallbackRaw,
    Redirected,
    ReturnRaw,
    Summarize,
)
from web_fetch.core.process import CancelToken
from web_fetch.fetch import browser, extractor
from web_fetch.fetch.utils import normalize_url
from web_fetch.llm import client as llm_client
from web_fetch.schemas import FetchResponse
from web_fetch.services.truncate import truncated_text

ProgressCallback = Callable[[str], None]

CONTENT_GUARDRAILS = """Respond concisely using only the page content above.
- Keep direct quotes under 125 characters and always use quotation marks for exact wording.
- Outside of quotes, rephrase in your own words. Never reproduce source text verbatim.
- Open-source code and documentation snippets are fine to include as-is."""

SUMMARIZE_PROMPT = f"""Summarize this page:
1. A 2-3 sentence overview of the page's purpose.
2. For each major section or heading, its name and a 1-2 sentence description.
3. End with: "To extract specific information, fetch the same URL again with a prompt. The page is cached so re-fetching is instant."

{CONTENT_GUARDRAILS}"""

ANSWERER_UNAVAILABLE_NOTE = (
    "Answerer unavailable: no model is configured for LLM processing, so the prompt was not applied. "
    "Returning raw extracted content instead."
)


def decide(prompt_present: bool, content_length: int, answerer_available: bool) -> Decision:
    """Pick the output strategy for extracted content."""
    if prompt_present:
        if answerer_available:
            return AnswerPrompt()
        return FallbackRaw(note=ANSWERER_UNAVAILABLE_NOTE)
    if content_length <= settings.CONTENT_SIZE_THRESHOLD:
        return ReturnRaw()
    if answerer_available:
        return Summarize()
    return ReturnRaw(truncate=True)


async def process_fetch_request(
    url: str,
    prompt: Optional[str] = None,
    *,
    cache: ResponseCache,
    token: CancelToken,
    on_progress: Optional[ProgressCallback] = None,
    answer_config: Optional[dict] = None
) -> FetchResponse:
    """
    Main pipeline for a fetch request.

    1. Normalize the URL
    2. Serve extracted text from cache when present
    3. Otherwise render -> (cross-host redirect: stop) -> extract -> cache
    4. Return raw text, a summary or a prompted answer depending on size and prompt
    """
    notify = on_progress or _no_progress
    answer_config = answer_config or resolve_answer_config()

    if token.cancelled:
        return _failure_response(Failed.aborted())

    try:
        normalized = normalize_url(url)
    except InvalidLocator as e:
        print(f"INVALID URL {url!r}: {e}")
        return FetchResponse(content=str(e), is_error=True)

    cached_content = cache.get(normalized)
    if cached_content is not None:
        print(f"CACHE HIT for {normalized}")
        notify("Cache hit, processing...")
        response = await _apply_decision(cached_content, normalized, prompt, answer_config, token, _no_progress)
        response.cached = True
        return response

    print(f"PROCESSING {normalized} - fetching page...")
    notify(f"Fetching {normalized}...")
    fetched = await browser.fetch_page(normalized, token)
    if isinstance(fetched, Failed):
        return _failure_response(fetched, normalized)
    if isinstance(fetched, Redirected):
        target = fetched.target_url
        return FetchResponse(
            content=(
                f"The URL redirected to a different host: {target}\n\n"
                f"To fetch the content, make a new request with this URL: {target}"
            )
        )

    print(f"HTML RECEIVED: {len(fetched.markup)} characters (final URL {fetched.final_url})")
    if token.cancelled:
        return _failure_response(Failed.aborted(), normalized)

    notify("Extracting content...")
    extracted = await extractor.extract_content(fetched.markup, token)
    if isinstance(extracted, Failed):
        return _failure_response(extracted, normalized)

    print(f"EXTRACTED TEXT: {len(extracted.text)} characters")
    cache.set(normalized, extracted.text)
    print(f"CACHED RESULT for {normalized}")

    return await _apply_decision(extracted.text, normalized, prompt, answer_config, token, notify)


async def _apply_decision(
    content: str,
    url: str,
    prompt: Optional[str],
    answer_config: dict,
    token: CancelToken,
    notify: ProgressCallback
) -> FetchResponse:
    model = answer_config.get("model")
    prompt = (prompt or "").strip()
    decision = decide(bool(prompt), len(content), model is not None)
    print(f"DECISION for {url}: {type(decision).__name__} (content_len={len(content)})")

    if isinstance(decision, ReturnRaw):
        return FetchResponse(content=truncated_text(content) if decision.truncate else content)

    if isinstance(decision, FallbackRaw):
        return FetchResponse(content=f"{truncated_text(content)}\n\n{decision.note}")

    if isinstance(decision, AnswerPrompt):
        notify("Processing with LLM...")
        instruction = f"{prompt}\n\n{CONTENT_GUARDRAILS}"
        failure_note = "LLM processing failed: {reason}. Returning raw extracted content instead."
    elif isinstance(decision, Summarize):
        notify("Page content is large, generating summary with LLM...")
        instruction = SUMMARIZE_PROMPT
        failure_note = (
            "Could not generate summary: {reason}. Returning truncated raw content. "
            "Consider fetching again with a prompt to extract specific information."
        )
    else:
        raise TypeError(f"Unhandled decision: {decision!r}")

    answered = await llm_client.run_answerer(
        content, instruction, model, answer_config["thinking_level"], token
    )
    if isinstance(answered, Answered):
        return FetchResponse(content=answered.text)
    if answered.is_aborted:
        return _failure_response(answered, url)

    print(f"ANSWERER FAILED for {url}: {answered.reason}")
    return FetchResponse(content=f"{truncated_text(content)}\n\n{failure_note.format(reason=answered.reason)}")


def _failure_response(failed: Failed, url: str = "") -> FetchResponse:
    print(f"ERROR processing {url or '(request)'}: [{failed.kind.value}] {failed.reason}")
    return FetchResponse(content=failed.reason, is_error=True)


def _no_progress(message: str) -> None:
    pass
