"""
Secondary LLM pass over heuristic heading candidates.

The model may only rate and re-level candidates it was given. Every returned
item goes through ``decode_refinement``; anything that does not name a
(page, text) pair from its own batch is dropped. A failing batch keeps its
heuristic values and the run moves on.
"""
from __future__ import annotations

import json
import math
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

import aiohttp

from core.error_handler import (
    LLMAPIError, NetworkError, RateLimitError, TimeoutError,
    handle_llm_api_call, raise_for_llm_status, validate_llm_config,
)
from core.json_utils import loads_array
from .config import LlmConfig, LLM_BATCH_SIZE, LLM_TIMEOUT_SECONDS, LLM_MAX_RETRIES

logger = logging.getLogger(__name__)

RefinementKey = Tuple[int, str]
CallApi = Callable[[LlmConfig, Sequence["LlmCandidate"]], Awaitable[List[Any]]]
ProgressCallback = Callable[[int, int], None]

BATCH_ERRORS = (LLMAPIError, NetworkError, RateLimitError, TimeoutError)

SYSTEM_PROMPT = """\
You are a document structure analyzer for enterprise PDF documents.

You receive a JSON array of candidate headings extracted heuristically from a PDF.
Each candidate has: text (verbatim from PDF), page number, heuristic_confidence, heuristic_level.

Your task:
1. Decide whether each candidate is a genuine section heading or a false positive
   (footer, running header, caption, body sentence, etc.).
2. Assign a refined confidence score 0.0-1.0.
3. Assign the correct heading level (1 = top-level chapter, 2 = sub-section, ...).

STRICT RULES - violating any rule makes output invalid:
- DO NOT invent, modify, rephrase, translate, or truncate any "text" value.
- Echo every "text" value exactly as received.
- DO NOT add entries absent from the input.
- Return ONLY JSON, no markdown and no prose.
- Each element must be exactly:
  { "text": <unchanged string>, "page": <integer>, "confidence": <float 0-1>, "level": <integer >=1>, "is_heading": <boolean> }
- Preserve original document order.
- If an entry is not a heading, set "is_heading": false and confidence <= 0.25."""


@dataclass(frozen=True)
class LlmCandidate:
    text: str
    page: int
    heuristic_confidence: float
    heuristic_level: int

    @property
    def key(self) -> RefinementKey:
        return (self.page, self.text)


@dataclass(frozen=True)
class Refinement:
    text: str
    page: int
    confidence: float
    level: int
    # False: the candidate is body text and should leave the tree
    is_heading: bool

    @property
    def key(self) -> RefinementKey:
        return (self.page, self.text)


# -------------------------------------------------------
# Request / response
# -------------------------------------------------------

def build_user_prompt(candidates: Sequence[LlmCandidate]) -> str:
    payload = [
        {
            "text": c.text,
            "page": c.page,
            "heuristic_confidence": c.heuristic_confidence,
            "heuristic_level": c.heuristic_level,
        }
        for c in candidates
    ]
    return (
        f"Analyze these {len(candidates)} candidates and return the JSON array:\n\n"
        f"{json.dumps(payload, ensure_ascii=False)}"
    )

def build_request_body(config: LlmConfig, candidates: Sequence[LlmCandidate]) -> Dict[str, Any]:
    return {
        "model": config.resolved_model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(candidates)},
        ],
        "temperature": 0,
        "response_format": {"type": "json_object"},
    }

def parse_completion_body(body: Union[str, bytes]) -> List[Any]:
    """
    Pull the item list out of a chat-completions response body.

    Raises LLMAPIError on a body that is not UTF-8 or not JSON, a missing
    choices/message/content wrapper, empty content, or content that is not JSON.
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise LLMAPIError(f"LLM response body is not UTF-8: {e}") from e

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise LLMAPIError(f"LLM response body is not JSON: {e}") from e

    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMAPIError(f"Malformed LLM response wrapper: {e!r}") from e

    if not isinstance(content, str) or not content.strip():
        raise LLMAPIError("Empty LLM response")

    try:
        return loads_array(content)
    except ValueError as e:
        raise LLMAPIError(str(e)) from e

async def request_refinements(
    http: aiohttp.ClientSession,
    config: LlmConfig,
    candidates: Sequence[LlmCandidate],
) -> List[Any]:
    """POST one batch and return the raw, unvalidated items."""
    async with http.post(
        config.endpoint,
        headers=config.headers(),
        json=build_request_body(config, candidates),
    ) as resp:
        # decoded by parse_completion_body
        body = await resp.read()
        raise_for_llm_status(resp.status, body.decode("utf-8", errors="replace"))
    return parse_completion_body(body)

# -------------------------------------------------------
# Validation gate
# -------------------------------------------------------

def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is never a number here
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)

def decode_refinement(item: Any, input_keys: Set[RefinementKey]) -> Optional[Refinement]:
    """
    Decode one returned item, or return None to reject it.

    Rejected: non-objects, missing or mistyped text/page/confidence/level,
    a non-boolean is_heading, and any (page, text) pair not sent in the batch.
    """
    if not isinstance(item, dict):
        return None

    text = item.get("text")
    page = item.get("page")
    confidence = item.get("confidence")
    level = item.get("level")

    if not isinstance(text, str):
        return None
    if not _is_number(page) or float(page) != int(page):
        return None
    if not _is_number(confidence) or not _is_number(level):
        return None

    if "is_heading" in item:
        is_heading = item["is_heading"]
        if not isinstance(is_heading, bool):
            return None
    else:
        is_heading = True

    page = int(page)
    if (page, text) not in input_keys:
        logger.debug('Dropping refinement for unknown entry p%d "%s"', page, text[:80])
        return None

    return Refinement(
        text=text,
        page=page,
        confidence=min(max(float(confidence), 0.0), 1.0),
        # round half up, never shallower than level 1
        level=max(1, int(math.floor(level + 0.5))),
        is_heading=is_heading,
    )

def validate_batch(candidates: Sequence[LlmCandidate], items: Sequence[Any]) -> List[Refinement]:
    input_keys = {c.key for c in candidates}
    accepted = []
    for item in items:
        r = decode_refinement(item, input_keys)
        if r is not None:
            accepted.append(r)

    dropped = len(items) - len(accepted)
    if dropped:
        logger.debug("Validation dropped %d of %d returned items", dropped, len(items))
    return accepted

# -------------------------------------------------------
# Public API
# -------------------------------------------------------

def chunked(candidates: Sequence[LlmCandidate], size: int) -> Iterator[Sequence[LlmCandidate]]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    for i in range(0, len(candidates), size):
        yield candidates[i:i + size]

async def _run_batches(
    candidates: Sequence[LlmCandidate],
    config: LlmConfig,
    fetch: CallApi,
    cancel_event: Optional[asyncio.Event],
    on_progress: Optional[ProgressCallback],
    batch_size: int,
) -> Dict[RefinementKey, Refinement]:
    results: Dict[RefinementKey, Refinement] = {}
    total = len(candidates)
    done = 0

    # Sequential on purpose: keeps rate limits predictable and progress linear
    for batch_no, batch in enumerate(chunked(candidates, batch_size), start=1):
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Refinement cancelled before batch %d (%d/%d done)", batch_no, done, total)
            break

        try:
            items = await handle_llm_api_call(
                fetch, config, batch,
                timeout=LLM_TIMEOUT_SECONDS,
                max_retries=LLM_MAX_RETRIES,
            )
        except BATCH_ERRORS as e:
            logger.warning("Batch %d failed, keeping heuristic scores: %s", batch_no, e)
        else:
            for r in validate_batch(batch, items):
                results[r.key] = r

        done += len(batch)
        if on_progress is not None:
            on_progress(done, total)

    return results

async def refine_toc_with_llm(
    candidates: Sequence[LlmCandidate],
    config: LlmConfig,
    cancel_event: Optional[asyncio.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
    *,
    batch_size: int = LLM_BATCH_SIZE,
    call_api: Optional[CallApi] = None,
) -> Dict[RefinementKey, Refinement]:
    """
    Refine heuristic candidates in sequential batches.

    Returns a mapping of (page, text) to the accepted refinement. Candidates
    missing from the mapping keep their heuristic values. ``call_api``
    replaces the HTTP transport (tests, alternative clients).

    Raises ValidationError when the config lacks a key or endpoint.
    """
    validate_llm_config(config)
    if not candidates:
        return {}

    logger.info(
        "Refining %d candidates in batches of %d via %s",
        len(candidates), batch_size, config.to_safe_dict(),
    )

    if call_api is not None:
        return await _run_batches(candidates, config, call_api, cancel_event, on_progress, batch_size)

    async with aiohttp.ClientSession() as http:
        async def fetch(cfg: LlmConfig, batch: Sequence[LlmCandidate]) -> List[Any]:
            return await request_refinements(http, cfg, batch)

        return await _run_batches(candidates, config, fetch, cancel_event, on_progress, batch_size)
