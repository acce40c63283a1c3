"""
Commentary client over an OpenAI-compatible chat endpoint (OpenRouter by default; base URL configurable).

The rest of the code only sees Commentator.advise(), which returns prose or raises CommentaryError.
Prompt wording lives in the module-level templates below.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Dict, List, Optional

from openai import OpenAI

from .config import Settings
from .errors import CommentaryError

log = logging.getLogger("commentary")

SYSTEM = "You are my chess coach speaking in first person. Be concise and actionable."

OWN_MOVE_TEMPLATE = "I played {ACTUAL_MOVE}. Engine best move was: {BEST_MOVE}. Eval now: {EVAL}. Give concise advice."
OPPONENT_MOVE_TEMPLATE = (
    "My opponent played {ACTUAL_MOVE}. Engine best move was: {BEST_MOVE}. Eval now: {EVAL}. "
    "Give concise analysis what the opponent is doing."
)


def render_prompt(template: str, values: Dict[str, str]) -> str:
    """Replace known placeholders in the template. Unknown tokens are left intact."""
    rendered = template or ""
    for key, val in values.items():
        rendered = rendered.replace(f"{{{key}}}", val)
    return rendered


def build_messages(actual_move: str, best_move: Optional[str], evaluation, is_human_move: bool) -> List[Dict[str, str]]:
    template = OWN_MOVE_TEMPLATE if is_human_move else OPPONENT_MOVE_TEMPLATE
    user = render_prompt(template, {
        "ACTUAL_MOVE": actual_move,
        "BEST_MOVE": best_move or "none",
        "EVAL": "unknown" if evaluation is None else str(evaluation),
    })
    return [
        {"role": "system", "content": SYSTEM},
        {"role": "user", "content": user},
    ]


class Commentator:
    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self._client = client or OpenAI(
            api_key=settings.llm_api_key or None,
            base_url=settings.llm_base_url or None,
            default_headers={"X-Title": "Chess-Coach"},
        )

    def advise(self, actual_move: str, best_move: Optional[str], evaluation, is_human_move: bool) -> str:
        messages = build_messages(actual_move, best_move, evaluation, is_human_move)
        log.debug("Commentary prompt: %s", messages[-1]["content"])
        return self._complete(messages)

    def _complete(self, messages: List[Dict[str, str]]) -> str:
        retries = self.settings.commentary_retries
        delay = 0.5
        last_error: Optional[Exception] = None
        for attempt in range(retries + 1):
            try:
                rsp = self._client.chat.completions.create(
                    model=self.settings.llm_model,
                    messages=messages,
                    max_tokens=self.settings.commentary_max_tokens,
                    timeout=self.settings.commentary_timeout_s,
                )
                text = _extract_text(rsp)
                if text:
                    return text.strip()
                last_error = CommentaryError("empty completion")
            except Exception as e:
                last_error = e
                log.warning("Commentary attempt %d/%d failed: %s", attempt + 1, retries + 1, e)
            if attempt < retries:
                sleep_s = delay * (2 ** attempt) * (0.8 + 0.4 * random.random())
                time.sleep(min(sleep_s, 5.0))
        raise CommentaryError(f"commentary unavailable after {retries + 1} attempt(s): {last_error}") from last_error


def _extract_text(rsp) -> str:
    choices = getattr(rsp, "choices", None)
    if not choices:
        return ""
    content = getattr(choices[0].message, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for c in content:
            t = c.get("text") if isinstance(c, dict) else getattr(c, "text", None)
            if isinstance(t, str):
                parts.append(t)
        return "\n".join(parts)
    return ""
