"""
LLM inference helpers: single-prompt chat completion with a throttle ladder.

invoke() sends one user prompt and returns the completion text. Provider
rate-limit responses surface as ThrottleError so callers can tell them apart
from every other failure. invoke_with_backoff() retries throttles on a fixed
ladder (5s, 15s, 45s by default); the sleep blocks only the calling thread.
"""
import logging
import time
from typing import Optional, Sequence

import openai

from leadpipe.errors import ThrottleError
from leadpipe.extensions import get_openai_client, reset_openai_client

logger = logging.getLogger('services.llm')

DEFAULT_BACKOFF_SECONDS = (5, 15, 45)


def invoke(prompt: str, model: str, max_tokens: int = 1024,
           json_mode: bool = True, temperature: float = 0.0) -> str:
    """Send one prompt; return the completion text ('' when the model sent nothing)."""
    client = get_openai_client()
    kwargs = dict(
        model=model,
        messages=[{'role': 'user', 'content': prompt}],
        max_tokens=max_tokens,
        temperature=temperature,
    )
    if json_mode:
        kwargs['response_format'] = {'type': 'json_object'}
    try:
        response = client.chat.completions.create(**kwargs)
    except openai.RateLimitError as e:
        raise ThrottleError(str(e)) from e
    except openai.APIConnectionError:
        reset_openai_client()
        raise
    return response.choices[0].message.content or ''


def invoke_with_backoff(prompt: str, model: str, label: str = 'llm',
                        backoff: Optional[Sequence[float]] = None, **kwargs) -> str:
    """invoke() with the throttle ladder; raises ThrottleError once it is exhausted."""
    ladder = list(DEFAULT_BACKOFF_SECONDS if backoff is None else backoff)
    for attempt in range(len(ladder) + 1):
        try:
            return invoke(prompt, model, **kwargs)
        except ThrottleError:
            if attempt >= len(ladder):
                break
            wait = ladder[attempt]
            logger.warning("LLM throttled (%s), waiting %ss before retry (attempt %d/%d)",
                           label, wait, attempt + 1, len(ladder))
            time.sleep(wait)
    raise ThrottleError(f"Max retries exceeded for LLM ({label})")
