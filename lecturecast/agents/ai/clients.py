"""
Model client access for the generation agents.

Structured calls go through instructor-wrapped AsyncOpenAI clients; provider
errors are mapped onto the lecturecast exception hierarchy so retry decisions
can be made on error type.
"""

import asyncio
import os
from typing import Dict, List, Optional, Type, TypeVar

import instructor
import openai
from instructor.exceptions import InstructorRetryException
from openai import AsyncOpenAI
from pydantic import BaseModel

from lecturecast.agents.generation.exceptions import (
    AIGenerationError, AIInvalidResponseError, AIRateLimitError, AITimeoutError
)
from lecturecast.logging_config import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def get_raw_client(api_key: Optional[str] = None, base_url: Optional[str] = None) -> AsyncOpenAI:
    client_kwargs = {}
    if api_key is not None:
        client_kwargs["api_key"] = api_key
    elif os.getenv("OPENAI_API_KEY"):
        client_kwargs["api_key"] = os.getenv("OPENAI_API_KEY")
    if base_url is not None:
        client_kwargs["base_url"] = base_url
    elif os.getenv("OPENAI_BASE_URL"):
        client_kwargs["base_url"] = os.getenv("OPENAI_BASE_URL")
    return AsyncOpenAI(**client_kwargs)


def get_client(api_key: Optional[str] = None, base_url: Optional[str] = None) -> instructor.AsyncInstructor:
    """Instructor-wrapped async client for structured responses."""
    return instructor.from_openai(get_raw_client(api_key, base_url), mode=instructor.Mode.TOOLS)


async def invoke(
    client: instructor.AsyncInstructor,
    model: str,
    messages: List[Dict[str, str]],
    response_model: Type[M],
    temperature: float = 0.7,
    max_tokens: int = 4096,
    timeout: float = 120.0,
) -> M:
    """Single structured completion. Retries belong to the caller's RetryPolicy."""
    prompt_chars = sum(len(msg.get('content', '')) for msg in messages)
    logger.debug(f"[AI] {model} -> {response_model.__name__} (~{prompt_chars // 4} prompt tokens)")
    try:
        return await asyncio.wait_for(
            client.chat.completions.create(
                model=model,
                messages=messages,
                response_model=response_model,
                temperature=temperature,
                max_tokens=max_tokens,
                max_retries=1,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise AITimeoutError(f"AI call timed out after {timeout}s", cause=e, context={'model': model}) from e
    except openai.RateLimitError as e:
        logger.warning(f"Rate limit exceeded (429): {e}")
        raise AIRateLimitError("Rate limit exceeded", cause=e, context={'model': model}) from e
    except (openai.APITimeoutError, openai.APIConnectionError) as e:
        raise AITimeoutError("AI service unreachable or timed out", cause=e, context={'model': model}) from e
    except InstructorRetryException as e:
        raise AIInvalidResponseError(
            f"Response did not match {response_model.__name__}", cause=e, context={'model': model}
        ) from e
    except openai.APIStatusError as e:
        if e.status_code in (502, 503, 504):
            raise AITimeoutError(f"AI service unavailable (HTTP {e.status_code})", cause=e, context={'model': model}) from e
        raise AIGenerationError(
            f"AI generation failed: {e}", cause=e, context={'model': model, 'error_code': e.status_code}
        ) from e


async def synthesize_speech(client: AsyncOpenAI, model: str, voice: str, text: str) -> bytes:
    """Text to speech audio bytes (mp3)."""
    try:
        response = await client.audio.speech.create(model=model, voice=voice, input=text)
    except openai.RateLimitError as e:
        raise AIRateLimitError("Rate limit exceeded", cause=e, context={'model': model}) from e
    except openai.OpenAIError as e:
        raise AIGenerationError(f"Speech synthesis failed: {e}", cause=e, context={'model': model}) from e
    return response.content


__all__ = [
    'get_client',
    'get_raw_client',
    'invoke',
    'synthesize_speech',
]
