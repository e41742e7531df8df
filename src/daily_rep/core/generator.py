"""LLM client for generating rep content."""

import asyncio
import json
import re

import openai
import structlog
from openai import AsyncOpenAI
from pydantic import ValidationError

from daily_rep.errors import DailyRepError, ErrorKind
from daily_rep.models.rep import GeneratedRep

logger = structlog.get_logger()

_FENCED_BLOCK = re.compile(r"```(?:json)?[ \t]*\n?(.*?)\n?[ \t]*```", re.DOTALL | re.IGNORECASE)


def extract_json_text(text: str) -> str:
    """Return the content of a ``` fenced block if present, else the stripped text."""
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def parse_generation_response(text: str | None) -> GeneratedRep:
    """Parse the generated text into a rep payload.

    Raises:
        DailyRepError: INVALID_GENERATION_RESPONSE if the text is not a JSON
            object with at least a title.
    """
    if not text:
        raise DailyRepError(ErrorKind.INVALID_GENERATION_RESPONSE, "Empty generation response")
    try:
        data = json.loads(extract_json_text(text))
    except json.JSONDecodeError as e:
        raise DailyRepError(
            ErrorKind.INVALID_GENERATION_RESPONSE, f"Invalid AI response format: {e}"
        ) from e
    if not isinstance(data, dict):
        raise DailyRepError(
            ErrorKind.INVALID_GENERATION_RESPONSE, "Generation response is not a JSON object"
        )
    try:
        return GeneratedRep.model_validate(data)
    except ValidationError as e:
        raise DailyRepError(
            ErrorKind.INVALID_GENERATION_RESPONSE, f"Generation response missing fields: {e}"
        ) from e


class RepGenerator:
    """Calls an OpenAI-compatible chat endpoint to write a rep.

    Args:
        api_key: Gateway API key.
        model: Chat model identifier.
        base_url: Optional gateway URL (defaults to OpenAI).
        timeout: Seconds before the call fails with GENERATION_TIMEOUT.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 20.0,
    ):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self.model = model
        self.timeout = timeout

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        """Send one chat completion request and return the raw text.

        Raises:
            DailyRepError: GENERATION_TIMEOUT, GENERATION_RATE_LIMITED,
                GENERATION_PAYMENT_REQUIRED or GENERATION_FAILED.
        """
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=temperature,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError) as e:
            logger.warning("generation_timeout", model=self.model, timeout=self.timeout)
            raise DailyRepError(
                ErrorKind.GENERATION_TIMEOUT, "Rep generation timed out. Please try again."
            ) from e
        except openai.APIStatusError as e:
            logger.error("generation_api_error", status=e.status_code, model=self.model)
            if e.status_code == 429:
                raise DailyRepError(
                    ErrorKind.GENERATION_RATE_LIMITED,
                    "Rate limit exceeded. Please try again later.",
                ) from e
            if e.status_code == 402:
                raise DailyRepError(
                    ErrorKind.GENERATION_PAYMENT_REQUIRED,
                    "Payment required. Please add credits to your workspace.",
                ) from e
            raise DailyRepError(
                ErrorKind.GENERATION_FAILED, f"AI gateway error: {e.status_code}"
            ) from e
        except openai.APIError as e:
            logger.error("generation_failed", error=str(e))
            raise DailyRepError(ErrorKind.GENERATION_FAILED, f"AI gateway error: {e}") from e

        choices = getattr(response, "choices", None)
        message = choices[0].message if choices else None
        if message is None:
            logger.warning("generation_empty_choices", model=self.model)
            raise DailyRepError(
                ErrorKind.INVALID_GENERATION_RESPONSE, "AI gateway returned no choices"
            )
        content = message.content
        logger.info("generation_complete", model=self.model, chars=len(content or ""))
        return content or ""

    async def generate(self, system_prompt: str, user_prompt: str, temperature: float) -> GeneratedRep:
        text = await self.complete(system_prompt, user_prompt, temperature)
        try:
            return parse_generation_response(text)
        except DailyRepError:
            logger.warning("generation_parse_failed", content=text[:500])
            raise
