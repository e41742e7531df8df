"""Tests for generation response parsing and gateway error mapping."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from daily_rep.core.generator import RepGenerator, extract_json_text, parse_generation_response
from daily_rep.errors import DailyRepError, ErrorKind

REP_JSON = (
    '{"title": "Call a friend", "description": "Ten minutes, no agenda.", '
    '"difficulty_level": "Beginner", "estimated_time": 10, "focus_area": "Relationships"}'
)


class TestParseGenerationResponse:
    def test_raw_json(self):
        rep = parse_generation_response(REP_JSON)
        assert rep.title == "Call a friend"
        assert rep.estimated_minutes == 10
        assert rep.focus_area == "Relationships"

    def test_json_fenced_block(self):
        text = f"Here is your rep:\n```json\n{REP_JSON}\n```\nEnjoy!"
        assert parse_generation_response(text).title == "Call a friend"

    def test_plain_fenced_block(self):
        text = f"```\n{REP_JSON}\n```"
        assert parse_generation_response(text).difficulty_level == "Beginner"

    def test_camel_case_keys(self):
        text = '{"title": "Stretch", "difficultyLevel": "Advanced", "estimatedMinutes": 15, "focusArea": "Fitness"}'
        rep = parse_generation_response(text)
        assert rep.difficulty_level == "Advanced"
        assert rep.estimated_minutes == 15
        assert rep.focus_area == "Fitness"

    @pytest.mark.parametrize("text", ["", "not json at all", "[1, 2, 3]", '{"description": "no title"}'])
    def test_invalid_responses(self, text):
        with pytest.raises(DailyRepError) as exc_info:
            parse_generation_response(text)
        assert exc_info.value.kind == ErrorKind.INVALID_GENERATION_RESPONSE
        assert exc_info.value.retryable

    def test_extract_without_fence_strips(self):
        assert extract_json_text("  {}\n") == "{}"


def _generator(create) -> RepGenerator:
    generator = RepGenerator(api_key="test-key", timeout=5.0)
    generator.client = MagicMock()
    generator.client.chat.completions.create = create
    return generator


def _completion(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _status_error(cls, status: int):
    request = httpx.Request("POST", "https://gateway.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls("gateway error", response=response, body=None)


class TestRepGenerator:
    async def test_generate_success(self):
        create = AsyncMock(return_value=_completion(f"```json\n{REP_JSON}\n```"))
        generator = _generator(create)

        rep = await generator.generate("system", "user", 0.9)

        assert rep.title == "Call a friend"
        kwargs = create.call_args.kwargs
        assert kwargs["temperature"] == 0.9
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert kwargs["messages"][1] == {"role": "user", "content": "user"}

    async def test_rate_limited(self):
        generator = _generator(AsyncMock(side_effect=_status_error(openai.RateLimitError, 429)))
        with pytest.raises(DailyRepError) as exc_info:
            await generator.generate("s", "u", 0.9)
        assert exc_info.value.kind == ErrorKind.GENERATION_RATE_LIMITED

    async def test_payment_required(self):
        generator = _generator(AsyncMock(side_effect=_status_error(openai.APIStatusError, 402)))
        with pytest.raises(DailyRepError) as exc_info:
            await generator.generate("s", "u", 0.9)
        assert exc_info.value.kind == ErrorKind.GENERATION_PAYMENT_REQUIRED

    async def test_other_status_is_generic_failure(self):
        generator = _generator(AsyncMock(side_effect=_status_error(openai.InternalServerError, 500)))
        with pytest.raises(DailyRepError) as exc_info:
            await generator.generate("s", "u", 0.9)
        assert exc_info.value.kind == ErrorKind.GENERATION_FAILED
        assert not exc_info.value.retryable

    async def test_client_timeout(self):
        request = httpx.Request("POST", "https://gateway.test/v1/chat/completions")
        generator = _generator(AsyncMock(side_effect=openai.APITimeoutError(request=request)))
        with pytest.raises(DailyRepError) as exc_info:
            await generator.generate("s", "u", 0.9)
        assert exc_info.value.kind == ErrorKind.GENERATION_TIMEOUT

    async def test_bounded_wait(self):
        async def slow(**kwargs):
            await asyncio.sleep(5)

        generator = _generator(slow)
        generator.timeout = 0.01
        with pytest.raises(DailyRepError) as exc_info:
            await generator.generate("s", "u", 0.9)
        assert exc_info.value.kind == ErrorKind.GENERATION_TIMEOUT

    async def test_unparseable_content(self):
        generator = _generator(AsyncMock(return_value=_completion("Sorry, I can't help with that.")))
        with pytest.raises(DailyRepError) as exc_info:
            await generator.generate("s", "u", 0.9)
        assert exc_info.value.kind == ErrorKind.INVALID_GENERATION_RESPONSE

    @pytest.mark.parametrize("response", [
        SimpleNamespace(choices=[]),
        SimpleNamespace(choices=None),
        SimpleNamespace(choices=[SimpleNamespace(message=None)]),
    ])
    async def test_missing_choices(self, response):
        generator = _generator(AsyncMock(return_value=response))
        with pytest.raises(DailyRepError) as exc_info:
            await generator.generate("s", "u", 0.9)
        assert exc_info.value.kind == ErrorKind.INVALID_GENERATION_RESPONSE
