"""Tests for the generation client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cardgen.chains.generate_fields import GenerationFailedError, call_model, generate_fields
from tests.fakes.fake_llm import make_openai_client, make_openai_response


@pytest.mark.asyncio
async def test_generate_fields_parses_json_object():
    client = make_openai_client(make_openai_response({"description": "Secure sign-in"}))

    with patch("cardgen.chains.generate_fields.get_openai_client", return_value=client):
        fields, completion = await generate_fields("system", "user", "gpt-4o-mini", 0.7, 2000, card_id="card-1")

    assert fields == {"description": "Secure sign-in"}
    assert completion.tokens_used == 150
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}
    assert kwargs["temperature"] == 0.7


@pytest.mark.asyncio
async def test_generate_fields_strips_markdown_fences():
    client = make_openai_client(make_openai_response('```json\n{"title": "Login"}\n```'))

    with patch("cardgen.chains.generate_fields.get_openai_client", return_value=client):
        fields, _ = await generate_fields("s", "u", "gpt-4o-mini", 0.7, 100)

    assert fields == {"title": "Login"}


@pytest.mark.asyncio
async def test_unparseable_output_raises_clean_error():
    client = make_openai_client(make_openai_response("I cannot help with that"))

    with patch("cardgen.chains.generate_fields.get_openai_client", return_value=client):
        with pytest.raises(GenerationFailedError, match="could not be parsed"):
            await generate_fields("s", "u", "gpt-4o-mini", 0.7, 100)


@pytest.mark.asyncio
async def test_json_array_output_is_rejected():
    client = make_openai_client(make_openai_response("[1, 2, 3]"))

    with patch("cardgen.chains.generate_fields.get_openai_client", return_value=client):
        with pytest.raises(GenerationFailedError):
            await generate_fields("s", "u", "gpt-4o-mini", 0.7, 100)


@pytest.mark.asyncio
async def test_provider_error_raises_clean_error():
    client = make_openai_client(RuntimeError("connection reset by peer"))

    with patch("cardgen.chains.generate_fields.get_openai_client", return_value=client):
        with pytest.raises(GenerationFailedError) as exc_info:
            await generate_fields("s", "u", "gpt-4o-mini", 0.7, 100)

    assert "connection reset" not in str(exc_info.value)
    assert str(exc_info.value) == "The AI provider request failed. Please try again."


@pytest.mark.asyncio
async def test_timeout_raises_clean_error():
    client = make_openai_client(asyncio.TimeoutError())

    with patch("cardgen.chains.generate_fields.get_openai_client", return_value=client):
        with pytest.raises(GenerationFailedError, match="timed out"):
            await generate_fields("s", "u", "gpt-4o-mini", 0.7, 100)


@pytest.mark.asyncio
async def test_call_model_without_json_mode(no_usage_logging):
    client = make_openai_client(make_openai_response("Plain summary"))

    with patch("cardgen.chains.generate_fields.get_openai_client", return_value=client):
        completion = await call_model("s", "u", "gpt-4o-mini", 0.3, 500, json_mode=False, chain="summarize")

    assert completion.content == "Plain summary"
    assert "response_format" not in client.chat.completions.create.call_args.kwargs
    no_usage_logging.assert_called_once()
    assert no_usage_logging.call_args.kwargs["chain"] == "summarize"
    assert no_usage_logging.call_args.kwargs["tokens_input"] == 100


@pytest.mark.asyncio
async def test_claude_models_route_to_anthropic():
    block = MagicMock(type="text", text='{"title": "From Claude"}')
    response = MagicMock(content=[block], model="claude-sonnet-4-5")
    response.usage.input_tokens = 30
    response.usage.output_tokens = 20
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response)

    with (
        patch("cardgen.chains.generate_fields.get_anthropic_client", return_value=client),
        patch("cardgen.chains.generate_fields.get_openai_client") as mock_openai,
    ):
        fields, completion = await generate_fields("system", "user", "claude-sonnet-4-5", 0.5, 1000)

    mock_openai.assert_not_called()
    assert fields == {"title": "From Claude"}
    assert completion.provider == "anthropic"
    assert completion.tokens_used == 50
    assert client.messages.create.call_args.kwargs["system"] == "system"
