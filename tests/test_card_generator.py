"""End-to-end tests for the card field generation orchestrator with mocked I/O."""

import asyncio
from contextlib import ExitStack
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cardgen.core.field_schemas import build_field_spec
from cardgen.core.schemas_generation import ContextSourceConfig
from cardgen.db.prompt_configs import ConfigNotFoundError
from cardgen.services.card_generator import CardFieldGenerator
from tests.fakes.fake_llm import make_openai_client, make_openai_response, make_prompt_config, make_records

GENERATED = {
    "title": "Login",
    "description": "Secure email and SSO sign-in for returning users",
    "problemItSolves": "Users cannot access their saved work",
    "tags": ["auth", "security"],
}


def _resolve(user_id, strategy_id=None):
    return strategy_id or "strategy-1"


@pytest.fixture
def pipeline():
    """Patch every I/O edge of the orchestrator; expose the mocks."""
    client = make_openai_client(make_openai_response(GENERATED), delay=0.05)
    with ExitStack() as stack:
        mocks = SimpleNamespace(
            client=client,
            resolve=stack.enter_context(
                patch(
                    "cardgen.services.card_generator.resolve_strategy_id",
                    AsyncMock(side_effect=_resolve),
                )
            ),
            get_config=stack.enter_context(
                patch(
                    "cardgen.services.card_generator.get_active_prompt_config",
                    return_value=make_prompt_config("features"),
                )
            ),
            list_sources=stack.enter_context(
                patch(
                    "cardgen.services.card_generator.list_context_sources",
                    return_value=[ContextSourceConfig(source_schema_type="personas", max_records=5)],
                )
            ),
            list_cards=stack.enter_context(
                patch(
                    "cardgen.chains.gather_context.list_context_cards",
                    return_value=make_records("personas", 2),
                )
            ),
            insert_history=stack.enter_context(
                patch("cardgen.services.generation_telemetry.insert_generation_history")
            ),
            increment_usage=stack.enter_context(
                patch("cardgen.services.generation_telemetry.increment_prompt_usage")
            ),
        )
        stack.enter_context(patch("cardgen.chains.generate_fields.get_openai_client", return_value=client))
        yield mocks


@pytest.fixture
def generator():
    return CardFieldGenerator()


class TestStandardGeneration:
    @pytest.mark.asyncio
    async def test_cold_cache_generation_uses_context(self, pipeline, generator):
        result = await generator.generate(
            record_id="card-1",
            schema_type="features",
            title="Login",
            user_id="user-1",
            existing_fields={"title": "Login", "description": ""},
        )

        assert result.success is True
        assert result.fields["description"] == GENERATED["description"]
        assert result.fields["title"] == "Login"
        assert result.metadata.context_records_used == 2
        assert result.metadata.tokens_used == 150
        assert pipeline.client.chat.completions.create.await_count == 1
        pipeline.list_cards.assert_called_once_with("user-1", "personas", "strategy-1", 5)

        user_prompt = pipeline.client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert "personas: Personas 1 - Description of personas 1" in user_prompt

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_shares_one_result(self, pipeline, generator):
        kwargs = dict(record_id="card-1", schema_type="features", title="Login", user_id="user-1")

        first = asyncio.ensure_future(generator.generate(**kwargs))
        await asyncio.sleep(0.01)
        second = asyncio.ensure_future(generator.generate(**kwargs))
        a, b = await asyncio.gather(first, second)

        assert a is b
        assert pipeline.client.chat.completions.create.await_count == 1
        assert pipeline.insert_history.call_count == 1
        assert generator.coalescer.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_different_cards_are_not_coalesced(self, pipeline, generator):
        await asyncio.gather(
            generator.generate(record_id="card-1", schema_type="features", title="A", user_id="user-1"),
            generator.generate(record_id="card-2", schema_type="features", title="B", user_id="user-1"),
        )
        assert pipeline.client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_context_is_cached_per_user_strategy_and_type(self, pipeline, generator):
        await generator.generate(record_id="card-1", schema_type="features", title="A", user_id="user-1")
        await generator.generate(record_id="card-2", schema_type="feature", title="B", user_id="user-1")

        assert pipeline.list_cards.call_count == 1
        assert generator.cache.stats["hits"] == 1

    @pytest.mark.asyncio
    async def test_separate_instances_share_no_cache(self, pipeline):
        await CardFieldGenerator().generate(record_id="card-1", schema_type="features", title="A", user_id="u")
        await CardFieldGenerator().generate(record_id="card-1", schema_type="features", title="A", user_id="u")
        assert pipeline.list_cards.call_count == 2

    @pytest.mark.asyncio
    async def test_no_strategy_skips_context(self, pipeline, generator):
        pipeline.resolve.side_effect = None
        pipeline.resolve.return_value = None

        result = await generator.generate(record_id="card-1", schema_type="features", title="A", user_id="u")

        assert result.success is True
        assert result.metadata.context_records_used == 0
        pipeline.list_sources.assert_not_called()
        pipeline.list_cards.assert_not_called()

    @pytest.mark.asyncio
    async def test_context_source_lookup_failure_still_generates(self, pipeline, generator):
        pipeline.list_sources.side_effect = RuntimeError("rpc missing")

        result = await generator.generate(record_id="card-1", schema_type="features", title="A", user_id="u")

        assert result.success is True
        assert result.metadata.context_records_used == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_config_never_calls_model(self, pipeline, generator):
        pipeline.get_config.side_effect = ConfigNotFoundError("features")

        result = await generator.generate(record_id="card-1", schema_type="feature", title="A", user_id="u")

        assert result.success is False
        assert result.error == "No active prompt found for blueprint type: features"
        assert result.fields is None
        pipeline.client.chat.completions.create.assert_not_awaited()
        entry = pipeline.insert_history.call_args.args[0]
        assert entry.success is False
        pipeline.increment_usage.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_failure_returns_clean_error(self, pipeline, generator):
        pipeline.client.chat.completions.create.side_effect = RuntimeError("socket closed")

        result = await generator.generate(record_id="card-1", schema_type="features", title="A", user_id="u")

        assert result.success is False
        assert "socket" not in result.error
        assert pipeline.insert_history.call_args.args[0].error_message == result.error

    @pytest.mark.asyncio
    async def test_provider_failure_is_shared_by_coalesced_callers(self, pipeline, generator):
        async def _slow_failure(**kwargs):
            await asyncio.sleep(0.05)
            raise RuntimeError("upstream 503")

        pipeline.client.chat.completions.create.side_effect = _slow_failure
        kwargs = dict(record_id="card-1", schema_type="features", title="Login", user_id="user-1")

        first = asyncio.ensure_future(generator.generate(**kwargs))
        await asyncio.sleep(0.01)
        second = asyncio.ensure_future(generator.generate(**kwargs))
        a, b = await asyncio.gather(first, second)

        assert a is b
        assert a.success is False
        assert a.error == "The AI provider request failed. Please try again."
        assert pipeline.client.chat.completions.create.await_count == 1
        assert pipeline.insert_history.call_count == 1
        assert generator.coalescer.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic(self, pipeline, generator):
        pipeline.get_config.side_effect = KeyError("system_prompt")

        result = await generator.generate(record_id="card-1", schema_type="features", title="A", user_id="u")

        assert result.success is False
        assert result.error == "Generation failed"

    @pytest.mark.asyncio
    async def test_telemetry_failure_does_not_fail_generation(self, pipeline, generator):
        pipeline.insert_history.side_effect = RuntimeError("history table locked")

        result = await generator.generate(record_id="card-1", schema_type="features", title="A", user_id="u")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_success_records_history_and_usage(self, pipeline, generator):
        await generator.generate(record_id="card-1", schema_type="feature", title="A", user_id="u")

        entry = pipeline.insert_history.call_args.args[0]
        row = entry.to_row()
        assert row["generation_mode"] == "standard"
        assert row["blueprint_type"] == "features"
        assert [c["id"] for c in row["context_used"]] == ["personas-1", "personas-2"]
        assert "transcript_preview" not in row
        pipeline.increment_usage.assert_called_once_with("features")


class TestVoiceGeneration:
    TRANSCRIPT = "We need to focus on customer retention and reduce churn"

    @pytest.mark.asyncio
    async def test_voice_prompt_contains_transcript(self, pipeline, generator):
        result = await generator.generate_from_voice(
            record_id="card-1",
            schema_type="features",
            title="Retention",
            transcript=self.TRANSCRIPT,
            user_id="user-1",
            existing_fields={"description": "Old"},
        )

        assert result.success is True
        assert result.metadata.transcript_length == len(self.TRANSCRIPT)
        messages = pipeline.client.chat.completions.create.call_args.kwargs["messages"]
        assert self.TRANSCRIPT in messages[1]["content"]
        assert "VOICE EDIT MODE" in messages[0]["content"]

        row = pipeline.insert_history.call_args.args[0].to_row()
        assert row["generation_mode"] == "voice"
        assert row["transcript_preview"] == self.TRANSCRIPT[:100]
        assert "customer" in row["themes"]

    @pytest.mark.asyncio
    async def test_voice_hints_use_injected_registry(self, pipeline):
        registry = {
            "features": (build_field_spec({"id": "painPoints", "name": "Pain Points", "type": "array"}),)
        }

        await CardFieldGenerator(registry=registry).generate_from_voice(
            record_id="card-1", schema_type="features", title="A", transcript=self.TRANSCRIPT, user_id="u"
        )

        messages = pipeline.client.chat.completions.create.call_args.kwargs["messages"]
        assert "- painPoints:" in messages[0]["content"]
        assert "- painPoints:" in messages[1]["content"]
        assert "- problemItSolves:" not in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_voice_and_standard_for_same_card_run_separately(self, pipeline, generator):
        await asyncio.gather(
            generator.generate(record_id="card-1", schema_type="features", title="A", user_id="u"),
            generator.generate_from_voice(
                record_id="card-1", schema_type="features", title="A", transcript=self.TRANSCRIPT, user_id="u"
            ),
        )
        assert pipeline.client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_blank_transcript_is_rejected(self, generator):
        with pytest.raises(ValueError):
            await generator.generate_from_voice(
                record_id="card-1", schema_type="features", title="A", transcript="   ", user_id="u"
            )


@pytest.mark.asyncio
async def test_custom_merge_policy_is_used(pipeline):
    policy = MagicMock()
    policy.merge.return_value = {"title": "from policy"}

    result = await CardFieldGenerator(merge_policy=policy).generate(
        record_id="card-1", schema_type="features", title="A", user_id="u", existing_fields={"title": "A"}
    )

    policy.merge.assert_called_once_with({"title": "A"}, GENERATED)
    assert result.fields == {"title": "from policy"}
