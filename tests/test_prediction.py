"""
Unit tests for PredictionClient.

The HTTP exchange is patched at PredictionClient._post so no network is used.
"""
import asyncio
import json
import pytest
import aiohttp
from unittest.mock import AsyncMock, patch

from polaris.prediction import PredictionClient, PredictionErrorKind
from polaris.router.manifest import ConfigStore
from polaris.storage import TTLCache
from polaris.storage.tables import SETTINGS_TABLE


def completion(content) -> str:
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


@pytest.fixture
def client(config_store):
    return PredictionClient(
        config_store,
        endpoint="https://example.test/v1/chat/completions",
        timeout_seconds=5,
        max_tokens=256,
        temperature=0.7,
    )


@pytest.mark.asyncio
async def test_predict_success_strips_text(client):
    with patch.object(client, "_post", AsyncMock(return_value=(200, completion("  help \n")))) as post:
        result = await client.predict("system", "user text", prompt_name="router")

    assert result.ok
    assert result.text == "help"

    payload, api_key = post.call_args.args
    assert api_key == "sk-test"
    assert payload["model"] == "gpt-4o-mini"
    assert payload["max_tokens"] == 256
    assert payload["temperature"] == 0.7
    assert payload["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "user text"},
    ]


@pytest.mark.asyncio
async def test_http_error_carries_status_and_truncated_body(client):
    body = "x" * 2000
    with patch.object(client, "_post", AsyncMock(return_value=(429, body))):
        result = await client.predict("s", "u")

    assert not result.ok
    assert result.kind == PredictionErrorKind.HTTP
    assert result.status == 429
    assert "429" in result.error
    assert len(result.error) < 600


@pytest.mark.asyncio
async def test_malformed_body_is_distinct_from_http_error(client):
    with patch.object(client, "_post", AsyncMock(return_value=(200, json.dumps({"choices": []})))):
        result = await client.predict("s", "u")

    assert not result.ok
    assert result.kind == PredictionErrorKind.MALFORMED


@pytest.mark.asyncio
async def test_non_json_body_is_malformed(client):
    with patch.object(client, "_post", AsyncMock(return_value=(200, "<html>oops</html>"))):
        result = await client.predict("s", "u")

    assert result.kind == PredictionErrorKind.MALFORMED


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
async def test_transport_errors_do_not_raise(client, exc):
    with patch.object(client, "_post", AsyncMock(side_effect=exc)):
        result = await client.predict("s", "u")

    assert not result.ok
    assert result.kind == PredictionErrorKind.TRANSPORT


@pytest.mark.asyncio
async def test_missing_credentials_is_config_failure(table_store):
    table_store.replace_table(SETTINGS_TABLE, ["Key", "Value"], [{"Key": "OPENAI_MODEL", "Value": "m"}])
    client = PredictionClient(ConfigStore(table_store, TTLCache()), endpoint="https://example.test")

    with patch.object(client, "_post", AsyncMock()) as post:
        result = await client.predict("s", "u")

    assert not result.ok
    assert result.kind == PredictionErrorKind.CONFIG
    post.assert_not_called()


@pytest.mark.asyncio
async def test_unreadable_settings_is_config_failure(table_store):
    client = PredictionClient(ConfigStore(table_store, TTLCache()), endpoint="https://example.test")

    result = await client.predict("s", "u")

    assert result.kind == PredictionErrorKind.CONFIG
    assert result.error == "Settings table is empty or unreadable."


@pytest.mark.asyncio
async def test_failure_log_never_contains_prompt(client, caplog):
    with patch.object(client, "_post", AsyncMock(return_value=(500, "server exploded"))):
        await client.predict("SECRET SYSTEM PROMPT", "u", prompt_name="router")

    records = [r for r in caplog.records if getattr(r, "evt", None) == "prediction_error"]
    assert records
    assert records[0].details["prompt"] == "router"
    assert records[0].details["status"] == 500
    assert "SECRET" not in json.dumps(records[0].details)
