import json
import unittest

import httpx

from llama_client import LlamaChatClient
from llm_config import LLMProvider, ProviderConfig
from llm_errors import (
    ClientNotInitializedError, LLMConfigurationError, LLMInvalidResponseError, LLMTransportError,
)
from models import ChatMessage

ENDPOINT = "http://llama.internal:8000/v1/"


def completion(content):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "llama",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
    }


class ScriptedServer:
    """Answers each request with the next (status, body) pair."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(status, json=body)


def make_client(server, **overrides):
    settings = dict(
        provider=LLMProvider.llama,
        llama_api_endpoint=ENDPOINT,
        llama_api_key="secret-key",
        llama_model_name="meta-llama/Llama-4-Scout-17B-16E-Instruct",
        max_retries=3,
        retry_initial_delay_ms=0,
    )
    settings.update(overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return LlamaChatClient(ProviderConfig(**settings), http_client=http)


MESSAGES = [
    ChatMessage(role="system", content="You are a billing assistant."),
    ChatMessage(role="user", content="Suggest codes."),
]

SERVER_ERROR = (500, {"error": {"message": "overloaded"}})


class TestLlamaChatClient(unittest.IsolatedAsyncioTestCase):
    async def test_returns_trimmed_content(self):
        server = ScriptedServer((200, completion("  hello there \n")))
        text = await make_client(server).send(MESSAGES)
        self.assertEqual(text, "hello there")

        request = server.requests[0]
        self.assertTrue(request.url.path.endswith("/v1/chat/completions"))
        self.assertEqual(request.headers["authorization"], "Bearer secret-key")
        body = json.loads(request.content)
        self.assertEqual(body["model"], "meta-llama/Llama-4-Scout-17B-16E-Instruct")
        self.assertEqual(
            body["messages"],
            [
                {"role": "system", "content": "You are a billing assistant."},
                {"role": "user", "content": "Suggest codes."},
            ],
        )

    async def test_recovers_after_transient_failures(self):
        server = ScriptedServer(SERVER_ERROR, SERVER_ERROR, (200, completion("ok")))
        text = await make_client(server).send(MESSAGES)
        self.assertEqual(text, "ok")
        self.assertEqual(len(server.requests), 3)

    async def test_rate_limit_is_retried(self):
        server = ScriptedServer((429, {"error": {"message": "slow down"}}), (200, completion("ok")))
        self.assertEqual(await make_client(server).send(MESSAGES), "ok")
        self.assertEqual(len(server.requests), 2)

    async def test_persistent_server_error_exhausts_retries(self):
        server = ScriptedServer(SERVER_ERROR)
        with self.assertRaises(LLMTransportError) as ctx:
            await make_client(server, max_retries=2).send(MESSAGES)
        self.assertEqual(len(server.requests), 3)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("after 3 attempts", str(ctx.exception))

    async def test_client_error_is_not_retried(self):
        server = ScriptedServer((400, {"error": {"message": "bad prompt"}}))
        with self.assertRaises(LLMTransportError) as ctx:
            await make_client(server).send(MESSAGES)
        self.assertEqual(len(server.requests), 1)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertFalse(ctx.exception.retryable)

    async def test_missing_choices_is_invalid_response(self):
        server = ScriptedServer((200, {**completion("x"), "choices": []}))
        with self.assertRaises(LLMInvalidResponseError):
            await make_client(server).send(MESSAGES)
        self.assertEqual(len(server.requests), 1)

    async def test_blank_content_is_invalid_response(self):
        server = ScriptedServer((200, completion("   ")))
        with self.assertRaises(LLMInvalidResponseError):
            await make_client(server).send(MESSAGES)

    async def test_connection_failure_is_retried(self):
        calls = []

        def refuse(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        config = ProviderConfig(
            provider=LLMProvider.llama, llama_api_endpoint=ENDPOINT, llama_api_key="k",
            max_retries=1, retry_initial_delay_ms=0,
        )
        with self.assertRaises(LLMTransportError) as ctx:
            await LlamaChatClient(config, http_client=http).send(MESSAGES)
        self.assertEqual(len(calls), 2)
        self.assertIsNone(ctx.exception.status_code)

    async def test_wrong_provider_is_configuration_error(self):
        server = ScriptedServer((200, completion("ok")))
        with self.assertRaises(LLMConfigurationError):
            await make_client(server, provider=LLMProvider.gemini).send(MESSAGES)
        self.assertEqual(server.requests, [])

    async def test_missing_endpoint_is_configuration_error(self):
        server = ScriptedServer((200, completion("ok")))
        with self.assertRaises(LLMConfigurationError):
            await make_client(server, llama_api_endpoint="").send(MESSAGES)

    async def test_close_releases_http_client(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(ScriptedServer((200, completion("ok")))))
        config = ProviderConfig(provider=LLMProvider.llama, llama_api_endpoint=ENDPOINT, llama_api_key="k")
        await LlamaChatClient(config, http_client=http).close()
        self.assertTrue(http.is_closed)

    async def test_close_without_client(self):
        await LlamaChatClient(ProviderConfig(provider=LLMProvider.llama)).close()

    async def test_not_initialized(self):
        client = make_client(ScriptedServer((200, completion("ok"))))
        client._client = None
        with self.assertRaises(ClientNotInitializedError):
            await client.send(MESSAGES)


if __name__ == "__main__":
    unittest.main()
