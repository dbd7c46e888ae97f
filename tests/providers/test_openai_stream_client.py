import asyncio
import json
import unittest

import httpx

from ai_agent_chat.errors import AuthenticationError, TransportError
from ai_agent_chat.models import ProviderSettings, Role, Turn
from ai_agent_chat.providers.openai_stream_client import ChatCompletionClient
from ai_agent_chat.request_builder import build_request

_SETTINGS = ProviderSettings(api_key="sk-test-key", model="gpt-4o-mini")


def _frame(content: str) -> bytes:
    return ("data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n").encode()


def _request():
    return build_request([Turn(role=Role.USER, content="Hello")], _SETTINGS)


def _client(handler) -> ChatCompletionClient:
    return ChatCompletionClient(base_url="https://api.test/v1", transport=httpx.MockTransport(handler))


class ChatCompletionClientTests(unittest.TestCase):
    def test_missing_key_fails_before_any_request(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        with self.assertRaises(AuthenticationError):
            asyncio.run(_client(handler).open(_request(), ProviderSettings(api_key="")))
        self.assertEqual([], calls)

    def test_streams_deltas_and_final_event(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["content_type"] = request.headers["Content-Type"]
            captured["body"] = json.loads(request.content)
            body = b": ping\n\n" + _frame("Hi") + b"data: {broken\n\n" + _frame(" there") + b"data: [DONE]\n\n"
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        async def scenario():
            stream = await _client(handler).open(_request(), _SETTINGS)
            events = [event async for event in stream]
            return stream, events

        stream, events = asyncio.run(scenario())

        self.assertEqual("https://api.test/v1/chat/completions", captured["url"])
        self.assertEqual("Bearer sk-test-key", captured["auth"])
        self.assertEqual("application/json", captured["content_type"])
        self.assertTrue(captured["body"]["stream"])
        self.assertEqual([{"role": "user", "content": "Hello"}], captured["body"]["messages"])
        self.assertEqual(["Hi", " there"], [e.content_delta for e in events if not e.is_final])
        self.assertTrue(events[-1].is_final)
        self.assertEqual(1, stream.dropped_frames)
        self.assertTrue(stream.closed)

    def test_frame_with_malformed_citation_does_not_abort_stream(self) -> None:
        bad = {"choices": [{"delta": {"annotations": [{"type": "url_citation", "url_citation": "oops"}]}}]}

        def handler(request: httpx.Request) -> httpx.Response:
            body = _frame("Hi") + ("data: " + json.dumps(bad) + "\n\n").encode() + _frame(" there") + b"data: [DONE]\n\n"
            return httpx.Response(200, content=body)

        async def scenario():
            stream = await _client(handler).open(_request(), _SETTINGS)
            events = [event async for event in stream]
            return stream, events

        stream, events = asyncio.run(scenario())

        self.assertEqual(["Hi", " there"], [e.content_delta for e in events if not e.is_final])
        self.assertEqual(1, stream.dropped_frames)

    def test_non_success_status_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

        with self.assertRaises(TransportError) as ctx:
            asyncio.run(_client(handler).open(_request(), _SETTINGS))

        self.assertEqual(401, ctx.exception.status_code)
        self.assertIn("401", str(ctx.exception))
        self.assertIn("Incorrect API key provided", str(ctx.exception))

    def test_stream_ending_without_done_just_stops(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=_frame("partial"))

        async def scenario():
            stream = await _client(handler).open(_request(), _SETTINGS)
            return [event async for event in stream]

        events = asyncio.run(scenario())
        self.assertEqual(["partial"], [e.content_delta for e in events])
        self.assertFalse(events[-1].is_final)

    def test_cancel_mid_stream_stops_without_error(self) -> None:
        async def scenario():
            release = asyncio.Event()
            produced: list[str] = []

            async def body():
                produced.append("one")
                yield _frame("one")
                await release.wait()
                produced.append("two")
                yield _frame("two")

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(200, content=body())

            stream = await _client(handler).open(_request(), _SETTINGS)
            first = await stream.__anext__()
            await stream.aclose()
            release.set()
            rest = [event async for event in stream]
            return first, rest, produced, stream

        first, rest, produced, stream = asyncio.run(scenario())

        self.assertEqual("one", first.content_delta)
        self.assertEqual([], rest)
        self.assertEqual(["one"], produced)
        self.assertTrue(stream.closed)

    def test_connection_drop_mid_stream_raises_transport_error(self) -> None:
        async def body():
            yield _frame("one")
            raise httpx.ReadError("connection reset")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        async def scenario():
            stream = await _client(handler).open(_request(), _SETTINGS)
            received: list[str] = []
            with self.assertRaises(TransportError) as ctx:
                async for event in stream:
                    received.append(event.content_delta)
            return received, ctx.exception

        received, error = asyncio.run(scenario())
        self.assertEqual(["one"], received)
        self.assertIsNone(error.status_code)


if __name__ == "__main__":
    unittest.main()
