"""
Integration tests for QnAClient.

Uses httpx.MockTransport injected through http_client so tests never touch the
network and can count transport invocations.
"""

import asyncio
import json

import httpx
import pytest

from qnabot.client import QnAClient
from qnabot.core.config import AuthMode, QnAConfig
from qnabot.core.errors import ErrorKind, QnAServiceError
from qnabot.schemas.answer import Answer

HOST = "https://example.azurewebsites.net/qnamaker"


class FakeService:
    """MockTransport handler that records requests and replies with fixed bytes."""

    def __init__(self, status_code: int = 200, body: bytes | dict = b"", error: Exception | None = None) -> None:
        self.status_code = status_code
        self.body = json.dumps(body).encode("utf-8") if isinstance(body, dict) else body
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.body)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def _client(service: FakeService, **kwargs) -> QnAClient:
    values = {"credential": "secret", "auth_mode": AuthMode.ENDPOINT_KEY}
    values.update(kwargs)
    return QnAClient(HOST, "kb-123", http_client=service.http_client(), **values)


SUCCESS = {"answers": [{"answer": "A &amp; B", "questions": ["q1"], "score": 42.5}]}


class TestAsk:
    """Tests for QnAClient.ask()."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        service = FakeService(200, SUCCESS)
        result = await _client(service).ask("What is A?")
        assert result.error is None
        assert result.answers == [Answer(answer_text="A & B", questions=("q1",), score=42.5)]

    @pytest.mark.asyncio
    async def test_sends_one_signed_post(self) -> None:
        service = FakeService(200, SUCCESS)
        await _client(service).ask("What is A?")
        assert len(service.requests) == 1
        request = service.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{HOST}/knowledgebases/kb-123/generateAnswer"
        assert request.headers["Authorization"] == "EndpointKey secret"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Cache-Control"] == "no-cache"
        assert json.loads(request.content) == {"question": "What is A?"}

    @pytest.mark.asyncio
    async def test_subscription_key_header(self) -> None:
        service = FakeService(200, SUCCESS)
        await _client(service, auth_mode=AuthMode.SUBSCRIPTION_KEY).ask("q")
        request = service.requests[0]
        assert request.headers["Ocp-Apim-Subscription-Key"] == "secret"
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_service_error(self) -> None:
        service = FakeService(404, {"error": {"code": "KBNotFound", "message": ["No knowledge base."]}})
        result = await _client(service).ask("q")
        assert result.answers is None
        assert result.error.title == "KBNotFound"
        assert result.error.description == "No knowledge base."
        assert result.error.status_code == 404

    @pytest.mark.asyncio
    async def test_neither_key_is_malformed_with_status(self) -> None:
        service = FakeService(200, {"something": "else"})
        result = await _client(service).ask("q")
        assert result.error.kind is ErrorKind.MALFORMED_RESPONSE
        assert result.error.status_code == 200

    @pytest.mark.asyncio
    async def test_error_wins_over_answers(self) -> None:
        service = FakeService(200, {**SUCCESS, "error": {"code": "Conflict", "message": ["both"]}})
        result = await _client(service).ask("q")
        assert result.answers is None
        assert result.error.title == "Conflict"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credential", [None, ""])
    async def test_missing_endpoint_key_makes_no_request(self, credential) -> None:
        service = FakeService(200, SUCCESS)
        result = await _client(service, credential=credential).ask("q")
        assert result.error.kind is ErrorKind.MISSING_CREDENTIAL
        assert result.error.status_code == 0
        assert service.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("auth_mode", list(AuthMode))
    async def test_non_ascii_credential_makes_no_request(self, auth_mode: AuthMode) -> None:
        service = FakeService(200, SUCCESS)
        result = await _client(service, credential="cl\u00e9", auth_mode=auth_mode).ask("q")
        assert result.answers is None
        assert result.error.kind is ErrorKind.MISSING_CREDENTIAL
        assert result.error.status_code == 0
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_score_too_large_for_float_is_malformed(self) -> None:
        body = b'{"answers":[{"answer":"a","questions":[],"score":1' + b"0" * 400 + b"}]}"
        service = FakeService(200, body)
        result = await _client(service).ask("q")
        assert result.answers is None
        assert result.error.kind is ErrorKind.MALFORMED_RESPONSE
        assert result.error.status_code == 200

    @pytest.mark.asyncio
    async def test_stream_error_is_transport_failure(self) -> None:
        service = FakeService(error=httpx.StreamClosed())
        result = await _client(service).ask("q")
        assert result.error.kind is ErrorKind.TRANSPORT_FAILURE
        assert result.error.status_code == 0

    @pytest.mark.asyncio
    async def test_non_string_question_is_serialization_failure(self) -> None:
        service = FakeService(200, SUCCESS)
        result = await _client(service).ask(None)  # type: ignore[arg-type]
        assert result.error.kind is ErrorKind.SERIALIZATION_FAILURE
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_invalid_url_makes_no_request(self) -> None:
        service = FakeService(200, SUCCESS)
        client = QnAClient("not a url", "kb", "secret", http_client=service.http_client())
        result = await client.ask("q")
        assert result.error.kind is ErrorKind.INVALID_URL
        assert result.error.description == "Invalid URL: Unable to create API URL"
        assert result.error.status_code == 0
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_transport_failure(self) -> None:
        service = FakeService(error=httpx.ConnectError("connection refused"))
        result = await _client(service).ask("q")
        assert result.answers is None
        assert result.error.kind is ErrorKind.TRANSPORT_FAILURE
        assert result.error.title == "error"
        assert result.error.description == "connection refused"
        assert result.error.status_code == 0
        assert len(service.requests) == 1

    @pytest.mark.asyncio
    async def test_same_question_twice_gives_equal_outcomes(self) -> None:
        service = FakeService(200, SUCCESS)
        client = _client(service)
        first = await client.ask("q")
        second = await client.ask("q")
        assert first == second
        assert len(service.requests) == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_independent(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            question = json.loads(request.content)["question"]
            body = {"answers": [{"answer": question.upper(), "questions": [question], "score": 1}]}
            return httpx.Response(200, json=body)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = QnAClient(HOST, "kb-123", "secret", http_client=http_client)
        results = await asyncio.gather(*(client.ask(q) for q in ["a", "b", "c"]))
        assert [r.answers[0].answer_text for r in results] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_strip_markup(self) -> None:
        body = {"answers": [{"answer": "<p>Hi &amp; bye</p>", "questions": [], "score": 3}]}
        service = FakeService(200, body)
        result = await _client(service, strip_markup=True).ask("q")
        assert result.answers[0].answer_text == "Hi & bye"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        started = asyncio.Event()

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json=SUCCESS)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
        client = QnAClient(HOST, "kb-123", "secret", http_client=http_client)
        task = asyncio.create_task(client.ask("q"))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestAskWithCallback:
    """Tests for QnAClient.ask_with_callback()."""

    @pytest.mark.asyncio
    async def test_callback_called_once_with_answers(self) -> None:
        calls = []
        service = FakeService(200, SUCCESS)
        task = _client(service).ask_with_callback("q", lambda answers, error: calls.append((answers, error)))
        await task
        assert len(calls) == 1
        answers, error = calls[0]
        assert error is None
        assert answers[0].answer_text == "A & B"

    @pytest.mark.asyncio
    async def test_callback_called_once_with_error(self) -> None:
        calls = []
        service = FakeService(500, b"Internal Server Error")
        task = _client(service).ask_with_callback("q", lambda answers, error: calls.append((answers, error)))
        await task
        assert len(calls) == 1
        answers, error = calls[0]
        assert answers is None
        assert error.status_code == 500

    @pytest.mark.asyncio
    async def test_cancelled_call_never_calls_back(self) -> None:
        calls = []
        started = asyncio.Event()

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json=SUCCESS)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
        client = QnAClient(HOST, "kb-123", "secret", http_client=http_client)
        task = client.ask_with_callback("q", lambda answers, error: calls.append((answers, error)))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls == []


    @pytest.mark.asyncio
    async def test_unexpected_transport_exception_still_calls_back_once(self) -> None:
        calls = []
        service = FakeService(error=RuntimeError("socket exploded"))
        task = _client(service).ask_with_callback("q", lambda answers, error: calls.append((answers, error)))
        await task
        assert len(calls) == 1
        answers, error = calls[0]
        assert answers is None
        assert error.kind is ErrorKind.TRANSPORT_FAILURE
        assert error.description == "socket exploded"
        assert error.status_code == 0


class TestAskResult:
    """Tests for AskResult helpers via real calls."""

    @pytest.mark.asyncio
    async def test_unwrap_and_best(self) -> None:
        result = await _client(FakeService(200, SUCCESS)).ask("q")
        assert result.ok
        assert result.unwrap()[0].score == 42.5
        assert result.best().answer_text == "A & B"

    @pytest.mark.asyncio
    async def test_unwrap_raises_on_error(self) -> None:
        result = await _client(FakeService(401, {"error": {"code": "Unauthorized", "message": ["no"]}})).ask("q")
        assert not result.ok
        assert result.best() is None
        with pytest.raises(QnAServiceError) as exc:
            result.unwrap()
        assert exc.value.error.status_code == 401


class TestConstruction:
    """Tests for building clients."""

    def test_from_config_keeps_settings(self) -> None:
        config = QnAConfig(host_url=HOST, knowledgebase_id=" kb ", credential="k", auth_mode=AuthMode.SUBSCRIPTION_KEY)
        client = QnAClient.from_config(config)
        assert client.config == config
        assert client.config.knowledgebase_id == "kb"

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QNA_HOST_URL", HOST)
        monkeypatch.setenv("QNA_KNOWLEDGEBASE_ID", "kb-env")
        monkeypatch.setenv("QNA_ENDPOINT_KEY", "ek")
        monkeypatch.delenv("QNA_SUBSCRIPTION_KEY", raising=False)
        monkeypatch.delenv("QNA_AUTH_MODE", raising=False)
        monkeypatch.delenv("QNA_TIMEOUT", raising=False)
        client = QnAClient.from_env()
        assert client.config.knowledgebase_id == "kb-env"
        assert client.config.auth_mode is AuthMode.ENDPOINT_KEY
        assert client.config.credential == "ek"

    def test_ask_sync(self) -> None:
        service = FakeService(200, SUCCESS)
        result = _client(service).ask_sync("q")
        assert result.answers[0].answer_text == "A & B"
