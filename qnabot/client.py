"""
QnA client: ask a knowledge base a question and get ranked answers back.

Responsibility: Tie the request builder, the httpx transport and the response
interpreter together behind one call. Each ask() issues exactly one POST and
delivers exactly one AskResult; failures come back as ServiceError values,
never as exceptions.
"""

import asyncio
import logging
from typing import Callable

import httpx

from qnabot.core.config import DEFAULT_HOST_URL, AuthMode, QnAConfig, TransportOptions, load_config
from qnabot.core.errors import NO_STATUS_MESSAGE, ErrorKind, ServiceError
from qnabot.schemas.answer import Answer, AskResult
from qnabot.services.html_text import decode_html_entities, html_to_text
from qnabot.services.request_builder import RequestBuildError, build_request
from qnabot.services.response_interpreter import interpret_response

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[list[Answer] | None, ServiceError | None], None]


class QnAClient:
    """
    Client for the generateAnswer endpoint of one knowledge base.

    Holds only immutable config (and an optional caller-owned httpx client), so
    one instance can serve many concurrent ask() calls.
    """

    def __init__(
        self,
        host_url: str = DEFAULT_HOST_URL,
        knowledgebase_id: str = "",
        credential: str | None = None,
        *,
        auth_mode: AuthMode = AuthMode.ENDPOINT_KEY,
        transport: TransportOptions | None = None,
        strip_markup: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = QnAConfig(
            host_url=host_url,
            knowledgebase_id=knowledgebase_id,
            credential=credential,
            auth_mode=auth_mode,
            transport=transport or TransportOptions(),
            strip_markup=strip_markup,
        )
        self._http_client = http_client

    @classmethod
    def from_config(cls, config: QnAConfig, http_client: httpx.AsyncClient | None = None) -> "QnAClient":
        return cls(
            config.host_url,
            config.knowledgebase_id,
            config.credential,
            auth_mode=config.auth_mode,
            transport=config.transport,
            strip_markup=config.strip_markup,
            http_client=http_client,
        )

    @classmethod
    def from_env(cls, http_client: httpx.AsyncClient | None = None) -> "QnAClient":
        """Build from QNA_* environment variables; see load_config()."""
        return cls.from_config(load_config(), http_client=http_client)

    @property
    def config(self) -> QnAConfig:
        return self._config

    async def _send(self, request: httpx.Request) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.send(request)
        options = self._config.transport
        async with httpx.AsyncClient(
            timeout=options.timeout,
            verify=options.verify,
            follow_redirects=options.follow_redirects,
        ) as client:
            return await client.send(request)

    async def ask(self, question: str) -> AskResult:
        """
        Ask one question. Returns AskResult with answers (service order) or a
        ServiceError. Cancelling the awaiting task cancels the HTTP call and
        produces no result.
        """
        logger.info(
            "[qna:ask] IN  question_type=%s question_len=%s kb=%s auth_mode=%s",
            type(question).__name__,
            len(question) if isinstance(question, str) else "n/a",
            self._config.knowledgebase_id,
            self._config.auth_mode.value,
        )
        try:
            request = build_request(self._config, question)
        except RequestBuildError as e:
            logger.warning("[qna:ask] OUT request not built kind=%s: %s", e.kind.value, e.message)
            return AskResult(error=ServiceError.client_side(e.kind, e.message))

        try:
            response = await self._send(request)
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as e:
            logger.warning("[qna:ask] OUT transport failure: %s", e)
            return AskResult(
                error=ServiceError.client_side(ErrorKind.TRANSPORT_FAILURE, str(e) or NO_STATUS_MESSAGE)
            )

        decode = html_to_text if self._config.strip_markup else decode_html_entities
        result = interpret_response(response.status_code, response.content, decode=decode)
        logger.info("[qna:ask] OUT status=%d ok=%s", response.status_code, result.ok)
        return result

    def ask_with_callback(self, question: str, on_complete: CompletionHandler) -> "asyncio.Task[None]":
        """
        Schedule ask() on the running loop and call on_complete(answers, error)
        once when it finishes. Cancelling the returned task suppresses the
        callback. Must be called from within a running event loop.
        """

        async def _run() -> None:
            try:
                result = await self.ask(question)
            except Exception as e:
                logger.exception("[qna:ask_with_callback] ask failed unexpectedly")
                result = AskResult(
                    error=ServiceError.client_side(ErrorKind.TRANSPORT_FAILURE, str(e) or type(e).__name__)
                )
            on_complete(result.answers, result.error)

        return asyncio.get_running_loop().create_task(_run())

    def ask_sync(self, question: str) -> AskResult:
        """Blocking ask() for scripts; not usable inside a running event loop."""
        return asyncio.run(self.ask(question))

