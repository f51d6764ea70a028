import logging
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager

import httpx

from necocode.config import ProviderSettings
from necocode.errors import HttpError, NetworkError
from necocode.instrumentation import completion_span, record_error
from necocode.sse import decode_sse
from necocode.streaming import InternalEvent

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class ModelProvider:
    """Interface the Runner uses to stream a model response."""

    name = "base"

    @asynccontextmanager
    async def stream(
            self,
            *,
            model: str,
            max_tokens: int,
            system: str,
            messages: list[dict],
            tools: list[dict] | None = None,
    ) -> AsyncIterator[AsyncIterator[InternalEvent]]:
        """Issue one streamed request and yield its decoded events.

        Request failures (:class:`NetworkError`, :class:`HttpError`) are
        raised on entry, before any event is produced.  The response is
        released on exit.
        """
        raise NotImplementedError
        yield

    async def aclose(self) -> None:
        """Release resources held by the provider."""


class AnthropicProvider(ModelProvider):
    """Messages API client streaming ``POST {base_url}/v1/messages``.

    Args:
        settings: Provider settings (base URL, API key, model).
        client: Optional pre-built ``httpx.AsyncClient``; one with a long
            read timeout is created when omitted.
    """

    def __init__(self, settings: ProviderSettings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.name = settings.name
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(600.0, connect=30.0))

    @property
    def url(self) -> str:
        return f"{self.settings.base_url.rstrip('/')}/v1/messages"

    def build_request(
            self,
            *,
            model: str,
            max_tokens: int,
            system: str,
            messages: list[dict],
            tools: list[dict] | None = None,
    ) -> httpx.Request:
        body = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": messages,
            "stream": True,
        }
        if tools:
            body["tools"] = tools
        return self.client.build_request(
            "POST",
            self.url,
            json=body,
            headers={
                "x-api-key": self.settings.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )

    async def _send(self, request: httpx.Request, model: str) -> httpx.Response:
        async with completion_span(self.name, model) as span:
            try:
                response = await self.client.send(request, stream=True)
            except httpx.HTTPError as e:
                err = NetworkError(str(e) or type(e).__name__)
                record_error(span, err)
                raise err from e

            if not response.is_success:
                try:
                    await response.aread()
                    message = response.text
                except httpx.HTTPError:
                    message = ""
                finally:
                    await response.aclose()
                err = HttpError(response.status_code, message)
                record_error(span, err)
                raise err
            return response

    @asynccontextmanager
    async def stream(
            self,
            *,
            model: str,
            max_tokens: int,
            system: str,
            messages: list[dict],
            tools: list[dict] | None = None,
    ) -> AsyncIterator[AsyncIterator[InternalEvent]]:
        request = self.build_request(
            model=model, max_tokens=max_tokens, system=system,
            messages=messages, tools=tools,
        )
        logger.debug(f"POST {self.url} model={model} messages={len(messages)}")
        response = await self._send(request, model)
        try:
            async with aclosing(decode_sse(response.aiter_bytes())) as events:
                yield events
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()
