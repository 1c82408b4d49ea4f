"""
OpenAI 原始传输 Provider

自行发起 HTTP 请求，把服务端 SSE 响应原样暴露给调用方解码。
适用于调用方需要原始事件格式、不希望 SDK 做转换的场景。
支持 OpenAI 官方 API 及其他 OpenAI 兼容 API。
"""

import asyncio
import json
import logging

import httpx

from ...errors import AuthenticationError, PipelineStage, UpstreamUnavailableError
from ..streaming import CompletionStream
from ..types import CompletionRequest
from .base import CompletionProvider, classify_provider_error

logger = logging.getLogger(__name__)


class OpenAIHTTPProvider(CompletionProvider):
    """OpenAI 兼容 API Provider（原始 SSE）"""

    name = "openai-http"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._client_loop_id: int | None = None  # 记录创建客户端时的事件循环 ID

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """获取或创建 HTTP 客户端

        注意：httpx.AsyncClient 绑定到创建时的事件循环。
        如果事件循环变化，需要重新创建客户端。外部注入的客户端不做替换。
        """
        if not self._owns_client:
            return self._client

        try:
            current_loop_id = id(asyncio.get_running_loop())
        except RuntimeError:
            current_loop_id = None

        need_recreate = (
            self._client is None
            or self._client.is_closed
            or self._client_loop_id != current_loop_id
        )
        if need_recreate:
            if self._client is not None and not self._client.is_closed:
                try:
                    await self._client.aclose()
                except RuntimeError as e:
                    # 旧循环已关闭时无法优雅关闭
                    logger.debug(f"[OpenAI] failed to close stale client: {e}")
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
            self._client_loop_id = current_loop_id

        return self._client

    def _build_headers(self) -> dict:
        """构建请求头"""
        # 避免 Authorization: Bearer <empty> 导致 httpx 报 Illegal header value
        api_key = (self._api_key or "").strip()
        if not api_key:
            raise AuthenticationError(
                "Missing API key for OpenAI endpoint. Set OPENAI_API_KEY or configure openai_api_key."
            )
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    async def stream_complete(self, request: CompletionRequest) -> CompletionStream:
        """发起流式请求，返回原始 SSE 字节流"""
        client = await self._get_client()
        body = request.to_dict()

        logger.debug(f"[OpenAI] stream request to {self._base_url}: model={request.model}")

        http_request = client.build_request(
            "POST",
            f"{self._base_url}/chat/completions",
            headers=self._build_headers(),
            json=body,
        )
        try:
            response = await client.send(http_request, stream=True)
        except httpx.RequestError as e:
            detail = f"{type(e).__name__}: {e}" if str(e) else f"{type(e).__name__}({repr(e)})"
            logger.error(f"[OpenAI] completion request failed: {detail}")
            raise UpstreamUnavailableError(
                PipelineStage.COMPLETION, f"Request failed: {detail}", payload=detail
            ) from e

        if response.status_code >= 400:
            try:
                raw = await response.aread()
            finally:
                await response.aclose()
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                payload = {"message": raw.decode("utf-8", errors="replace")[:500]}
            logger.warning(f"[OpenAI] completion rejected ({response.status_code}): {payload}")
            raise classify_provider_error(response.status_code, payload)

        return CompletionStream(
            response.aiter_bytes(),
            on_close=response.aclose,
            media_type=response.headers.get("content-type", "text/event-stream"),
            model=request.model,
        )

    async def close(self) -> None:
        """关闭客户端（只关闭自己创建的客户端）"""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
