"""
OpenAI SDK Provider

服务商以增量 delta 序列推送补全结果，这里把它重新封装为按序输出的
原始内容字节流（不缓冲完整响应，收到第一个 delta 即可输出）。
"""

import logging
from collections.abc import AsyncIterator

import openai
from openai import AsyncOpenAI

from ...errors import PipelineStage, UpstreamUnavailableError
from ..streaming import CompletionStream
from ..types import CompletionRequest
from .base import CompletionProvider, classify_provider_error

logger = logging.getLogger(__name__)


class OpenAISDKProvider(CompletionProvider):
    """基于 openai SDK 的流式 Provider"""

    name = "openai-sdk"

    def __init__(self, client: AsyncOpenAI):
        self._client = client

    async def stream_complete(self, request: CompletionRequest) -> CompletionStream:
        logger.debug(f"[OpenAI SDK] stream request: model={request.model}")
        try:
            sdk_stream = await self._client.chat.completions.create(
                model=request.model,
                messages=[msg.to_dict() for msg in request.messages],
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                stream=True,
            )
        except openai.APIStatusError as e:
            logger.warning(f"[OpenAI SDK] completion rejected ({e.status_code}): {e.body}")
            raise classify_provider_error(e.status_code, e.body, code=e.code) from e
        except openai.APIError as e:
            logger.error(f"[OpenAI SDK] completion request failed: {e}")
            raise UpstreamUnavailableError(
                PipelineStage.COMPLETION, f"Request failed: {e.message}", payload=e.body
            ) from e

        return CompletionStream(
            _iter_content_bytes(sdk_stream),
            on_close=sdk_stream.close,
            model=request.model,
        )

    async def close(self) -> None:
        await self._client.close()


async def _iter_content_bytes(sdk_stream: AsyncIterator) -> AsyncIterator[bytes]:
    """chat.completion.chunk 序列 → UTF-8 内容字节"""
    async for chunk in sdk_stream:
        if not chunk.choices:
            continue
        text = chunk.choices[0].delta.content
        if text:
            yield text.encode("utf-8")
