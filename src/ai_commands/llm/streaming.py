"""
补全流

CompletionStream 是两种传输（SDK 增量 / 原始 SSE）共用的有序字节流:
- 拉取式：只有调用方读取时才从上游读取，天然背压
- 可取消：调用方随时可以停止读取并 aclose()，上游连接随之关闭
- 流中途的上游故障关闭连接，并作为终止事件（异常）抛给调用方，已读出的部分不撤回
"""

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import StrEnum

from ..errors import AICommandsError, PipelineStage, UpstreamUnavailableError

logger = logging.getLogger(__name__)


class StreamState(StrEnum):
    """流状态"""

    OPEN = "open"
    DONE = "done"  # 上游正常结束
    FAILED = "failed"  # 上游中途失败
    CLOSED = "closed"  # 调用方主动关闭/取消


class CompletionStream:
    """
    有序、可取消的响应字节流

    Usage:
        async with await provider.stream_complete(request) as stream:
            async for chunk in stream:
                ...
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        on_close: Callable[[], Awaitable[None]] | None = None,
        media_type: str = "text/plain; charset=utf-8",
        model: str = "",
    ):
        self._chunks = chunks
        self._on_close = on_close
        self._released = False
        self._state = StreamState.OPEN
        self._bytes_read = 0
        self.media_type = media_type
        self.model = model

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is not StreamState.OPEN

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    def __aiter__(self) -> "CompletionStream":
        return self

    async def __anext__(self) -> bytes:
        if self._state is not StreamState.OPEN:
            raise StopAsyncIteration

        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._state = StreamState.DONE
            await self._release()
            logger.debug(f"[Stream] model={self.model} finished ({self._bytes_read} bytes)")
            raise
        except asyncio.CancelledError:
            self._state = StreamState.CLOSED
            await self._release()
            raise
        except AICommandsError:
            self._state = StreamState.FAILED
            await self._release()
            raise
        except Exception as e:
            self._state = StreamState.FAILED
            await self._release()
            logger.error(f"[Stream] model={self.model} interrupted after {self._bytes_read} bytes: {e}")
            raise UpstreamUnavailableError(
                PipelineStage.COMPLETION,
                f"Completion stream interrupted: {type(e).__name__}",
                payload=str(e),
            ) from e

        self._bytes_read += len(chunk)
        return chunk

    async def aclose(self) -> None:
        """停止读取并关闭上游连接（可重复调用）"""
        if self._state is StreamState.OPEN:
            self._state = StreamState.CLOSED
            logger.info(f"[Stream] model={self.model} closed by consumer after {self._bytes_read} bytes")
        await self._release()

    async def read(self) -> bytes:
        """读取剩余全部内容"""
        return b"".join([chunk async for chunk in self])

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            aclose = getattr(self._chunks, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except RuntimeError as e:
                    # 另一个任务仍在 __anext__ 中等待上游时，生成器无法关闭，由 on_close 断开连接
                    logger.debug(f"[Stream] model={self.model} chunk iterator still running: {e}")
        finally:
            if self._on_close is not None:
                await self._on_close()

    async def __aenter__(self) -> "CompletionStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"<CompletionStream model={self.model} state={self._state.value}>"


async def decode_sse_text(chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """
    将原始 SSE 字节流解码为文本增量

    供使用原始传输、但只需要文本的调用方使用。

    Yields:
        每个 chat.completion.chunk 的 delta.content

    Raises:
        UpstreamUnavailableError: SSE 事件中携带 error
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            line = line.strip()
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if data == "[DONE]":
                return
            if not data:
                continue
            try:
                event = json.loads(data)
            except json.JSONDecodeError:
                continue

            if event.get("error"):
                raise UpstreamUnavailableError(
                    PipelineStage.COMPLETION,
                    "Completion stream reported an error",
                    payload=event["error"],
                )
            choices = event.get("choices") or []
            if not choices:
                continue
            text = (choices[0].get("delta") or {}).get("content")
            if text:
                yield text
