"""
Content Moderator - 内容审核守门

对对话中的每条消息并发发起一次审核，任一被标记即中止整个管线：
不发起向量化、检索或补全调用。

失败即关闭（fail closed）：审核服务不可用视为"尚未验证"，从不视为通过。
不重试：重试同样的内容不会改变结论。
"""

import asyncio
import logging
from collections.abc import Sequence

from ..errors import ContentPolicyError, PipelineStage, UpstreamUnavailableError
from ..llm.types import Message
from ..services.moderation import ModerationService, ModerationVerdict

logger = logging.getLogger(__name__)


class ContentModerator:
    """并发审核对话消息"""

    def __init__(self, service: ModerationService):
        self._service = service

    async def _check(self, index: int, message: Message) -> tuple[int, ModerationVerdict]:
        return index, await self._service.check(message.content)

    async def screen(self, conversation: Sequence[Message]) -> list[ModerationVerdict]:
        """
        审核全部消息

        第一个被标记（或失败）的结果即短路：取消仍在进行的审核请求，丢弃其结果。

        Args:
            conversation: 已校验的对话

        Returns:
            与对话顺序一致的审核结论（全部通过时）

        Raises:
            ContentPolicyError: 任一消息被标记
            UpstreamUnavailableError: 审核服务调用失败
        """
        if not conversation:
            return []

        tasks = [
            asyncio.create_task(self._check(i, message))
            for i, message in enumerate(conversation)
        ]
        verdicts: list[ModerationVerdict | None] = [None] * len(tasks)
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    index, verdict = await next_done
                except Exception as e:
                    logger.error(f"[Moderation] service call failed: {type(e).__name__}: {e}")
                    raise UpstreamUnavailableError(
                        PipelineStage.MODERATION,
                        "Failed to moderate content",
                        payload=str(e),
                    ) from e

                if verdict.flagged:
                    logger.warning(
                        f"[Moderation] message #{index} flagged: {sorted(verdict.categories)}"
                    )
                    raise ContentPolicyError(verdict.categories, message_index=index)
                verdicts[index] = verdict
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info(f"[Moderation] {len(verdicts)} messages passed")
        return verdicts
