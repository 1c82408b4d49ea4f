"""
外部协作服务

管线只依赖这里的 Protocol；OpenAI / Supabase 实现是默认装配。
"""

from .embedding import EmbeddingService, OpenAIEmbeddingService
from .moderation import ModerationService, ModerationVerdict, OpenAIModerationService
from .search import RankedRetrievalService, RetrievedPassage, SupabaseSectionSearch

__all__ = [
    "EmbeddingService",
    "OpenAIEmbeddingService",
    "ModerationService",
    "ModerationVerdict",
    "OpenAIModerationService",
    "RankedRetrievalService",
    "RetrievedPassage",
    "SupabaseSectionSearch",
]
