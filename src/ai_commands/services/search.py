"""
排序检索服务

管线把向量检索当作黑盒：给定查询向量，返回按相似度降序排列的文档片段。
默认实现调用 Supabase (PostgREST) 上的 match_page_sections_v2 RPC。
"""

import json
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from ..errors import PipelineStage, UpstreamUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievedPassage:
    """检索到的文档片段"""

    text: str
    source_reference: str = ""
    relevance_score: float = 0.0


@runtime_checkable
class RankedRetrievalService(Protocol):
    async def search(
        self,
        vector: list[float],
        similarity_threshold: float,
        min_length: int,
        exclude_ignored: bool,
        limit: int,
    ) -> list[RetrievedPassage]: ...


class SupabaseSectionSearch:
    """
    基于 Supabase RPC 的文档片段检索

    等价于:
        supabase.rpc("match_page_sections_v2", {...})
            .neq("rag_ignore", true)
            .select("content,page!inner(path),rag_ignore")
            .limit(limit)
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        function: str = "match_page_sections_v2",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._endpoint = f"{url.rstrip('/')}/rest/v1/rpc/{function}"
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    def _build_headers(self) -> dict:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def search(
        self,
        vector: list[float],
        similarity_threshold: float,
        min_length: int,
        exclude_ignored: bool,
        limit: int,
    ) -> list[RetrievedPassage]:
        params = {
            "select": "content,page!inner(path),rag_ignore",
            "limit": str(limit),
        }
        if exclude_ignored:
            params["rag_ignore"] = "neq.true"

        response = await self._client.post(
            self._endpoint,
            headers=self._build_headers(),
            params=params,
            json={
                "embedding": vector,
                "match_threshold": similarity_threshold,
                "min_content_length": min_length,
            },
        )
        if response.status_code >= 400:
            try:
                payload = response.json()
            except json.JSONDecodeError:
                payload = {"message": response.text[:500]}
            raise UpstreamUnavailableError(
                PipelineStage.RETRIEVAL,
                f"Failed to match page sections ({response.status_code})",
                payload=payload,
            )

        passages = []
        for row in response.json():
            if exclude_ignored and row.get("rag_ignore"):
                continue
            page = row.get("page") or {}
            passages.append(
                RetrievedPassage(
                    text=row.get("content") or "",
                    source_reference=page.get("path", "") if isinstance(page, dict) else "",
                    relevance_score=float(row.get("similarity") or 0.0),
                )
            )
        logger.debug(f"[Search] {len(passages)} sections matched (threshold={similarity_threshold})")
        return passages[:limit]

    async def close(self) -> None:
        """关闭客户端（只关闭自己创建的客户端）"""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "SupabaseSectionSearch":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
