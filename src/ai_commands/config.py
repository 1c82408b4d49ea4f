"""
ai-commands 配置模块
"""

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from .prompt.budget import BudgetConfig, ExhaustedPolicy
from .prompt.retriever import RetrievalConfig


class Settings(BaseSettings):
    """应用配置"""

    # OpenAI API（审核 / 向量化 / 补全）
    openai_api_key: str = Field(default="", description="OpenAI API Key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API Base URL (支持 OpenAI 兼容的转发服务)",
    )

    # Supabase（排序检索服务）
    supabase_url: str = Field(default="", description="Supabase 项目 URL")
    supabase_key: str = Field(default="", description="Supabase API Key")
    supabase_match_function: str = Field(
        default="match_page_sections_v2", description="文档片段检索 RPC 函数名"
    )

    # 各流程使用的模型
    policy_model: str = Field(default="gpt-4o-2024-05-13", description="RLS 策略生成模型")
    query_model: str = Field(default="gpt-3.5-turbo-0125", description="SQL 生成模型")
    retrieval_model: str = Field(default="gpt-3.5-turbo-0301", description="文档问答模型")
    embedding_model: str = Field(default="text-embedding-ada-002", description="向量化模型")
    model_profiles_path: str = Field(default="", description="模型档案 JSON 覆盖文件（可选）")

    # 补全参数
    max_completion_tokens: int | None = Field(
        default=None, description="最大补全 token 数（同时作为预留额度），为空时使用模型档案的预留值"
    )
    temperature: float = Field(default=0.0, description="采样温度（0 = 贪心解码）")

    # 检索参数
    match_threshold: float = Field(default=0.78, description="相似度阈值")
    min_content_length: int = Field(default=50, description="片段最小长度（字符）")
    match_limit: int = Field(default=10, description="最多检索片段数")
    context_token_cap: int = Field(default=1500, description="上下文块 token 上限")
    context_delimiter: str = Field(default="---", description="片段分隔行")

    # 预算耗尽策略: proceed（只带固定消息继续） / fail（抛出 BudgetExhaustedError）
    budget_exhausted_policy: ExhaustedPolicy = Field(
        default=ExhaustedPolicy.PROCEED, description="可裁剪消息耗尽时的处理策略"
    )

    # 网络层超时（管线本身不施加超时策略）
    request_timeout: float = Field(default=60.0, description="HTTP 请求超时（秒）")

    # === 日志配置 ===
    project_root: Path = Field(
        default_factory=lambda: Path.cwd(), description="项目根目录 (默认为当前工作目录)"
    )
    log_level: str = Field(default="INFO", description="日志级别")
    log_dir: str = Field(default="logs", description="日志目录")
    log_file_prefix: str = Field(default="ai-commands", description="日志文件前缀")
    log_max_size_mb: int = Field(default=10, description="单个日志文件最大大小（MB）")
    log_backup_count: int = Field(default=30, description="保留的日志文件数量")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", description="日志格式"
    )
    log_to_console: bool = Field(default=True, description="是否输出到控制台")
    log_to_file: bool = Field(default=False, description="是否输出到文件")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        # 忽略空字符串环境变量，否则 pydantic 会尝试把 "" 解析成 int/float
        "env_ignore_empty": True,
    }

    @property
    def log_dir_path(self) -> Path:
        """日志目录完整路径"""
        return self.project_root / self.log_dir


@dataclass(frozen=True)
class PipelineConfig:
    """注入管线的不可变参数"""

    policy_model: str = "gpt-4o-2024-05-13"
    query_model: str = "gpt-3.5-turbo-0125"
    retrieval_model: str = "gpt-3.5-turbo-0301"
    max_completion_tokens: int | None = None  # 为空时使用模型档案的 reserved_completion_tokens
    temperature: float = 0.0
    context_token_cap: int = 1500
    context_delimiter: str = "---"
    retrieval: RetrievalConfig = RetrievalConfig()
    budget_exhausted_policy: ExhaustedPolicy = ExhaustedPolicy.PROCEED

    def budget_for(self, reserved_completion_tokens: int) -> BudgetConfig:
        return BudgetConfig(
            reserved_completion_tokens=reserved_completion_tokens,
            exhausted_policy=self.budget_exhausted_policy,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            policy_model=settings.policy_model,
            query_model=settings.query_model,
            retrieval_model=settings.retrieval_model,
            max_completion_tokens=settings.max_completion_tokens,
            temperature=settings.temperature,
            context_token_cap=settings.context_token_cap,
            context_delimiter=settings.context_delimiter,
            retrieval=RetrievalConfig(
                similarity_threshold=settings.match_threshold,
                min_content_length=settings.min_content_length,
                limit=settings.match_limit,
            ),
            budget_exhausted_policy=settings.budget_exhausted_policy,
        )


# 全局配置实例
settings = Settings()
