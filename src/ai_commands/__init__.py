"""
ai-commands - Token 预算约束下的检索增强 chat 补全管线

对话 + 可选结构化上下文（数据库 schema、已有 SQL/策略、检索到的文档）
→ 组装 prompt → 审核 → 预算裁剪 → 流式补全。
"""


def _resolve_version() -> str:
    """
    解析版本号

    优先读取源码根目录的 pyproject.toml（editable 安装时始终最新），
    其次回退到已安装包的元数据。
    """
    from pathlib import Path

    version = "0.0.0-dev"

    project_root = Path(__file__).parent.parent.parent
    pyproject_path = project_root / "pyproject.toml"
    if pyproject_path.exists():
        try:
            import tomllib

            with open(pyproject_path, "rb") as f:
                return tomllib.load(f)["project"]["version"]
        except (OSError, KeyError, ValueError):
            pass

    try:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as meta_version

        version = meta_version("ai-commands")
    except PackageNotFoundError:
        pass

    return version


__version__ = _resolve_version()

from .errors import (  # noqa: E402
    AICommandsError,
    ContentPolicyError,
    ContextLengthError,
    InvalidRoleError,
    NoUserMessageError,
    PipelineStage,
    UpstreamUnavailableError,
)
from .llm.types import Message, MessageRole  # noqa: E402
from .logging import setup_logging, setup_logging_from_settings  # noqa: E402
from .pipeline import ChatPipeline, create_knowledge_source, create_pipeline  # noqa: E402

__all__ = [
    "__version__",
    "AICommandsError",
    "ChatPipeline",
    "ContentPolicyError",
    "ContextLengthError",
    "InvalidRoleError",
    "Message",
    "MessageRole",
    "NoUserMessageError",
    "PipelineStage",
    "UpstreamUnavailableError",
    "create_knowledge_source",
    "create_pipeline",
    "setup_logging",
    "setup_logging_from_settings",
]
