"""
ai-commands 日志系统

功能:
- 日志文件输出（按大小轮转）
- 分离 error.log（只记录 ERROR/CRITICAL，按天轮转）
- 支持控制台彩色输出
"""

from .config import get_logger, setup_logging, setup_logging_from_settings

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
]
