"""
模型档案表

进程启动时初始化一次的只读查询表，注入到管线中使用。
支持从 JSON 文件覆盖/追加档案:

    {
      "version": "2024-06",
      "profiles": [
        {"identifier": "gpt-4o-mini", "max_context_tokens": 128000}
      ]
    }
"""

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from types import MappingProxyType

from ..errors import ConfigurationError, UnknownModelError
from .types import ModelProfile

logger = logging.getLogger(__name__)

DEFAULT_PROFILES_VERSION = "2024-05"

DEFAULT_MODEL_PROFILES: tuple[ModelProfile, ...] = (
    ModelProfile("gpt-3.5-turbo", 4096),
    ModelProfile("gpt-3.5-turbo-0301", 4096, tokens_per_message=4),
    ModelProfile("gpt-3.5-turbo-0613", 4096),
    ModelProfile("gpt-3.5-turbo-16k", 16385),
    ModelProfile("gpt-3.5-turbo-1106", 16385),
    ModelProfile("gpt-3.5-turbo-0125", 16385),
    ModelProfile("gpt-4", 8192),
    ModelProfile("gpt-4-32k", 32768),
    ModelProfile("gpt-4-1106-preview", 128000),
    ModelProfile("gpt-4-0125-preview", 128000),
    ModelProfile("gpt-4-turbo", 128000),
    ModelProfile("gpt-4o", 128000),
)


class ModelProfileTable:
    """
    不可变的模型档案表

    查找顺序：精确匹配 → 最长前缀匹配（如 "gpt-4o-2024-05-13" → "gpt-4o"）。
    """

    __slots__ = ("_profiles", "_version")

    def __init__(self, profiles: Iterable[ModelProfile], version: str = DEFAULT_PROFILES_VERSION):
        self._profiles = MappingProxyType({p.identifier: p for p in profiles})
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    @property
    def identifiers(self) -> list[str]:
        return sorted(self._profiles)

    def get(self, model: str) -> ModelProfile:
        profile = self._profiles.get(model)
        if profile is not None:
            return profile

        candidates = [ident for ident in self._profiles if model.startswith(ident)]
        if not candidates:
            raise UnknownModelError(model)
        return self._profiles[max(candidates, key=len)]

    def max_context(self, model: str) -> int:
        return self.get(model).max_context_tokens

    def merged(self, profiles: Iterable[ModelProfile], version: str | None = None) -> "ModelProfileTable":
        """返回合并了新档案的新表（原表不变）"""
        combined = dict(self._profiles)
        for profile in profiles:
            combined[profile.identifier] = profile
        return ModelProfileTable(combined.values(), version=version or self._version)

    def __contains__(self, model: object) -> bool:
        if not isinstance(model, str):
            return False
        try:
            self.get(model)
        except UnknownModelError:
            return False
        return True

    def __iter__(self) -> Iterator[ModelProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    def __repr__(self) -> str:
        return f"<ModelProfileTable version={self._version} models={len(self)}>"


DEFAULT_PROFILE_TABLE = ModelProfileTable(DEFAULT_MODEL_PROFILES)


def load_model_profiles(config_path: Path | str | None = None) -> ModelProfileTable:
    """
    加载模型档案表

    Args:
        config_path: JSON 覆盖文件路径，为空时只使用内置档案

    Returns:
        ModelProfileTable

    Raises:
        ConfigurationError: 配置错误
    """
    if not config_path:
        return DEFAULT_PROFILE_TABLE

    config_path = Path(config_path)
    if not config_path.exists():
        logger.warning(f"Model profile file not found: {config_path}, using built-in profiles")
        return DEFAULT_PROFILE_TABLE

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in model profile file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read model profile file: {e}")

    profiles = []
    for entry in data.get("profiles", []):
        try:
            profiles.append(ModelProfile.from_dict(entry))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid model profile entry {entry!r}: {e}")

    table = DEFAULT_PROFILE_TABLE.merged(profiles, version=data.get("version"))
    logger.info(f"Loaded {len(profiles)} model profiles from {config_path} (version={table.version})")
    return table
