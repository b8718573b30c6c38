"""YAML 配置读取

解析结果按文件绝对路径缓存在进程内，reload() 强制重新读盘。

使用示例:
    from yorder.config import ConfigLoader, load_yaml_config, AppSettings

    raw = ConfigLoader.load("config/settings.yaml")
    ordering = ConfigLoader.section("config/settings.yaml", "ordering")
    settings = load_yaml_config("config/settings.yaml", AppSettings)
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml


T = TypeVar("T")


class ConfigLoader:
    """带缓存的 YAML 读取器（类级别状态，无需实例化）"""

    _cache: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def resolve(config_path: str, base_dir: Optional[str] = None) -> str:
        """相对路径优先相对 base_dir，其次相对当前工作目录"""
        path = Path(config_path)
        if not path.is_absolute():
            path = Path(base_dir) / path if base_dir else Path.cwd() / path
        return str(path)

    @classmethod
    def load(
        cls,
        config_path: str,
        base_dir: Optional[str] = None,
        use_cache: bool = True
    ) -> Dict[str, Any]:
        """读取并解析 YAML 文件，空文件返回 {}

        Raises:
            FileNotFoundError: 文件不存在
            yaml.YAMLError: 内容不是合法 YAML
        """
        key = cls.resolve(config_path, base_dir)
        if use_cache and key in cls._cache:
            return cls._cache[key]

        path = Path(key)
        if not path.is_file():
            raise FileNotFoundError(f"配置文件不存在: {key}")

        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if use_cache:
            cls._cache[key] = data
        return data

    @classmethod
    def section(
        cls,
        config_path: str,
        name: str,
        base_dir: Optional[str] = None
    ) -> Dict[str, Any]:
        """取顶层某一节，缺失时返回 {}"""
        return cls.load(config_path, base_dir).get(name) or {}

    @classmethod
    def reload(cls, config_path: str, base_dir: Optional[str] = None) -> Dict[str, Any]:
        cls._cache.pop(cls.resolve(config_path, base_dir), None)
        return cls.load(config_path, base_dir)

    @classmethod
    def clear_cache(cls):
        cls._cache.clear()

    @classmethod
    def get_cached_paths(cls) -> List[str]:
        return list(cls._cache)


def load_yaml_config(
    config_path: str,
    settings_class: Type[T],
    base_dir: Optional[str] = None,
    **overrides
) -> T:
    """用 YAML 内容构造 pydantic Settings 实例

    overrides 按顶层键整体替换 YAML 中的同名节，缓存中的原始字典不受影响。

    使用示例:
        settings = load_yaml_config(
            "config/settings.yaml",
            AppSettings,
            ordering={"lock_groups": False},
        )
    """
    values = {**ConfigLoader.load(config_path, base_dir), **overrides}
    return settings_class(**values)
