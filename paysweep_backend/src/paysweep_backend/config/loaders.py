"""配置加载器模块

使用策略模式分离默认值、YAML、环境变量等不同配置源的加载逻辑，
按优先级深度合并后由 ConfigParser 转换为 Settings 对象。
"""

from __future__ import annotations

import logging
import os
import yaml
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, List, Optional

from pydantic import ValidationError

from .settings import Settings

logger = logging.getLogger("paysweep.config.loaders")

CONFIG_FILE_NAME = "paysweep.yaml"


class ConfigLoader(ABC):
    """配置加载器抽象基类

    定义了配置加载的统一接口，支持多种配置源。
    """

    @abstractmethod
    def load(self) -> Dict[str, Any]:
        """加载配置数据

        Returns:
            配置数据字典
        """
        raise NotImplementedError

    @abstractmethod
    def is_available(self) -> bool:
        """检查配置源是否可用"""
        raise NotImplementedError


class YamlConfigLoader(ConfigLoader):
    """YAML配置文件加载器

    负责从YAML文件中加载配置，支持文件发现。
    """

    def __init__(self, file_path: Path | str | None = None):
        """初始化YAML配置加载器

        Args:
            file_path: YAML文件路径，如果为None则依次查找 PAYSWEEP_CONFIG
                环境变量、当前目录及其上级目录
        """
        self.file_path = Path(file_path) if file_path else self._discover_config_path()
        logger.debug("YAML配置文件路径: %s", self.file_path)

    def _discover_config_path(self) -> Path:
        explicit = os.environ.get("PAYSWEEP_CONFIG")
        if explicit:
            return Path(explicit)

        start = Path.cwd().resolve()
        for parent in (start, *start.parents):
            candidate = parent / CONFIG_FILE_NAME
            if candidate.exists():
                logger.info("发现配置文件: %s", candidate)
                return candidate

        # 回退到默认位置
        return start / CONFIG_FILE_NAME

    def is_available(self) -> bool:
        return self.file_path.exists()

    def load(self) -> Dict[str, Any]:
        if not self.is_available():
            logger.warning("配置文件不存在: %s", self.file_path)
            return {}

        try:
            content = self.file_path.read_text(encoding="utf-8")
            data = yaml.safe_load(content) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("加载配置文件失败: %s", e)
            return {}

        if not isinstance(data, dict):
            logger.error("配置文件顶层必须是映射: %s", self.file_path)
            return {}

        logger.info("成功加载配置文件: %s", self.file_path)
        return data


class EnvironmentConfigLoader(ConfigLoader):
    """环境变量配置加载器

    从带前缀的环境变量中加载配置，覆盖其他配置源。
    """

    # 环境变量（去掉前缀、转小写后）到配置路径的映射
    ENV_MAPPING = {
        "timezone": ("scheduler_timezone",),
        "check_interval_minutes": ("payment_timeout", "check_interval_minutes"),
        "payment_timeout_minutes": ("payment_timeout", "payment_timeout_minutes"),
        "payment_timeout_enabled": ("payment_timeout", "enabled"),
        "log_cleanup_enabled": ("log_cleanup", "enabled"),
        "queue_backend": ("queue", "backend"),
        "broker_url": ("queue", "broker_url"),
        "result_backend": ("queue", "result_backend"),
        "log_level": ("logging", "level"),
    }

    def __init__(self, prefix: str = "PAYSWEEP_"):
        self.prefix = prefix

    def is_available(self) -> bool:
        return any(key.startswith(self.prefix) for key in os.environ)

    def load(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self.prefix):
                continue

            config_key = key[len(self.prefix):].lower()
            path = self.ENV_MAPPING.get(config_key)
            if path is None:
                continue

            target = config
            for part in path[:-1]:
                target = target.setdefault(part, {})
            target[path[-1]] = value

        if config:
            logger.info("从环境变量加载了 %d 组配置项", len(config))

        return config


class DefaultConfigLoader(ConfigLoader):
    """默认配置加载器

    提供系统默认配置值。
    """

    def is_available(self) -> bool:
        return True

    def load(self) -> Dict[str, Any]:
        return Settings().model_dump()


class CompositeConfigLoader(ConfigLoader):
    """组合配置加载器

    按优先级顺序合并多个配置源的数据。
    """

    def __init__(self, loaders: List[ConfigLoader]):
        """初始化组合加载器

        Args:
            loaders: 配置加载器列表，按优先级从低到高排序
        """
        self.loaders = loaders

    def is_available(self) -> bool:
        return any(loader.is_available() for loader in self.loaders)

    def load(self) -> Dict[str, Any]:
        merged_config: Dict[str, Any] = {}

        for loader in self.loaders:
            if loader.is_available():
                config = loader.load()
                merged_config = self._deep_merge(merged_config, config)
                logger.debug("合并配置: %s", type(loader).__name__)

        return merged_config

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


class ConfigParser:
    """配置解析器

    负责将原始配置数据转换为Settings对象并执行验证。
    """

    @staticmethod
    def parse(config_data: Dict[str, Any]) -> Settings:
        """解析配置数据为Settings对象

        配置非法时记录错误并回退到默认配置，避免因配置问题导致服务无法启动。
        """
        try:
            settings = Settings.model_validate(config_data)
        except ValidationError as e:
            logger.error("配置解析失败，使用默认配置: %s", e)
            return Settings()

        from .validators import validate_settings

        validation_result = validate_settings(settings)
        if not validation_result.is_valid:
            logger.error("配置验证失败，但仍将使用该配置")

        logger.info(
            "配置解析完成 interval=%d分钟 timeout=%d分钟 queue=%s",
            settings.payment_timeout.check_interval_minutes,
            settings.payment_timeout.payment_timeout_minutes,
            settings.queue.backend,
        )
        return settings


def load_settings(file_path: Optional[Path | str] = None) -> Settings:
    """从指定（或自动发现的）YAML 文件加载并解析配置"""
    loader = create_default_config_loader(file_path)
    return ConfigParser.parse(loader.load())


def create_default_config_loader(
    file_path: Optional[Path | str] = None,
) -> CompositeConfigLoader:
    """创建默认的配置加载器

    按优先级顺序：默认配置 < YAML文件 < 环境变量
    """
    loaders = [
        DefaultConfigLoader(),  # 最低优先级
        YamlConfigLoader(file_path),  # 中等优先级
        EnvironmentConfigLoader(),  # 最高优先级
    ]

    return CompositeConfigLoader(loaders)
