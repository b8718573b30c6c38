"""
配置模块
提供排序库的默认配置，业务项目可以继承并覆盖
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import Dict, List, Optional


class DatabaseSettings(BaseSettings):
    """数据库配置

    使用示例:
        from yorder.config import DatabaseSettings

        db_config = DatabaseSettings(
            url="postgresql://app:secret@db/ordering"
        )
    """
    url: str = Field(default="", description="SQLAlchemy 连接 URL")
    echo: bool = Field(default=False, description="引擎是否回显 SQL")
    pool_pre_ping: bool = Field(default=True, description="取出连接时先 ping")
    pool_size: int = Field(default=5, description="常驻连接数")
    max_overflow: int = Field(default=10, description="超出常驻数后还能新建的连接数")
    pool_timeout: int = Field(default=30, description="等待空闲连接的秒数")
    pool_recycle: int = Field(default=3600, description="连接存活多少秒后重建")

    class Config:
        env_prefix = "YORDER_DB_"


class LoggingSettings(BaseSettings):
    """日志配置

    使用示例:
        from yorder.config import LoggingSettings

        log_config = LoggingSettings(
            level="DEBUG",
            file_path="logs/ordering.log",
            file_max_bytes=5 * 1024 * 1024,
        )
    """
    level: str = Field(default="INFO", description="根日志器级别")
    file_path: Optional[str] = Field(default=None, description="日志文件路径，为空时只输出到控制台")
    file_max_bytes: int = Field(default=10 * 1024 * 1024, description="单个日志文件最大字节数")
    file_backup_count: int = Field(default=5, description="保留的备份文件数量")
    file_encoding: str = Field(default="utf-8", description="日志文件编码")
    enable_console: bool = Field(default=True, description="同时输出到 stderr")

    # SQL 日志配置
    sql_log_enabled: bool = Field(default=False, description="单独记录 sqlalchemy.engine / pool 日志")
    sql_log_file_path: Optional[str] = Field(default=None, description="SQL日志文件路径")
    sql_log_level: str = Field(default="DEBUG", description="SQL 日志级别")

    @field_validator("level", "sql_log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"无效的日志级别: {value}")
        return level

    class Config:
        env_prefix = "YORDER_LOG_"


class CacheSettings(BaseSettings):
    """缓存配置

    ttl 为 None 时缓存条目永久有效，直到被显式失效。

    使用示例:
        from yorder.config import CacheSettings

        cache_config = CacheSettings(backend="redis", redis_url="redis://localhost:6379/0")

    环境变量:
        YORDER_CACHE_BACKEND=redis
        YORDER_CACHE_REDIS_URL=redis://localhost:6379/0
    """
    backend: str = Field(default="memory", description="缓存后端: memory | redis")
    maxsize: int = Field(default=10000, description="内存缓存最大条目数")
    ttl: Optional[int] = Field(default=None, description="默认过期时间（秒），None 表示永久")
    redis_url: str = Field(default="", description="Redis连接URL")
    prefix: str = Field(default="yorder:", description="缓存键前缀")

    @field_validator("backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        backend = value.lower()
        if backend not in ("memory", "redis"):
            raise ValueError(f"不支持的缓存后端: {value}")
        return backend

    class Config:
        env_prefix = "YORDER_CACHE_"


class OrderingSettings(BaseSettings):
    """排序配置

    categories 声明哪些分类（词汇表）下的分组允许手动排序；
    item_type_categories 声明每种条目类型可以关联的分类。

    使用示例:
        from yorder.config import OrderingSettings

        ordering = OrderingSettings(
            categories={"tags": True, "sections": False},
            item_type_categories={"article": ["tags", "sections"]},
        )

    环境变量:
        YORDER_ORDERING_CATEGORIES='{"tags": true}'
        YORDER_ORDERING_LOCK_GROUPS=false
    """
    categories: Dict[str, bool] = Field(default_factory=dict, description="分类 -> 是否可排序")
    item_type_categories: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="条目类型 -> 可关联的分类列表"
    )
    default_items_main: int = Field(default=10, description="分页列表默认条目数")
    feed_default_items: int = Field(default=10, description="Feed 列表默认条目数")
    lock_groups: bool = Field(default=True, description="写操作前是否锁定分组行（SELECT ... FOR UPDATE）")
    max_retries: int = Field(default=3, description="死锁/锁超时的最大重试次数")
    retry_delay: float = Field(default=0.1, description="初始重试间隔（秒）")

    def orderable_categories(self) -> List[str]:
        """返回所有启用排序的分类"""
        return [category for category, orderable in self.categories.items() if orderable]

    class Config:
        env_prefix = "YORDER_ORDERING_"


class AppSettings(BaseSettings):
    """应用基础配置

    将各子配置类聚合为嵌套结构。

    子配置以节为单位取值: YAML 或构造参数中出现的节整体使用给出的值，
    未出现的节在构造时按各自的环境变量前缀读取，最后回退到默认值。

    使用示例:
        from yorder.config import AppSettings, load_yaml_config

        settings = load_yaml_config("config/settings.yaml", AppSettings)

    YAML 配置示例 (config/settings.yaml):
        database:
          url: "sqlite:///./ordering.db"
        cache:
          backend: memory
        ordering:
          categories:
            tags: true
          item_type_categories:
            article: [tags]
        logging:
          level: "INFO"
    """
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    ordering: OrderingSettings = Field(default_factory=OrderingSettings)
