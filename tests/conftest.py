"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 内存数据库连接与 scoped session
- 排序配置与管理器
- Redis 模拟对象
"""

import fnmatch
import os
import tempfile
from typing import Dict, Generator, Set

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from yorder.config import OrderingSettings
from yorder.orm.models import Base, OrderedItem, OrderingGroup


# ==================== 基础 Fixtures ====================

@pytest.fixture
def temp_dir():
    """创建临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_file(temp_dir):
    """创建临时文件的工厂函数"""
    def _create_file(filename: str, content: str = "") -> str:
        filepath = os.path.join(temp_dir, filename)
        if os.path.dirname(filepath):
            os.makedirs(os.path.dirname(filepath), exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        return filepath

    return _create_file


# ==================== 数据库 Fixtures ====================

@pytest.fixture(scope="function")
def memory_engine():
    """创建内存数据库引擎

    使用 StaticPool 和 check_same_thread=False 确保所有操作使用同一个连接。
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(memory_engine) -> Generator[scoped_session, None, None]:
    """线程作用域的 session 工厂，管理器与测试代码共享同一个 session"""
    factory = scoped_session(sessionmaker(autocommit=False, autoflush=True, bind=memory_engine))
    yield factory
    factory.remove()


@pytest.fixture
def db_session(session_factory):
    return session_factory()


# ==================== 排序 Fixtures ====================

@pytest.fixture
def ordering_settings() -> OrderingSettings:
    """tags 可排序，sections 不可排序"""
    return OrderingSettings(
        categories={"tags": True, "sections": False},
        item_type_categories={
            "article": ["tags", "sections"],
            "page": ["sections"],
        },
        default_items_main=2,
        feed_default_items=3,
        retry_delay=0,
    )


@pytest.fixture
def manager(session_factory, ordering_settings):
    from yorder.ordering import WeightedListManager

    mgr = WeightedListManager(session_factory=session_factory, settings=ordering_settings)
    yield mgr
    mgr.close()


@pytest.fixture
def seed(db_session):
    """写入分组与权重

    seed(1, {10: -1, 11: 0}, category="tags")
    """
    def _seed(group_key: int, weights: Dict[int, int], category: str = "tags"):
        if db_session.get(OrderingGroup, group_key) is None:
            db_session.add(OrderingGroup(group_key=group_key, category=category))
        for item_id, weight in weights.items():
            db_session.add(OrderedItem(group_key=group_key, item_id=item_id, weight=weight))
        db_session.commit()

    return _seed


@pytest.fixture
def weights_of(manager):
    """读取分组当前的 {item_id: weight}"""
    def _weights_of(group_key: int) -> Dict[int, int]:
        return {row.item_id: row.weight for row in manager.list_items(group_key)}

    return _weights_of


# ==================== Mock Fixtures ====================

class FakeRedis:
    """内存版 Redis 客户端，只实现缓存后端用到的命令"""

    def __init__(self):
        self.data: Dict[str, bytes] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.expirations: Dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.expirations[key] = ttl
        return True

    def delete(self, *keys):
        count = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                count += 1
            elif key in self.sets:
                del self.sets[key]
                count += 1
        return count

    def sadd(self, key, *members):
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def scan(self, cursor=0, match=None, count=None):
        keys = list(self.data) + list(self.sets)
        if match:
            keys = [key for key in keys if fnmatch.fnmatch(key, match)]
        return 0, keys


class BrokenRedis(FakeRedis):
    """所有命令都抛出连接错误"""

    def _fail(self, *args, **kwargs):
        raise ConnectionError("redis down")

    get = set = setex = delete = sadd = smembers = scan = _fail


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def broken_redis():
    return BrokenRedis()
