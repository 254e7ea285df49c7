from types import SimpleNamespace
from typing import Any, Callable

import pytest

from app.core import cache


class _FieldProxy:
    """Minimal stand-in for Beanie field proxies used in query expressions."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __eq__(self, other: object) -> tuple[str, str, object]:  # type: ignore[override]
        return ("eq", self.name, other)

    def __ge__(self, other: object) -> tuple[str, str, object]:  # type: ignore[override]
        return ("ge", self.name, other)

    def __hash__(self) -> int:
        return hash(self.name)


class FakeQuery:
    """In-memory query over plain objects, supporting the chain our services use."""

    def __init__(self, items: list[Any], filters: list[tuple[str, str, object]] | None = None) -> None:
        self._items = items
        self.filters = filters or []
        self._sort_field: str | None = None
        self._descending = False
        self._limit: int | None = None

    def find(self, *exprs: object) -> "FakeQuery":
        return FakeQuery(self._items, [*self.filters, *_filters(exprs)])

    def sort(self, sort_spec: str) -> "FakeQuery":
        self._descending = sort_spec.startswith("-")
        self._sort_field = sort_spec.lstrip("-+")
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def _matches(self, item: Any) -> bool:
        for op, field, value in self.filters:
            attr = getattr(item, field, None)
            if op == "eq" and attr != value:
                return False
            if op == "ge" and (attr is None or not attr >= value):
                return False
        return True

    async def to_list(self) -> list[Any]:
        items = [item for item in self._items if self._matches(item)]
        if self._sort_field:
            items.sort(key=lambda item: getattr(item, self._sort_field), reverse=self._descending)
        return items if self._limit is None else items[: self._limit]

    async def first_or_none(self) -> Any:
        items = await self.to_list()
        return items[0] if items else None


def _filters(exprs: tuple[object, ...]) -> list[tuple[str, str, object]]:
    return [expr for expr in exprs if isinstance(expr, tuple) and len(expr) == 3]


@pytest.fixture
def fake_collection(monkeypatch: pytest.MonkeyPatch) -> Callable[..., list[Any]]:
    """
    Back a Beanie document class with a plain list so service code can run
    without Mongo or init_beanie. Returns the list.
    """

    def _install(document: type, fields: list[str], items: list[Any] | None = None) -> list[Any]:
        store: list[Any] = items if items is not None else []
        for field in fields:
            monkeypatch.setattr(document, field, _FieldProxy(field), raising=False)

        def _find(*exprs: object) -> FakeQuery:
            return FakeQuery(store, _filters(exprs))

        async def _find_one(*exprs: object) -> Any:
            return await _find(*exprs).first_or_none()

        monkeypatch.setattr(document, "find", staticmethod(_find), raising=False)
        monkeypatch.setattr(document, "find_one", staticmethod(_find_one), raising=False)
        return store

    return _install


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeRedis:
    """Async Redis subset used by the cache helpers."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expiries: dict[str, int | None] = {}
        self.fail = False

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def get(self, key: str) -> str | None:
        if self.fail:
            raise ConnectionError("redis down")
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        if self.fail:
            raise ConnectionError("redis down")
        self.store[key] = value
        self.expiries[key] = ex
        return True


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    client = FakeRedis()
    monkeypatch.setattr(cache, "_redis_client", client)
    return client


@pytest.fixture(autouse=True)
def no_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests run in-process unless they ask for `fake_redis`."""
    monkeypatch.setattr(cache, "_redis_client", None)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_user(user_id: str = "user-1", roles: list[Any] | None = None) -> SimpleNamespace:
    from app.shared.constants import Role, UserStatus

    return SimpleNamespace(
        id=user_id,
        email=f"{user_id}@example.com",
        roles=roles or [Role.USER],
        status=UserStatus.ACTIVE,
    )


@pytest.fixture
def user() -> SimpleNamespace:
    return make_user()


@pytest.fixture
def user_factory() -> Callable[..., SimpleNamespace]:
    return make_user
