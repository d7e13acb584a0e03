"""Test batch_find_many cursor pagination."""

from __future__ import annotations

import pytest

from eventpipe.core.pagination import batch_find_many, record_id


class _Records:
    """Ordered record set honouring take/skip/cursor like the stores do."""

    def __init__(self, n: int):
        self.records = [{"id": f"r{i:04d}", "n": i} for i in range(n)]
        self.calls = []
        self.page_sizes = []

    async def fetch_page(self, *, take, skip, cursor):
        self.calls.append((take, skip, cursor))
        rows = self.records
        if cursor is not None:
            rows = [r for r in rows if r["id"] >= cursor]
        page = rows[skip : skip + take]
        self.page_sizes.append(len(page))
        return page


class TestBatchFindMany:
    async def test_250_records_in_pages_of_100(self):
        store = _Records(250)

        items = [r async for r in batch_find_many(store.fetch_page, batch_size=100)]

        assert [r["n"] for r in items] == list(range(250))
        assert store.page_sizes == [100, 100, 50, 0]
        assert store.calls == [
            (100, 0, None),
            (100, 1, "r0099"),
            (100, 1, "r0199"),
            (100, 1, "r0249"),
        ]

    async def test_default_batch_size(self):
        store = _Records(5)

        items = [r async for r in batch_find_many(store.fetch_page)]

        assert len(items) == 5
        assert store.calls[0] == (100, 0, None)

    async def test_empty_set_makes_one_call(self):
        store = _Records(0)

        items = [r async for r in batch_find_many(store.fetch_page, batch_size=10)]

        assert items == []
        assert store.calls == [(10, 0, None)]

    async def test_is_lazy(self):
        store = _Records(30)

        iterator = batch_find_many(store.fetch_page, batch_size=10)
        first = await iterator.__anext__()
        await iterator.aclose()

        assert first["n"] == 0
        assert len(store.calls) == 1

    @pytest.mark.parametrize("batch_size", [0, -1])
    async def test_non_positive_batch_size_rejected(self, batch_size):
        store = _Records(3)

        with pytest.raises(ValueError, match="batch_size"):
            async for _ in batch_find_many(store.fetch_page, batch_size=batch_size):
                pass
        assert store.calls == []

    async def test_fetch_error_propagates(self):
        store = _Records(30)
        original = store.fetch_page

        async def flaky(*, take, skip, cursor):
            if cursor is not None:
                raise ConnectionError("db gone")
            return await original(take=take, skip=skip, cursor=cursor)

        seen = []
        with pytest.raises(ConnectionError):
            async for r in batch_find_many(flaky, batch_size=10):
                seen.append(r)

        assert len(seen) == 10

    async def test_attribute_records_and_custom_id(self):
        class Row:
            def __init__(self, key):
                self.key = key

        rows = [Row(k) for k in (1, 2, 3)]

        async def fetch_page(*, take, skip, cursor):
            remaining = [r for r in rows if cursor is None or r.key >= cursor]
            return remaining[skip : skip + take]

        items = [
            r.key
            async for r in batch_find_many(
                fetch_page, batch_size=2, get_id=lambda r: r.key
            )
        ]

        assert items == [1, 2, 3]


class TestRecordId:
    def test_mapping(self):
        assert record_id({"id": "a"}) == "a"

    def test_attribute(self):
        class Rec:
            id = "b"

        assert record_id(Rec()) == "b"
