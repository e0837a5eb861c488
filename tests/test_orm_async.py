"""Tests for the ORM's async operations."""

import asyncio
import threading
from dataclasses import dataclass
from decimal import Decimal

import pytest

from typed_rows.backends import MemoryBackend
from typed_rows.errors import ArgumentError, UninitializedTypeError
from typed_rows.expressions import Expression, Operator
from typed_rows.orm import ORM
from typed_rows.schema import column, table
from typed_rows.types import DataType, OrderDirection, ResultOrder


@table("item")
@dataclass
class Item:
    id: int | None = column(DataType.INT, primary_key=True)
    name: str | None = column(DataType.NVARCHAR, max_length=32)
    qty: int | None = column(DataType.INT)


class BlockingBackend(MemoryBackend):
    """Memory backend whose count blocks until released."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def count(self, name, filter):
        self.started.set()
        self.release.wait(5)
        return super().count(name, filter)


def qty_over(n):
    return Expression("qty", Operator.GREATER_THAN, n)


@pytest.fixture
def orm():
    """Create an ORM with Item registered."""
    o = ORM(MemoryBackend())
    o.register_type(Item)
    return o


class TestAsyncCrud:
    """Tests for async insert, update, delete and select."""

    @pytest.mark.asyncio
    async def test_insert_and_select(self, orm):
        """Async inserts return stored objects that async selects find."""
        stored = await orm.insert_async(Item(name="bolt", qty=10))
        assert stored.id == 1

        await orm.insert_many_async([Item(name="nut", qty=5), Item(name="gear", qty=20)])
        await orm.insert_multiple_async([Item(name="cog", qty=1)])

        assert (await orm.select_by_key_async(Item, 1)).name == "bolt"
        first = await orm.select_first_async(
            Item, qty_over(4), ResultOrder("qty", OrderDirection.DESCENDING)
        )
        assert first.name == "gear"
        many = await orm.select_many_async(Item, qty_over(4), skip=1, limit=1)
        assert [i.name for i in many] == ["nut"]

    @pytest.mark.asyncio
    async def test_update(self, orm):
        """Async updates write through to the backend."""
        stored = await orm.insert_async(Item(name="bolt", qty=10))
        stored.qty = 11
        assert (await orm.update_async(stored)).qty == 11

        await orm.update_many_async(Item, qty_over(0), {"qty": 3})
        updated = await orm.update_all_async(await orm.select_many_async(Item))
        assert [i.qty for i in updated] == [3]

    @pytest.mark.asyncio
    async def test_delete(self, orm):
        """Async deletes remove rows by object, key and filter."""
        items = await orm.insert_many_async([Item(name=n, qty=q) for n, q in [("a", 1), ("b", 2), ("c", 3)]])

        await orm.delete_async(items[0])
        await orm.delete_by_key_async(Item, items[1].id)
        await orm.delete_many_async(Item, qty_over(2))

        assert await orm.count_async(Item) == 0

    @pytest.mark.asyncio
    async def test_errors_propagate(self, orm):
        """Errors raised in the worker thread reach the awaiting caller."""
        with pytest.raises(ArgumentError):
            await orm.delete_many_async(Item, None)
        with pytest.raises(UninitializedTypeError):
            await orm.select_many_async(BlockingBackend)


class TestAsyncAggregates:
    """Tests for async exists, count, sum and query."""

    @pytest.mark.asyncio
    async def test_aggregates(self, orm):
        """Aggregates match their synchronous counterparts."""
        await orm.insert_many_async([Item(name="a", qty=2), Item(name="b", qty=5)])

        assert await orm.exists_async(Item, qty_over(4))
        assert await orm.count_async(Item, qty_over(1)) == 2
        assert await orm.sum_async(Item, "qty") == Decimal(7)
        rows = await orm.query_async("SELECT * FROM item WHERE qty > 3")
        assert [row["name"] for row in rows] == ["b"]

    @pytest.mark.asyncio
    async def test_concurrent_calls(self, orm):
        """Several async calls can be awaited together."""
        await asyncio.gather(*(orm.insert_async(Item(name=str(i), qty=i)) for i in range(10)))
        assert await orm.count_async(Item) == 10

    @pytest.mark.asyncio
    async def test_cancellation(self):
        """Cancelling the awaiting task raises CancelledError in the caller."""
        backend = BlockingBackend()
        o = ORM(backend)
        o.register_type(Item)

        task = asyncio.create_task(o.count_async(Item))
        assert await asyncio.to_thread(backend.started.wait, 5)
        task.cancel()
        try:
            with pytest.raises(asyncio.CancelledError):
                await task
        finally:
            backend.release.set()
        assert task.cancelled()
