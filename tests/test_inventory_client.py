"""Tests for the conflict-aware inventory client."""

from __future__ import annotations

import asyncio

import pytest

from minima.api import ResponseCache
from minima.config import ApiConfig
from minima.errors import (
    APIError,
    ConflictResolutionRequired,
    DataConflictError,
    RequestTimeoutError,
    TransportError,
)
from minima.inventory.client import InventoryClient, ItemUpdate
from minima.inventory.conflicts import ConflictStrategy


class FakeApi:
    """Stands in for ApiClient; ``handler(method, path, body)`` answers."""

    def __init__(self, handler):
        self.config = ApiConfig()
        self.handler = handler
        self.calls: list[tuple[str, str, object]] = []

    async def _call(self, method, path, body=None):
        self.calls.append((method, path, body))
        outcome = self.handler(method, path, body)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def get(self, path):
        return await self._call("GET", path)

    async def put(self, path, body=None):
        return await self._call("PUT", path, body)

    async def post(self, path, body=None):
        return await self._call("POST", path, body)


def conflict(expected, actual, **extra):
    return DataConflictError("Stock level conflict detected", expected, actual, extra or None)


def conflict_once(expected, actual):
    """Rejects the first PUT with a stock conflict, accepts the rest."""
    state = {"rejected": False}

    def handler(method, path, body):
        if method == "PUT" and not state["rejected"]:
            state["rejected"] = True
            return conflict(expected, actual, concurrentUpdates=[{"user": "bar"}])
        return {"method": method, "body": body}

    return handler


class TestUpdateItem:
    """Tests for versioned writes."""

    def test_success(self):
        """Updates and expected version are sent together."""
        api = FakeApi(lambda method, path, body: {"id": "7"})
        client = InventoryClient(api)

        result = asyncio.run(client.update_item("7", {"currentStock": 40}, expected_version=42))

        assert result == {"id": "7"}
        assert api.calls == [("PUT", "/inventory/7", {"currentStock": 40, "expectedVersion": 42})]

    def test_small_conflict_retried_once(self):
        """A last-write-wins conflict is retried with the authoritative version."""
        api = FakeApi(conflict_once(100, 103))
        client = InventoryClient(api)

        result = asyncio.run(client.update_item("7", {"currentStock": 90}, expected_version=100))

        assert result["method"] == "PUT"
        assert len(api.calls) == 2
        assert api.calls[1][2] == {"currentStock": 90, "expectedVersion": 103}

    def test_repeated_conflict_not_retried_again(self):
        """The automatic retry runs without conflict resolution."""
        api = FakeApi(lambda method, path, body: conflict(100, 103))
        client = InventoryClient(api)

        with pytest.raises(DataConflictError) as excinfo:
            asyncio.run(client.update_item("7", {"currentStock": 90}, expected_version=100))

        assert type(excinfo.value) is DataConflictError
        assert len(api.calls) == 2

    def test_manual_conflict_raises_options(self):
        """A medium conflict needs a decision; nothing is applied."""
        api = FakeApi(conflict_once(100, 115))
        client = InventoryClient(api)

        with pytest.raises(ConflictResolutionRequired) as excinfo:
            asyncio.run(client.update_item("7", {"currentStock": 90}, expected_version=100))

        error = excinfo.value
        assert error.resolution.strategy == ConflictStrategy.MANUAL_RESOLUTION
        assert error.conflict_data["resolutionStrategy"] == "manual_resolution"
        assert error.conflict_data["requiresApproval"] is True
        assert error.conflict_data["requiresAudit"] is False
        assert error.conflict_data["concurrentUpdates"] == [{"user": "bar"}]
        assert len(api.calls) == 1

    def test_accept_current(self):
        """accept_current keeps the authoritative stock."""
        api = FakeApi(conflict_once(100, 115))
        client = InventoryClient(api)

        async def scenario():
            try:
                await client.update_item("7", {"currentStock": 90, "note": "recount"})
            except ConflictResolutionRequired as e:
                return await e.options.accept_current()

        asyncio.run(scenario())
        assert api.calls[1] == (
            "PUT",
            "/inventory/7",
            {"currentStock": 115, "note": "recount", "expectedVersion": 115},
        )

    def test_force_update(self):
        """force_update writes the original updates without a version."""
        api = FakeApi(conflict_once(100, 115))
        client = InventoryClient(api)

        async def scenario():
            try:
                await client.update_item("7", {"currentStock": 90}, expected_version=100)
            except ConflictResolutionRequired as e:
                return await e.options.force_update()

        asyncio.run(scenario())
        assert api.calls[1] == ("PUT", "/inventory/7", {"currentStock": 90, "force": True})

    def test_audit_request(self):
        """A large conflict offers an audit request."""
        api = FakeApi(conflict_once(100, 151))
        client = InventoryClient(api)

        async def scenario():
            try:
                await client.update_item("7", {"currentStock": 90}, expected_version=100)
            except ConflictResolutionRequired as e:
                assert e.resolution.requires_audit is True
                return await e.options.create_audit_request()

        asyncio.run(scenario())
        method, path, body = api.calls[1]
        assert (method, path) == ("POST", "/audits")
        assert body["itemId"] == "7"
        assert body["auditType"] == "conflict-resolution"
        assert body["reason"] == "Stock level conflict requires manual review"
        assert body["conflictData"]["expectedStock"] == 100
        assert body["conflictData"]["actualStock"] == 151
        assert body["conflictData"]["variance"] == 51
        assert "timestamp" in body["conflictData"]

    def test_resolution_disabled(self):
        """With conflict resolution off the conflict propagates unchanged."""
        api = FakeApi(conflict_once(100, 103))
        client = InventoryClient(api)

        with pytest.raises(DataConflictError) as excinfo:
            asyncio.run(client.update_item("7", {}, conflict_resolution=False))
        assert type(excinfo.value) is DataConflictError
        assert len(api.calls) == 1

    def test_resolution_disabled_by_config(self):
        """The configured switch is the default."""
        api = FakeApi(conflict_once(100, 103))
        client = InventoryClient(api, ApiConfig(enable_conflict_resolution=False))

        with pytest.raises(DataConflictError):
            asyncio.run(client.update_item("7", {}))


class ItemView:
    """Local copy of one item."""

    def __init__(self, data):
        self.history = [data]
        self.refetches = 0

    def mutate(self, data):
        self.history.append(data)

    async def refetch(self):
        self.refetches += 1


class TestOptimisticWrites:
    """Tests for writes shown before they land."""

    def test_views_show_tentative_then_result(self):
        """The view shows the updates while the write is pending."""
        view = ItemView({"id": "7", "currentStock": 10})
        seen_during_write = []

        def handler(method, path, body):
            seen_during_write.append(view.history[-1])
            return {"id": "7", "currentStock": 12, "version": 3}

        client = InventoryClient(FakeApi(handler))
        result = asyncio.run(client.update_item("7", {"currentStock": 12}, views=[view]))

        assert seen_during_write == [{"id": "7", "currentStock": 12}]
        assert view.history[-1] == result
        assert client.optimistic.is_updating is False

    def test_conflict_rolls_back(self):
        """A conflict that needs a decision restores the previous state."""
        before = {"id": "7", "currentStock": 100}
        view = ItemView(before)
        client = InventoryClient(FakeApi(conflict_once(100, 115)))

        with pytest.raises(ConflictResolutionRequired):
            asyncio.run(
                client.update_item(
                    "7", {"currentStock": 90}, views=[view], rollback_data=before
                )
            )

        assert view.history == [before, {"id": "7", "currentStock": 90}, before]
        assert isinstance(client.optimistic.last_error, ConflictResolutionRequired)

    def test_failure_without_rollback_refetches(self):
        """Without rollback data the view reloads from the server."""
        view = ItemView({"id": "7"})
        client = InventoryClient(FakeApi(lambda method, path, body: TransportError("down")))

        with pytest.raises(TransportError):
            asyncio.run(client.update_item("7", {"currentStock": 1}, views=[view]))
        assert view.refetches == 1

    def test_disabled_by_config(self):
        """With optimistic updates off the view is left alone."""
        view = ItemView({"id": "7"})
        api = FakeApi(lambda method, path, body: {"id": "7"})
        client = InventoryClient(api, ApiConfig(enable_optimistic_updates=False))

        asyncio.run(client.update_item("7", {"currentStock": 1}, views=[view]))
        assert view.history == [{"id": "7"}]
        assert len(api.calls) == 1


class TestGetItems:
    """Tests for cached reads."""

    def test_query_string_and_caching(self):
        """Filters become the query string; results are cached."""
        api = FakeApi(lambda method, path, body: [{"id": "1"}])
        client = InventoryClient(api)

        items = asyncio.run(client.get_items({"category": "linen"}, cache_key="linen"))

        assert items == [{"id": "1"}]
        assert api.calls[0][1] == "/inventory?category=linen"
        assert client.cache.get("linen") == [{"id": "1"}]

    @pytest.mark.parametrize("failure", [TransportError("Failed to fetch"), RequestTimeoutError()])
    def test_network_failure_uses_cache(self, failure):
        """Network failures fall back to a fresh cached value."""
        cache = ResponseCache()
        cache.set("all", [{"id": "cached"}])
        client = InventoryClient(FakeApi(lambda method, path, body: failure), cache=cache)

        assert asyncio.run(client.get_items(cache_key="all")) == [{"id": "cached"}]

    def test_server_failure_propagates(self):
        """Only network failures use the cache."""
        cache = ResponseCache()
        cache.set("all", [{"id": "cached"}])
        client = InventoryClient(
            FakeApi(lambda method, path, body: APIError("boom", 500)), cache=cache
        )

        with pytest.raises(APIError):
            asyncio.run(client.get_items(cache_key="all"))

    def test_no_cache_entry(self):
        """Without a cached value the failure propagates."""
        client = InventoryClient(FakeApi(lambda method, path, body: TransportError("down")))

        with pytest.raises(TransportError):
            asyncio.run(client.get_items(cache_key="all"))


class TestBatchUpdate:
    """Tests for batch updates."""

    @staticmethod
    def handler(method, path, body):
        if path == "/inventory/3":
            return APIError("Item not found", 404)
        return {"path": path}

    def test_partial_failure(self):
        """Failures are collected while the rest proceed."""
        client = InventoryClient(FakeApi(self.handler))
        updates = [ItemUpdate(str(i), {"currentStock": i}) for i in range(7)]

        result = asyncio.run(client.batch_update(updates, max_concurrent=5))

        assert result.total_processed == 7
        assert result.success_count == 6
        assert result.error_count == 1
        assert result.failed[0].item_id == "3"
        assert isinstance(result.failed[0].error, APIError)
        assert [o.item_id for o in result.successful] == ["0", "1", "2", "4", "5", "6"]

    def test_stop_on_error(self):
        """continue_on_error=False propagates the failure."""
        client = InventoryClient(FakeApi(self.handler))
        updates = [ItemUpdate(str(i), {}) for i in range(5)]

        with pytest.raises(APIError):
            asyncio.run(client.batch_update(updates, continue_on_error=False))

    def test_options_forwarded(self):
        """Per-item options reach update_item."""
        api = FakeApi(self.handler)
        client = InventoryClient(api)

        asyncio.run(client.batch_update([ItemUpdate("1", {"currentStock": 5}, {"expected_version": 4})]))
        assert api.calls[0][2] == {"currentStock": 5, "expectedVersion": 4}
