"""Tests for the generic ensure steps."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from scanplane.errors import (
    FatalError,
    ProviderError,
    ResourceNotFoundError,
    RetryableError,
)
from scanplane.provider.lifecycle import ensure_deleted, ensure_exists


def resource(state: str) -> MagicMock:
    res = MagicMock()
    res.provisioning_state = state
    return res


def is_ready(res) -> bool:
    return res.provisioning_state == "Succeeded"


class TestEnsureExists:
    """Tests for ensure_exists."""

    @pytest.mark.asyncio
    async def test_missing_resource_is_created(self):
        """Not found issues a create and asks to come back later."""
        get = AsyncMock(side_effect=ResourceNotFoundError("not found"))
        create = AsyncMock()

        with pytest.raises(RetryableError) as exc_info:
            await ensure_exists("snapshot", get, create, is_ready, estimate=120)

        create.assert_awaited_once()
        assert exc_info.value.message == "snapshot created"
        assert exc_info.value.after == 120

    @pytest.mark.asyncio
    async def test_provisioning_resource_is_not_recreated(self):
        """A resource still provisioning yields retry without a create."""
        get = AsyncMock(return_value=resource("Creating"))
        create = AsyncMock()

        with pytest.raises(RetryableError, match="provisioning state: Creating"):
            await ensure_exists(
                "disk", get, create, is_ready, estimate=60, state=lambda r: r.provisioning_state
            )

        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ready_resource_returned(self):
        """Terminal resource is returned and nothing is created."""
        ready = resource("Succeeded")
        create = AsyncMock()

        result = await ensure_exists("vm", AsyncMock(return_value=ready), create, is_ready, 120)

        assert result is ready
        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repeated_calls_create_once(self):
        """Calling again after the create issues no second create."""
        store: dict[str, MagicMock] = {}

        async def get():
            if "nic" not in store:
                raise ResourceNotFoundError("not found")
            return store["nic"]

        async def create():
            store["nic"] = resource("Succeeded")

        create_mock = AsyncMock(side_effect=create)

        with pytest.raises(RetryableError):
            await ensure_exists("nic", get, create_mock, is_ready, 60)
        first = await ensure_exists("nic", get, create_mock, is_ready, 60)
        second = await ensure_exists("nic", get, create_mock, is_ready, 60)

        assert first is second
        assert create_mock.await_count == 1

    @pytest.mark.asyncio
    async def test_provider_errors_pass_through(self):
        """Classified errors from get or create are raised unchanged."""
        transient = ProviderError("HTTP 503")

        with pytest.raises(ProviderError) as exc_info:
            await ensure_exists("vm", AsyncMock(side_effect=transient), AsyncMock(), is_ready, 1)

        assert exc_info.value is transient

    @pytest.mark.asyncio
    async def test_unexpected_error_is_fatal(self):
        """Unclassified exceptions become FatalError."""
        get = AsyncMock(side_effect=ResourceNotFoundError("not found"))
        create = AsyncMock(side_effect=KeyError("id"))

        with pytest.raises(FatalError, match="creating vm"):
            await ensure_exists("vm", get, create, is_ready, 1)


class TestEnsureDeleted:
    """Tests for ensure_deleted."""

    @pytest.mark.asyncio
    async def test_absent_resource_is_done(self):
        """Not found means the delete completed."""
        delete = AsyncMock()

        await ensure_deleted(
            "vm", AsyncMock(side_effect=ResourceNotFoundError("gone")), delete, 120
        )

        delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_present_resource_is_deleted(self):
        """An existing resource gets a delete and a retry."""
        delete = AsyncMock()

        with pytest.raises(RetryableError, match="vm delete issued"):
            await ensure_deleted("vm", AsyncMock(return_value=resource("Succeeded")), delete, 120)

        delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_failure_propagates(self):
        """A failing delete is not swallowed."""
        delete = AsyncMock(side_effect=FatalError("HTTP 409"))

        with pytest.raises(FatalError, match="HTTP 409"):
            await ensure_deleted("nic", AsyncMock(return_value=resource("Succeeded")), delete, 60)
