"""Tests for the Azure Resource Manager client and error classification."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from scanplane.errors import (
    FatalError,
    ProviderError,
    ResourceNotFoundError,
    RetryableError,
)
from scanplane.provider.azure.arm import (
    ArmClient,
    ManagedIdentityCredential,
    classify_request_error,
    retry_after_seconds,
)


def status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://management.azure.com/x")
    response = httpx.Response(status, request=request, text="error body")
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class StaticCredential:
    async def get_token(self, resource: str) -> str:
        return "token"


def arm_client(handler, **kwargs) -> ArmClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ArmClient("sub-1", StaticCredential(), http_client=client, **kwargs)


class TestClassifyRequestError:
    """Tests for classify_request_error."""

    def test_not_found(self):
        err = classify_request_error(status_error(404), "getting disk d1")

        assert isinstance(err, ResourceNotFoundError)
        assert err.details["status_code"] == 404
        assert err.to_dict()["exception_type"] == "ResourceNotFoundError"

    @pytest.mark.parametrize("status", [400, 403, 409])
    def test_client_errors_are_fatal(self, status):
        err = classify_request_error(status_error(status), "creating vm")

        assert isinstance(err, FatalError)
        assert "creating vm" in err.message

    @pytest.mark.parametrize("status", [500, 503])
    def test_server_errors_are_transient(self, status):
        err = classify_request_error(status_error(status), "creating vm")

        assert type(err) is ProviderError
        assert not isinstance(err, RetryableError)

    def test_transport_error_is_transient(self):
        err = classify_request_error(httpx.ConnectError("connection refused"), "listing vms")

        assert type(err) is ProviderError

    def test_unknown_error_is_fatal(self):
        assert isinstance(classify_request_error(ValueError("bad"), "x"), FatalError)


class TestArmClient:
    """Tests for ArmClient requests."""

    @pytest.mark.asyncio
    async def test_sends_token_and_api_version(self):
        """Requests carry the bearer token and api-version."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": "d1"})

        arm = arm_client(handler)

        path = arm.resource_path("rg", "Microsoft.Compute", "disks", "d1")

        data = await arm.get(path, "2022-07-02")

        assert data == {"name": "d1"}
        request = seen[0]
        assert request.headers["Authorization"] == "Bearer token"
        assert request.url.params["api-version"] == "2022-07-02"
        assert request.url.path == (
            "/subscriptions/sub-1/resourceGroups/rg/providers/Microsoft.Compute/disks/d1"
        )

    @pytest.mark.asyncio
    async def test_error_is_classified(self):
        """HTTP errors surface as provider errors."""
        arm = arm_client(lambda r: httpx.Response(404))

        with pytest.raises(ResourceNotFoundError, match="getting disk d1"):
            await arm.get("/x", "v", action="getting disk d1")

    @pytest.mark.asyncio
    async def test_list_all_follows_next_link(self):
        """Pages are concatenated until nextLink is absent."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json={"value": [{"name": "b"}]})
            return httpx.Response(
                200,
                json={
                    "value": [{"name": "a"}],
                    "nextLink": "https://management.azure.com/next?page=2&api-version=v",
                },
            )

        arm = arm_client(handler)

        items = await arm.list_all("/subscriptions/sub-1/resourcegroups", "v")

        assert [i["name"] for i in items] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_begin_post_does_not_wait(self):
        """A 202 with Location comes back as a pending operation after one request."""
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            headers = {"Location": "https://management.azure.com/operations/1", "Retry-After": "7"}
            return httpx.Response(202, headers=headers)

        arm = arm_client(handler)

        operation = await arm.begin_post("/snap/beginGetAccess", "v", {"access": "Read"})

        assert not operation.done
        assert operation.location == "https://management.azure.com/operations/1"
        assert operation.retry_after == 7
        assert calls == ["POST"]

    @pytest.mark.asyncio
    async def test_begin_post_completed(self):
        arm = arm_client(lambda r: httpx.Response(200, json={"accessSAS": "https://sas"}))

        operation = await arm.begin_post("/snap/beginGetAccess", "v")

        assert operation.done
        assert operation.result == {"accessSAS": "https://sas"}

    @pytest.mark.asyncio
    async def test_accepted_without_location_is_done(self):
        arm = arm_client(lambda r: httpx.Response(202))

        operation = await arm.begin_post("/snap/endGetAccess", "v")

        assert operation.done
        assert operation.result == {}

    @pytest.mark.asyncio
    async def test_poll_operation_checks_once(self):
        """Each poll is a single GET; the status URL is kept while pending."""
        responses = [httpx.Response(202), httpx.Response(200, json={"accessSAS": "https://sas"})]
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return responses.pop(0)

        arm = arm_client(handler, lro_poll_interval=3)
        location = "https://management.azure.com/operations/1"

        first = await arm.poll_operation(location)
        second = await arm.poll_operation(first.location)

        assert not first.done
        assert first.location == location
        assert first.retry_after == 3
        assert second.result == {"accessSAS": "https://sas"}
        assert calls == [location, location]


class TestRetryAfterSeconds:
    """Tests for retry_after_seconds."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, 2.0), ("", 2.0), ("10", 10.0), ("-4", 0.0), ("soon", 2.0)],
    )
    def test_seconds_and_fallback(self, value, expected):
        assert retry_after_seconds(value, 2.0) == expected

    def test_http_date(self):
        when = format_datetime(datetime.now(timezone.utc) + timedelta(seconds=120), usegmt=True)

        assert 100 <= retry_after_seconds(when, 2.0) <= 120

    def test_http_date_in_past(self):
        assert retry_after_seconds("Wed, 21 Oct 2015 07:28:00 GMT", 2.0) == 0.0


class TestManagedIdentityCredential:
    """Tests for IMDS token acquisition."""

    @pytest.mark.asyncio
    async def test_token_is_cached(self):
        """A valid token is reused."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"access_token": "abc", "expires_on": "9999999999"})

        credential = ManagedIdentityCredential(
            client_id="cid", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        assert await credential.get_token("https://management.azure.com/") == "abc"
        assert await credential.get_token("https://management.azure.com/") == "abc"
        assert len(calls) == 1
        assert calls[0].headers["Metadata"] == "true"
        assert calls[0].url.params["client_id"] == "cid"

    @pytest.mark.asyncio
    async def test_imds_failure_is_classified(self):
        """IMDS errors become provider errors."""
        transport = httpx.MockTransport(lambda r: httpx.Response(500))
        credential = ManagedIdentityCredential(http_client=httpx.AsyncClient(transport=transport))

        with pytest.raises(ProviderError):
            await credential.get_token("https://storage.azure.com/")
