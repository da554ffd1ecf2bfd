# ABOUTME: Unit tests for the request executor
# ABOUTME: Tests option layering precedence, response classification, and transport errors

import ssl
from unittest.mock import patch

import httpx
import pytest
import respx

from kuberest.utils.auth import AuthMaterial, StaticAuthProvider
from kuberest.utils.client import (
    APIError,
    ConfigError,
    Outcome,
    RequestExecutor,
    RequestSpec,
    TransportError,
    layer_request_options,
)

from conftest import BASE_URL, RecordingAuthProvider

PODS_URL = f"{BASE_URL}/api/v1/namespaces/default/pods"


def spec(**kwargs) -> RequestSpec:
    kwargs.setdefault("method", "GET")
    kwargs.setdefault("path", "/api/v1/namespaces/default/pods")
    return RequestSpec(base_url=BASE_URL, **kwargs)


@pytest.mark.unit
class TestRequestSpec:
    """Tests for RequestSpec."""

    def test_url_joins_base_and_path(self):
        assert spec().url == PODS_URL

    def test_url_ignores_trailing_slash_on_base(self):
        request = RequestSpec(base_url=f"{BASE_URL}/", method="GET", path="/api/v1/nodes")
        assert request.url == f"{BASE_URL}/api/v1/nodes"

    def test_defaults(self):
        request = spec()
        assert request.return_body is True
        assert request.suppress_errors is False
        assert request.body is None

    def test_rejects_unknown_method(self):
        with pytest.raises(ConfigError, match="PATCH"):
            spec(method="PATCH")


@pytest.mark.unit
class TestLayerRequestOptions:
    """Tests for the option layering order: defaults < caller < body < auth."""

    def test_library_defaults(self):
        options = layer_request_options(spec(), AuthMaterial())

        assert options["headers"]["Content-Type"] == "application/json"
        assert options["headers"]["Accept"] == "application/json"
        assert "Authorization" not in options["headers"]
        assert options["trust_anchor"] is None
        assert "json" not in options

    def test_caller_headers_override_defaults(self):
        options = layer_request_options(
            spec(headers={"Content-Type": "application/merge-patch+json"}), AuthMaterial()
        )

        assert options["headers"]["Content-Type"] == "application/merge-patch+json"

    def test_caller_headers_survive_auth(self):
        options = layer_request_options(
            spec(headers={"X-Request-Id": "r-1"}), AuthMaterial(token="t0k3n")
        )

        assert options["headers"]["X-Request-Id"] == "r-1"
        assert options["headers"]["Authorization"] == "Bearer t0k3n"

    def test_auth_replaces_caller_authorization(self):
        options = layer_request_options(
            spec(headers={"authorization": "Basic Zm9vOmJhcg=="}), AuthMaterial(token="t0k3n")
        )

        assert options["headers"].get_list("Authorization") == ["Bearer t0k3n"]

    def test_caller_authorization_kept_without_token(self):
        options = layer_request_options(
            spec(headers={"Authorization": "Bearer caller"}), AuthMaterial()
        )

        assert options["headers"]["Authorization"] == "Bearer caller"

    def test_body_layer(self):
        body = {"metadata": {"name": "nginx"}}
        options = layer_request_options(spec(method="POST", body=body), AuthMaterial())

        assert options["json"] == body
        assert options["method"] == "POST"

    def test_params_and_url(self):
        options = layer_request_options(spec(params={"labelSelector": "app=web"}), AuthMaterial())

        assert options["url"] == PODS_URL
        assert options["params"] == {"labelSelector": "app=web"}

    def test_trust_anchor_from_auth(self):
        options = layer_request_options(spec(), AuthMaterial(trust_anchor=b"pem"))
        assert options["trust_anchor"] == b"pem"


@pytest.mark.unit
class TestRequestExecutor:
    """Tests for RequestExecutor.execute."""

    @respx.mock
    async def test_200_returns_decoded_body(self, executor: RequestExecutor):
        respx.get(PODS_URL).mock(return_value=httpx.Response(200, json={"kind": "PodList", "items": []}))

        result = await executor.execute(spec())

        assert result == {"kind": "PodList", "items": []}

    @respx.mock
    async def test_200_empty_body_returns_none(self, executor: RequestExecutor):
        respx.delete(f"{PODS_URL}/nginx").mock(return_value=httpx.Response(200, content=b""))

        result = await executor.execute(spec(method="DELETE", path="/api/v1/namespaces/default/pods/nginx"))

        assert result is None

    @respx.mock
    async def test_201_returns_outcome(self, executor: RequestExecutor):
        respx.post(PODS_URL).mock(
            return_value=httpx.Response(201, json={"metadata": {"name": "nginx"}})
        )

        result = await executor.execute(spec(method="POST", body={"metadata": {"name": "nginx"}}))

        assert isinstance(result, Outcome)
        assert result.status == 201
        assert result.ok is True
        assert result.body == {"metadata": {"name": "nginx"}}

    @respx.mock
    async def test_return_body_false_returns_outcome(self, executor: RequestExecutor):
        respx.get(PODS_URL).mock(return_value=httpx.Response(200, json={"items": []}))

        result = await executor.execute(spec(return_body=False))

        assert isinstance(result, Outcome)
        assert result.status == 200
        assert result.body == {"items": []}
        assert result.headers["content-type"] == "application/json"

    @respx.mock
    async def test_non_2xx_raises_api_error(self, executor: RequestExecutor):
        respx.get(f"{PODS_URL}/missing").mock(
            return_value=httpx.Response(
                404,
                json={"kind": "Status", "reason": "NotFound", "message": 'pods "missing" not found'},
            )
        )

        with pytest.raises(APIError) as exc_info:
            await executor.execute(spec(path="/api/v1/namespaces/default/pods/missing"))

        assert exc_info.value.status == 404
        assert exc_info.value.outcome.body["reason"] == "NotFound"
        assert exc_info.value.message == 'pods "missing" not found'

    @respx.mock
    async def test_non_2xx_suppressed_returns_outcome(self, executor: RequestExecutor):
        respx.get(f"{PODS_URL}/missing").mock(return_value=httpx.Response(404, json={"reason": "NotFound"}))

        result = await executor.execute(
            spec(path="/api/v1/namespaces/default/pods/missing", suppress_errors=True)
        )

        assert isinstance(result, Outcome)
        assert result.status == 404
        assert result.ok is False

    @respx.mock
    async def test_non_json_error_body(self, executor: RequestExecutor):
        respx.get(PODS_URL).mock(return_value=httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(APIError) as exc_info:
            await executor.execute(spec())

        assert exc_info.value.outcome.body == "Bad Gateway"
        assert "Bad Gateway" in str(exc_info.value)

    @respx.mock
    async def test_sends_bearer_token_and_json(self, executor: RequestExecutor):
        route = respx.post(PODS_URL).mock(return_value=httpx.Response(201, json={}))

        await executor.execute(spec(method="POST", body={"metadata": {"name": "nginx"}}))

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["Content-Type"] == "application/json"
        assert b'"name"' in request.content

    @respx.mock
    async def test_credentials_resolved_per_call(
        self, executor: RequestExecutor, auth: RecordingAuthProvider
    ):
        respx.get(PODS_URL).mock(return_value=httpx.Response(200, json={}))

        await executor.execute(spec())
        await executor.execute(spec())

        assert auth.calls == 2

    @respx.mock
    async def test_anonymous_request_has_no_authorization(self):
        route = respx.get(PODS_URL).mock(return_value=httpx.Response(200, json={}))

        async with RequestExecutor(StaticAuthProvider()) as executor:
            await executor.execute(spec())

        assert "Authorization" not in route.calls.last.request.headers

    @respx.mock
    async def test_query_params(self, executor: RequestExecutor):
        route = respx.get(PODS_URL).mock(return_value=httpx.Response(200, json={}))

        await executor.execute(spec(params={"labelSelector": "app=web"}))

        assert "labelSelector=app%3Dweb" in str(route.calls.last.request.url)

    @respx.mock
    async def test_connection_error_raises_transport_error(self, executor: RequestExecutor):
        respx.get(PODS_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError, match="connection refused"):
            await executor.execute(spec())

    @respx.mock
    async def test_no_retry_by_default(self, executor: RequestExecutor):
        route = respx.get(PODS_URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        with pytest.raises(TransportError):
            await executor.execute(spec())

        assert route.call_count == 1

    @respx.mock
    async def test_retries_when_configured(self, auth: RecordingAuthProvider):
        route = respx.get(PODS_URL).mock(
            side_effect=[httpx.ConnectError("blip"), httpx.Response(200, json={"items": []})]
        )

        async with RequestExecutor(auth, retry_attempts=2) as executor:
            result = await executor.execute(spec())

        assert result == {"items": []}
        assert route.call_count == 2

    @respx.mock
    async def test_api_errors_are_not_retried(self, auth: RecordingAuthProvider):
        route = respx.get(PODS_URL).mock(return_value=httpx.Response(503, json={}))

        async with RequestExecutor(auth, retry_attempts=3) as executor:
            with pytest.raises(APIError):
                await executor.execute(spec())

        assert route.call_count == 1

    async def test_not_entered_raises(self, auth: RecordingAuthProvider):
        executor = RequestExecutor(auth)

        with pytest.raises(RuntimeError, match="not initialized"):
            await executor.execute(spec())


@pytest.mark.unit
class TestTrustAnchorPools:
    """Tests for connection pools bound to the cluster trust anchor."""

    @respx.mock
    async def test_rotated_anchor_replaces_pool(self):
        respx.get(PODS_URL).mock(return_value=httpx.Response(200, json={}))
        provider = RecordingAuthProvider(AuthMaterial(token="t", trust_anchor=b"pem-a"))

        with patch(
            "kuberest.utils.client.build_ssl_context",
            side_effect=lambda anchor: ssl.create_default_context(),
        ) as build:
            async with RequestExecutor(provider) as executor:
                await executor.execute(spec())
                await executor.execute(spec())
                first = executor._clients[b"pem-a"]
                provider.material = AuthMaterial(token="t", trust_anchor=b"pem-b")
                await executor.execute(spec())

                assert set(executor._clients) == {b"pem-b"}
                assert first.is_closed
                assert not executor._clients[b"pem-b"].is_closed

        assert [call.args[0] for call in build.call_args_list] == [b"pem-a", b"pem-b"]

    async def test_invalid_trust_anchor_raises_transport_error(self):
        provider = RecordingAuthProvider(AuthMaterial(trust_anchor=b"not a certificate"))

        async with RequestExecutor(provider) as executor:
            with pytest.raises(TransportError, match="CA certificate"):
                await executor.execute(spec())

    @respx.mock
    async def test_insecure_uses_single_pool(self):
        respx.get(PODS_URL).mock(return_value=httpx.Response(200, json={}))
        provider = RecordingAuthProvider(AuthMaterial(trust_anchor=b"not a certificate"))

        async with RequestExecutor(provider, insecure=True) as executor:
            await executor.execute(spec())

            assert set(executor._clients) == {None}

    async def test_exit_closes_pools(self, auth: RecordingAuthProvider):
        executor = RequestExecutor(auth)

        async with executor:
            client = await executor._client_for(None)

        assert client.is_closed
        assert executor._clients is None


@pytest.mark.unit
class TestAPIError:
    """Tests for APIError formatting."""

    def test_str_with_status_message(self):
        error = APIError(Outcome(409, body={"message": "the object has been modified"}), "PUT", "/api/v1/x")

        assert str(error) == "Kubernetes API error (409): the object has been modified [PUT /api/v1/x]"

    def test_falls_back_to_reason(self):
        assert APIError(Outcome(404, body={"reason": "NotFound"})).message == "NotFound"

    def test_empty_body(self):
        assert APIError(Outcome(500)).message == "HTTP 500"
