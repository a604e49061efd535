from __future__ import annotations

from types import SimpleNamespace

import pytest

import azure_vm_inventory.arm_client as arm_client
from azure_vm_inventory.errors import (
    ArmRequestError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
)


class DummyResponse:
    def __init__(self, status_code: int, *, json_data=None, text: str = "", headers=None):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._json_data is None or isinstance(self._json_data, Exception):
            raise ValueError("invalid json")
        return self._json_data


class DummySession:
    def __init__(self, token_responses=None, responses=None):
        self.token_responses = list(token_responses or [])
        self.responses = list(responses or [])
        self.posts = []
        self.requests = []
        self.closed = False

    def post(self, url, data=None, timeout=None):
        self.posts.append({"url": url, "data": data, "timeout": timeout})
        if len(self.token_responses) > 1:
            return self.token_responses.pop(0)
        return self.token_responses[0]

    def request(self, method, url, headers=None, params=None, timeout=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "params": params})
        return self.responses.pop(0)

    def close(self):
        self.closed = True


def _dummy_settings(**overrides):
    values = dict(
        azure_tenant_id="tenant",
        azure_client_id="client",
        azure_client_secret="secret",
        azure_authority_host="https://login.microsoftonline.com",
        azure_api_base="https://management.azure.com",
        azure_api_version_compute="2024-07-01",
        azure_api_version_network="2024-05-01",
        azure_api_version_resources="2021-04-01",
        azure_api_version_subscriptions="2022-12-01",
        azure_api_version_classic_compute="2017-04-01",
        request_timeout_sec=30,
        azure_missing_envs=[],
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _token(value="tok-1", expires_in=3600):
    return DummyResponse(200, json_data={"access_token": value, "expires_in": expires_in})


def test_token_cache():
    session = DummySession(token_responses=[_token("tok-1")])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    assert client.get_token() == "tok-1"
    assert client.get_token() == "tok-1"
    assert len(session.posts) == 1
    post = session.posts[0]
    assert post["url"] == "https://login.microsoftonline.com/tenant/oauth2/v2.0/token"
    assert post["data"]["grant_type"] == "client_credentials"
    assert post["data"]["scope"] == "https://management.azure.com/.default"
    assert post["timeout"] == 30


def test_token_refresh_on_margin():
    session = DummySession(token_responses=[_token("tok-2")])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)
    client._token_state = arm_client.TokenState(token="old", expires_at=arm_client._now() + 10)

    assert client.get_token() == "tok-2"
    assert len(session.posts) == 1


def test_token_error_raises_authentication_error():
    session = DummySession(
        token_responses=[
            DummyResponse(400, json_data={"error": "invalid_client", "error_description": "AADSTS7000215"})
        ]
    )
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(AuthenticationError) as exc:
        client.get_token()

    assert "400" in str(exc.value)
    assert "AADSTS7000215" in str(exc.value)


def test_token_response_without_access_token():
    session = DummySession(token_responses=[DummyResponse(200, json_data={"token_type": "Bearer"})])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(AuthenticationError):
        client.get_token()


def test_missing_configuration_raises_before_any_call():
    session = DummySession(token_responses=[_token()])
    settings = _dummy_settings(azure_client_secret=None, azure_missing_envs=["AZURE_CLIENT_SECRET"])
    client = arm_client.AzureArmClient(settings, session=session)

    with pytest.raises(ConfigurationError) as exc:
        client.get_token()

    assert exc.value.missing == ["AZURE_CLIENT_SECRET"]
    assert session.posts == []


def test_request_retries_on_401():
    session = DummySession(
        token_responses=[_token("tok-3"), _token("tok-4")],
        responses=[DummyResponse(401, text="unauthorized"), DummyResponse(200, json_data={"value": 1})],
    )
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    payload = client.request_json("GET", "https://management.azure.com/test")

    assert payload == {"value": 1}
    assert len(session.requests) == 2
    assert len(session.posts) == 2
    assert session.requests[1]["headers"]["Authorization"] == "Bearer tok-4"


def test_request_second_401_raises():
    session = DummySession(
        token_responses=[_token()],
        responses=[DummyResponse(401, text="unauthorized"), DummyResponse(401, text="still unauthorized")],
    )
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(AuthenticationError):
        client.request_json("GET", "https://management.azure.com/test")
    assert len(session.requests) == 2


def test_request_does_not_retry_on_429():
    session = DummySession(
        token_responses=[_token()],
        responses=[DummyResponse(429, headers={"Retry-After": "1"}, text="throttled")],
    )
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(ArmRequestError) as exc:
        client.request_json("GET", "https://management.azure.com/test")

    assert exc.value.status_code == 429
    assert len(session.requests) == 1


def test_request_raises_on_403():
    session = DummySession(token_responses=[_token()], responses=[DummyResponse(403, text="forbidden")])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(AuthorizationError) as exc:
        client.request_json("GET", "https://management.azure.com/test")

    assert "403" in str(exc.value)
    assert "forbidden" in str(exc.value)


def test_request_raises_on_5xx():
    session = DummySession(token_responses=[_token()], responses=[DummyResponse(503, text="server error")])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(ArmRequestError) as exc:
        client.request_json("GET", "https://management.azure.com/test")

    assert exc.value.status_code == 503


def test_error_text_is_truncated():
    session = DummySession(token_responses=[_token()], responses=[DummyResponse(500, text="x" * 500)])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(ArmRequestError) as exc:
        client.request_json("GET", "https://management.azure.com/test")

    assert exc.value.detail.endswith("...")
    assert len(exc.value.detail) < 250


def test_request_invalid_json():
    session = DummySession(token_responses=[_token()], responses=[DummyResponse(200, text="<html>")])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    with pytest.raises(ArmRequestError) as exc:
        client.request_json("GET", "https://management.azure.com/test")

    assert exc.value.status_code == 502


def test_paged_get_follows_next_link():
    next_link = "https://management.azure.com/subscriptions?api-version=2022-12-01&$skiptoken=abc"
    session = DummySession(
        token_responses=[_token()],
        responses=[
            DummyResponse(200, json_data={"value": [{"n": 1}, {"n": 2}], "nextLink": next_link}),
            DummyResponse(200, json_data={"value": [{"n": 3}]}),
        ],
    )
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    items = client.arm_get_paged("/subscriptions", params={"api-version": "2022-12-01"})

    assert [item["n"] for item in items] == [1, 2, 3]
    first, second = session.requests
    assert first["url"] == "https://management.azure.com/subscriptions"
    assert first["params"] == {"api-version": "2022-12-01"}
    assert second["url"] == next_link
    assert second["params"] is None


def test_paged_get_tolerates_missing_value():
    session = DummySession(token_responses=[_token()], responses=[DummyResponse(200, json_data={})])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)

    assert client.arm_get_paged("/subscriptions/sub/tagNames") == []


def test_close_closes_session():
    session = DummySession(token_responses=[_token()])
    client = arm_client.AzureArmClient(_dummy_settings(), session=session)
    client.close()
    assert session.closed is True
