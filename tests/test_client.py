from unittest.mock import Mock, patch

import pytest
import requests

from cookiejar_sync.config import Config
from cookiejar_sync.core.client import (
    GistClient,
    compute_reset_at,
    is_rate_limited,
)
from cookiejar_sync.errors import (
    HttpError,
    NotFoundError,
    RateLimitError,
    TransportError,
)

NOW = 1_700_000_000.0


def _response(status=200, body=None, headers=None, content=b"{}"):
    response = Mock()
    response.status_code = status
    response.headers = headers or {}
    response.content = content
    response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def client():
    config = Config(api_url="https://api.example.test", request_timeout=30.0)
    return GistClient(config, clock=lambda: NOW)


# compute_reset_at / is_rate_limited
def test_retry_after_wins_over_reset_header():
    headers = {"Retry-After": "30", "X-RateLimit-Reset": "1700009999"}
    assert compute_reset_at(headers, NOW) == NOW + 30


def test_reset_header_is_epoch_seconds():
    assert compute_reset_at({"X-RateLimit-Reset": "1700000600"}, NOW) == 1700000600.0


def test_unparseable_headers_fall_back_to_sixty_seconds():
    headers = {"Retry-After": "soon", "X-RateLimit-Reset": "later"}
    assert compute_reset_at(headers, NOW) == NOW + 60


def test_no_headers_fall_back_to_sixty_seconds():
    assert compute_reset_at({}, NOW) == NOW + 60


@pytest.mark.parametrize(
    "status, headers, expected",
    [
        (403, {"X-RateLimit-Remaining": "0"}, True),
        (429, {"Retry-After": "5"}, True),
        (403, {"X-RateLimit-Reset": "1700000600"}, True),
        (403, {}, False),
        (500, {"Retry-After": "5"}, False),
    ],
)
def test_is_rate_limited(status, headers, expected):
    assert is_rate_limited(status, headers) is expected


# GistClient
def test_session_headers(client):
    """Session sends the GitHub JSON media type and API version."""
    assert client.session.headers["Accept"] == "application/vnd.github+json"
    assert "X-GitHub-Api-Version" in client.session.headers
    assert "Authorization" not in client.session.headers


def test_base_url_trailing_slash_stripped():
    client = GistClient(Config(api_url="https://api.example.test/"))
    assert client.base_url == "https://api.example.test"


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_get_gist(mock_request, client):
    """Token is sent per request as a bearer header."""
    mock_request.return_value = _response(body={"id": "abc", "files": {}})

    result = client.get_gist("abc", "ghp_secret")

    assert result == {"id": "abc", "files": {}}
    args, kwargs = mock_request.call_args
    assert args == ("GET", "https://api.example.test/gists/abc")
    assert kwargs["headers"] == {"Authorization": "Bearer ghp_secret"}
    assert kwargs["timeout"] == (10, 30.0)


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_create_gist_posts_body(mock_request, client):
    mock_request.return_value = _response(status=201, body={"id": "new"})
    body = {"description": "d", "public": False, "files": {}}

    assert client.create_gist(body, "t") == {"id": "new"}
    args, kwargs = mock_request.call_args
    assert args == ("POST", "https://api.example.test/gists")
    assert kwargs["json"] == body


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_update_gist_patches(mock_request, client):
    mock_request.return_value = _response(body={"id": "g"})
    client.update_gist("g", {"files": {}}, "t")
    assert mock_request.call_args[0] == ("PATCH", "https://api.example.test/gists/g")


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_delete_gist_no_content(mock_request, client):
    mock_request.return_value = _response(status=204, content=b"")
    assert client.delete_gist("g", "t") is None
    mock_request.return_value.json.assert_not_called()


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_list_gists_paging_params(mock_request, client):
    mock_request.return_value = _response(body=[{"id": "a"}])
    assert client.list_gists("t", page=3, per_page=50) == [{"id": "a"}]
    assert mock_request.call_args[1]["params"] == {"per_page": 50, "page": 3}


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_rate_limit_returns_core_resource(mock_request, client):
    mock_request.return_value = _response(
        body={"resources": {"core": {"limit": 5000, "remaining": 12}}}
    )
    assert client.rate_limit("t") == {"limit": 5000, "remaining": 12}


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_rate_limited_response(mock_request, client):
    mock_request.return_value = _response(
        status=403,
        headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000900"},
    )
    with pytest.raises(RateLimitError) as exc_info:
        client.update_gist("g", {"files": {}}, "t")
    assert exc_info.value.reset_at == 1700000900.0


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_secondary_rate_limit_retry_after(mock_request, client):
    mock_request.return_value = _response(status=429, headers={"Retry-After": "120"})
    with pytest.raises(RateLimitError) as exc_info:
        client.create_gist({"files": {}}, "t")
    assert exc_info.value.reset_at == NOW + 120


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_not_found(mock_request, client):
    mock_request.return_value = _response(status=404)
    with pytest.raises(NotFoundError):
        client.get_gist("missing", "t")


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_plain_forbidden_is_http_error(mock_request, client):
    mock_request.return_value = _response(status=403)
    with pytest.raises(HttpError) as exc_info:
        client.get_gist("g", "t")
    assert exc_info.value.status == 403


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_network_failure(mock_request, client):
    mock_request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(TransportError, match="refused"):
        client.get_gist("g", "t")


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_invalid_json(mock_request, client):
    response = _response(content=b"<html>")
    response.json.side_effect = ValueError("no json")
    mock_request.return_value = response
    with pytest.raises(TransportError, match="invalid JSON"):
        client.get_gist("g", "t")


@patch("cookiejar_sync.core.client.requests.Session.request")
def test_error_message_never_contains_token(mock_request, client):
    mock_request.return_value = _response(status=500)
    with pytest.raises(HttpError) as exc_info:
        client.get_gist("g", "ghp_secret")
    assert "ghp_secret" not in str(exc_info.value)
