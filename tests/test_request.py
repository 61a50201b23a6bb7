"""Tests for the request wrapper: headers, query, decoding, pagination and errors."""

import gitlab
import pytest
import requests

from gitlab_cms import API, APIError, GitLabAuth
from tests.conftest import TOKEN
from tests.fakes import make_response


def paged(pages, json=True):
    """Handler serving ``pages`` according to the ``page`` query parameter."""

    def handler(call):
        index = int(call.params.get("page", 1)) - 1
        next_page = str(index + 2) if index + 1 < len(pages) else ""
        headers = {"X-Next-Page": next_page}
        if json:
            return make_response(json_body=pages[index], headers=headers)
        return make_response(text=pages[index], headers=headers)

    return handler


def test_request_sets_json_content_type_and_bearer_token(api, gitlab_api):
    gitlab_api.add("GET", "/user", make_response(json_body={"id": 1}))

    api.request("/user")

    (call,) = gitlab_api.calls
    assert call.headers["Content-Type"] == "application/json"
    assert call.headers["Authorization"] == f"Bearer {TOKEN}"


def test_request_overlays_caller_headers(api, gitlab_api):
    gitlab_api.add("GET", "/user", make_response(json_body={"id": 1}))

    api.request("/user", headers={"Content-Type": "text/plain", "X-Custom": "yes"})

    (call,) = gitlab_api.calls
    assert call.headers["Content-Type"] == "text/plain"
    assert call.headers["X-Custom"] == "yes"


def test_request_without_token_has_no_authorization(gitlab_api, repo_ref, cache):
    api = API(repo_ref, GitLabAuth(), cache=cache)
    gitlab_api.add("GET", "/user", make_response(json_body={"id": 1}))

    api.request("/user")

    assert "Authorization" not in gitlab_api.calls[0].headers


def test_token_falls_back_to_environment(gitlab_api, repo_ref, cache, monkeypatch):
    monkeypatch.setenv("GITLAB_OAUTH_TOKEN", "env_token")
    api = API(repo_ref, cache=cache)
    gitlab_api.add("GET", "/user", make_response(json_body={"id": 1}))

    api.request("/user")

    assert gitlab_api.calls[0].headers["Authorization"] == "Bearer env_token"


def test_request_adds_cache_buster_and_params(api, gitlab_api):
    gitlab_api.add("GET", "/user", make_response(json_body={}))

    api.request("/user", params={"ref": "main", "path": "content/posts"})

    params = gitlab_api.calls[0].params
    assert isinstance(params["ts"], int)
    assert params["ref"] == "main"
    assert params["path"] == "content/posts"


def test_request_sends_json_body(api, gitlab_api):
    gitlab_api.add("POST", "/things", make_response(json_body={"ok": True}))

    result = api.request("/things", "POST", body={"a": 1})

    assert result == {"ok": True}
    assert gitlab_api.calls[0].body == {"a": 1}


def test_request_decodes_text(api, gitlab_api):
    gitlab_api.add("GET", "/raw", make_response(text="plain body"))
    assert api.request("/raw") == "plain body"


def test_request_with_empty_body_returns_none(api, gitlab_api):
    gitlab_api.add("HEAD", "/thing", make_response())
    assert api.request("/thing", "HEAD") is None


def test_pagination_concatenates_json_arrays(api, gitlab_api):
    pages = [[{"id": 1}, {"id": 2}], [{"id": 3}], [{"id": 4}, {"id": 5}]]
    gitlab_api.add("GET", "/items", handler=paged(pages))

    result = api.request("/items")

    assert [item["id"] for item in result] == [1, 2, 3, 4, 5]
    assert len(gitlab_api.calls) == 3


def test_pagination_merges_json_objects(api, gitlab_api):
    pages = [{"a": 1, "shared": "first"}, {"b": 2}, {"c": 3, "shared": "last"}]
    gitlab_api.add("GET", "/object", handler=paged(pages))

    result = api.request("/object")

    assert result == {"a": 1, "b": 2, "c": 3, "shared": "last"}


def test_pagination_concatenates_text(api, gitlab_api):
    pages = ["first ", "second ", "third"]
    gitlab_api.add("GET", "/text", handler=paged(pages, json=False))

    assert api.request("/text") == "first second third"


def test_pagination_echoes_next_page_and_keeps_params(api, gitlab_api):
    gitlab_api.add("GET", "/items", handler=paged([[1], [2]]))

    api.request("/items", params={"per_page": 1})

    first, second = gitlab_api.calls
    assert "page" not in first.params
    assert second.params["page"] == "2"
    assert first.params["per_page"] == second.params["per_page"] == 1


def test_pagination_does_not_mutate_caller_params(api, gitlab_api):
    gitlab_api.add("GET", "/items", handler=paged([[1], [2]]))
    params = {"per_page": 1}

    api.request("/items", params=params)

    assert params == {"per_page": 1}


def test_request_merges_into_accumulated_data(api, gitlab_api):
    gitlab_api.add("GET", "/items", make_response(json_body=[3]))
    assert api.request("/items", accumulated=[1, 2]) == [1, 2, 3]


def test_empty_next_page_header_stops(api, gitlab_api):
    gitlab_api.add("GET", "/items", make_response(json_body=[1], headers={"X-Next-Page": ""}))

    assert api.request("/items") == [1]
    assert len(gitlab_api.calls) == 1


def test_mismatched_page_types_raise(api, gitlab_api):
    gitlab_api.add("GET", "/items", handler=paged([[1], {"a": 1}]))

    with pytest.raises(APIError, match="Cannot merge"):
        api.request("/items")


def test_error_response_raises_api_error(api, gitlab_api):
    gitlab_api.add("GET", "/user", make_response(403, {"message": "403 Forbidden"}))

    with pytest.raises(APIError) as excinfo:
        api.request("/user")

    error = excinfo.value
    assert error.status == 403
    assert error.response_code == 403
    assert error.error_message == "403 Forbidden"
    assert error.body == {"message": "403 Forbidden"}
    assert error.backend == "GitLab"


def test_api_error_is_a_python_gitlab_error(api, gitlab_api):
    gitlab_api.add("GET", "/user", make_response(500, {"error": "boom"}))

    with pytest.raises(gitlab.GitlabHttpError):
        api.request("/user")


def test_transport_failure_raises_api_error(api, monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests.Session, "request", refuse)

    with pytest.raises(APIError, match="connection refused") as excinfo:
        api.request("/user")

    assert excinfo.value.status is None
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_error_response_with_invalid_json_raises_api_error(api, gitlab_api):
    """A proxy error page served as JSON still yields a typed error."""
    response = make_response(502, text="<html>Bad gateway</html>")
    response.headers["Content-Type"] = "application/json"
    gitlab_api.add("GET", "/user", response)

    with pytest.raises(APIError) as excinfo:
        api.user()

    assert excinfo.value.status == 502
    assert excinfo.value.body == "<html>Bad gateway</html>"


def test_success_response_with_invalid_json_raises_api_error(api, gitlab_api):
    response = make_response(200, text='{"id": 1, "userna')
    response.headers["Content-Type"] = "application/json"
    gitlab_api.add("GET", "/user", response)

    with pytest.raises(APIError, match="Invalid JSON") as excinfo:
        api.user()

    assert excinfo.value.status == 200
    assert excinfo.value.body == '{"id": 1, "userna'
