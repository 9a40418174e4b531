"""Unit tests for the GitLab REST client (HTTP mocked at the session)."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import Mock

import pytest
import requests

from downstream_trigger.pipeline.errors import RemoteRequestError
from downstream_trigger.pipeline.gitlab.client import GitLabClient


def _response(status: int, payload: Any = None, *, headers: dict[str, str] | None = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(payload).encode("utf-8") if payload is not None else b""
    resp.headers.update(headers or {})
    resp.url = "https://gitlab.example.com/api/v4/mocked"
    return resp


def _client(*responses: requests.Response) -> tuple[GitLabClient, Mock]:
    session = requests.Session()
    request = Mock(side_effect=list(responses))
    session.request = request  # type: ignore[method-assign]
    client = GitLabClient(
        token="secret", base_url="https://gitlab.example.com/api/v4/", session=session
    )
    return client, request


def test_private_token_header_and_base_url_normalization() -> None:
    client, _request = _client()

    assert client.api_url == "https://gitlab.example.com/api/v4"
    assert client._session.headers["PRIVATE-TOKEN"] == "secret"


def test_project_paths_are_url_encoded() -> None:
    client, _request = _client()

    assert (
        client._project_url("gitlab-org/build/CNG-mirror/", "pipelines/5")
        == "https://gitlab.example.com/api/v4/projects/gitlab-org%2Fbuild%2FCNG-mirror/pipelines/5"
    )
    assert client._project_url("group/proj") == "https://gitlab.example.com/api/v4/projects/group%2Fproj"
    with pytest.raises(ValueError):
        client._project_url("  ")


def test_trigger_pipeline_sends_form_variables() -> None:
    client, request = _client(
        _response(201, {"id": 9, "status": "created", "ref": "master", "web_url": "https://p/9"})
    )

    pipeline = client.trigger_pipeline(
        project="group/proj",
        ref="master",
        trigger_token="tok",
        variables={"ee": "true", "QA_BRANCH": "master"},
    )

    assert pipeline.id == 9
    assert pipeline.web_url == "https://p/9"
    method, url = request.call_args.args
    assert method == "POST"
    assert url.endswith("/projects/group%2Fproj/trigger/pipeline")
    assert request.call_args.kwargs["data"] == {
        "token": "tok",
        "ref": "master",
        "variables[ee]": "true",
        "variables[QA_BRANCH]": "master",
    }


def test_non_2xx_raises_remote_request_error_with_status() -> None:
    client, _request = _client(_response(404, {"message": "404 Project Not Found"}))

    with pytest.raises(RemoteRequestError) as excinfo:
        client.get_pipeline(project="group/proj", pipeline_id=1)

    assert excinfo.value.status_code == 404
    assert "404 Project Not Found" in str(excinfo.value)


def test_transport_errors_are_wrapped() -> None:
    session = requests.Session()
    session.request = Mock(side_effect=requests.ConnectionError("reset"))  # type: ignore[method-assign]
    client = GitLabClient(token="secret", session=session)

    with pytest.raises(RemoteRequestError) as excinfo:
        client.get_job(project="group/proj", job_id=3)

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_list_pipeline_jobs_follows_pagination() -> None:
    page_one = [{"id": i, "name": f"job-{i}", "status": "created"} for i in range(100)]
    page_two = [{"id": 100, "name": "Trigger:qa-test", "status": "created"}]
    client, request = _client(
        _response(200, page_one, headers={"X-Next-Page": "2"}),
        _response(200, page_two, headers={"X-Next-Page": ""}),
    )

    jobs = client.list_pipeline_jobs(project="group/proj", pipeline_id=5)

    assert len(jobs) == 101
    assert jobs[-1].name == "Trigger:qa-test"
    assert [c.kwargs["params"]["page"] for c in request.call_args_list] == [1, 2]


def test_list_pipelines_orders_newest_first() -> None:
    client, request = _client(
        _response(200, [{"id": 3, "status": "running"}, {"id": 2, "status": "success"}])
    )

    pipelines = client.list_pipelines(project="group/proj", ref="ee-branch")

    assert [p.id for p in pipelines] == [3, 2]
    assert request.call_args.kwargs["params"] == {
        "ref": "ee-branch",
        "order_by": "id",
        "sort": "desc",
    }


def test_branch_operations() -> None:
    client, request = _client(_response(201, {"name": "ee-b"}), _response(204))

    client.create_branch(project="group/docs", branch="ee-b", ref="master")
    client.delete_branch(project="group/docs", branch="ee/b")

    create_call, delete_call = request.call_args_list
    assert create_call.kwargs["data"] == {"branch": "ee-b", "ref": "master"}
    assert delete_call.args == (
        "DELETE",
        "https://gitlab.example.com/api/v4/projects/group%2Fdocs/repository/branches/ee%2Fb",
    )


def test_create_commit_comment_posts_note() -> None:
    client, request = _client(_response(201, {"note": "hi"}))

    client.create_commit_comment(project="group/proj", sha="abc", note="hi")

    method, url = request.call_args.args
    assert method == "POST"
    assert url.endswith("/projects/group%2Fproj/repository/commits/abc/comments")
    assert request.call_args.kwargs["data"] == {"note": "hi"}


def _html_response(status: int, body: bytes) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp.headers["Content-Type"] = "text/html"
    resp.url = "https://gitlab.example.com/api/v4/mocked"
    return resp


def test_non_json_list_bodies_raise_remote_request_error() -> None:
    client, _request = _client(
        _html_response(200, b"<html>maintenance</html>"),
        _html_response(200, b"<html>maintenance</html>"),
    )

    with pytest.raises(RemoteRequestError) as excinfo:
        client.list_pipeline_jobs(project="group/proj", pipeline_id=5)
    assert excinfo.value.status_code == 200
    assert isinstance(excinfo.value.__cause__, ValueError)

    with pytest.raises(RemoteRequestError):
        client.list_pipelines(project="group/proj", ref="ee-branch")


def test_payload_without_id_raises_remote_request_error() -> None:
    client, _request = _client(
        _response(200, {"message": "oops"}),
        _response(200, [{"name": "Trigger:qa-test", "status": "created"}]),
    )

    with pytest.raises(RemoteRequestError) as excinfo:
        client.get_pipeline(project="group/proj", pipeline_id=1)
    assert "missing id" in str(excinfo.value)
    assert excinfo.value.url.endswith("/projects/group%2Fproj/pipelines/1")

    with pytest.raises(RemoteRequestError):
        client.list_pipeline_jobs(project="group/proj", pipeline_id=5)
