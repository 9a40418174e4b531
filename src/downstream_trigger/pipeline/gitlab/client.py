"""GitLab REST (v4) client wrapper.

Keeps HTTP calls out of the trigger/poll logic and makes it easy to mock in tests.
Every failure surfaces as `RemoteRequestError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from downstream_trigger.pipeline.errors import RemoteRequestError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://gitlab.com/api/v4"


@dataclass(frozen=True, slots=True)
class PipelineInfo:
    """Minimal pipeline metadata returned from GitLab."""

    id: int
    status: str
    ref: str
    web_url: str


@dataclass(frozen=True, slots=True)
class JobInfo:
    """Minimal job metadata returned from GitLab."""

    id: int
    name: str
    status: str
    web_url: str


class GitLabClient:
    """Small wrapper around `requests` for the GitLab operations the trigger needs."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = DEFAULT_API_URL,
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "downstream-trigger"})
        if token:
            self._session.headers.update({"PRIVATE-TOKEN": token})
        else:
            logger.debug("No access token configured; API calls are unauthenticated")

    @property
    def api_url(self) -> str:
        return self._api_url

    def _project_url(self, project: str, path: str = "") -> str:
        project = project.strip().strip("/")
        if not project:
            raise ValueError("project is required")
        encoded = quote(project, safe="")
        path = path.lstrip("/")
        if not path:
            return f"{self._api_url}/projects/{encoded}"
        return f"{self._api_url}/projects/{encoded}/{path}"

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteRequestError(
                f"GitLab request failed: {e}", method=method, url=url
            ) from e

        if not resp.ok:
            raise RemoteRequestError(
                f"GitLab API error: {_error_detail(resp)}",
                method=method,
                url=url,
                status_code=resp.status_code,
            )
        return resp

    def _json_object(self, resp: requests.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteRequestError(
                "GitLab returned a non-JSON response",
                url=resp.url,
                status_code=resp.status_code,
            ) from e
        if not isinstance(data, dict):
            raise RemoteRequestError(
                "Unexpected GitLab response: expected a JSON object",
                url=resp.url,
                status_code=resp.status_code,
            )
        return data

    def _json_list(self, resp: requests.Response) -> list[dict[str, Any]] | None:
        """Parse a list body; returns None when the body is valid JSON but not a list."""

        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteRequestError(
                "GitLab returned a non-JSON response",
                url=resp.url,
                status_code=resp.status_code,
            ) from e
        if not isinstance(data, list):
            return None
        return [item for item in data if isinstance(item, dict)]

    def _get_paginated_json_list(
        self, url: str, *, params: dict[str, Any] | None = None, max_pages: int = 20
    ) -> list[dict[str, Any]]:
        """Fetch an endpoint that returns a JSON list, following `page`/`per_page` pagination."""

        items: list[dict[str, Any]] = []
        per_page = 100
        for page in range(1, max_pages + 1):
            query = dict(params or {})
            query.update({"per_page": per_page, "page": page})
            resp = self._send("GET", url, params=query)
            payload = self._json_list(resp)
            if payload is None:
                break

            items.extend(payload)

            next_page = resp.headers.get("X-Next-Page", "")
            if len(payload) < per_page or (
                "X-Next-Page" in resp.headers and not next_page.strip()
            ):
                break
        return items

    @staticmethod
    def _pipeline_from_json(
        data: dict[str, Any], *, url: str, status_code: int | None = None
    ) -> PipelineInfo:
        pipeline_id = data.get("id")
        if not isinstance(pipeline_id, int):
            raise RemoteRequestError(
                "Unexpected pipeline response: missing id",
                url=url,
                status_code=status_code,
            )
        return PipelineInfo(
            id=pipeline_id,
            status=str(data.get("status") or ""),
            ref=str(data.get("ref") or ""),
            web_url=str(data.get("web_url") or ""),
        )

    @staticmethod
    def _job_from_json(
        data: dict[str, Any], *, url: str, status_code: int | None = None
    ) -> JobInfo:
        job_id = data.get("id")
        if not isinstance(job_id, int):
            raise RemoteRequestError(
                "Unexpected job response: missing id",
                url=url,
                status_code=status_code,
            )
        return JobInfo(
            id=job_id,
            name=str(data.get("name") or ""),
            status=str(data.get("status") or ""),
            web_url=str(data.get("web_url") or ""),
        )

    def trigger_pipeline(
        self,
        *,
        project: str,
        ref: str,
        trigger_token: str,
        variables: dict[str, str],
    ) -> PipelineInfo:
        """Create a pipeline in `project` through the trigger API."""

        url = self._project_url(project, "trigger/pipeline")
        form: dict[str, str] = {"token": trigger_token, "ref": ref}
        for key, value in variables.items():
            form[f"variables[{key}]"] = value
        resp = self._send("POST", url, data=form)
        return self._pipeline_from_json(
            self._json_object(resp), url=url, status_code=resp.status_code
        )

    def get_pipeline(self, *, project: str, pipeline_id: int) -> PipelineInfo:
        url = self._project_url(project, f"pipelines/{pipeline_id}")
        resp = self._send("GET", url)
        return self._pipeline_from_json(
            self._json_object(resp), url=url, status_code=resp.status_code
        )

    def get_job(self, *, project: str, job_id: int) -> JobInfo:
        url = self._project_url(project, f"jobs/{job_id}")
        resp = self._send("GET", url)
        return self._job_from_json(self._json_object(resp), url=url, status_code=resp.status_code)

    def list_pipeline_jobs(self, *, project: str, pipeline_id: int) -> list[JobInfo]:
        url = self._project_url(project, f"pipelines/{pipeline_id}/jobs")
        return [self._job_from_json(item, url=url) for item in self._get_paginated_json_list(url)]

    def list_pipelines(
        self,
        *,
        project: str,
        ref: str,
        order_by: str = "id",
        sort: str = "desc",
    ) -> list[PipelineInfo]:
        """List pipelines for a ref (first page only; newest first by default)."""

        url = self._project_url(project, "pipelines")
        resp = self._send("GET", url, params={"ref": ref, "order_by": order_by, "sort": sort})
        payload = self._json_list(resp) or []
        return [
            self._pipeline_from_json(p, url=url, status_code=resp.status_code) for p in payload
        ]

    def cancel_pipeline(self, *, project: str, pipeline_id: int) -> PipelineInfo:
        url = self._project_url(project, f"pipelines/{pipeline_id}/cancel")
        resp = self._send("POST", url)
        return self._pipeline_from_json(
            self._json_object(resp), url=url, status_code=resp.status_code
        )

    def create_commit_comment(self, *, project: str, sha: str, note: str) -> None:
        if not sha.strip():
            raise ValueError("sha is required")
        url = self._project_url(project, f"repository/commits/{sha}/comments")
        self._send("POST", url, data={"note": note})

    def create_branch(self, *, project: str, branch: str, ref: str) -> None:
        if not branch.strip():
            raise ValueError("branch is required")
        url = self._project_url(project, "repository/branches")
        self._send("POST", url, data={"branch": branch, "ref": ref})

    def delete_branch(self, *, project: str, branch: str) -> None:
        if not branch.strip():
            raise ValueError("branch is required")
        url = self._project_url(project, f"repository/branches/{quote(branch, safe='')}")
        self._send("DELETE", url)

    def close(self) -> None:
        self._session.close()


def _error_detail(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text.strip()[:200] or resp.reason
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if value:
                return str(value)
    return str(data)[:200]
