"""SurveyClient — async HTTP client for the survey REST API.

Implements :class:`SurveyBackend` so a ``PhaseNavigator`` can run against
a remote server.  The respondent's session token travels in the
``X-Session-Token`` header on every call.

Error responses are mapped back onto the SDK's exception taxonomy so that
callers handle local and remote backends identically.
"""

from __future__ import annotations

from typing import Any

import httpx

from survey_flow.errors import (
    AuthorizationError,
    InputValidationError,
    NotFoundError,
    PhaseLockedError,
    StepValidationError,
    SurveyError,
    TransientError,
)
from survey_flow.interfaces import SurveyBackend
from survey_flow.models.session import (
    CompletionResult,
    PhaseRedirect,
    PhaseStep,
    PhaseView,
    ResumeState,
    SaveResult,
    StartResult,
    SurveyDone,
)

API_PREFIX = "/api/v1"


def _error_from_response(resp: httpx.Response) -> SurveyError:
    """Rebuild an SDK exception from an error response body."""
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    detail = body.get("detail")
    message = detail if isinstance(detail, str) else None
    status = resp.status_code

    if status == 401:
        return AuthorizationError(message)
    if status == 404:
        return NotFoundError(message)
    if status == 409:
        return PhaseLockedError(body.get("phase_code", ""), message)
    if status == 422 and "question_code" in body:
        return StepValidationError(body["question_code"], body.get("step", 0), message or "")
    if 400 <= status < 500:
        return InputValidationError(message)
    return TransientError(detail=f"HTTP {status}: {resp.text[:200]}")


class SurveyClient(SurveyBackend):
    """Async HTTP client bound to one respondent session."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self.token = token
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SurveyClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Respondent endpoints
    # ------------------------------------------------------------------

    async def start(self, full_name: str, phone: str) -> StartResult:
        """Register / log in and remember the returned session token."""
        data = await self._request(
            "POST", "/respondents/start", json={"full_name": full_name, "phone": phone}
        )
        result = StartResult.model_validate(data)
        self.token = result.session_token
        return result

    async def resume(self) -> ResumeState:
        return ResumeState.model_validate(await self._request("GET", "/respondents/resume"))

    async def open_phase(self, phase_code: str) -> PhaseStep:
        data = await self._request("GET", f"/phases/{phase_code}")
        kind = data.get("type")
        if kind == "redirect":
            return PhaseRedirect.model_validate(data)
        if kind == "done":
            return SurveyDone.model_validate(data)
        return PhaseView.model_validate(data)

    async def save_answers(
        self,
        phase_code: str,
        answers: dict[str, Any],
        step: int | None = None,
    ) -> SaveResult:
        data = await self._request(
            "POST",
            "/responses/save",
            json={"phase_code": phase_code, "answers": answers, "step": step},
        )
        return SaveResult.model_validate(data)

    async def complete_phase(
        self,
        phase_code: str,
        answers: dict[str, Any] | None = None,
    ) -> CompletionResult:
        data = await self._request(
            "POST", f"/phases/{phase_code}/complete", json={"answers": answers or {}}
        )
        return CompletionResult.model_validate(data)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, json: Any = None) -> dict:
        """Send a request with the session token, retrying once on timeout."""
        if self._client is None:
            raise RuntimeError("SurveyClient must be used as an async context manager")
        headers = {"X-Session-Token": self.token} if self.token else {}
        url = f"{API_PREFIX}{path}"
        try:
            try:
                resp = await self._client.request(method, url, headers=headers, json=json)
            except httpx.TimeoutException:
                # One retry; every mutating call is idempotent
                resp = await self._client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as exc:
            raise TransientError(detail=f"{method} {path}: {exc}") from exc

        if resp.status_code >= 400:
            raise _error_from_response(resp)
        return resp.json()
