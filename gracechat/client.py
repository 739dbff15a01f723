"""
HTTP client for the chat API.

Wraps an httpx.Client. Any transport failure or non-2xx response is raised
as ApiError carrying a user-facing message (the server's `detail` when it
sent one).
"""

import logging
from typing import Any, Optional

import httpx

from gracechat.schemas import ExchangeResponse, SessionDetail, SessionSummary

logger = logging.getLogger(__name__)

CHAT_SESSIONS = "/api/chat/sessions"
CHAT_MESSAGE = "/api/chat/message"


class ApiError(Exception):
    """Raised when a chat API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ChatApiClient:
    """
    Thin typed wrapper around the chat endpoints.

    Args:
        http: Configured httpx.Client (base_url set). A FastAPI TestClient
            works as well.
    """

    def __init__(self, http: httpx.Client):
        self._http = http

    @classmethod
    def from_base_url(cls, base_url: str, timeout: float = 10.0) -> "ChatApiClient":
        return cls(httpx.Client(base_url=base_url, timeout=timeout))

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            response = self._http.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ApiError(f"Could not reach the server: {e}") from e

        if response.is_error:
            raise ApiError(self._error_message(response), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise ApiError("Invalid response from server", status_code=response.status_code) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            detail = response.json().get("detail")
        except (ValueError, AttributeError):
            detail = None
        if isinstance(detail, str) and detail:
            return detail
        return "Something went wrong"

    def list_sessions(self) -> list[SessionSummary]:
        payload = self._request("GET", CHAT_SESSIONS)
        return [SessionSummary.model_validate(item) for item in payload.get("data", [])]

    def get_session(self, session_id: str) -> SessionDetail:
        payload = self._request("GET", f"{CHAT_SESSIONS}/{session_id}")
        return SessionDetail.model_validate(payload)

    def send_message(self, content: str, session_id: Optional[str] = None) -> ExchangeResponse:
        body = {"content": content}
        if session_id:
            body["sessionId"] = session_id
        payload = self._request("POST", CHAT_MESSAGE, json=body)
        return ExchangeResponse.model_validate(payload)
