"""
HTTP client for the Second Brain API.

Used by the editor/chat front ends and scripts. Wraps every endpoint with
``requests`` and raises :class:`APIError` for non-2xx responses.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
CHAT_HISTORY_LIMIT = 10

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment and try again."
QUOTA_MESSAGE = "API quota not configured. Please contact support."
GENERIC_CHAT_ERROR = "Error communicating with AI. Please try again."


class APIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code


class SecondBrainClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, json: Any = None, params: dict | None = None) -> Any:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = self.session.request(
            method,
            f"{self.base_url}/api{path}",
            json=json,
            params=params,
            headers=headers,
            timeout=self.timeout,
        )

        if not response.ok:
            try:
                data = response.json()
            except ValueError:
                data = {}
            if not isinstance(data, dict):
                data = {}
            raise APIError(
                response.status_code,
                data.get("error") or response.reason or "Request failed",
                data.get("code"),
            )

        return response.json()

    # Auth

    def register(self, name: str, email: str, password: str) -> dict:
        return self._request("POST", "/auth/register", json={"name": name, "email": email, "password": password})

    def login(self, email: str, password: str) -> dict:
        """Log in and keep the returned bearer token for later calls."""
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["access_token"]
        return data

    def me(self) -> dict:
        return self._request("GET", "/auth/me")

    # Folders

    def list_folders(self) -> list[dict]:
        return self._request("GET", "/folders")

    def create_folder(self, name: str) -> dict:
        return self._request("POST", "/folders", json={"name": name})

    def rename_folder(self, folder_id: int, name: str) -> dict:
        return self._request("PATCH", f"/folders/{folder_id}", json={"name": name})

    def delete_folder(self, folder_id: int) -> dict:
        return self._request("DELETE", f"/folders/{folder_id}")

    # Notes

    def list_notes(self, folder_id: int | None = None, search: str | None = None) -> list[dict]:
        params = {}
        if folder_id is not None:
            params["folderId"] = folder_id
        if search:
            params["search"] = search
        return self._request("GET", "/notes", params=params or None)

    def create_note(
        self,
        title: str | None = None,
        content: str | None = None,
        folder_id: int | None = None,
    ) -> dict:
        body: dict[str, Any] = {}
        if title is not None:
            body["title"] = title
        if content is not None:
            body["content"] = content
        if folder_id is not None:
            body["folderId"] = folder_id
        return self._request("POST", "/notes", json=body)

    def get_note(self, note_id: int) -> dict:
        return self._request("GET", f"/notes/{note_id}")

    def update_note(self, note_id: int, **fields: Any) -> dict:
        """
        PATCH a note. Accepts ``title``, ``content`` and ``folder_id``.
        """
        body = {}
        for key, value in fields.items():
            body["folderId" if key == "folder_id" else key] = value
        return self._request("PATCH", f"/notes/{note_id}", json=body)

    def delete_note(self, note_id: int) -> dict:
        return self._request("DELETE", f"/notes/{note_id}")

    # AI

    def chat(
        self,
        message: str,
        context_window: str | None = None,
        chat_history: list[dict] | None = None,
    ) -> str:
        data = self._request(
            "POST",
            "/ai/chat",
            json={
                "message": message,
                "contextWindow": context_window,
                "chatHistory": (chat_history or [])[-CHAT_HISTORY_LIMIT:],
            },
        )
        return data["reply"]


class ChatSession:
    """
    Conversation state for the chat panel.

    Failures never raise: they are appended to the conversation as an
    assistant message so the user can keep typing.
    """

    def __init__(self, client: SecondBrainClient, context_window: str = "", history_limit: int = CHAT_HISTORY_LIMIT):
        self.client = client
        self.context_window = context_window
        self.history_limit = history_limit
        self.messages: list[dict[str, str]] = []

    def send(self, message: str, selection: str | None = None) -> str | None:
        """
        Send a message and return the assistant's reply (or the error text).

        Args:
            message: The user's question; blank messages are ignored
            selection: Selected text to use as context instead of the whole note
        """
        if not message.strip():
            return None

        history = self.messages[-self.history_limit:] if self.history_limit > 0 else []
        self.messages.append({"role": "user", "content": message})

        try:
            reply = self.client.chat(
                message,
                context_window=selection or self.context_window,
                chat_history=history,
            )
        except APIError as e:
            reply = self._error_text(e)
        except requests.RequestException as e:
            logger.warning("Chat request failed: %s", e)
            reply = GENERIC_CHAT_ERROR

        self.messages.append({"role": "assistant", "content": reply})
        return reply

    def clear(self):
        self.messages = []

    @staticmethod
    def _error_text(error: APIError) -> str:
        if error.status_code == 429:
            return error.message or RATE_LIMIT_MESSAGE
        if error.code == "QUOTA_NOT_CONFIGURED":
            return QUOTA_MESSAGE
        return error.message or GENERIC_CHAT_ERROR
