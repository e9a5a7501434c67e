"""Browser-automation gateway client.

The gateway is a sidecar process running whatsapp-web.js under Puppeteer.
Commands go to its REST API; events come back through our
`/gateway/events` webhook and are fed to `GatewayClient.handle_event`.
"""

from pathlib import Path
from typing import Any

import httpx

from src.core.logging import log
from src.whatsapp.client import (
    Chat,
    ClientEvent,
    ClientInfo,
    InboundMessage,
    MessageMedia,
    SentMessage,
    WhatsAppClient,
)


class GatewayClient(WhatsAppClient):
    """`WhatsAppClient` backed by the gateway's HTTP API."""

    def __init__(
        self,
        session_id: str,
        auth_path: Path,
        base_url: str,
        api_key: str,
        callback_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(session_id)
        self.auth_path = auth_path
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.callback_url = callback_url
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}/sessions/{self.session_id}{path}"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.request(
                method, self._url(path), headers=self._headers(), **kwargs
            )
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()

    async def initialize(self) -> None:
        log.info(f"Starting gateway client for session {self.session_id}")
        data = await self._request(
            "POST",
            "/start",
            json={
                "client_id": self.session_id,
                "auth_data_path": str(self.auth_path),
                "webhook_url": self.callback_url,
                "headless": True,
            },
        )
        # A session restored from saved auth data may come back ready at once
        if data.get("status") == "ready" and data.get("wid"):
            self.handle_event(ClientEvent.READY.value, data)

    async def destroy(self) -> None:
        try:
            await self._request("POST", "/destroy")
        finally:
            self.info = None

    async def send_message(
        self,
        chat_id: str,
        content: str | MessageMedia,
        caption: str | None = None,
    ) -> SentMessage:
        body: dict[str, Any] = {"chat_id": chat_id}
        if isinstance(content, MessageMedia):
            body["media"] = {
                "mimetype": content.mimetype,
                "data": content.data,
                "filename": content.filename or "file",
            }
            body["caption"] = caption or ""
        else:
            body["text"] = content

        data = await self._request("POST", "/messages", json=body)
        return SentMessage(id=data["id"], timestamp=data.get("timestamp"))

    async def get_chats(self) -> list[Chat]:
        data = await self._request("GET", "/chats")
        return [Chat.from_payload(c) for c in data.get("chats", [])]

    async def get_chat_by_id(self, chat_id: str) -> Chat:
        try:
            data = await self._request("GET", f"/chats/{chat_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise LookupError(f"chat {chat_id} not found") from e
            raise
        return Chat.from_payload(data)

    def handle_event(self, event: str, data: dict[str, Any] | None) -> None:
        """Translate a raw gateway event into a typed client event."""
        data = data or {}
        try:
            kind = ClientEvent(event)
        except ValueError:
            log.warning(f"Unknown gateway event '{event}' for session {self.session_id}")
            return

        if kind == ClientEvent.QR:
            self.emit(kind, data.get("qr", ""))
        elif kind == ClientEvent.READY:
            if not data.get("wid"):
                log.warning(f"Gateway 'ready' without wid for session {self.session_id}, ignored")
                return
            self.info = ClientInfo(
                wid=str(data["wid"]),
                pushname=data.get("pushname"),
                platform=data.get("platform"),
            )
            self.emit(kind, self.info)
        elif kind in (ClientEvent.AUTH_FAILURE, ClientEvent.DISCONNECTED):
            self.info = None
            self.emit(kind, data.get("reason"))
        elif kind == ClientEvent.MESSAGE:
            self.emit(kind, InboundMessage.from_payload(data))
        elif kind == ClientEvent.LOADING_SCREEN:
            self.emit(kind, data.get("percent"))
        else:
            self.emit(kind, data)


class GatewayClientFactory:
    """Builds one `GatewayClient` per session."""

    def __init__(self, base_url: str, api_key: str, callback_url: str, timeout: float = 60.0):
        self.base_url = base_url
        self.api_key = api_key
        self.callback_url = callback_url
        self.timeout = timeout

    def __call__(self, session_id: str, auth_path: Path) -> GatewayClient:
        return GatewayClient(
            session_id=session_id,
            auth_path=auth_path,
            base_url=self.base_url,
            api_key=self.api_key,
            callback_url=self.callback_url,
            timeout=self.timeout,
        )
