from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from onebot_sauce.types import OutboundAction

logger = logging.getLogger(__name__)


class OneBotSendError(Exception):
    def __init__(
        self,
        message: str,
        *,
        action: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.action = action
        self.status_code = status_code


def build_onebot_http_client() -> httpx.AsyncClient:
    # The OneBot API is usually on loopback, so it never goes through a proxy.
    return httpx.AsyncClient(trust_env=False)


class ActionSender(Protocol):
    async def send(self, action: OutboundAction) -> None: ...


class OneBotClient:
    """Posts actions to the OneBot HTTP API (``POST <base>/<action>``)."""

    def __init__(
        self,
        *,
        base_url: str,
        http_client: httpx.AsyncClient,
        access_token: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._access_token = access_token
        self._timeout_seconds = timeout_seconds

    async def send(self, action: OutboundAction) -> None:
        payload = action.to_payload()
        name = str(payload["action"])
        url = f"{self._base_url}/{name}"
        headers: dict[str, str] = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        for attempt in range(2):
            try:
                response = await self._http_client.post(
                    url,
                    json=payload["params"],
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt == 1:
                    raise OneBotSendError(
                        f"OneBot {name} failed due to network error",
                        action=name,
                    ) from exc
                await asyncio.sleep(0.5)
                continue

            if 500 <= response.status_code < 600 and attempt == 0:
                await asyncio.sleep(0.5)
                continue

            if response.status_code >= 400:
                raise OneBotSendError(
                    f"OneBot {name} failed with status {response.status_code}: "
                    f"{_extract_response_detail(response)}",
                    action=name,
                    status_code=response.status_code,
                )

            _raise_for_action_status(response, name)
            return


class ReplyDispatcher:
    """Single writer for outbound actions.

    Handler tasks enqueue; one drain task sends, so traffic reaches the
    transport strictly one action at a time.
    """

    def __init__(self, sender: ActionSender, *, max_size: int = 128) -> None:
        self._sender = sender
        self._queue: asyncio.Queue[OutboundAction | None] = asyncio.Queue(
            maxsize=max(1, max_size)
        )
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._drain(), name="reply-dispatcher")

    async def enqueue(self, action: OutboundAction) -> None:
        await self._queue.put(action)

    async def stop(self) -> None:
        """Send everything already queued, then stop the drain task."""
        if self._task is None:
            return
        await self._queue.put(None)
        await self._task
        self._task = None

    async def join(self) -> None:
        await self._queue.join()

    async def _drain(self) -> None:
        while True:
            action = await self._queue.get()
            try:
                if action is None:
                    return
                await self._sender.send(action)
            except OneBotSendError as exc:
                logger.warning(
                    "onebot_send_failed action=%s status=%s detail=%s",
                    exc.action,
                    exc.status_code,
                    exc,
                )
            except Exception:
                logger.exception("onebot_send_unexpected_error")
            finally:
                self._queue.task_done()


def _raise_for_action_status(response: httpx.Response, name: str) -> None:
    try:
        payload = response.json()
    except ValueError:
        return
    if not isinstance(payload, dict):
        return
    if payload.get("status") == "failed":
        raise OneBotSendError(
            f"OneBot {name} rejected: retcode={payload.get('retcode')} "
            f"{payload.get('wording') or payload.get('msg') or ''}".strip(),
            action=name,
            status_code=response.status_code,
        )


def _extract_response_detail(response: httpx.Response) -> str:
    detail = ""
    try:
        payload = response.json()
        if isinstance(payload, dict):
            detail = str(
                payload.get("wording")
                or payload.get("message")
                or payload.get("msg")
                or payload
            )
        else:
            detail = str(payload)
    except ValueError:
        detail = response.text

    detail = " ".join(detail.strip().split())
    if not detail:
        return "No error detail"
    if len(detail) > 240:
        return f"{detail[:240]}..."
    return detail
