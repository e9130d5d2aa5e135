"""nwaku REST API transport.

Talks to a running nwaku node via its REST API (default: http://localhost:8645).
Start one with:

    docker run -p 8645:8645 statusteam/nim-waku:v0.31.0 \\
      --rest --rest-address=0.0.0.0 --rest-port=8645

Every content topic travels on one pubsub topic. A single background task
drains the relay message cache and hands each payload to the subscriptions
registered for its content topic.
"""

import asyncio
import binascii
import logging
import time
from base64 import b64decode, b64encode
from typing import Optional
from urllib.parse import quote

import httpx

from ..errors import TransportError, TransportPublishError
from .base import MessageCallback, Subscription

logger = logging.getLogger(__name__)

DEFAULT_PUBSUB_TOPIC = "/waku/2/default-waku/proto"


class NwakuRestTransport:
    """Transport implementation backed by the nwaku REST API."""

    def __init__(
        self,
        waku_url: str = "http://localhost:8645",
        pubsub_topic: str = DEFAULT_PUBSUB_TOPIC,
        poll_interval: float = 1.0,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.waku_url = waku_url.rstrip("/")
        self.pubsub_topic = pubsub_topic
        self.poll_interval = poll_interval
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._relay_subscribed = False
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def messages_url(self) -> str:
        return f"{self.waku_url}/relay/v1/messages/{quote(self.pubsub_topic, safe='')}"

    async def publish(self, topic: str, payload: bytes) -> None:
        msg = {
            "payload": b64encode(payload).decode(),
            "contentTopic": topic,
            "timestamp": time.time_ns(),
        }
        try:
            resp = await self._client.post(self.messages_url, json=msg)
        except httpx.HTTPError as e:
            raise TransportPublishError(topic, str(e)) from e
        if not resp.is_success:
            raise TransportPublishError(topic, f"nwaku returned {resp.status_code}: {resp.text}")

    async def subscribe(self, topic: str, on_message: MessageCallback) -> Subscription:
        await self._ensure_relay_subscription()
        sub = Subscription(topic, on_message, on_cancel=self._remove)
        self._subscriptions.setdefault(topic, []).append(sub)
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(f"Subscribed to {topic}")
        return sub

    async def poll_once(self) -> int:
        """Drain the relay cache once. Returns the number of deliveries."""
        resp = await self._client.get(self.messages_url)
        if not resp.is_success:
            logger.warning(f"nwaku poll failed ({resp.status_code}): {resp.text}")
            return 0
        try:
            messages = resp.json()
        except ValueError:
            logger.warning("nwaku poll returned invalid JSON")
            return 0

        delivered = 0
        for msg in messages if isinstance(messages, list) else []:
            if not isinstance(msg, dict):
                continue
            subs = list(self._subscriptions.get(msg.get("contentTopic", ""), []))
            if not subs:
                continue
            try:
                data = b64decode(msg.get("payload", ""), validate=True)
            except (binascii.Error, ValueError):
                logger.warning(f"Skipping undecodable payload on {msg.get('contentTopic')}")
                continue
            for sub in subs:
                try:
                    sub.deliver(data)
                except Exception as e:
                    logger.error(f"Subscriber on {sub.topic} raised: {e}")
                delivered += 1
        return delivered

    async def close(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                sub.cancel()
        if self._relay_subscribed:
            try:
                await self._client.request(
                    "DELETE", f"{self.waku_url}/relay/v1/subscriptions", json=[self.pubsub_topic]
                )
            except httpx.HTTPError as e:
                logger.warning(f"Could not unsubscribe from nwaku: {e}")
            self._relay_subscribed = False
        if self._owns_client:
            await self._client.aclose()

    async def _ensure_relay_subscription(self):
        if self._relay_subscribed:
            return
        url = f"{self.waku_url}/relay/v1/subscriptions"
        try:
            resp = await self._client.post(url, json=[self.pubsub_topic])
        except httpx.HTTPError as e:
            raise TransportError(f"Could not reach nwaku at {self.waku_url}: {e}") from e
        if not resp.is_success:
            raise TransportError(f"nwaku subscribe failed ({resp.status_code}): {resp.text}")
        self._relay_subscribed = True

    async def _poll_loop(self):
        while True:
            try:
                await self.poll_once()
            except httpx.HTTPError as e:
                logger.warning(f"Could not poll nwaku: {e}")
            await asyncio.sleep(self.poll_interval)

    def _remove(self, sub: Subscription):
        subs = self._subscriptions.get(sub.topic, [])
        if sub in subs:
            subs.remove(sub)
