"""Async MQTT client used to dispatch commands to AC controllers."""

import json
import logging
from typing import Any

import aiomqtt

from config import settings
from cooling_feedback.models.action import PublishResult
from cooling_feedback.mqtt.topics import Topics

logger = logging.getLogger(__name__)


class MQTTClient:
    """Async MQTT client wrapper. Publishing is fire-and-forget (QoS 0)."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
    ):
        self._host = host or settings.mqtt_host
        self._port = port or settings.mqtt_port
        self._username = username if username is not None else settings.mqtt_username
        self._password = password if password is not None else settings.mqtt_password
        self._client: aiomqtt.Client | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect to the MQTT broker."""
        try:
            self._client = aiomqtt.Client(
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
            )
            await self._client.__aenter__()
            self._connected = True
            logger.info(f"Connected to MQTT broker at {self._host}:{self._port}")
        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            self._connected = False
            raise

    async def disconnect(self) -> None:
        """Disconnect from the MQTT broker."""
        if self._client and self._connected:
            await self._client.__aexit__(None, None, None)
            self._connected = False
            logger.info("Disconnected from MQTT broker")

    async def publish(self, address: str, payload: dict[str, Any]) -> PublishResult:
        """Publish a JSON command to a controller. Never raises."""
        topic = Topics.device_command(address)
        if not self._client or not self._connected:
            logger.warning(f"Not connected, cannot publish to {topic}")
            return PublishResult(published=False, reason="MQTT_NOT_READY", topic=topic)

        message = json.dumps(payload)
        try:
            await self._client.publish(topic, message.encode(), qos=0, retain=False)
        except aiomqtt.MqttError as e:
            logger.error(f"MQTT publish error on {topic}: {e}")
            return PublishResult(published=False, reason=str(e) or "MQTT_ERROR", topic=topic)

        logger.info(f"Published to {topic}: {message[:200]}")
        return PublishResult(published=True, topic=topic)


# Singleton instance
mqtt_client = MQTTClient()
