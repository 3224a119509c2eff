import json
from unittest.mock import AsyncMock

import aiomqtt
import pytest

from cooling_feedback.mqtt.client import MQTTClient
from cooling_feedback.mqtt.topics import Topics

ADDRESS = "68:FE:71:2C:50:C0"
PAYLOAD = {"Power": "on", "Temp": "22", "Mode": "0", "Fan": "1"}


def _connected_client(broker: AsyncMock) -> MQTTClient:
    client = MQTTClient(host="broker.test", port=1883)
    client._client = broker
    client._connected = True
    return client


def test_topic_is_the_bare_address_without_prefix() -> None:
    assert Topics.device_command(ADDRESS, prefix="") == ADDRESS


def test_topic_prefix_is_joined_once() -> None:
    assert Topics.device_command(ADDRESS, prefix="site-a/") == f"site-a/{ADDRESS}"


@pytest.mark.asyncio
async def test_publish_while_disconnected_reports_not_ready() -> None:
    client = MQTTClient(host="broker.test", port=1883)

    result = await client.publish(ADDRESS, PAYLOAD)

    assert result.published is False
    assert result.reason == "MQTT_NOT_READY"


@pytest.mark.asyncio
async def test_publish_sends_json_payload() -> None:
    broker = AsyncMock()
    client = _connected_client(broker)

    result = await client.publish(ADDRESS, PAYLOAD)

    assert result.published is True
    broker.publish.assert_awaited_once()
    topic, message = broker.publish.call_args.args
    assert topic == Topics.device_command(ADDRESS)
    assert json.loads(message) == PAYLOAD
    assert broker.publish.call_args.kwargs == {"qos": 0, "retain": False}


@pytest.mark.asyncio
async def test_broker_errors_are_reported() -> None:
    broker = AsyncMock()
    broker.publish.side_effect = aiomqtt.MqttError("connection lost")
    client = _connected_client(broker)

    result = await client.publish(ADDRESS, PAYLOAD)

    assert result.published is False
    assert result.reason == "connection lost"
