"""MQTT topic helpers."""

from config import settings


class Topics:
    """Controllers listen on a topic named after their MAC address."""

    DEVICE_COMMAND = "{prefix}/{address}"

    @staticmethod
    def device_command(address: str, prefix: str | None = None) -> str:
        prefix = settings.mqtt_topic_prefix if prefix is None else prefix
        prefix = prefix.strip("/")
        if not prefix:
            return address
        return Topics.DEVICE_COMMAND.format(prefix=prefix, address=address)
