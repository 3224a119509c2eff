"""Central configuration using Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # OpenRouter
    openrouter_api_key: str = Field(default="", alias="OPENROUTER_API_KEY")
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_default_model: str = "google/gemini-2.5-flash"
    openrouter_fallback_models: list[str] = []
    llm_timeout_seconds: float = Field(default=15.0, alias="LLM_TIMEOUT_SECONDS")

    # MQTT
    mqtt_host: str = Field(default="localhost", alias="MQTT_HOST")
    mqtt_port: int = Field(default=1883, alias="MQTT_PORT")
    mqtt_username: str | None = Field(default=None, alias="MQTT_USERNAME")
    mqtt_password: str | None = Field(default=None, alias="MQTT_PASSWORD")
    mqtt_topic_prefix: str = Field(default="", alias="MQTT_TOPIC_PREFIX")

    # Chat history writes are on by default for dev
    chat_writes_enabled: bool = Field(default=True, alias="CHAT_WRITES_ENABLED")
    history_limit: int = 10

    # Command defaults for fields that are not reconciled
    default_ac_mode: str = "0"
    default_fan_speed: str = "1"
    fallback_setpoint_c: float = 24.0

    # Application
    app_name: str = "Cooling Feedback Assistant"
    debug: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # Storage
    sqlite_db_path: str = Field(default="feedback.db", alias="SQLITE_DB_PATH")

    # Zone map and seed devices
    zones_config_path: str = str(
        Path(__file__).parent / "zones.yaml"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


settings = Settings()
