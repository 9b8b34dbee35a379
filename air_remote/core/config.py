from typing import Literal
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    APP_NAME: str = "Air Remote Mediator"
    LOG_LEVEL: str = "INFO"

    # ---- Television control link ----
    # 'serial' is the RS-232C control port; 'simple-ip' is Sony's Simple IP control over TCP.
    TV_LINK_DIALECT: Literal["serial", "simple-ip"] = "serial"
    TV_SERIAL_PORT: str = "/dev/ttyUSB0"
    TV_SERIAL_BAUD: int = 9600
    TV_HOST: str = "sony-bravia.local"
    TV_IP_PORT: int = 20060
    # Per-exchange protocol timeout
    TV_TIMEOUT_SEC: float = 0.5
    TV_POLL_INTERVAL_SEC: float = 0.5
    # Unchanged readings are re-sent this often so ignored ones are eventually acted on
    TV_STATE_REFRESH_SEC: float = 5.0
    # HDMI index treated as the normal input (the secondary device lives here)
    PRIMARY_INPUT_INDEX: int = 1

    # ---- Button panel (I2C) ----
    PANEL_I2C_BUS: int = 1
    PANEL_I2C_ADDRESS: int = 0x05
    PANEL_POLL_INTERVAL_SEC: float = 0.01

    # Reopen delay after a connection-level error (both device links)
    RECONNECT_BACKOFF_SEC: float = 1.0

    # ---- MQTT bus ----
    MQTT_HOST: str = "mqtt.local"
    MQTT_PORT: int = 1883
    MQTT_CLIENT_ID: str = "air-remote-mediator-pi"
    MQTT_USER: str = "air-remote"
    # Broker password has no default; startup fails without it
    MQTT_PASS: str
    MQTT_KEEPALIVE_SEC: int = 5
    MQTT_TOPIC_PREFIX: str = "air-remote"
    HA_COMMAND_TOPIC: str = "homeassistant_cmd/run"

    # Home Assistant entities driven from remote buttons
    LAUNCHER_SCRIPT: str = "tv_open_launcher"
    SECONDARY_SLEEP_SCRIPT: str = "secondary_sleep"
    AMBIENT_LIGHT_ENTITY: str = "light.tv_backlight"

    # ---- Mediator rules ----
    # Off readings this soon after a power-on are stale
    STARTING_GRACE_SEC: float = 10.0
    IDLE_TIMEOUT_SEC: float = 10.0
    HEARTBEAT_INTERVAL_SEC: float = 1.0
    ANTI_HIJACK_ENABLED: bool = False
    ANTI_HIJACK_WINDOW_SEC: float = 15.0

    # ---- Channels ----
    EVENT_QUEUE_SIZE: int = 100
    COMMAND_QUEUE_SIZE: int = 10

    # ---- HTTP control surface ----
    HTTP_ENABLED: bool = True
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8080


    class Config:
        env_file = ".env"

settings = Settings()
