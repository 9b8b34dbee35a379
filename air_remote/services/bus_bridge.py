"""
MQTT bus bridge.

Inbound commands are decoded on paho's network thread and handed to the event loop with
call_soon_threadsafe into a bounded inbound queue; the bridge task then awaits space in the
mediator's event channel, so the network thread never blocks. When both are full, further
inbound messages are dropped with a warning. Outbound notifications are published from the
bridge task.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

import paho.mqtt.client as mqtt

from air_remote.core.config import Settings
from air_remote.models.commands import (
    AmbientLightingSet, BusNotification, RunScript, SecondaryDeviceChanged, SleepSecondary, TvPowerChanged,
)
from air_remote.models.events import (
    Event, OkPressed, PowerButtonPressed, RemoteConsumerCodePressed, RemoteKeyPressed,
    SleepSecondaryRequested, WakeSecondaryRequested,
)
from air_remote.services.channels import AsyncCommandChannel, EventChannel

log = logging.getLogger("air_remote.bus")

QOS = 1
RECONNECT_MIN_DELAY_SEC = 1
RECONNECT_MAX_DELAY_SEC = 30
INBOUND_QUEUE_SIZE = 100

Publication = Tuple[str, str, bool]


def parse_code(payload: str) -> int:
    """Byte-sized code from a payload such as '233' or '0xE9'"""
    code = int(payload.strip(), 0)
    if not 0 <= code <= 0xFF:
        raise ValueError(f"code {code} out of range")
    return code


@dataclass(frozen=True)
class BusTopics:
    prefix: str = "air-remote"
    ha_command: str = "homeassistant_cmd/run"
    secondary_sleep_script: str = "secondary_sleep"
    ambient_light_entity: str = "light.tv_backlight"

    @classmethod
    def from_settings(cls, cfg: Settings) -> "BusTopics":
        return cls(
            prefix=cfg.MQTT_TOPIC_PREFIX,
            ha_command=cfg.HA_COMMAND_TOPIC,
            secondary_sleep_script=cfg.SECONDARY_SLEEP_SCRIPT,
            ambient_light_entity=cfg.AMBIENT_LIGHT_ENTITY,
        )

    @property
    def availability(self) -> str:
        return f"{self.prefix}/availability"

    @property
    def subscriptions(self) -> List[str]:
        return [
            f"{self.prefix}/cmd/power",
            f"{self.prefix}/cmd/ok",
            f"{self.prefix}/cmd/sleep",
            f"{self.prefix}/cmd/key",
            f"{self.prefix}/cmd/consumer",
            f"{self.prefix}/usb-power-on",
        ]

    def decode(self, topic: str, payload: bytes) -> Optional[Event]:
        """Event for an inbound message; None (logged) if the topic or payload is not understood"""
        if topic == f"{self.prefix}/cmd/power":
            return PowerButtonPressed()
        if topic == f"{self.prefix}/cmd/ok":
            return OkPressed()
        if topic == f"{self.prefix}/cmd/sleep":
            return SleepSecondaryRequested()
        if topic == f"{self.prefix}/usb-power-on":
            return WakeSecondaryRequested()
        if topic in (f"{self.prefix}/cmd/key", f"{self.prefix}/cmd/consumer"):
            try:
                code = parse_code(payload.decode("utf-8"))
            except (UnicodeDecodeError, ValueError) as e:
                log.warning("Ignoring undecodable payload on %s: %r (%s)", topic, payload, e)
                return None
            if topic.endswith("/key"):
                return RemoteKeyPressed(code)
            return RemoteConsumerCodePressed(code)
        log.warning("Message from unknown topic %s", topic)
        return None

    def _ha_call(self, service: str, entity_id: str) -> Publication:
        return f"{self.ha_command}/{service}", json.dumps({"entity_id": entity_id}), False

    def encode(self, note: BusNotification) -> Publication:
        """(topic, payload, retain) for an outbound notification"""
        if isinstance(note, TvPowerChanged):
            return f"{self.prefix}/tv/power", "on" if note.on else "off", True
        if isinstance(note, SecondaryDeviceChanged):
            return f"{self.prefix}/secondary/usb-ready", "on" if note.on else "off", True
        if isinstance(note, AmbientLightingSet):
            return self._ha_call("light.turn_on" if note.on else "light.turn_off", self.ambient_light_entity)
        if isinstance(note, RunScript):
            return self._ha_call("script.turn_on", f"script.{note.name}")
        if isinstance(note, SleepSecondary):
            return self.encode(RunScript(self.secondary_sleep_script))
        raise TypeError(f"Cannot publish {note!r}")


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)


class BusBridge:
    def __init__(
        self,
        events: EventChannel,
        notifications: AsyncCommandChannel,
        topics: BusTopics,
        host: str,
        port: int = 1883,
        client_id: str = "air-remote-mediator",
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 5,
        inbound_size: int = INBOUND_QUEUE_SIZE,
        client_factory: Callable[[str], Any] = _default_client_factory,
    ):
        self._events = events
        self._notifications = notifications
        self.topics = topics
        self.host = host
        self.port = port
        self._client_id = client_id
        self._username = username
        self._password = password
        self._keepalive = keepalive
        self._inbound_size = inbound_size
        self._client_factory = client_factory
        self._client = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._inbound: Optional[asyncio.Queue] = None
        self.connected = False

    @classmethod
    def from_settings(cls, events: EventChannel, notifications: AsyncCommandChannel, cfg: Settings) -> "BusBridge":
        return cls(
            events,
            notifications,
            BusTopics.from_settings(cfg),
            cfg.MQTT_HOST,
            port=cfg.MQTT_PORT,
            client_id=cfg.MQTT_CLIENT_ID,
            username=cfg.MQTT_USER,
            password=cfg.MQTT_PASS,
            keepalive=cfg.MQTT_KEEPALIVE_SEC,
            inbound_size=cfg.EVENT_QUEUE_SIZE,
        )

    # ---- paho callbacks (network thread) ----
    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            log.warning("MQTT connection refused: %s", reason_code)
            return
        self.connected = True
        log.info("Connected to MQTT broker %s:%d", self.host, self.port)
        client.subscribe([(topic, QOS) for topic in self.topics.subscriptions])
        client.publish(self.topics.availability, "online", qos=QOS, retain=True)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self.connected = False
        log.warning("MQTT disconnected (%s); paho will reconnect", reason_code)

    def _on_message(self, client, userdata, message):
        event = self.topics.decode(message.topic, message.payload)
        if event is None:
            return
        log.debug("MQTT %s -> %s", message.topic, event)
        self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: Event) -> None:
        try:
            self._inbound.put_nowait(event)
        except asyncio.QueueFull:
            log.warning("Inbound queue full, dropping %s", event)

    # ---- bridge task ----
    def _create_client(self):
        client = self._client_factory(self._client_id)
        if self._username:
            client.username_pw_set(self._username, self._password or "")
        client.will_set(self.topics.availability, "offline", qos=QOS, retain=True)
        client.reconnect_delay_set(RECONNECT_MIN_DELAY_SEC, RECONNECT_MAX_DELAY_SEC)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        return client

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._inbound = asyncio.Queue(maxsize=self._inbound_size)
        self._client = self._create_client()
        log.info("Connecting to MQTT broker %s:%d", self.host, self.port)
        self._client.connect_async(self.host, self.port, keepalive=self._keepalive)
        self._client.loop_start()
        tasks = [
            asyncio.create_task(self._forward_inbound(), name="bus-inbound"),
            asyncio.create_task(self._publish_outbound(), name="bus-outbound"),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            for task in tasks:
                task.cancel()
            self._client.publish(self.topics.availability, "offline", qos=QOS, retain=True)
            self._client.disconnect()
            self._client.loop_stop()

    async def _forward_inbound(self) -> None:
        while True:
            event = await self._inbound.get()
            await self._events.put(event)

    async def _publish_outbound(self) -> None:
        while True:
            note = await self._notifications.get()
            self.publish(note)

    def publish(self, note: BusNotification) -> None:
        topic, payload, retain = self.topics.encode(note)
        log.info("MQTT publish %s: %s", topic, payload)
        info = self._client.publish(topic, payload, qos=QOS, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            log.warning("MQTT publish to %s not sent (rc=%s)", topic, info.rc)
