import logging
from mediavault.platform.ports.event_bus import EventBusPort

log = logging.getLogger("event.publish")

ASSET_UPLOADED = "asset.uploaded"
ASSET_RESTORED = "asset.restored"
ASSET_DELETED = "asset.deleted"

async def publish_event(bus: EventBusPort | None, topic: str, key: str, value: dict) -> bool:
    """Lifecycle events are notifications only; a failed publish is logged and dropped."""
    if bus is None:
        return False
    try:
        await bus.publish(topic, key, value)
    except Exception as e:
        log.warning(f"Publishing {topic} for {key} failed: {e}")
        return False
    return True
