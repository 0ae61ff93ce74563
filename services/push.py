import logging

logger = logging.getLogger(__name__)


class InvalidDeviceToken(Exception):
    """The provider rejected a token as unregistered or malformed."""


class PushSender:
    """Delivers a payload to a single device token. Providers live outside this app."""

    def send(self, token: str, payload: dict) -> bool:
        raise NotImplementedError


class LoggingPushSender(PushSender):
    def send(self, token: str, payload: dict) -> bool:
        logger.info("Push %s -> device %s...", payload.get("type"), token[:12])
        return True
