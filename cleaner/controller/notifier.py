"""CloudEvent delivery to a sink URL."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from cloudevents.conversion import to_structured
from cloudevents.http import CloudEvent

from ..utils.timestamps import format_timestamp

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """The sink did not acknowledge the event."""


class CloudEventNotifier:
    """Sends structured-mode CloudEvents over HTTP."""

    def __init__(self, timeout: float = 10.0, http_client: Optional[httpx.Client] = None):
        """Initialize the notifier.

        Args:
            timeout: Request timeout in seconds
            http_client: Client to use (default: a new httpx.Client)
        """
        self.timeout = timeout
        self.http_client = http_client or httpx.Client(timeout=timeout)

    def send(
        self,
        sink: str,
        event_type: str,
        source: str,
        time: Optional[datetime],
        payload: Dict[str, Any],
    ) -> None:
        """Send one event and wait for the acknowledgement.

        Args:
            sink: URL of the receiver
            event_type: CloudEvent type
            source: CloudEvent source
            time: Event time (default: now)
            payload: JSON data of the event

        Raises:
            NotificationError: On transport errors or a non-2xx response
        """
        attributes = {"type": event_type, "source": source}
        if time is not None:
            attributes["time"] = format_timestamp(time)

        event = CloudEvent(attributes, payload)
        headers, body = to_structured(event)

        try:
            response = self.http_client.post(sink, headers=headers, content=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise NotificationError(f"failed to deliver {event_type} to {sink}: {e}") from e

        if not response.is_success:
            raise NotificationError(f"{sink} did not acknowledge {event_type} (HTTP {response.status_code})")

        logger.debug(f"Delivered {event_type} event {event['id']} to {sink}")
