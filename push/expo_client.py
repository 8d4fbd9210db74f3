"""Expo push notification delivery."""

import re
import logging
from typing import Any, Dict, List, Optional, Union

import requests

from schemas.responses import DeliveryError, DeliveryResult
from .token_store import PushTokenStore

logger = logging.getLogger(__name__)

SEND_TO_ALL = "all"

_UUID_TOKEN = re.compile(r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.IGNORECASE)


class NotificationError(ValueError):
    """Raised when a push request cannot be sent at all."""


def is_expo_push_token(token: str) -> bool:
    """Check the shape of an Expo push token."""
    if not isinstance(token, str):
        return False
    if (token.startswith("ExponentPushToken[") or token.startswith("ExpoPushToken[")) and token.endswith("]"):
        return True
    return bool(_UUID_TOKEN.match(token))


class ExpoPushClient:
    """
    Best-effort push delivery through the Expo push service.

    Messages are sent in chunks; a failed chunk is logged and the remaining
    chunks are still attempted. Invalid tokens are reported separately from
    delivery failures.
    """

    DEFAULT_URL = "https://exp.host/--/api/v2/push/send"
    CHUNK_SIZE = 100  # Expo's per-request message limit

    def __init__(
        self,
        token_store: PushTokenStore,
        push_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: int = 10
    ):
        """
        Initialize Expo push client.

        Args:
            token_store: Registered token store (used for "all")
            push_url: Expo push endpoint
            access_token: Optional Expo access token for enhanced security
            timeout: HTTP timeout in seconds
        """
        self.token_store = token_store
        self.push_url = push_url or self.DEFAULT_URL
        self.access_token = access_token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _resolve_targets(self, to: Union[str, List[str]]) -> List[str]:
        """Expand the recipient argument into token strings."""
        if to == SEND_TO_ALL:
            tokens = self.token_store.all_tokens()
            if not tokens:
                raise NotificationError(
                    "No tokens found in storage. Register at least one device first."
                )
            logger.info(f"Sending to all {len(tokens)} registered devices")
            return tokens
        if isinstance(to, list):
            logger.info(f"Sending to {len(to)} specific tokens")
            return list(to)
        if isinstance(to, str) and to:
            logger.info("Sending to 1 specific token")
            return [to]
        raise NotificationError(
            'Invalid "to" parameter. Must be a token string, array of tokens, or "all"'
        )

    def send(
        self,
        to: Union[str, List[str]],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> DeliveryResult:
        """
        Send a notification to one or more devices.

        Args:
            to: A token, a list of tokens, or "all" for every registered device
            title: Notification title
            body: Notification message
            data: Optional custom payload

        Returns:
            DeliveryResult with per-recipient outcome

        Raises:
            NotificationError: If title/body are missing or no valid token remains
        """
        if not title or not body:
            raise NotificationError("Missing required fields: title and body are required")

        targets = self._resolve_targets(to)
        valid_tokens = [t for t in targets if is_expo_push_token(t)]
        invalid_tokens = [t for t in targets if not is_expo_push_token(t)]

        if invalid_tokens:
            logger.warning(f"Found {len(invalid_tokens)} invalid tokens: {invalid_tokens}")

        if not valid_tokens:
            raise NotificationError(
                f"No valid Expo push tokens found. Invalid tokens: {', '.join(targets)}"
            )

        messages = [
            {
                "to": token,
                "sound": "default",
                "priority": "high",
                "badge": 1,
                "title": title,
                "body": body,
                "data": data or {},
            }
            for token in valid_tokens
        ]

        chunks = [
            messages[i:i + self.CHUNK_SIZE]
            for i in range(0, len(messages), self.CHUNK_SIZE)
        ]
        tickets: List[Dict[str, Any]] = []
        errors: List[DeliveryError] = []

        for index, chunk in enumerate(chunks, 1):
            try:
                logger.info(f"Sending chunk {index}/{len(chunks)} with {len(chunk)} notifications")
                chunk_tickets = self._send_chunk(chunk)
            except (requests.RequestException, ValueError) as e:
                logger.error(f"Error sending chunk {index}: {e}")
                for message in chunk:
                    errors.append(DeliveryError(token=message["to"], message=str(e)))
                continue

            for message, ticket in zip(chunk, chunk_tickets):
                tickets.append(ticket)
                if ticket.get("status") != "ok":
                    errors.append(DeliveryError(
                        token=message["to"],
                        message=ticket.get("message", "Unknown delivery error")
                    ))

        sent = sum(1 for ticket in tickets if ticket.get("status") == "ok")
        if errors:
            logger.error(f"{len(errors)} notifications failed: {[e.message for e in errors]}")
        logger.info(f"Successfully sent {sent}/{len(tickets)} notifications")

        return DeliveryResult(
            success=sent > 0,
            sent=sent,
            total=len(tickets),
            errors=errors or None,
            invalid_tokens=invalid_tokens or None,
            tickets=tickets
        )

    def send_to_all(self, title: str, body: str) -> DeliveryResult:
        """Send a notification to every registered device."""
        return self.send(SEND_TO_ALL, title, body)

    def _send_chunk(self, chunk: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """POST one chunk and return its push tickets."""
        response = requests.post(
            self.push_url,
            json=chunk,
            headers=self._headers(),
            timeout=self.timeout
        )
        response.raise_for_status()
        payload = response.json()

        tickets = payload.get("data")
        if not isinstance(tickets, list):
            raise ValueError(f"Unexpected push response: {payload.get('errors', payload)}")
        return tickets
