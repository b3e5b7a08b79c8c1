"""Chat delivery gateway.

The core only needs to send a message with optional inline actions to a
destination. Failures are reported as exceptions carrying a classification
(destination gone, rate limited, other) so callers can decide what to do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from animebell.config import TelegramConfig
from animebell.exceptions import (
    DeliveryError,
    PermanentDestinationError,
    TransientDeliveryError,
)

logger = logging.getLogger(__name__)

# Bot API descriptions that mean the chat will never accept messages again
_GONE_MARKERS = ("chat not found", "bot was kicked", "bot was blocked", "user is deactivated")


@dataclass(frozen=True)
class InlineAction:
    """A button attached to a message.

    Attributes:
        label: Text shown on the button
        callback_data: Opaque payload returned when the button is pressed
    """

    label: str
    callback_data: str


class DeliveryGateway(Protocol):
    """Protocol for sending chat messages."""

    async def send(
        self,
        destination: str,
        text: str,
        actions: Optional[Sequence[InlineAction]] = None,
        parse_mode: Optional[str] = None,
    ) -> None:
        """Send a message.

        Raises:
            PermanentDestinationError: The destination is gone
            TransientDeliveryError: Rate limited, try again later
            DeliveryError: Any other failure
        """
        ...


class TelegramDeliveryGateway:
    """Delivery gateway backed by the Telegram Bot API ``sendMessage`` method."""

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the gateway.

        Args:
            bot_token: Bot API token
            api_base: Bot API base URL
            timeout: Request timeout in seconds
            client: Pre-built HTTP client (owned by the caller)
        """
        self.bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: TelegramConfig) -> "TelegramDeliveryGateway":
        if not config.bot_token:
            raise ValueError("Telegram bot token is required")
        return cls(config.bot_token, api_base=config.api_base, timeout=config.timeout)

    async def initialize(self) -> None:
        """Initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        if self._owns_client:
            self._client = None

    async def __aenter__(self) -> "TelegramDeliveryGateway":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @staticmethod
    def build_reply_markup(actions: Sequence[InlineAction]) -> Dict[str, Any]:
        """Render inline actions as a single row inline keyboard."""
        row: List[Dict[str, str]] = [
            {"text": action.label, "callback_data": action.callback_data} for action in actions
        ]
        return {"inline_keyboard": [row]}

    async def send(
        self,
        destination: str,
        text: str,
        actions: Optional[Sequence[InlineAction]] = None,
        parse_mode: Optional[str] = None,
    ) -> None:
        if self._client is None:
            await self.initialize()

        payload: Dict[str, Any] = {"chat_id": destination, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if actions:
            payload["reply_markup"] = self.build_reply_markup(actions)

        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._classify(destination, e.response) from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"Telegram request failed: {e}", destination=destination) from e

        logger.debug(f"Delivered message to {destination}")

    def _classify(self, destination: str, response: httpx.Response) -> DeliveryError:
        """Map a failed Bot API response to a delivery error."""
        status = response.status_code
        description = ""
        retry_after = None
        try:
            data = response.json()
            description = str(data.get("description", ""))
            retry_after = data.get("parameters", {}).get("retry_after")
        except ValueError:
            pass

        message = f"Telegram API error: {status}"
        if description:
            message = f"{message} - {description}"

        lowered = description.lower()
        if status == 403 or (status == 400 and any(m in lowered for m in _GONE_MARKERS)):
            return PermanentDestinationError(message, destination=destination, status_code=status)
        if status == 429:
            return TransientDeliveryError(
                message,
                destination=destination,
                status_code=status,
                retry_after=retry_after,
            )
        return DeliveryError(message, destination=destination, status_code=status)
