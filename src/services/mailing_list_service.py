"""Sender.net mailing-list groups and subscriptions."""

import logging
from typing import Any

import httpx

from src.core.config import get_settings

logger = logging.getLogger(__name__)


class MailingListService:
    """Subscribes customers to Sender groups.

    Every method degrades to a falsy result instead of raising: mailing
    lists are never allowed to affect payment processing.
    """

    def __init__(self, api_key: str | None = None, api_url: str | None = None, timeout: float = 10.0) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.sender_api_key
        self.api_url = (api_url or settings.sender_api_url).rstrip("/")
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def list_groups(self) -> list[dict[str, Any]]:
        """Fetch existing groups."""
        if not self.is_configured:
            return []
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(f"{self.api_url}/groups", headers=self._headers())
            if response.status_code >= 400:
                logger.error("Failed to fetch Sender groups: %d %s", response.status_code, response.text)
                return []
            return response.json().get("data") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error fetching Sender groups: %s", str(e))
            return []

    async def create_group(self, title: str) -> dict[str, Any] | None:
        """Create a group with the given title."""
        if not self.is_configured:
            return None
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.api_url}/groups", headers=self._headers(), json={"title": title})
            if response.status_code >= 400:
                logger.error("Failed to create Sender group %r: %d %s", title, response.status_code, response.text)
                return None
            return response.json().get("data")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error creating Sender group %r: %s", title, str(e))
            return None

    async def get_or_create_group(self, title: str) -> str | None:
        """Return the id of the group titled `title` (case-insensitive), creating it if needed."""
        for group in await self.list_groups():
            if str(group.get("title", "")).lower() == title.lower():
                return str(group["id"])

        group = await self.create_group(title)
        return str(group["id"]) if group and "id" in group else None

    async def subscribe(self, email: str, name: str, group_ids: list[str]) -> bool:
        """Add or update a subscriber in the given groups.

        Args:
            email: Subscriber email.
            name: Full name; the first word becomes the first name.
            group_ids: Sender group ids.

        Returns:
            bool: True if Sender accepted the subscription.
        """
        if not self.is_configured:
            return False

        first_name, _, last_name = name.strip().partition(" ")
        payload = {"email": email, "firstname": first_name, "lastname": last_name, "groups": group_ids}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.api_url}/subscribers", headers=self._headers(), json=payload)
            if response.status_code >= 400:
                logger.error("Failed to subscribe %s to Sender: %d %s", email, response.status_code, response.text)
                return False
            return True
        except httpx.HTTPError as e:
            logger.error("Error subscribing %s to Sender: %s", email, str(e))
            return False

    async def subscribe_to_group(self, email: str, name: str, group_title: str) -> bool:
        """Subscribe a customer to a group by title."""
        group_id = await self.get_or_create_group(group_title)
        if group_id is None:
            logger.warning("No Sender group available for %r; skipping subscription of %s", group_title, email)
            return False
        subscribed = await self.subscribe(email, name, [group_id])
        if subscribed:
            logger.info("Subscribed %s to mailing group %r", email, group_title)
        return subscribed
