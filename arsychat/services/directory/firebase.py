from typing import Optional

import httpx

from arsychat.logging_config import get_logger
from arsychat.services.directory.base import UserDirectory

logger = get_logger("directory.firebase")


class FirebaseUserDirectory(UserDirectory):
    """Firebase Realtime Database over its REST API, records under ``/users/{id}``."""

    def __init__(self, database_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__()
        self.database_url = database_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _user_url(self, user_id: str) -> str:
        return f"{self.database_url}/users/{user_id}.json"

    async def _get(self, user_id: str) -> Optional[dict]:
        response = await self._client.get(self._user_url(user_id))
        response.raise_for_status()
        return response.json()

    async def _patch(self, user_id: str, fields: dict) -> None:
        # PATCH merges at the child level; untouched keys survive
        response = await self._client.patch(self._user_url(user_id), json=fields)
        response.raise_for_status()

    async def _list(self) -> list[str]:
        response = await self._client.get(f"{self.database_url}/users.json", params={"shallow": "true"})
        response.raise_for_status()
        data = response.json()
        logger.debug(f"Listed {len(data or {})} users")
        return list(data.keys()) if data else []
