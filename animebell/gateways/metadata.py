"""External metadata gateway.

Only the relation query is needed: given a content id, list the related
entries (sequels, side stories, ...) with their release status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx

from animebell.config import MetadataConfig
from animebell.database.models import TrackedKind
from animebell.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

ANILIST_URL = "https://graphql.anilist.co"

RELATIONS_QUERY = """
query ($id: Int) {
  Media (id: $id, type: %s) {
    id
    relations {
      edges {
        relationType
        node {
          id
          type
          title {
            romaji
            english
            native
          }
          status
        }
      }
    }
  }
}
"""

# AniList media type queried for each tracked kind
MEDIA_TYPES = {
    TrackedKind.ANIME.value: "ANIME",
    TrackedKind.NOVEL.value: "MANGA",
}


@dataclass(frozen=True)
class MediaNode:
    """A related entry in the external catalog."""

    id: int
    kind: str
    status: Optional[str]
    title: str


@dataclass(frozen=True)
class RelationEdge:
    """A typed relation to another catalog entry."""

    relation_type: str
    target: MediaNode


class MetadataGateway(Protocol):
    """Protocol for querying content relations."""

    async def get_relations(self, content_id: int, kind: str) -> List[RelationEdge]:
        """List relations of a content id.

        Raises:
            ExternalServiceError: If the lookup fails
        """
        ...


def pick_title(title: Optional[Dict[str, Optional[str]]]) -> str:
    """Choose the display title: english, then romaji, then native."""
    if not title:
        return ""
    return title.get("english") or title.get("romaji") or title.get("native") or ""


class AniListGateway:
    """Metadata gateway backed by the AniList GraphQL API."""

    def __init__(
        self,
        endpoint: str = ANILIST_URL,
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: MetadataConfig) -> "AniListGateway":
        return cls(endpoint=config.endpoint, timeout=config.timeout)

    async def initialize(self) -> None:
        """Initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        if self._owns_client:
            self._client = None

    async def __aenter__(self) -> "AniListGateway":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def get_relations(self, content_id: int, kind: str) -> List[RelationEdge]:
        kind = TrackedKind(kind).value
        if self._client is None:
            await self.initialize()

        payload = {
            "query": RELATIONS_QUERY % MEDIA_TYPES[kind],
            "variables": {"id": content_id},
        }

        try:
            response = await self._client.post(self.endpoint, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"AniList API error: {e.response.status_code}",
                content_id=content_id,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceError(f"AniList request failed: {e}", content_id=content_id) from e

        media = (data.get("data") or {}).get("Media")
        if media is None:
            if data.get("errors"):
                message = data["errors"][0].get("message", "unknown error")
                raise ExternalServiceError(f"AniList query failed: {message}", content_id=content_id)
            logger.warning(f"No AniList entry for {kind} {content_id}")
            return []

        return self._parse_edges(media)

    @staticmethod
    def _parse_edges(media: Dict[str, Any]) -> List[RelationEdge]:
        edges: List[RelationEdge] = []
        for edge in (media.get("relations") or {}).get("edges") or []:
            node = edge.get("node") or {}
            if node.get("id") is None:
                continue
            edges.append(
                RelationEdge(
                    relation_type=edge.get("relationType") or "",
                    target=MediaNode(
                        id=int(node["id"]),
                        kind=node.get("type") or "",
                        status=node.get("status"),
                        title=pick_title(node.get("title")),
                    ),
                )
            )
        return edges
