"""Tests for the AniList metadata gateway."""

import json

import httpx
import pytest

from animebell.exceptions import ExternalServiceError
from animebell.gateways.metadata import AniListGateway, MediaNode, RelationEdge, pick_title


def make_gateway(handler) -> AniListGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AniListGateway(endpoint="https://anilist.test/graphql", client=client)


def media_response(edges) -> httpx.Response:
    return httpx.Response(200, json={"data": {"Media": {"id": 100, "relations": {"edges": edges}}}})


class TestPickTitle:
    """Tests for display title selection."""

    def test_prefers_english(self) -> None:
        assert pick_title({"english": "Frieren", "romaji": "Sousou no Frieren", "native": "葬送のフリーレン"}) == "Frieren"

    def test_falls_back_to_romaji_then_native(self) -> None:
        assert pick_title({"english": None, "romaji": "Sousou no Frieren", "native": "x"}) == "Sousou no Frieren"
        assert pick_title({"english": None, "romaji": None, "native": "葬送のフリーレン"}) == "葬送のフリーレン"

    def test_missing_title(self) -> None:
        assert pick_title(None) == ""


class TestGetRelations:
    """Tests for relation lookups."""

    @pytest.mark.asyncio
    async def test_parses_edges(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return media_response(
                [
                    {
                        "relationType": "SEQUEL",
                        "node": {
                            "id": 200,
                            "type": "ANIME",
                            "status": "RELEASING",
                            "title": {"english": None, "romaji": "Sousou no Frieren 2", "native": None},
                        },
                    },
                    {"relationType": "ADAPTATION", "node": {"id": None}},
                ]
            )

        edges = await make_gateway(handler).get_relations(100, "anime")

        assert edges == [
            RelationEdge("SEQUEL", MediaNode(id=200, kind="ANIME", status="RELEASING", title="Sousou no Frieren 2")),
        ]
        assert requests[0]["variables"] == {"id": 100}
        assert "type: ANIME" in requests[0]["query"]

    @pytest.mark.asyncio
    async def test_novels_query_manga_type(self) -> None:
        queries = []

        def handler(request: httpx.Request) -> httpx.Response:
            queries.append(json.loads(request.content)["query"])
            return media_response([])

        assert await make_gateway(handler).get_relations(300, "novel") == []
        assert "type: MANGA" in queries[0]

    @pytest.mark.asyncio
    async def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            await make_gateway(lambda r: media_response([])).get_relations(1, "podcast")

    @pytest.mark.asyncio
    async def test_missing_media_without_errors(self) -> None:
        gateway = make_gateway(lambda r: httpx.Response(200, json={"data": {"Media": None}}))

        assert await gateway.get_relations(100, "anime") == []

    @pytest.mark.asyncio
    async def test_graphql_error(self) -> None:
        body = {"data": {"Media": None}, "errors": [{"message": "Not Found.", "status": 404}]}
        gateway = make_gateway(lambda r: httpx.Response(200, json=body))

        with pytest.raises(ExternalServiceError, match="Not Found") as exc_info:
            await gateway.get_relations(100, "anime")

        assert exc_info.value.content_id == 100

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        gateway = make_gateway(lambda r: httpx.Response(500, json={}))

        with pytest.raises(ExternalServiceError, match="500"):
            await gateway.get_relations(100, "anime")

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        gateway = make_gateway(lambda r: httpx.Response(200, text="<html>"))

        with pytest.raises(ExternalServiceError):
            await gateway.get_relations(100, "anime")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalServiceError, match="request failed"):
            await make_gateway(handler).get_relations(100, "anime")
