"""Tests for the Grist browsing endpoints."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from gristips.utils.encryption import hash_secret

API_KEY = "0123456789abcdef0123456789abcdef"


@pytest_asyncio.fixture
async def user_with_key(test_user, cipher, db_session):
    test_user.grist_api_key = cipher.encrypt(API_KEY)
    test_user.grist_api_key_hash = hash_secret(API_KEY)
    await db_session.commit()
    return test_user


class TestListDocuments:
    """Tests for GET /api/admin/grist/documents."""

    @pytest.mark.asyncio
    async def test_documents(self, authenticated_client: AsyncClient, user_with_key, mock_grist):
        mock_grist.add(
            "/api/docs",
            {"docs": [{"id": "doc1", "name": "Budget", "urlId": "budget", "access": "owners"}]},
        )

        response = await authenticated_client.get("/api/admin/grist/documents")

        assert response.status_code == 200
        assert response.json() == {
            "documents": [{"id": "doc1", "name": "Budget", "urlId": "budget", "access": "owners"}]
        }
        assert mock_grist.requests[0].headers["Authorization"] == f"Bearer {API_KEY}"

    @pytest.mark.asyncio
    async def test_no_api_key(self, authenticated_client: AsyncClient, mock_grist):
        response = await authenticated_client.get("/api/admin/grist/documents")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == (
            "Clé API Grist non configurée. Veuillez configurer votre clé API dans les paramètres."
        )
        assert mock_grist.requests == []

    @pytest.mark.asyncio
    async def test_unreadable_api_key(self, authenticated_client: AsyncClient, test_user):
        test_user.grist_api_key = "corrupted"
        test_user.grist_api_key_hash = "stored"

        response = await authenticated_client.get("/api/admin/grist/documents")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["type"] == "server_error"
        assert error["message"] == "Erreur lors du déchiffrement de la clé API"

    @pytest.mark.asyncio
    async def test_revoked_api_key(
        self, authenticated_client: AsyncClient, user_with_key, mock_grist
    ):
        mock_grist.add("/api/docs", {"error": "Unauthorized"}, status_code=401)

        response = await authenticated_client.get("/api/admin/grist/documents")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["type"] == "authentication_error"
        assert error["message"] == "Clé API invalide ou expirée"

    @pytest.mark.asyncio
    async def test_grist_unavailable(
        self, authenticated_client: AsyncClient, user_with_key, mock_grist
    ):
        mock_grist.add("/api/docs", {"error": "down"}, status_code=503)

        response = await authenticated_client.get("/api/admin/grist/documents")

        assert response.status_code == 502
        assert response.json()["error"]["type"] == "grist_api_error"
        assert len(mock_grist.requests) == 3

    @pytest.mark.asyncio
    async def test_requires_public_agent(self, non_agent_client: AsyncClient):
        response = await non_agent_client.get("/api/admin/grist/documents")

        assert response.status_code == 403


class TestListTables:
    """Tests for GET /api/admin/grist/tables."""

    @pytest.mark.asyncio
    async def test_tables(self, authenticated_client: AsyncClient, user_with_key, mock_grist):
        mock_grist.add(
            "/api/docs/doc1/tables",
            {
                "tables": [
                    {"id": "Agents", "columns": [{"id": "Nom", "fields": {"type": "Text"}}]},
                    {"id": "Services"},
                ]
            },
        )

        response = await authenticated_client.get(
            "/api/admin/grist/tables", params={"documentId": "doc1"}
        )

        assert response.status_code == 200
        tables = response.json()["tables"]
        assert [t["tableId"] for t in tables] == ["Agents", "Services"]
        assert tables[0]["columns"][0]["colId"] == "Nom"

    @pytest.mark.asyncio
    async def test_document_id_required(
        self, authenticated_client: AsyncClient, user_with_key, mock_grist
    ):
        response = await authenticated_client.get("/api/admin/grist/tables")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "L'ID du document est requis"
        assert mock_grist.requests == []

    @pytest.mark.asyncio
    async def test_blank_document_id(self, authenticated_client: AsyncClient, user_with_key):
        response = await authenticated_client.get(
            "/api/admin/grist/tables", params={"documentId": "   "}
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "L'ID du document ne peut pas être vide"

    @pytest.mark.asyncio
    async def test_unknown_document(
        self, authenticated_client: AsyncClient, user_with_key, mock_grist
    ):
        response = await authenticated_client.get(
            "/api/admin/grist/tables", params={"documentId": "missing"}
        )

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Document non trouvé ou inaccessible"


class TestListColumns:
    """Tests for GET /api/admin/grist/columns."""

    @pytest.mark.asyncio
    async def test_columns(self, authenticated_client: AsyncClient, user_with_key, mock_grist):
        mock_grist.add(
            "/api/docs/doc1/tables/Agents/columns",
            {
                "columns": [
                    {"id": "Nom", "fields": {"type": "Text", "label": "Nom complet"}},
                    {"id": "Total", "fields": {"type": "Numeric", "isFormula": True}},
                ]
            },
        )

        response = await authenticated_client.get(
            "/api/admin/grist/columns", params={"documentId": "doc1", "tableId": "Agents"}
        )

        assert response.status_code == 200
        assert response.json()["columns"] == [
            {
                "id": "Nom",
                "colId": "Nom",
                "type": "Text",
                "label": "Nom complet",
                "isFormula": False,
            },
            {
                "id": "Total",
                "colId": "Total",
                "type": "Numeric",
                "label": "Total",
                "isFormula": True,
            },
        ]

    @pytest.mark.asyncio
    async def test_table_id_required(
        self, authenticated_client: AsyncClient, user_with_key, mock_grist
    ):
        response = await authenticated_client.get(
            "/api/admin/grist/columns", params={"documentId": "doc1"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "L'ID de la table est requis"
        assert mock_grist.requests == []
