"""
Tests for the AI question-answering routes.
"""

import pytest

from chatgenius.models.index_record import Namespace
from chatgenius.services.vector_index import IndexRecord
from tests.fakes import insert_profile, new_id

ASK_URL = "/api/v1/ai/ask"
AVATAR_ASK_URL = "/api/v1/ai/avatar/ask"


async def index_message(embedder, vector_index, item_id: str, content: str, channel_id: str):
    vector = await embedder.embed_query(content)
    await vector_index.upsert(Namespace.MESSAGES, [IndexRecord(item_id, vector, {
        "content": content,
        "scope_id": channel_id,
        "created_at": "2024-03-15T08:00:00+00:00",
    })])


@pytest.mark.asyncio
class TestAsk:
    async def test_answer_with_sources(self, client, embedder, vector_index, generator):
        generator.answer = "Standup is at 10am [1]."
        await index_message(embedder, vector_index, "m1", "Team standup moved to 10am", "c1")

        response = await client.post(ASK_URL, json={"query": "when is standup", "channel_id": "c1"})

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "Standup is at 10am [1]."
        assert len(body["sources"]) == 1
        assert body["sources"][0]["content"] == "Team standup moved to 10am"
        assert body["sources"][0]["score"] >= 0.3

    async def test_blank_query_rejected(self, client):
        response = await client.post(ASK_URL, json={"query": "   "})
        assert response.status_code == 422

    async def test_generation_failure_returns_503(self, client, generator):
        generator.fail = True

        response = await client.post(ASK_URL, json={"query": "anything new?"})

        assert response.status_code == 503
        assert "couldn't generate an answer" in response.json()["detail"]


@pytest.mark.asyncio
class TestAskAvatar:
    async def test_persona_answer(self, client, session_factory, embedder, vector_index, generator):
        profile = await insert_profile(session_factory, username="maria", bio="Home cook")
        generator.answer = "I make carbonara with guanciale."
        vector = await embedder.embed_query("Carbonara recipe with guanciale and pecorino.")
        await vector_index.upsert(Namespace.AVATAR_DOCUMENTS, [IndexRecord("d1", vector, {
            "content": "Carbonara recipe with guanciale and pecorino.",
            "owner_id": profile.id,
            "document_name": "Recipes.pdf",
            "mime_type": "application/pdf",
            "created_at": "2024-02-01T10:00:00+00:00",
        })])

        response = await client.post(
            AVATAR_ASK_URL,
            json={"query": "How do you make carbonara?", "persona_id": profile.id},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "I make carbonara with guanciale."
        documents = body["relevant_documents"]
        assert [(d["document_name"], d["document_type"]) for d in documents] == [("Recipes.pdf", "PDF")]
        assert documents[0]["relevance_score"] == pytest.approx(0.35)
        assert body["formatted_answer"].endswith("Sources:\n1. Recipes.pdf")
        assert "You are an AI Avatar representing maria" in generator.prompts[0]

    async def test_unknown_persona(self, client):
        response = await client.post(AVATAR_ASK_URL, json={"query": "hello?", "persona_id": new_id()})

        assert response.status_code == 404
        assert response.json()["detail"] == "Persona not found"

    async def test_malformed_persona_id(self, client):
        response = await client.post(AVATAR_ASK_URL, json={"query": "hello?", "persona_id": "not-a-uuid"})

        assert response.status_code == 404

    async def test_generation_failure_returns_503(self, client, session_factory, generator):
        profile = await insert_profile(session_factory, username="maria")
        generator.fail = True

        response = await client.post(AVATAR_ASK_URL, json={"query": "hello?", "persona_id": profile.id})

        assert response.status_code == 503
