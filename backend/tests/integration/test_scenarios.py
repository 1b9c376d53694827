"""
End-to-end scenarios: change events in through the webhook routes,
answers out through the AI routes, with the real pipeline, retriever and
synthesizers running over the in-memory providers.
"""

import pytest

from chatgenius.models.index_record import Namespace
from tests.conftest import WEBHOOK_HEADERS
from tests.fakes import get_document_status, insert_document, insert_profile, new_id

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]

MESSAGE_EVENTS = "/api/v1/webhooks/message-events"
DOCUMENT_EVENTS = "/api/v1/webhooks/document-events"
ASK = "/api/v1/ai/ask"
AVATAR_ASK = "/api/v1/ai/avatar/ask"


def message_row(message_id: str, content: str, channel_id: str = "c1") -> dict:
    return {
        "id": message_id,
        "channel_id": channel_id,
        "user_id": "u1",
        "content": content,
        "created_at": "2024-03-15T08:00:00+00:00",
        "is_edited": False,
        "type": "message",
    }


def document_row(document, status: str = "pending") -> dict:
    return {
        "id": document.id,
        "user_id": document.user_id,
        "name": document.name,
        "mime_type": document.mime_type,
        "storage_path": document.storage_path,
        "embedding_status": status,
    }


async def post_message(client, event_type: str, record=None, old_record=None):
    response = await client.post(
        MESSAGE_EVENTS,
        json={"type": event_type, "table": "messages", "record": record, "old_record": old_record},
        headers=WEBHOOK_HEADERS,
    )
    return response


async def upload_document(client, session_factory, blob_store, *, user_id: str, name: str, text: str,
                          mime_type: str = "text/plain"):
    document = await insert_document(session_factory, user_id=user_id, name=name, mime_type=mime_type)
    blob_store.files[document.storage_path] = text.encode("utf-8")
    response = await client.post(
        DOCUMENT_EVENTS,
        json={"type": "INSERT", "table": "avatar_documents", "record": document_row(document)},
        headers=WEBHOOK_HEADERS,
    )
    return document, response


class TestScenarios:
    async def test_standup_question_cites_message(self, client, generator):
        generator.answer = "Standup now starts at 10am [1]."
        response = await post_message(client, "INSERT", record=message_row(new_id(), "Team standup moved to 10am"))
        assert response.status_code == 200

        response = await client.post(ASK, json={"query": "when is standup", "channel_id": "c1"})

        body = response.json()
        assert "[1]" in body["answer"]
        assert len(body["sources"]) == 1
        assert body["sources"][0]["score"] >= 0.3
        assert '"Team standup moved to 10am"' in generator.prompts[0]

    async def test_persona_answer_uses_only_matching_document(self, client, session_factory, blob_store, generator):
        profile = await insert_profile(session_factory, username="sam", bio="Cook and programmer")
        _, cooking = await upload_document(
            client, session_factory, blob_store,
            user_id=profile.id, name="cooking.txt", text="My favourite dish is carbonara with guanciale.",
        )
        _, coding = await upload_document(
            client, session_factory, blob_store,
            user_id=profile.id, name="coding.txt", text="I write Python code daily and debug failing tests.",
        )
        assert cooking.status_code == 200 and coding.status_code == 200

        response = await client.post(
            AVATAR_ASK,
            json={"query": "How do you debug Python code?", "persona_id": profile.id},
        )

        body = response.json()
        assert [d["document_name"] for d in body["relevant_documents"]] == ["coding.txt"]
        assert body["formatted_answer"].endswith("Sources:\n1. coding.txt")
        assert "carbonara" not in generator.prompts[0]

    async def test_zip_document_fails_without_record(self, client, session_factory, blob_store, vector_index, services):
        owner = new_id()
        document, response = await upload_document(
            client, session_factory, blob_store,
            user_id=owner, name="archive.zip", text="quarterly archive", mime_type="application/zip",
        )

        assert response.status_code == 500
        assert await get_document_status(session_factory, document.id) == "failed"
        assert vector_index.count(Namespace.AVATAR_DOCUMENTS) == 0
        assert await services.retriever.persona_search("quarterly archive", owner_id=owner) == []

    async def test_edited_message_matches_new_content_only(self, client):
        message_id = new_id()
        await post_message(client, "INSERT", record=message_row(message_id, "foo"))
        response = await post_message(
            client, "UPDATE",
            record={**message_row(message_id, "bar"), "is_edited": True},
            old_record=message_row(message_id, "foo"),
        )
        assert response.status_code == 200

        foo = (await client.post(ASK, json={"query": "foo"})).json()
        bar = (await client.post(ASK, json={"query": "bar"})).json()

        assert foo["sources"] == []
        assert [s["content"] for s in bar["sources"]] == ["bar"]
        assert bar["sources"][0]["is_edited"] is True


class TestIndexProperties:
    async def test_duplicate_create_yields_one_record(self, client, vector_index):
        record = message_row(new_id(), "Deploy window is Friday afternoon")

        await post_message(client, "INSERT", record=record)
        await post_message(client, "INSERT", record=record)

        assert vector_index.count(Namespace.MESSAGES) == 1

    async def test_identical_text_ranks_first(self, client, services):
        target = new_id()
        await post_message(client, "INSERT", record=message_row(target, "Release notes drafted for version two"))
        await post_message(client, "INSERT", record=message_row(new_id(), "Release party planned for Friday"))
        await post_message(client, "INSERT", record=message_row(new_id(), "Notes from the design review"))

        results = await services.retriever.similarity_search("Release notes drafted for version two")

        assert results[0].id == target
        assert results[0].score == pytest.approx(1.0)

    async def test_deleted_message_never_returned(self, client, services):
        message_id = new_id()
        record = message_row(message_id, "Office closed on Monday")
        await post_message(client, "INSERT", record=record)

        response = await post_message(client, "DELETE", old_record=record)
        assert response.json()["action"] == "deleted"

        results = await services.retriever.similarity_search("Office closed on Monday")
        assert message_id not in [r.id for r in results]

    async def test_persona_search_stays_within_owner(self, client, session_factory, blob_store, services):
        owner_a, owner_b = new_id(), new_id()
        await upload_document(
            client, session_factory, blob_store,
            user_id=owner_a, name="garden.txt", text="Tomatoes need sun and regular watering.",
        )
        await upload_document(
            client, session_factory, blob_store,
            user_id=owner_b, name="kubernetes.txt", text="Kubernetes pods restart after failed liveness checks.",
        )

        results = await services.retriever.persona_search(
            "Kubernetes pods restart after failed liveness checks", owner_id=owner_a,
        )

        assert all(r.metadata["owner_id"] == owner_a for r in results)
        assert "kubernetes.txt" not in [r.metadata.get("document_name") for r in results]

    async def test_low_scores_used_in_prompt_but_not_sources(self, client, generator):
        content = "lunch menu pizza salad soup pasta dessert coffee tea juice cake standup"
        await post_message(client, "INSERT", record=message_row(new_id(), content))

        body = (await client.post(ASK, json={"query": "standup"})).json()

        assert body["sources"] == []
        assert content in generator.prompts[0]

    async def test_large_document_embedded_as_one_text(self, client, session_factory, blob_store, embedder, vector_index):
        text = " ".join(f"term{i % 500}" for i in range(3000))[:15000]
        assert len(text) == 15000

        document, response = await upload_document(
            client, session_factory, blob_store, user_id=new_id(), name="big.txt", text=text,
        )

        assert response.status_code == 200
        assert embedder.batch_calls == [[vector_index.get(Namespace.AVATAR_DOCUMENTS, document.id).metadata["content"]]]
        assert vector_index.count(Namespace.AVATAR_DOCUMENTS) == 1
        assert await get_document_status(session_factory, document.id) == "completed"
