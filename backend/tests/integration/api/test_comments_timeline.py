"""
Integration tests for ticket comments and the ticket timeline.

WHY: Comments are how users and agents talk on a ticket. These tests
ensure:
1. Anyone who can read a ticket can comment on it
2. Replies stay on the ticket of their parent
3. Every comment leaves a timeline entry
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import CommentFactory, TicketFactory, auth_headers, idempotent_headers


class TestAddComment:
    @pytest.mark.asyncio
    async def test_creator_comments(self, client: AsyncClient, db_session: AsyncSession, test_user):
        ticket = await TicketFactory.create(db_session, test_user)

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=idempotent_headers(test_user, "comment-1"),
            json={"content": "  Still broken this morning  "},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["content"] == "Still broken this morning"
        assert data["ticket_id"] == ticket.id
        assert data["user_id"] == test_user.id
        assert data["user_name"] == "Test User"
        assert data["user_email"] == "user@example.com"
        assert data["parent_id"] is None

    @pytest.mark.asyncio
    async def test_comment_is_on_the_timeline(
        self, client: AsyncClient, db_session: AsyncSession, test_user, test_agent
    ):
        ticket = await TicketFactory.create(db_session, test_user)

        await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=idempotent_headers(test_agent, "comment-timeline"),
            json={"content": "On it"},
        )
        timeline = await client.get(f"/api/tickets/{ticket.id}/timeline", headers=auth_headers(test_user))

        assert [(e["action"], e["user_id"]) for e in timeline.json()] == [("comment_added", test_agent.id)]

    @pytest.mark.asyncio
    async def test_assignee_user_may_comment(
        self, client: AsyncClient, db_session: AsyncSession, test_user, other_user
    ):
        ticket = await TicketFactory.create(db_session, other_user, assigned_to=test_user)

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=idempotent_headers(test_user, "assignee-comment"),
            json={"content": "I can reproduce it"},
        )

        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_stranger_may_not_comment(
        self, client: AsyncClient, db_session: AsyncSession, test_user, other_user
    ):
        ticket = await TicketFactory.create(db_session, other_user)

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=idempotent_headers(test_user, "stranger-comment"),
            json={"content": "Me too"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_reply(self, client: AsyncClient, db_session: AsyncSession, test_user, test_agent):
        ticket = await TicketFactory.create(db_session, test_user)
        question = await CommentFactory.create(db_session, ticket, test_agent, content="Which floor?")

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=idempotent_headers(test_user, "reply-1"),
            json={"content": "Third", "parent_id": question.id},
        )

        assert response.status_code == 201
        assert response.json()["parent_id"] == question.id

    @pytest.mark.asyncio
    async def test_reply_to_comment_of_another_ticket(
        self, client: AsyncClient, db_session: AsyncSession, test_user
    ):
        first = await TicketFactory.create(db_session, test_user)
        second = await TicketFactory.create(db_session, test_user)
        elsewhere = await CommentFactory.create(db_session, first, test_user)

        response = await client.post(
            f"/api/tickets/{second.id}/comments",
            headers=idempotent_headers(test_user, "cross-reply"),
            json={"content": "Wrong thread", "parent_id": elsewhere.id},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PARENT"
        assert response.json()["error"]["field"] == "parent_id"

    @pytest.mark.asyncio
    async def test_blank_content(self, client: AsyncClient, db_session: AsyncSession, test_user):
        ticket = await TicketFactory.create(db_session, test_user)

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=idempotent_headers(test_user, "blank-comment"),
            json={"content": "  "},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "FIELD_REQUIRED"
        assert response.json()["error"]["field"] == "content"

    @pytest.mark.asyncio
    async def test_missing_ticket(self, client: AsyncClient, test_user):
        response = await client.post(
            "/api/tickets/9999/comments",
            headers=idempotent_headers(test_user, "missing-ticket"),
            json={"content": "Hello?"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_idempotency_key_required(self, client: AsyncClient, db_session: AsyncSession, test_user):
        ticket = await TicketFactory.create(db_session, test_user)

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=auth_headers(test_user),
            json={"content": "Hello"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "idempotency-key"


class TestListComments:
    @pytest.mark.asyncio
    async def test_oldest_first(self, client: AsyncClient, db_session: AsyncSession, test_user, test_agent):
        ticket = await TicketFactory.create(db_session, test_user)
        await CommentFactory.create(db_session, ticket, test_user, content="first")
        await CommentFactory.create(db_session, ticket, test_agent, content="second")

        response = await client.get(f"/api/tickets/{ticket.id}/comments", headers=auth_headers(test_user))

        assert response.status_code == 200
        assert [(c["content"], c["user_name"]) for c in response.json()] == [
            ("first", "Test User"),
            ("second", "Test Agent"),
        ]

    @pytest.mark.asyncio
    async def test_forbidden_for_stranger(
        self, client: AsyncClient, db_session: AsyncSession, other_user, user_headers
    ):
        ticket = await TicketFactory.create(db_session, other_user)

        comments = await client.get(f"/api/tickets/{ticket.id}/comments", headers=user_headers)
        timeline = await client.get(f"/api/tickets/{ticket.id}/timeline", headers=user_headers)

        assert comments.status_code == 403
        assert timeline.status_code == 403


class TestTimeline:
    @pytest.mark.asyncio
    async def test_full_history_in_order(
        self, client: AsyncClient, test_user, test_agent, agent_headers
    ):
        created = await client.post(
            "/api/tickets",
            headers=idempotent_headers(test_user, "history"),
            json={"title": "Badge reader", "description": "Door 3 rejects my badge"},
        )
        ticket_id = created.json()["id"]

        await client.post(
            f"/api/tickets/{ticket_id}/comments",
            headers=idempotent_headers(test_agent, "history-comment"),
            json={"content": "Resetting the reader"},
        )
        await client.patch(
            f"/api/tickets/{ticket_id}", headers=agent_headers, json={"status": "resolved", "version": 1}
        )

        detail = (await client.get(f"/api/tickets/{ticket_id}", headers=auth_headers(test_user))).json()

        assert [e["action"] for e in detail["timeline"]] == ["created", "comment_added", "status_changed"]
        assert detail["timeline"][2]["new_value"] == "resolved"
        assert len(detail["comments"]) == 1
