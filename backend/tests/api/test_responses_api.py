"""Integration tests for the public response lifecycle."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.models.distribution import Distribution
from app.models.response import Answer, Response
from tests.conftest import auth_headers, create_question, create_survey


@pytest.fixture
async def live_survey(db, org):
    survey = await create_survey(db, company_id=org["company"].id, status="active", is_public=True)
    required = await create_question(db, survey_id=survey.id, order_index=0, type="nps", is_required=True)
    optional = await create_question(db, survey_id=survey.id, order_index=1, type="text_long")
    return {"survey": survey, "required": required, "optional": optional}


async def _start(client, survey_id, **body):
    resp = await client.post(f"/api/v1/public/surveys/{survey_id}/responses", json=body or None)
    assert resp.status_code == 201
    return resp.json()


class TestPublicSurvey:
    async def test_projection(self, client, live_survey):
        sid = live_survey["survey"].id
        resp = await client.get(f"/api/v1/public/surveys/{sid}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["language"] == "en"
        assert [q["orderIndex"] for q in data["questions"]] == [0, 1]
        assert data["questions"][0]["isRequired"] is True

    async def test_draft_is_not_found(self, client, db, org):
        survey = await create_survey(db, company_id=org["company"].id, status="draft")
        resp = await client.get(f"/api/v1/public/surveys/{survey.id}")
        assert resp.status_code == 404

    async def test_private_needs_login(self, client, db, org, plain_user):
        survey = await create_survey(db, company_id=org["company"].id, is_public=False)
        assert (await client.get(f"/api/v1/public/surveys/{survey.id}")).status_code == 404
        resp = await client.get(f"/api/v1/public/surveys/{survey.id}", headers=auth_headers(plain_user))
        assert resp.status_code == 200

    async def test_window_not_started(self, client, db, org):
        survey = await create_survey(
            db,
            company_id=org["company"].id,
            starts_at=datetime.now(timezone.utc) + timedelta(days=1),
        )
        resp = await client.get(f"/api/v1/public/surveys/{survey.id}")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Survey has not started yet"}

    async def test_window_ended(self, client, db, org):
        survey = await create_survey(
            db,
            company_id=org["company"].id,
            ends_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        resp = await client.post(f"/api/v1/public/surveys/{survey.id}/responses")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Survey has ended"}


class TestStart:
    async def test_direct_token(self, client, live_survey):
        data = await _start(client, live_survey["survey"].id)
        assert data["anonymousToken"].startswith("direct_")

    async def test_unknown_distribution_falls_back_to_direct(self, client, live_survey):
        data = await _start(client, live_survey["survey"].id, distributionId="not-a-uuid")
        assert data["anonymousToken"].startswith("direct_")

    async def test_known_distribution_prefixes_token(self, client, db, live_survey):
        sid = live_survey["survey"].id
        dist = Distribution(survey_id=sid, channel="link", target_url="https://x", payload={})
        db.add(dist)
        await db.flush()
        data = await _start(client, sid, distributionId=str(dist.id))
        assert data["anonymousToken"].startswith(f"{dist.id}_")

    async def test_user_agent_is_parsed(self, client, db, live_survey):
        ua = (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
        resp = await client.post(
            f"/api/v1/public/surveys/{live_survey['survey'].id}/responses",
            headers={"User-Agent": ua, "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )
        response = await db.get(Response, uuid.UUID(resp.json()["responseId"]))
        assert response.ip_address == "203.0.113.9"
        assert response.meta["browser"]["name"] == "Chrome"
        assert response.meta["device"]["type"] == "desktop"
        assert response.meta["engine"] == "Blink"

    async def test_forged_forwarded_for_falls_back_to_peer(self, client, db, live_survey):
        resp = await client.post(
            f"/api/v1/public/surveys/{live_survey['survey'].id}/responses",
            headers={"X-Forwarded-For": "a" * 100},
        )
        assert resp.status_code == 201
        response = await db.get(Response, uuid.UUID(resp.json()["responseId"]))
        assert response.ip_address == "127.0.0.1"
        assert response.meta["ip"] == "127.0.0.1"

    async def test_language_is_stored(self, client, db, live_survey):
        data = await _start(client, live_survey["survey"].id, language="pt-BR")
        response = await db.get(Response, uuid.UUID(data["responseId"]))
        assert response.language_used == "pt-BR"

    async def test_invalid_language_is_rejected(self, client, db, live_survey):
        sid = live_survey["survey"].id
        resp = await client.post(
            f"/api/v1/public/surveys/{sid}/responses", json={"language": "x" * 40}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid language code"
        count = (
            await db.execute(select(func.count()).select_from(Response).where(Response.survey_id == sid))
        ).scalar()
        assert count == 0


class TestAnswers:
    async def test_save_answer_upserts(self, client, db, live_survey):
        rid = (await _start(client, live_survey["survey"].id))["responseId"]
        qid = str(live_survey["required"].id)
        for value in (3, 9):
            resp = await client.post(
                f"/api/v1/public/responses/{rid}/answers", json={"questionId": qid, "value": value}
            )
            assert resp.status_code == 200

        count = (
            await db.execute(
                select(func.count())
                .select_from(Answer)
                .where(Answer.question_id == live_survey["required"].id)
            )
        ).scalar()
        assert count == 1
        progress = (await client.get(f"/api/v1/public/responses/{rid}")).json()
        assert progress["answers"] == {qid: 9}
        assert progress["status"] == "started"

    async def test_foreign_question_rejected(self, client, db, org, live_survey):
        other = await create_survey(db, company_id=org["company"].id)
        stray = await create_question(db, survey_id=other.id)
        rid = (await _start(client, live_survey["survey"].id))["responseId"]
        resp = await client.post(
            f"/api/v1/public/responses/{rid}/answers", json={"questionId": str(stray.id), "value": "x"}
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Question does not belong to this survey"}


class TestCompletion:
    async def test_complete_requires_required_answers(self, client, live_survey):
        rid = (await _start(client, live_survey["survey"].id))["responseId"]
        resp = await client.post(f"/api/v1/public/responses/{rid}/complete")
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Please answer all required questions"
        assert body["missingQuestionIds"] == [str(live_survey["required"].id)]

    async def test_complete_then_locked(self, client, live_survey):
        rid = (await _start(client, live_survey["survey"].id))["responseId"]
        await client.post(
            f"/api/v1/public/responses/{rid}/answers",
            json={"questionId": str(live_survey["required"].id), "value": 0},
        )
        resp = await client.post(f"/api/v1/public/responses/{rid}/complete")
        assert resp.status_code == 200
        assert (await client.get(f"/api/v1/public/responses/{rid}")).json()["status"] == "completed"

        again = await client.post(
            f"/api/v1/public/responses/{rid}/answers",
            json={"questionId": str(live_survey["optional"].id), "value": "late"},
        )
        assert again.status_code == 404
        assert again.json() == {"error": "Response not found or already completed"}

    async def test_submit_batch(self, client, live_survey):
        rid = (await _start(client, live_survey["survey"].id))["responseId"]
        resp = await client.post(
            f"/api/v1/public/responses/{rid}/submit",
            json={
                "answers": [
                    {"questionId": str(live_survey["required"].id), "value": 10},
                    {"questionId": str(live_survey["optional"].id), "value": "Great"},
                ]
            },
        )
        assert resp.status_code == 200
        assert resp.json() == {"message": "Survey submitted successfully"}

    async def test_submit_missing_required(self, client, live_survey):
        rid = (await _start(client, live_survey["survey"].id))["responseId"]
        resp = await client.post(
            f"/api/v1/public/responses/{rid}/submit",
            json={"answers": [{"questionId": str(live_survey["optional"].id), "value": "x"}]},
        )
        assert resp.status_code == 400
        assert resp.json()["missingQuestionIds"] == [str(live_survey["required"].id)]


class TestRespondentViews:
    async def test_status_and_completed(self, client, live_survey, plain_user):
        headers = auth_headers(plain_user)
        sid = live_survey["survey"].id
        resp = await client.post(f"/api/v1/public/surveys/{sid}/responses", headers=headers)
        rid = resp.json()["responseId"]
        await client.post(
            f"/api/v1/public/responses/{rid}/submit",
            json={"answers": [{"questionId": str(live_survey["required"].id), "value": 8}]},
        )

        completed = (await client.get("/api/v1/responses/me/completed", headers=headers)).json()
        assert completed["total"] == 1
        assert completed["data"][0]["id"] == str(sid)
        status = (await client.get("/api/v1/responses/me/status", headers=headers)).json()
        assert status["completedSurveyIds"] == [str(sid)]
