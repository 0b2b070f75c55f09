"""Integration tests for the /surveys endpoints."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select

from app.models.distribution import Distribution
from app.models.response import Answer, Response
from app.models.survey import Question, QuestionTranslation, Survey, SurveyTranslation
from tests.conftest import (
    auth_headers,
    create_company,
    create_question,
    create_survey,
)


class TestCreateSurvey:
    async def test_company_admin_creates_draft(self, client, org, company_admin):
        resp = await client.post(
            "/api/v1/surveys",
            json={"title": "Pulse", "type": "nps", "companyId": str(uuid.uuid4())},
            headers=auth_headers(company_admin),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["title"] == "Pulse"
        assert data["status"] == "draft"
        # Non-super admins always create inside their own company
        assert data["companyId"] == str(org["company"].id)

    async def test_title_required(self, client, company_admin):
        resp = await client.post(
            "/api/v1/surveys", json={"type": "nps"}, headers=auth_headers(company_admin)
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Title is required"}

    async def test_invalid_type(self, client, company_admin):
        resp = await client.post(
            "/api/v1/surveys",
            json={"title": "X", "type": "poll"},
            headers=auth_headers(company_admin),
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid survey type")

    async def test_dates_out_of_order(self, client, company_admin):
        resp = await client.post(
            "/api/v1/surveys",
            json={
                "title": "X",
                "type": "custom",
                "startsAt": "2026-02-01T00:00:00Z",
                "endsAt": "2026-01-01T00:00:00Z",
            },
            headers=auth_headers(company_admin),
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "startsAt must be before or equal to endsAt"}

    async def test_plain_user_cannot_create(self, client, plain_user):
        resp = await client.post(
            "/api/v1/surveys",
            json={"title": "X", "type": "nps"},
            headers=auth_headers(plain_user),
        )
        assert resp.status_code == 403
        assert resp.json()["required"] == "surveys.manage"

    async def test_super_admin_creates_global_survey(self, client, super_admin):
        resp = await client.post(
            "/api/v1/surveys",
            json={"title": "Everyone", "type": "custom"},
            headers=auth_headers(super_admin),
        )
        assert resp.status_code == 201
        assert resp.json()["companyId"] is None


class TestListAndGet:
    async def test_plain_user_sees_active_only(self, client, db, org, plain_user):
        cid = org["company"].id
        await create_survey(db, company_id=cid, title="Live", status="active")
        await create_survey(db, company_id=cid, title="Hidden", status="draft")
        await create_survey(db, company_id=None, title="Global", status="active")
        other = await create_company(db, name="Other")
        await create_survey(db, company_id=other.id, title="Foreign", status="active")

        resp = await client.get("/api/v1/surveys", headers=auth_headers(plain_user))
        assert resp.status_code == 200
        body = resp.json()
        assert sorted(s["title"] for s in body["data"]) == ["Global", "Live"]
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "totalPages": 1}

    async def test_search_and_status_filter(self, client, db, org, company_admin):
        cid = org["company"].id
        await create_survey(db, company_id=cid, title="Customer pulse", status="active")
        await create_survey(db, company_id=cid, title="Customer draft", status="draft")
        await create_survey(db, company_id=cid, title="Onboarding", status="active")

        resp = await client.get(
            "/api/v1/surveys",
            params={"search": "customer", "status": "active"},
            headers=auth_headers(company_admin),
        )
        assert [s["title"] for s in resp.json()["data"]] == ["Customer pulse"]

    async def test_get_includes_questions_and_stats(self, client, db, org, company_admin):
        survey = await create_survey(db, company_id=org["company"].id)
        await create_question(db, survey_id=survey.id, order_index=0, content="First")
        await create_question(db, survey_id=survey.id, order_index=1, content="Second")

        resp = await client.get(f"/api/v1/surveys/{survey.id}", headers=auth_headers(company_admin))
        assert resp.status_code == 200
        data = resp.json()
        assert [q["content"] for q in data["questions"]] == ["First", "Second"]
        assert data["stats"] == {"responses": 0}

    async def test_foreign_company_is_forbidden(self, client, db, company_admin):
        other = await create_company(db, name="Other")
        survey = await create_survey(db, company_id=other.id)
        resp = await client.get(f"/api/v1/surveys/{survey.id}", headers=auth_headers(company_admin))
        assert resp.status_code == 403

    async def test_missing_is_not_found(self, client, company_admin):
        resp = await client.get(f"/api/v1/surveys/{uuid.uuid4()}", headers=auth_headers(company_admin))
        assert resp.status_code == 404
        assert resp.json() == {"error": "Survey not found"}


class TestUpdate:
    async def test_closed_survey_with_responses_cannot_reopen(self, client, db, org, company_admin):
        survey = await create_survey(db, company_id=org["company"].id, status="closed")
        db.add(Response(survey_id=survey.id, anonymous_token="direct_x", status="completed"))
        await db.flush()

        resp = await client.put(
            f"/api/v1/surveys/{survey.id}",
            json={"status": "active"},
            headers=auth_headers(company_admin),
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Cannot reactivate a closed survey with existing responses"}

    async def test_global_survey_is_read_only_for_company_admin(self, client, db, company_admin):
        survey = await create_survey(db, company_id=None)
        resp = await client.put(
            f"/api/v1/surveys/{survey.id}", json={"title": "Mine"}, headers=auth_headers(company_admin)
        )
        assert resp.status_code == 403


class TestDeleteAndDuplicate:
    async def test_delete_removes_dependents(self, client, db, org, company_admin):
        survey = await create_survey(db, company_id=org["company"].id)
        question = await create_question(db, survey_id=survey.id)
        dist = Distribution(
            survey_id=survey.id,
            company_id=org["company"].id,
            channel="link",
            target_url="https://x",
            payload={},
        )
        response = Response(survey_id=survey.id, anonymous_token="direct_x", status="completed")
        db.add_all([dist, response])
        db.add(SurveyTranslation(survey_id=survey.id, language_code="fr", title="Enquête"))
        db.add(QuestionTranslation(question_id=question.id, language_code="fr", content="Quoi ?"))
        await db.flush()
        db.add(Answer(response_id=response.id, question_id=question.id, value={"value": "hi"}))
        await db.flush()

        resp = await client.delete(f"/api/v1/surveys/{survey.id}", headers=auth_headers(company_admin))
        assert resp.status_code == 204

        remaining = [
            select(func.count()).select_from(Survey).where(Survey.id == survey.id),
            select(func.count()).select_from(Question).where(Question.survey_id == survey.id),
            select(func.count()).select_from(Response).where(Response.survey_id == survey.id),
            select(func.count()).select_from(Answer).where(Answer.response_id == response.id),
            select(func.count())
            .select_from(SurveyTranslation)
            .where(SurveyTranslation.survey_id == survey.id),
            select(func.count())
            .select_from(QuestionTranslation)
            .where(QuestionTranslation.question_id == question.id),
            select(func.count()).select_from(Distribution).where(Distribution.survey_id == survey.id),
        ]
        for stmt in remaining:
            assert (await db.execute(stmt)).scalar() == 0

    async def test_duplicate_remaps_logic_targets(self, client, db, org, company_admin):
        survey = await create_survey(db, company_id=org["company"].id, title="Pulse")
        target = await create_question(db, survey_id=survey.id, order_index=1, content="Why?")
        await create_question(
            db,
            survey_id=survey.id,
            order_index=0,
            type="nps",
            content="Score?",
            options={
                "logicRules": [
                    {
                        "id": "r1",
                        "condition": {"operator": "less_than", "value": 7},
                        "action": {"type": "skip_to", "targetQuestionId": str(target.id)},
                    }
                ]
            },
        )

        resp = await client.post(
            f"/api/v1/surveys/{survey.id}/duplicate", headers=auth_headers(company_admin)
        )
        assert resp.status_code == 201
        copy = resp.json()
        assert copy["title"] == "Pulse (Copy)"
        assert copy["status"] == "draft"

        detail = (
            await client.get(f"/api/v1/surveys/{copy['id']}", headers=auth_headers(company_admin))
        ).json()
        first, second = detail["questions"]
        rule_target = first["options"]["logicRules"][0]["action"]["targetQuestionId"]
        assert rule_target == second["id"]
        assert rule_target != str(target.id)


class TestTranslations:
    async def test_upsert_is_idempotent(self, client, db, org, company_admin):
        survey = await create_survey(db, company_id=org["company"].id)
        url = f"/api/v1/surveys/{survey.id}/translations"
        headers = auth_headers(company_admin)

        first = await client.post(url, json={"languageCode": "fr", "title": "Sondage"}, headers=headers)
        second = await client.post(url, json={"languageCode": "fr", "title": "Enquête"}, headers=headers)
        assert first.status_code == 200
        assert second.json()["title"] == "Enquête"

        listed = (await client.get(url, headers=headers)).json()
        assert [t["languageCode"] for t in listed] == ["fr"]

    async def test_bad_language_code(self, client, db, org, company_admin):
        survey = await create_survey(db, company_id=org["company"].id)
        resp = await client.post(
            f"/api/v1/surveys/{survey.id}/translations",
            json={"languageCode": "French", "title": "x"},
            headers=auth_headers(company_admin),
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid language code format")
