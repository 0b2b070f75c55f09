"""Integration tests for survey templates."""

from __future__ import annotations

import uuid

from sqlalchemy import select

from app.models.template import SurveyTemplate
from tests.conftest import auth_headers, create_question, create_survey

QUESTIONS = [
    {"type": "nps", "content": "How likely are you to recommend us?", "isRequired": True},
    {"type": "dropdown", "content": "Team", "options": {"choices": ["A", "B"]}},
]


async def _create_template(client, user, **overrides):
    body = {"name": "Quarterly pulse", "category": "engagement", "questions": QUESTIONS}
    body.update(overrides)
    return await client.post("/api/v1/templates", json=body, headers=auth_headers(user))


class TestCreate:
    async def test_company_template(self, client, org, company_admin):
        resp = await _create_template(client, company_admin)
        assert resp.status_code == 201
        data = resp.json()
        assert data["companyId"] == str(org["company"].id)
        assert data["isGlobal"] is False
        assert data["questionCount"] == 2
        assert [q["orderIndex"] for q in data["questions"]] == [0, 1]

    async def test_global_requires_super_admin(self, client, company_admin):
        resp = await _create_template(client, company_admin, isGlobal=True)
        assert resp.status_code == 403
        assert resp.json()["error"] == "Only super admins can create global templates"

    async def test_super_admin_global(self, client, super_admin):
        resp = await _create_template(client, super_admin, isGlobal=True)
        assert resp.status_code == 201
        assert resp.json()["companyId"] is None

    async def test_name_required(self, client, company_admin):
        resp = await _create_template(client, company_admin, name="  ")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Template name is required"

    async def test_unknown_question_type(self, client, company_admin):
        resp = await _create_template(
            client, company_admin, questions=[{"type": "hologram", "content": "?"}]
        )
        assert resp.status_code == 400


class TestVisibility:
    async def test_plain_user_sees_global_and_own(self, client, super_admin, company_admin, plain_user):
        await _create_template(client, super_admin, isGlobal=True, name="Global one")
        await _create_template(client, company_admin, name="Company one")
        resp = await client.get("/api/v1/templates", headers=auth_headers(plain_user))
        assert resp.status_code == 200
        names = [t["name"] for t in resp.json()]
        assert names[0] == "Global one"
        assert "Company one" in names

    async def test_categories(self, client, company_admin):
        await _create_template(client, company_admin)
        resp = await client.get("/api/v1/templates/categories", headers=auth_headers(company_admin))
        assert "engagement" in resp.json()

    async def test_missing(self, client, company_admin):
        resp = await client.get(f"/api/v1/templates/{uuid.uuid4()}", headers=auth_headers(company_admin))
        assert resp.status_code == 404


class TestUse:
    async def test_creates_draft_and_counts_use(self, client, db, org, company_admin):
        template = (await _create_template(client, company_admin)).json()
        resp = await client.post(
            f"/api/v1/templates/{template['id']}/use",
            json={"title": "Q3 pulse"},
            headers=auth_headers(company_admin),
        )
        assert resp.status_code == 201
        survey = resp.json()
        assert survey["status"] == "draft"
        assert survey["title"] == "Q3 pulse"
        assert survey["companyId"] == str(org["company"].id)
        second = survey["questions"][1]
        assert second["type"] == "multiple_choice"
        assert second["extendedType"] == "dropdown"

        use_count = (
            await db.execute(
                select(SurveyTemplate.use_count).where(SurveyTemplate.id == uuid.UUID(template["id"]))
            )
        ).scalar()
        assert use_count == 1

    async def test_plain_user_cannot_use(self, client, company_admin, plain_user):
        template = (await _create_template(client, company_admin)).json()
        resp = await client.post(
            f"/api/v1/templates/{template['id']}/use", headers=auth_headers(plain_user)
        )
        assert resp.status_code == 403


class TestSaveAsTemplate:
    async def test_copies_questions_with_logic(self, client, db, org, company_admin):
        survey = await create_survey(db, company_id=org["company"].id, title="Exit")
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
                        "condition": {"operator": "greater_than", "value": 8},
                        "action": {"type": "skip_to", "targetQuestionId": str(target.id)},
                    }
                ]
            },
        )
        resp = await client.post(
            f"/api/v1/surveys/{survey.id}/save-as-template",
            json={},
            headers=auth_headers(company_admin),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["name"] == "Exit Template"
        first, second = data["questions"]
        assert first["options"]["logicRules"][0]["action"]["targetQuestionId"] == second["id"]


class TestUpdateDelete:
    async def test_update_and_delete_own(self, client, company_admin):
        template = (await _create_template(client, company_admin)).json()
        url = f"/api/v1/templates/{template['id']}"
        headers = auth_headers(company_admin)

        resp = await client.put(url, json={"description": "Every quarter"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["description"] == "Every quarter"
        assert resp.json()["name"] == "Quarterly pulse"

        assert (await client.delete(url, headers=headers)).status_code == 204
        assert (await client.get(url, headers=headers)).status_code == 404

    async def test_company_admin_cannot_delete_global(self, client, super_admin, company_admin):
        template = (await _create_template(client, super_admin, isGlobal=True)).json()
        resp = await client.delete(
            f"/api/v1/templates/{template['id']}", headers=auth_headers(company_admin)
        )
        assert resp.status_code == 403
