from fastapi import APIRouter

from app.api.v1 import (
    analytics,
    auth,
    companies,
    distributions,
    questions,
    responses,
    sites,
    surveys,
    templates,
    users,
)

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(companies.router)
api_router.include_router(sites.router)
api_router.include_router(users.router)
api_router.include_router(surveys.router)
api_router.include_router(questions.router)
api_router.include_router(responses.router)
api_router.include_router(distributions.router)
api_router.include_router(templates.router)
api_router.include_router(analytics.router)
