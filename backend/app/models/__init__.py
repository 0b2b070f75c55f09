from app.models.base import Base
from app.models.distribution import Distribution
from app.models.organization import Company, Department, Site
from app.models.response import Answer, Response
from app.models.survey import Question, QuestionTranslation, Survey, SurveyTranslation
from app.models.template import SurveyTemplate, TemplateQuestion
from app.models.user import User

__all__ = [
    "Base",
    "Company",
    "Site",
    "Department",
    "User",
    "Survey",
    "SurveyTranslation",
    "Question",
    "QuestionTranslation",
    "Response",
    "Answer",
    "Distribution",
    "SurveyTemplate",
    "TemplateQuestion",
]
