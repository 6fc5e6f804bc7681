"""Document Question-Answering Proxy

Forwards document text and a question to Gemini on behalf of an
authenticated user. A quota slot is reserved before the call and handed back
if the call fails, so only answered queries count against the daily limit.
"""
from dataclasses import dataclass
import logging

from config import Settings
from models import User, UsageSnapshot
from services.quota import QuotaService
from utils import llm_chat

logger = logging.getLogger(__name__)

MAX_DOCUMENT_CHARS = 10_000
EMPTY_ANSWER = "No response from AI"

PROMPT_TEMPLATE = '''You are an assistant answering questions about a PDF document.
Here is the document content:
"""
{document}
"""
Question: {question}
Answer:'''


class UpstreamServiceError(Exception):
    def __init__(self, message: str, details: str = ""):
        self.details = details
        super().__init__(message)


def build_prompt(document_text: str, question: str) -> str:
    return PROMPT_TEMPLATE.format(
        document=document_text[:MAX_DOCUMENT_CHARS],
        question=question,
    )


@dataclass
class QueryResult:
    answer: str
    usage: UsageSnapshot


class QueryService:
    def __init__(self, settings: Settings, quota: QuotaService):
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.quota = quota

    async def ask(self, user: User, document_text: str, question: str) -> QueryResult:
        """Answer a question about a document.

        Raises QuotaExceededError before any upstream call when the user is
        out of queries, and UpstreamServiceError when Gemini fails.
        """
        decision = await self.quota.reserve(user)

        prompt = build_prompt(document_text, question)
        try:
            answer = await llm_chat.generate(prompt, self.api_key, self.model)
        except Exception as e:
            logger.error(f"Gemini request failed for user {user.user_id}: {e}")
            if not decision.unbounded:
                await self.quota.release(user.user_id, decision.reset_at)
            raise UpstreamServiceError("Error contacting Gemini AI service", details=str(e))

        return QueryResult(answer=answer or EMPTY_ANSWER, usage=decision.snapshot())
