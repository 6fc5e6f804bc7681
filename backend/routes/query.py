from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.responses import JSONResponse
import logging

from models import QueryRequest, QueryResponse, User
from middleware import get_current_user, get_query_service
from services.query_service import QueryService, UpstreamServiceError
from services.quota import QuotaExceededError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/query", tags=["query"])


@router.post("", response_model=QueryResponse)
async def ask_question(
    data: QueryRequest,
    user: User = Depends(get_current_user),
    queries: QueryService = Depends(get_query_service),
):
    """Answer a question about the supplied document text.

    Counts against the caller's daily quota only when an answer is returned.
    """
    if not data.pdf_text or not data.pdf_text.strip() or not data.question or not data.question.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="PDF text and question are required"
        )

    try:
        result = await queries.ask(user, data.pdf_text, data.question)
    except QuotaExceededError as e:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={
                "detail": str(e),
                "remaining": 0,
                "dailyLimit": e.decision.daily_limit,
                "plan": e.decision.plan.value,
            },
        )
    except UpstreamServiceError as e:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(e), "details": e.details},
        )
    except Exception as e:
        logger.error(f"Query failed for user {user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error")

    return QueryResponse(answer=result.answer, usage=result.usage)
