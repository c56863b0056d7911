from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_requester_id, verify_api_key
from server.models.requests import QueryRequest
from server.models.responses import ApiResponse

router = APIRouter(prefix="/query", tags=["query"])


@router.post("/{document_uuid}")
async def query_document(
    request: Request,
    document_uuid: str,
    body: QueryRequest,
    requester_id: str = Depends(get_requester_id),
    _: None = Depends(verify_api_key),
) -> ApiResponse:
    """Answer a question from the content of one document.

    Args:
        request (Request): FastAPI request (provides app.state.answer_service).
        document_uuid (str): Document to query.
        body (QueryRequest): JSON body with the query text.
        requester_id (str): Id of the requesting user.
        _ (None): Auth dependency result (unused).

    Returns:
        ApiResponse: The answer with the retrieved segments and their scores.
    """
    result = await request.app.state.answer_service.answer(document_uuid, body.query, requester_id)
    return ApiResponse.ok("Answer generated", data=result.model_dump(mode="json"))
