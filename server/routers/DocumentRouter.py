from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from server.dependencies.auth import get_requester_id, verify_api_key
from server.models.requests import BulkDeleteRequest
from server.models.responses import ApiResponse
from shared.models.document import permission_for

router = APIRouter(prefix="/documents", tags=["documents"], dependencies=[Depends(verify_api_key)])


@router.post("", status_code=201)
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    requester_id: str = Depends(get_requester_id),
) -> ApiResponse:
    """Upload a PDF and index it synchronously.

    Args:
        request (Request): FastAPI request (provides app.state.indexing_service).
        file (UploadFile): The multipart PDF upload.
        requester_id (str): Id of the uploading user.

    Returns:
        ApiResponse: The indexing result. Partial indexing is a success with a qualifying message.
    """
    content = await file.read()
    result = await request.app.state.indexing_service.index_document(content, file.filename or "", requester_id)
    return ApiResponse.ok(result.message, data=result.model_dump(mode="json", exclude={"document": {"id"}}))


@router.get("")
async def list_documents(
    request: Request,
    status: str | None = Query(default=None),
    scope: str = Query(default="owned"),
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
    requester_id: str = Depends(get_requester_id),
) -> ApiResponse:
    """List documents the requester owns, was shared, or can see publicly, one page at a time."""
    page = await request.app.state.document_service.list_documents(
        requester_id, status=status, scope=scope, limit=limit, offset=offset,
    )
    return ApiResponse.ok(
        f"Found {page.total} PDFs",
        data={
            "documents": [
                {**document.model_dump(mode="json", exclude={"id"}), "permission": permission_for(document, requester_id).value}
                for document in page.documents
            ],
            "pagination": {
                "total": page.total,
                "limit": page.limit,
                "offset": page.offset,
                "has_more": page.has_more,
            },
            "scope": page.scope.value,
        },
    )


@router.get("/{document_uuid}")
async def get_document(
    request: Request,
    document_uuid: str,
    requester_id: str = Depends(get_requester_id),
) -> ApiResponse:
    document = await request.app.state.document_service.get_info(document_uuid, requester_id)
    return ApiResponse.ok("PDF info retrieved", data=document.model_dump(mode="json", exclude={"id"}))


@router.delete("/{document_uuid}")
async def delete_document(
    request: Request,
    document_uuid: str,
    requester_id: str = Depends(get_requester_id),
) -> ApiResponse:
    """Delete one document with its vectors and binary. Owner only."""
    summary = await request.app.state.deletion_service.delete_document(document_uuid, requester_id)
    return ApiResponse.ok("PDF deleted", data=summary.model_dump(mode="json"))


@router.post("/bulk-delete")
async def delete_documents(
    request: Request,
    body: BulkDeleteRequest,
    requester_id: str = Depends(get_requester_id),
) -> ApiResponse:
    """Delete up to 100 documents. Unknown or foreign ids are skipped."""
    summary = await request.app.state.deletion_service.delete_documents(body.document_uuids, requester_id)
    return ApiResponse.ok(f"Deleted {summary.deleted} PDFs", data=summary.model_dump(mode="json"))


@router.delete("")
async def delete_all_documents(
    request: Request,
    requester_id: str = Depends(get_requester_id),
) -> ApiResponse:
    summary = await request.app.state.deletion_service.delete_all_for_user(requester_id)
    return ApiResponse.ok(f"Deleted all {summary.deleted} PDFs", data=summary.model_dump(mode="json"))
