from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1)


class BulkDeleteRequest(BaseModel):
    document_uuids: list[str]
