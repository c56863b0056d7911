"""Pydantic models for document records.

Hierarchy:
  StoredObject:   descriptor of the binary held by the object store.
  SharedWith:     one explicit share of a document with another user.
  DocumentRecord: metadata record, the canonical existence marker of a document.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class IndexingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ListScope(str, Enum):
    """Which documents a listing covers, relative to the requesting user."""

    OWNED = "owned"
    SHARED = "shared"
    PUBLIC = "public"
    ALL = "all"


class Permission(str, Enum):
    OWNER = "owner"
    WRITE = "write"
    READ = "read"
    NONE = "none"


# higher rank includes every lower permission
_PERMISSION_RANK = {
    Permission.NONE: 0,
    Permission.READ: 1,
    Permission.WRITE: 2,
    Permission.OWNER: 3,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StoredObject(BaseModel):
    """Location of a binary in the object store.

    Attributes:
        url:           Durable, directly fetchable URL.
        public_id:     Object store key used for info and delete calls.
        bytes:         Stored size as reported by the object store.
        format:        File format reported by the object store (e.g. "pdf").
        resource_type: Object store resource class (e.g. "raw").
        created_at:    Upload timestamp as reported by the object store.
    """

    url: str
    public_id: str
    bytes: int = 0
    format: str | None = None
    resource_type: str | None = None
    created_at: str | None = None


class SharedWith(BaseModel):
    user_id: str
    permission: Permission = Permission.READ
    shared_at: datetime = Field(default_factory=utc_now)


class DocumentRecord(BaseModel):
    """Metadata record of one ingested document.

    The uuid is the stable external identifier. The id is the internal
    storage key assigned by the record store and is never exposed as a
    lookup key to callers.

    Invariants (checked on every validation):
        successful_chunks <= total_chunks
        indexing_status == completed  =>  successful_chunks > 0
        indexing_status == failed     =>  error_message is set
    """

    # Core identity
    id: int | None = None
    uuid: str
    name: str
    original_name: str

    # File metadata
    size: int = 0
    mime_type: str = "application/pdf"
    page_count: int = 0

    # Storage descriptor
    storage_type: str | None = None
    storage: StoredObject | None = None

    # Indexing state
    indexing_status: IndexingStatus = IndexingStatus.PENDING
    is_indexed: bool = False
    indexed_at: datetime | None = None
    total_chunks: int = 0
    successful_chunks: int = 0
    error_message: str | None = None

    # Ownership and sharing
    uploaded_by: str
    description: str | None = None
    tags: list[str] = []
    is_public: bool = False
    shared_with: list[SharedWith] = []

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_invariants(self) -> "DocumentRecord":
        if self.successful_chunks > self.total_chunks:
            raise ValueError(
                f"successful_chunks ({self.successful_chunks}) exceeds total_chunks ({self.total_chunks})"
            )
        if self.indexing_status == IndexingStatus.COMPLETED and self.successful_chunks < 1:
            raise ValueError("A completed document must have at least one indexed chunk")
        if self.indexing_status == IndexingStatus.FAILED and not self.error_message:
            raise ValueError("A failed document must carry an error message")
        return self

    def is_terminal(self) -> bool:
        return self.indexing_status in (IndexingStatus.COMPLETED, IndexingStatus.FAILED)


def permission_for(document: DocumentRecord, user_id: str | None) -> Permission:
    """Compute the effective permission of a user on a document.

    The owner always has full access. An explicit share grants its own
    permission. A public document grants read access to everyone else.

    Args:
        document (DocumentRecord): The document to check.
        user_id (str | None): The requesting user id.

    Returns:
        Permission: The highest permission the user holds on the document.
    """
    if user_id is not None and document.uploaded_by == str(user_id):
        return Permission.OWNER

    granted = Permission.NONE
    if user_id is not None:
        for share in document.shared_with:
            if share.user_id == str(user_id) and _PERMISSION_RANK[share.permission] > _PERMISSION_RANK[granted]:
                granted = share.permission

    if document.is_public and _PERMISSION_RANK[granted] < _PERMISSION_RANK[Permission.READ]:
        granted = Permission.READ
    return granted


def has_permission(document: DocumentRecord, user_id: str | None, required: Permission) -> bool:
    """Return True if the user's permission on the document covers the required one."""
    return _PERMISSION_RANK[permission_for(document, user_id)] >= _PERMISSION_RANK[required]
