import asyncio
import os
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, and_, create_engine, func, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import DocumentRecord, IndexingStatus, ListScope, utc_now
from shared.models.errors import InternalError, InvalidInputError


class Base(DeclarativeBase):
    pass


class DocumentRow(Base):
    """One document record. Filter columns are mirrored out of the JSON body."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    indexing_status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, index=True, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    body: Mapped[dict] = mapped_column(JSON, nullable=False)

    shares: Mapped[list["DocumentShareRow"]] = relationship(
        back_populates="document", cascade="all, delete-orphan", lazy="selectin",
    )


class DocumentShareRow(Base):
    """Users a document is shared with, mirrored out of the JSON body for listing."""

    __tablename__ = "document_shares"

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)

    document: Mapped[DocumentRow] = relationship(back_populates="shares")


class DocumentStoreSql(DocumentStoreInterface):
    """SQLAlchemy record store. SQLite by default, any SQLAlchemy URL works.

    Sessions are synchronous and run in a worker thread so they never block the event loop.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._url = self.get_config_val("URL", default="sqlite:///./data/documents.db")
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Sql"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="URL", val_type="string", default="sqlite:///./data/documents.db"),
        ]

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    def _create_engine(self) -> Engine:
        if not self._url.startswith("sqlite"):
            return create_engine(self._url, pool_pre_ping=True)

        database = self._url.split("///", 1)[1] if "///" in self._url else ""
        if not database or database == ":memory:":
            # one shared connection, otherwise every thread sees its own empty database
            return create_engine(self._url, connect_args={"check_same_thread": False}, poolclass=StaticPool)

        directory = os.path.dirname(database)
        if directory:
            os.makedirs(directory, exist_ok=True)
        return create_engine(self._url, connect_args={"check_same_thread": False})

    async def boot(self) -> None:
        self._engine = self._create_engine()
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        await asyncio.to_thread(Base.metadata.create_all, self._engine)
        self.logging.info("Document store ready (%s).", self._engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        if self._engine is not None:
            await asyncio.to_thread(self._engine.dispose)
            self._engine = None
            self._session_factory = None

    async def do_healthcheck(self) -> bool:
        def _ping() -> bool:
            with self._session() as session:
                session.execute(text("SELECT 1"))
            return True

        return await asyncio.to_thread(_ping)

    def _session(self) -> Session:
        if self._session_factory is None:
            raise InternalError("Document store not initialised. Call boot() before making requests.")
        return self._session_factory()

    ##########################################
    ################ MAPPING #################
    ##########################################

    @staticmethod
    def _to_record(row: DocumentRow) -> DocumentRecord:
        return DocumentRecord.model_validate({**row.body, "id": row.id})

    @staticmethod
    def _filters(user_id: str | None, status: IndexingStatus | None, scope: ListScope) -> list:
        conditions = []
        if user_id is not None:
            owned = DocumentRow.uploaded_by == str(user_id)
            shared = DocumentRow.shares.any(DocumentShareRow.user_id == str(user_id))
            public = DocumentRow.is_public.is_(True)
            visible = {
                ListScope.OWNED: owned,
                ListScope.SHARED: and_(shared, DocumentRow.uploaded_by != str(user_id)),
                ListScope.PUBLIC: public,
                ListScope.ALL: or_(owned, shared, public),
            }
            conditions.append(visible[ListScope(scope)])
        if status is not None:
            conditions.append(DocumentRow.indexing_status == IndexingStatus(status).value)
        return conditions

    @staticmethod
    def _apply(row: DocumentRow, record: DocumentRecord) -> None:
        row.uuid = record.uuid
        row.uploaded_by = record.uploaded_by
        row.indexing_status = record.indexing_status.value
        row.created_at = record.created_at
        row.updated_at = record.updated_at
        row.is_public = record.is_public
        # keep existing share rows, a replaced row with the same key would collide on flush
        wanted = {share.user_id for share in record.shared_with}
        row.shares = [share for share in row.shares if share.user_id in wanted]
        known = {share.user_id for share in row.shares}
        row.shares.extend(DocumentShareRow(user_id=user_id) for user_id in sorted(wanted - known))
        row.body = record.model_dump(mode="json", exclude={"id"})

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_create(self, record: DocumentRecord) -> DocumentRecord:
        def _create() -> DocumentRecord:
            with self._session() as session:
                row = DocumentRow()
                self._apply(row, record)
                session.add(row)
                try:
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    raise InvalidInputError("A document with this uuid already exists", detail=record.uuid) from exc
                return self._to_record(row)

        return await asyncio.to_thread(_create)

    async def do_get_by_uuid(self, document_uuid: str) -> DocumentRecord | None:
        def _get() -> DocumentRecord | None:
            with self._session() as session:
                row = session.scalar(select(DocumentRow).where(DocumentRow.uuid == document_uuid))
                return self._to_record(row) if row is not None else None

        return await asyncio.to_thread(_get)

    async def do_update(self, record: DocumentRecord) -> bool:
        def _update() -> bool:
            with self._session() as session:
                row = session.scalar(select(DocumentRow).where(DocumentRow.uuid == record.uuid))
                if row is None:
                    return False
                self._apply(row, record.model_copy(update={"updated_at": utc_now()}))
                session.commit()
                return True

        return await asyncio.to_thread(_update)

    async def do_delete(self, document_uuid: str) -> bool:
        def _delete() -> bool:
            with self._session() as session:
                row = session.scalar(select(DocumentRow).where(DocumentRow.uuid == document_uuid))
                if row is None:
                    return False
                # ORM delete so the share rows go with it
                session.delete(row)
                session.commit()
                return True

        return await asyncio.to_thread(_delete)

    async def do_list(
        self,
        user_id: str | None = None,
        status: IndexingStatus | None = None,
        scope: ListScope = ListScope.OWNED,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[DocumentRecord]:
        def _list() -> list[DocumentRecord]:
            query = (
                select(DocumentRow)
                .where(*self._filters(user_id, status, scope))
                .order_by(DocumentRow.created_at.desc(), DocumentRow.id.desc())
                .offset(max(0, offset))
            )
            if limit is not None:
                query = query.limit(limit)
            with self._session() as session:
                return [self._to_record(row) for row in session.scalars(query)]

        return await asyncio.to_thread(_list)

    async def do_count(
        self,
        user_id: str | None = None,
        status: IndexingStatus | None = None,
        scope: ListScope = ListScope.OWNED,
    ) -> int:
        def _count() -> int:
            query = select(func.count()).select_from(DocumentRow).where(*self._filters(user_id, status, scope))
            with self._session() as session:
                return int(session.scalar(query) or 0)

        return await asyncio.to_thread(_count)
