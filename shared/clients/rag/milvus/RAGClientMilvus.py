import httpx
from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.FilterExpression import FilterExpression
from shared.clients.rag.models.VectorPoint import MAX_TEXT_LENGTH, SearchHit, SegmentRecord
from shared.models.config import EnvConfig
from shared.models.errors import VectorIndexError

# payload field -> collection field
_FIELD_MAP = {
    "document_uuid": "pdf_uuid",
    "document_name": "pdf_name",
    "chunk_index": "chunk_index",
    "chunk_text": "pdf_text",
    "owner_id": "user_id",
    "created_at": "created_at",
    "source_url": "cloudinary_url",
}
_VECTOR_FIELD = "chunk_vector_embedding"


class RAGClientMilvus(RAGClientInterface):
    """Milvus / Zilliz Cloud via the RESTful API v2.

    Milvus answers most errors with HTTP 200 and a non-zero "code" in the body.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._token = self.get_config_val("TOKEN", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="RAG_TEXT_EMBEDDING", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Milvus"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="TOKEN", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="RAG_TEXT_EMBEDDING"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/v2/vectordb/collections/list"

    def _get_endpoint_upsert(self) -> str:
        return "/v2/vectordb/entities/insert"

    def _get_endpoint_delete(self) -> str:
        return "/v2/vectordb/entities/delete"

    def _get_endpoint_count(self) -> str:
        return "/v2/vectordb/entities/query"

    def _get_endpoint_search(self) -> str:
        return "/v2/vectordb/entities/search"

    def _get_endpoint_check_collection_existence(self) -> tuple[str, str, dict | None]:
        return "POST", "/v2/vectordb/collections/has", {"collectionName": self._collection_name}

    def _get_endpoint_create_collection(self) -> tuple[str, str]:
        return "POST", "/v2/vectordb/collections/create"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_upsert_payload(self, records: list[SegmentRecord]) -> dict:
        rows = []
        for record in records:
            payload = record.payload
            rows.append({
                _VECTOR_FIELD: record.vector,
                "pdf_text": self.truncate_text(payload.chunk_text, payload.document_uuid, payload.chunk_index),
                "pdf_uuid": payload.document_uuid,
                "pdf_name": payload.document_name,
                "chunk_index": payload.chunk_index,
                "user_id": payload.owner_id,
                "created_at": payload.created_at,
                "cloudinary_url": payload.source_url or "",
            })
        return {"collectionName": self._collection_name, "data": rows}

    def get_delete_payload(self, expression: FilterExpression) -> dict:
        return {"collectionName": self._collection_name, "filter": expression.to_milvus(_FIELD_MAP)}

    def get_count_payload(self, expression: FilterExpression) -> dict:
        return {
            "collectionName": self._collection_name,
            "filter": expression.to_milvus(_FIELD_MAP),
            "outputFields": ["count(*)"],
        }

    def get_search_payload(self, vector: list[float], top_k: int, expression: FilterExpression) -> dict:
        return {
            "collectionName": self._collection_name,
            "data": [vector],
            "annsField": _VECTOR_FIELD,
            "limit": top_k,
            "filter": expression.to_milvus(_FIELD_MAP),
            "outputFields": ["pdf_text", "pdf_uuid", "chunk_index"],
        }

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        def varchar(name: str, max_length: int) -> dict:
            return {"fieldName": name, "dataType": "VarChar", "elementTypeParams": {"max_length": max_length}}

        return {
            "collectionName": self._collection_name,
            "schema": {
                "autoId": True,
                "enableDynamicField": False,
                "fields": [
                    {"fieldName": "id", "dataType": "Int64", "isPrimary": True},
                    {"fieldName": _VECTOR_FIELD, "dataType": "FloatVector", "elementTypeParams": {"dim": vector_size}},
                    varchar("pdf_text", MAX_TEXT_LENGTH),
                    varchar("pdf_uuid", 64),
                    varchar("pdf_name", 512),
                    {"fieldName": "chunk_index", "dataType": "Int64"},
                    varchar("user_id", 128),
                    varchar("created_at", 64),
                    varchar("cloudinary_url", 1024),
                ],
            },
            "indexParams": [
                {"fieldName": _VECTOR_FIELD, "indexName": _VECTOR_FIELD, "metricType": distance.upper(), "indexType": "AUTOINDEX"},
            ],
        }

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def check_response_body(self, raw_response: dict) -> None:
        code = raw_response.get("code", 0)
        if code not in (0, 200):
            raise VectorIndexError(
                f"Milvus request failed with code {code}",
                detail=str(raw_response.get("message", "")),
            )

    def extract_upsert_count(self, raw_response: dict, sent: int) -> int:
        return int((raw_response.get("data") or {}).get("insertCount", 0))

    def extract_count(self, raw_response: dict) -> int:
        rows = raw_response.get("data") or []
        if not rows:
            return 0
        return int(rows[0].get("count(*)", 0))

    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        hits = []
        for row in raw_response.get("data", []) or []:
            hits.append(SearchHit(
                text=row.get("pdf_text", ""),
                score=float(row.get("distance", 0.0)),
                chunk_index=int(row.get("chunk_index", -1)),
                document_uuid=str(row.get("pdf_uuid", "")),
            ))
        return hits

    def extract_collection_exists(self, raw_response: dict) -> bool:
        return bool((raw_response.get("data") or {}).get("has"))

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        # the REST API has no GET health route
        return await self.do_request(method="POST", endpoint=self._get_endpoint_healthcheck(), json={})
