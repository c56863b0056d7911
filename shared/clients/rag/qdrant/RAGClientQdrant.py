import uuid

import httpx
from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.FilterExpression import FilterExpression
from shared.clients.rag.models.VectorPoint import SearchHit, SegmentRecord
from shared.models.config import EnvConfig
from shared.models.errors import VectorIndexError

# Fixed namespace for deterministic UUIDv5 point IDs.
# Changing this value would invalidate all existing point IDs.
_POINT_ID_NAMESPACE = uuid.UUID("3b0f6c1e-52a4-4c8e-9d7a-1f2e3d4c5b6a")


def make_point_id(document_uuid: str, chunk_index: int) -> str:
    """Build a deterministic point ID so re-inserting a segment overwrites it.

    Args:
        document_uuid (str): External identifier of the document.
        chunk_index (int): Zero-based segment index.

    Returns:
        str: UUID string usable as a Qdrant point ID.
    """
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, f"{document_uuid}:{chunk_index}"))


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="pdf_segments", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="pdf_segments"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_upsert(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_upsert_method(self) -> str:
        return "PUT"

    def _get_endpoint_delete(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_endpoint_count(self) -> str:
        return f"/collections/{self._collection_name}/points/count"

    def _get_endpoint_search(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_check_collection_existence(self) -> tuple[str, str, dict | None]:
        return "GET", f"/collections/{self._collection_name}/exists", None

    def _get_endpoint_create_collection(self) -> tuple[str, str]:
        return "PUT", f"/collections/{self._collection_name}"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_upsert_payload(self, records: list[SegmentRecord]) -> dict:
        points = []
        for record in records:
            payload = record.payload.model_dump()
            payload["chunk_text"] = self.truncate_text(payload["chunk_text"], record.payload.document_uuid, record.payload.chunk_index)
            points.append({
                "id": make_point_id(record.payload.document_uuid, record.payload.chunk_index),
                "vector": record.vector,
                "payload": payload,
            })
        return {"points": points}

    def get_delete_payload(self, expression: FilterExpression) -> dict:
        return {"filter": expression.to_qdrant()}

    def get_count_payload(self, expression: FilterExpression) -> dict:
        return {"filter": expression.to_qdrant(), "exact": True}

    def get_search_payload(self, vector: list[float], top_k: int, expression: FilterExpression) -> dict:
        return {
            "vector": vector,
            "limit": top_k,
            "with_payload": True,
            "filter": expression.to_qdrant(),
        }

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance}}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_upsert_count(self, raw_response: dict, sent: int) -> int:
        # qdrant acknowledges a batch as a whole
        if raw_response.get("status") != "ok":
            raise VectorIndexError("Qdrant rejected the upsert", detail=str(raw_response.get("status")))
        return sent

    def extract_count(self, raw_response: dict) -> int:
        return int(raw_response.get("result", {}).get("count", 0))

    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        hits = []
        for point in raw_response.get("result", []) or []:
            payload = point.get("payload") or {}
            hits.append(SearchHit(
                text=payload.get("chunk_text", ""),
                score=float(point.get("score", 0.0)),
                chunk_index=int(payload.get("chunk_index", -1)),
                document_uuid=str(payload.get("document_uuid", "")),
            ))
        return hits

    def extract_collection_exists(self, raw_response: dict) -> bool:
        return bool(raw_response.get("result", {}).get("exists"))
