import base64
import hashlib
import os
import re
import time
from datetime import datetime, timezone
from urllib.parse import quote, urlparse

import httpx
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import StoredObject
from shared.models.errors import StorageError

# params that never take part in the request signature
_UNSIGNED_PARAMS = {"file", "api_key", "resource_type", "cloud_name"}


def parse_cloudinary_url(url: str) -> tuple[str, str, str]:
    """Split a cloudinary://<api_key>:<api_secret>@<cloud_name> URL.

    Returns:
        tuple[str, str, str]: (api_key, api_secret, cloud_name)

    Raises:
        ValueError: If the URL is malformed.
    """
    parsed = urlparse(url)
    if parsed.scheme != "cloudinary" or not parsed.username or not parsed.password or not parsed.hostname:
        raise ValueError("Invalid Cloudinary URL, expected cloudinary://<api_key>:<api_secret>@<cloud_name>")
    return parsed.username, parsed.password, parsed.hostname


def sign_params(params: dict, api_secret: str) -> str:
    """Compute the SHA-1 request signature of an upload API call.

    Args:
        params (dict): Request parameters.
        api_secret (str): Account API secret.

    Returns:
        str: Hex digest of "k1=v1&k2=v2<api_secret>" with keys sorted.
    """
    to_sign = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in _UNSIGNED_PARAMS and params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def build_public_id(filename: str, now_ms: int | None = None) -> str:
    """Build "<epoch_ms>_<name without extension, whitespace as underscores>"."""
    stem = os.path.splitext(filename)[0].strip()
    stem = re.sub(r"\s+", "_", stem)
    return f"{now_ms if now_ms is not None else int(time.time() * 1000)}_{stem}"


class StorageClientCloudinary(StorageClientInterface):
    """Cloudinary raw-resource storage via the upload and admin REST APIs."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._api_key, self._api_secret, self._cloud_name = parse_cloudinary_url(
            self.get_config_val("URL", default=None, val_type="string")
        )
        self._api_base = self.get_config_val("API_BASE", default="https://api.cloudinary.com/v1_1", val_type="string")
        self._folder_prefix = self.get_config_val("FOLDER", default="pdfs", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Cloudinary"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="URL", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        # upload API calls are signed in the body
        return {}

    def _get_admin_auth(self) -> dict:
        credentials = base64.b64encode(f"{self._api_key}:{self._api_secret}".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {credentials}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"{self._api_base.rstrip('/')}/{self._cloud_name}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/ping"

    def _get_endpoint_upload(self) -> str:
        return "/raw/upload"

    def _get_endpoint_destroy(self) -> str:
        return "/raw/destroy"

    def _get_endpoint_resource(self, public_id: str) -> str:
        return f"/resources/raw/upload/{quote(public_id, safe='/')}"

    ################ PAYLOAD BUILDER ##################
    def _signed(self, params: dict) -> dict:
        params = {key: value for key, value in params.items() if value not in (None, "")}
        params["timestamp"] = str(int(time.time()))
        params["signature"] = sign_params(params, self._api_secret)
        params["api_key"] = self._api_key
        return params

    def get_upload_params(self, filename: str, owner_id: str) -> dict:
        uploaded_at = datetime.now(timezone.utc).isoformat()
        return {
            "folder": f"{self._folder_prefix}/{owner_id}",
            "public_id": build_public_id(filename),
            "overwrite": "false",
            "tags": f"pdf,document,user_{owner_id}",
            "context": f"uploaded_by={owner_id}|original_name={filename.replace('|', '_').replace('=', '_')}|upload_date={uploaded_at}",
        }

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), additional_headers=self._get_admin_auth())

    async def do_upload(self, content: bytes, filename: str, owner_id: str) -> StoredObject:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_upload(),
            data=self._signed(self.get_upload_params(filename, owner_id)),
            files={"file": (filename, content, "application/pdf")},
            raise_on_error=True,
        )
        result = response.json()
        if not result.get("secure_url") or not result.get("public_id"):
            raise StorageError("Cloudinary upload returned no URL", detail=str(result)[:200])

        self.logging.info("Uploaded '%s' to Cloudinary as %s", filename, result["public_id"])
        return StoredObject(
            url=result["secure_url"],
            public_id=result["public_id"],
            bytes=int(result.get("bytes", len(content))),
            # raw resources carry no format, fall back to the file extension
            format=result.get("format") or os.path.splitext(filename)[1].lstrip(".").lower() or None,
            resource_type=result.get("resource_type", "raw"),
            created_at=result.get("created_at"),
        )

    async def do_delete(self, public_id: str) -> bool:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_destroy(),
            data=self._signed({"public_id": public_id, "invalidate": "true"}),
            raise_on_error=True,
        )
        outcome = response.json().get("result")
        if outcome != "ok":
            self.logging.warning("Cloudinary destroy of %s returned '%s'", public_id, outcome)
        return outcome == "ok"

    async def do_info(self, public_id: str) -> dict | None:
        response = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_resource(public_id),
            additional_headers=self._get_admin_auth(),
        )
        if response.status_code == 404:
            return None
        if response.status_code >= 300:
            raise StorageError(
                f"Cloudinary resource lookup failed with status {response.status_code}",
                detail=response.text[:200],
            )
        return response.json()
