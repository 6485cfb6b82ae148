"""
HTTP client for the storage tier

The API tier never touches the blob filesystem itself; every byte goes
through these calls.
"""
import logging
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from codevault.core.config import settings

logger = logging.getLogger(__name__)

# (declared file name, file object, content type)
UploadPart = Tuple[str, BinaryIO, Optional[str]]


class StorageServiceError(Exception):
    """Storage tier call failed"""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StorageUnavailableError(StorageServiceError):
    """Storage tier could not be reached or did not answer"""
    pass


class StorageResponseError(StorageServiceError):
    """Storage tier answered with an error envelope"""
    pass


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"storage server returned status {response.status_code}"
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or f"storage server returned status {response.status_code}"
    return f"storage server returned status {response.status_code}"


class StorageServiceClient:
    """Client for the storage tier service"""

    def __init__(
        self,
        base_url: str = settings.STORAGE_SERVICE_URL,
        timeout: float = settings.STORAGE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-init HTTP client"""
        if self._client is None:
            timeout = httpx.Timeout(
                connect=10.0,
                read=self.timeout,     # large uploads and archives
                write=self.timeout,
                pool=10.0,
            )
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=timeout,
                transport=self._transport,
            )
            logger.info(f"Created storage client: base_url={self.base_url}")
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Storage request {method} {url} failed: {e}")
            raise StorageUnavailableError(str(e) or type(e).__name__) from e

    async def _json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        response = await self._request(method, url, **kwargs)
        if response.status_code != 200:
            raise StorageResponseError(_error_message(response), response.status_code)
        return response.json()

    async def _open_stream(self, url: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        """
        Start a streamed GET. The returned response is 200 and unread;
        the caller must aclose() it.
        """
        request = self.client.build_request("GET", url, params=params)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Storage stream GET {url} failed: {e}")
            raise StorageUnavailableError(str(e) or type(e).__name__) from e

        if response.status_code != 200:
            try:
                await response.aread()
            finally:
                await response.aclose()
            raise StorageResponseError(_error_message(response), response.status_code)
        return response

    async def health_check(self) -> Dict[str, Any]:
        """Check storage service health"""
        try:
            return await self._json("GET", "/health")
        except StorageServiceError as e:
            logger.error(f"Storage service health check failed: {e.message}")
            return {"status": "unhealthy", "error": e.message}

    async def store_files(
        self,
        codebase_id: str,
        files: Sequence[UploadPart],
        paths: Dict[str, str],
    ) -> Dict[str, Any]:
        """
        Forward an upload batch to the storage tier.

        Args:
            codebase_id: Fresh id for the new codebase
            files: Parts to forward, in request order
            paths: Relative path overrides keyed by declared file name

        Returns:
            Storage tier response with stored_files and rejected entries
        """
        data = {"codebase_id": codebase_id}
        for name, path in paths.items():
            data[f"path_{name}"] = path
        multipart = [
            ("files", (name, fileobj, content_type or "application/octet-stream"))
            for name, fileobj, content_type in files
        ]
        return await self._json("POST", "/store", data=data, files=multipart)

    async def list_files(self, codebase_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/files/{codebase_id}")

    async def get_content(self, codebase_id: str, file_path: str) -> Dict[str, Any]:
        return await self._json("GET", f"/content/{codebase_id}", params={"file": file_path})

    async def open_download(self, codebase_id: str, file_path: str) -> httpx.Response:
        return await self._open_stream(f"/download/{codebase_id}", params={"file": file_path})

    async def open_zip(self, codebase_id: str) -> httpx.Response:
        return await self._open_stream(f"/zip/{codebase_id}")

    async def list_codebases(self) -> List[Dict[str, Any]]:
        body = await self._json("GET", "/codebases")
        return body.get("codebases", [])

    async def delete_codebase(self, codebase_id: str) -> bool:
        try:
            await self._json("DELETE", f"/codebases/{quote(codebase_id)}")
        except StorageResponseError as e:
            if e.status_code == 404:
                return False
            raise
        return True


# Singleton client instance
_client: Optional[StorageServiceClient] = None


def get_storage_client() -> StorageServiceClient:
    """Get the process-wide storage client (also a FastAPI dependency)"""
    global _client
    if _client is None:
        _client = StorageServiceClient()
    return _client


async def reset_storage_client():
    """Close and drop the singleton client"""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
