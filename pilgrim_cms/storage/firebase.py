"""Firebase Storage and Cloud Firestore over their REST APIs.

Both adapters authorise with the anonymous identity's id token, so the
project's security rules apply exactly as they do to the operator UI.
Transport faults and non-2xx answers surface as ``StoreError``; a missing
object on delete and a missing document on read are not errors.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote

import httpx

from ..core.identity import AnonymousIdentity
from ..exceptions import StoreError
from .base import ListResult, ProgressCallback, StoredObject
from .firestore_values import decode_fields, encode_fields, field_path

logger = logging.getLogger(__name__)

STORAGE_API = "https://firebasestorage.googleapis.com/v0/b"
FIRESTORE_API = "https://firestore.googleapis.com/v1"

# Bytes handed to the transport between progress callbacks.
UPLOAD_CHUNK_SIZE = 256 * 1024


def _raise_for(resp: httpx.Response, action: str) -> None:
    if resp.is_success:
        return
    raise StoreError(f"{action} failed with HTTP {resp.status_code}: {resp.text[:200]}")


class FirebaseStorageStore:
    """ObjectStore for a Firebase Storage bucket."""

    def __init__(
        self,
        bucket: str,
        client: httpx.Client,
        identity: AnonymousIdentity,
        chunk_size: int = UPLOAD_CHUNK_SIZE,
    ):
        self.bucket = bucket
        self._client = client
        self._identity = identity
        self.chunk_size = chunk_size
        self._objects_url = f"{STORAGE_API}/{bucket}/o"

    def _object_url(self, path: str) -> str:
        return f"{self._objects_url}/{quote(path.strip('/'), safe='')}"

    def _request(self, method: str, url: str, action: str, **kwargs) -> httpx.Response:
        headers = {**kwargs.pop("headers", {}), **self._identity.auth_headers("Firebase")}
        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{action} failed", original_error=e) from e

    def list(self, path: str) -> ListResult:
        prefix = path.strip("/")
        params: Dict[str, str] = {"prefix": f"{prefix}/" if prefix else "", "delimiter": "/"}
        prefixes: List[str] = []
        items: List[str] = []
        while True:
            resp = self._request("GET", self._objects_url, f"list {prefix}", params=params)
            _raise_for(resp, f"list {prefix}")
            body = resp.json()
            prefixes.extend(p.rstrip("/") for p in body.get("prefixes", []))
            items.extend(item["name"] for item in body.get("items", []))
            token = body.get("nextPageToken")
            if not token:
                break
            params["pageToken"] = token
        return ListResult(prefixes=prefixes, items=items)

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StoredObject:
        total = len(data)

        def _body() -> Iterator[bytes]:
            sent = 0
            if on_progress:
                on_progress(0, total)
            while sent < total:
                chunk = data[sent:sent + self.chunk_size]
                yield chunk
                sent += len(chunk)
                if on_progress:
                    on_progress(sent, total)

        resp = self._request(
            "POST",
            self._objects_url,
            f"upload {path}",
            params={"name": path.strip("/")},
            content=_body(),
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "Content-Length": str(total),
            },
        )
        _raise_for(resp, f"upload {path}")
        meta = resp.json()
        return StoredObject(
            path=path.strip("/"),
            size=int(meta.get("size", total)),
            url=self._url_from_metadata(path, meta),
            content_type=meta.get("contentType", content_type),
        )

    def download(self, path: str) -> bytes:
        resp = self._request("GET", self._object_url(path), f"download {path}", params={"alt": "media"})
        _raise_for(resp, f"download {path}")
        return resp.content

    def get_download_url(self, path: str) -> str:
        resp = self._request("GET", self._object_url(path), f"metadata {path}")
        _raise_for(resp, f"metadata {path}")
        return self._url_from_metadata(path, resp.json())

    def delete(self, path: str) -> None:
        resp = self._request("DELETE", self._object_url(path), f"delete {path}")
        if resp.status_code == 404:
            return
        _raise_for(resp, f"delete {path}")

    def _url_from_metadata(self, path: str, meta: Dict[str, Any]) -> str:
        url = f"{self._object_url(path)}?alt=media"
        tokens = meta.get("downloadTokens")
        if tokens:
            url += f"&token={tokens.split(',')[0]}"
        return url


class FirestoreDocumentStore:
    """DocumentStore for the project's default Cloud Firestore database."""

    def __init__(self, project_id: str, client: httpx.Client, identity: AnonymousIdentity):
        self.project_id = project_id
        self._client = client
        self._identity = identity
        self._database = f"projects/{project_id}/databases/(default)"
        self._documents_url = f"{FIRESTORE_API}/{self._database}/documents"

    def _document_name(self, collection: str, doc_id: str) -> str:
        return f"{self._database}/documents/{collection}/{doc_id}"

    def _document_url(self, collection: str, doc_id: str) -> str:
        return f"{self._documents_url}/{collection}/{quote(str(doc_id), safe='')}"

    def _request(self, method: str, url: str, action: str, **kwargs) -> httpx.Response:
        headers = self._identity.auth_headers("Bearer")
        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{action} failed", original_error=e) from e

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        params: List[Tuple[str, str]] = []
        if merge:
            params = [("updateMask.fieldPaths", field_path(key)) for key in data]
        resp = self._request(
            "PATCH",
            self._document_url(collection, doc_id),
            f"write {collection}/{doc_id}",
            params=params,
            json={"fields": encode_fields(data)},
        )
        _raise_for(resp, f"write {collection}/{doc_id}")

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        resp = self._request("GET", self._document_url(collection, doc_id), f"read {collection}/{doc_id}")
        if resp.status_code == 404:
            return None
        _raise_for(resp, f"read {collection}/{doc_id}")
        return decode_fields(resp.json().get("fields", {}))

    def query(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        structured: Dict[str, Any] = {"from": [{"collectionId": collection}]}
        if order_by:
            structured["orderBy"] = [{
                "field": {"fieldPath": field_path(order_by)},
                "direction": "DESCENDING" if descending else "ASCENDING",
            }]
        resp = self._request(
            "POST",
            f"{self._documents_url}:runQuery",
            f"query {collection}",
            json={"structuredQuery": structured},
        )
        _raise_for(resp, f"query {collection}")

        results: List[Tuple[str, Dict[str, Any]]] = []
        for row in resp.json():
            document = row.get("document")
            if not document:
                continue
            doc_id = document["name"].rsplit("/", 1)[-1]
            results.append((doc_id, decode_fields(document.get("fields", {}))))
        return results

    def delete(self, collection: str, doc_id: str) -> None:
        resp = self._request("DELETE", self._document_url(collection, doc_id), f"delete {collection}/{doc_id}")
        _raise_for(resp, f"delete {collection}/{doc_id}")

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        resp = self._request(
            "POST",
            f"{self._documents_url}/{collection}",
            f"create {collection}/{doc_id}",
            params={"documentId": str(doc_id)},
            json={"fields": encode_fields(data)},
        )
        if resp.status_code == 409:
            return False
        _raise_for(resp, f"create {collection}/{doc_id}")
        return True

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> int:
        """Server-side increment transform; creates the document when missing."""
        resp = self._request(
            "POST",
            f"{self._documents_url}:commit",
            f"increment {collection}/{doc_id}",
            json={
                "writes": [{
                    "transform": {
                        "document": self._document_name(collection, doc_id),
                        "fieldTransforms": [{
                            "fieldPath": field_path(field_name),
                            "increment": {"integerValue": str(amount)},
                        }],
                    }
                }]
            },
        )
        _raise_for(resp, f"increment {collection}/{doc_id}")
        result = resp.json()["writeResults"][0]["transformResults"][0]
        return int(result["integerValue"])
