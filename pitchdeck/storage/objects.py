"""
Object storage for rendered decks and user images.

SupabaseStorage talks to the Supabase Storage REST API; LocalStorage keeps objects on disk under
local_storage_dir and serves them at /files/... when no Supabase project is configured.
"""
import logging
import mimetypes
import os
import shutil
from typing import Optional, Protocol

import requests

from pitchdeck.core.errors import CollaboratorTimeoutError, StorageError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_BYTES = 64 * 1024


class ObjectStorage(Protocol):
    def upload_file(self, local_path: str, bucket: str, remote_name: str, *, timeout: Optional[float] = None) -> str:
        ...

    def download_file(self, url: str, dest_path: str, *, timeout: Optional[float] = None) -> str:
        ...


def guess_content_type(name: str) -> str:
    return mimetypes.guess_type(name)[0] or "application/octet-stream"


def http_download(session: requests.Session, url: str, dest_path: str, timeout: Optional[float]) -> str:
    """Stream `url` into dest_path and return the response Content-Type (without parameters)."""
    try:
        with session.get(url, stream=True, timeout=timeout) as resp:
            if resp.status_code != 200:
                raise StorageError(f"failed to download file, status: {resp.status_code}")
            with open(dest_path, "wb") as out:
                for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    if chunk:
                        out.write(chunk)
            return (resp.headers.get("Content-Type") or "").split(";")[0].strip().lower()
    except requests.exceptions.Timeout as e:
        raise CollaboratorTimeoutError(f"download timed out: {url}") from e
    except requests.exceptions.RequestException as e:
        raise StorageError(f"failed to download file: {e}") from e
    except OSError as e:
        raise StorageError(f"failed to save file: {e}") from e


class SupabaseStorage:
    """Supabase Storage: POST /storage/v1/object/{bucket}/{name}, public URL under /object/public/."""

    def __init__(self, base_url: str, service_key: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self._session = session or requests.Session()

    def public_url(self, bucket: str, remote_name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{remote_name}"

    def upload_file(self, local_path: str, bucket: str, remote_name: str, *, timeout: Optional[float] = None) -> str:
        logger.info("upload file bucket=%s name=%s", bucket, remote_name)
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": guess_content_type(remote_name),
            "x-upsert": "true",
        }
        try:
            with open(local_path, "rb") as f:
                resp = self._session.post(
                    f"{self.base_url}/storage/v1/object/{bucket}/{remote_name}",
                    data=f,
                    headers=headers,
                    timeout=timeout,
                )
        except requests.exceptions.Timeout as e:
            raise CollaboratorTimeoutError(f"upload of {remote_name} timed out") from e
        except requests.exceptions.RequestException as e:
            raise StorageError(f"failed to upload file: {e}") from e
        except OSError as e:
            raise StorageError(f"failed to read file: {e}") from e

        if resp.status_code not in (200, 201):
            raise StorageError(f"failed to upload file, status: {resp.status_code}, body: {resp.text[:300]}")
        return self.public_url(bucket, remote_name)

    def download_file(self, url: str, dest_path: str, *, timeout: Optional[float] = None) -> str:
        return http_download(self._session, url, dest_path, timeout)


class LocalStorage:
    """Objects stored as <root>/<bucket>/<name>; their URL is <public_prefix>/<bucket>/<name>."""

    def __init__(self, root: str, public_prefix: str = "/files", session: Optional[requests.Session] = None):
        self.root = root
        self.public_prefix = public_prefix.rstrip("/")
        self._session = session or requests.Session()
        os.makedirs(self.root, exist_ok=True)

    def _object_path(self, bucket: str, remote_name: str) -> str:
        root = os.path.realpath(self.root)
        path = os.path.realpath(os.path.join(root, bucket, remote_name))
        if os.path.commonpath([root, path]) != root:
            raise StorageError(f"object name escapes storage root: {bucket}/{remote_name}")
        return path

    def upload_file(self, local_path: str, bucket: str, remote_name: str, *, timeout: Optional[float] = None) -> str:
        dest = self._object_path(bucket, remote_name)
        logger.info("store file bucket=%s name=%s", bucket, remote_name)
        try:
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.copyfile(local_path, dest)
        except OSError as e:
            raise StorageError(f"failed to store file: {e}") from e
        return f"{self.public_prefix}/{bucket}/{remote_name}"

    def download_file(self, url: str, dest_path: str, *, timeout: Optional[float] = None) -> str:
        if not url.startswith(self.public_prefix + "/"):
            return http_download(self._session, url, dest_path, timeout)

        bucket, _, remote_name = url[len(self.public_prefix) + 1:].partition("/")
        src = self._object_path(bucket, remote_name)
        if not os.path.isfile(src):
            raise StorageError(f"stored file not found: {url}")
        try:
            shutil.copyfile(src, dest_path)
        except OSError as e:
            raise StorageError(f"failed to copy file: {e}") from e
        return guess_content_type(src)
