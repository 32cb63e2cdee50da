import logging
import os
import pathlib
import uuid
from functools import lru_cache
from typing import Optional
from urllib.parse import unquote, urlparse

from google.cloud import storage

logger = logging.getLogger("portal.storage")


class StorageError(Exception):
    pass


class StorageClient:
    """Blob store: arquivos locais (dev/testes) ou Google Cloud Storage."""

    def __init__(self) -> None:
        self.bucket_name = os.getenv("GCS_BUCKET")
        self.use_local = os.getenv("LOCAL_STORAGE", "0") == "1" or not self.bucket_name
        self.base_dir = pathlib.Path(os.getenv("LOCAL_STORAGE_DIR", "storage")).resolve()
        if self.use_local:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._client = storage.Client() if self.bucket_name and not self.use_local else None

    def _ensure_bucket(self):
        if not self.bucket_name or not self._client:
            raise StorageError("GCS_BUCKET nao configurado.")
        return self._client.bucket(self.bucket_name)

    def put(self, content: bytes, dest_path: str, content_type: Optional[str] = None) -> str:
        if self.use_local:
            full_path = self.base_dir / dest_path
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(content)
            return full_path.as_uri()
        bucket = self._ensure_bucket()
        blob = bucket.blob(dest_path)
        blob.upload_from_string(content, content_type=content_type)
        return f"gs://{self.bucket_name}/{dest_path}"

    def get(self, file_url: str) -> bytes:
        if file_url.startswith("file://"):
            path = pathlib.Path(unquote(urlparse(file_url).path))
            if not path.is_file():
                raise StorageError("Arquivo nao encontrado.")
            return path.read_bytes()
        if file_url.startswith("gs://"):
            bucket_name, blob_path = file_url[len("gs://"):].split("/", 1)
            client = self._client or storage.Client()
            return client.bucket(bucket_name).blob(blob_path).download_as_bytes()
        raise StorageError("URL de arquivo nao suportada.")

    def delete(self, file_url: str) -> None:
        if file_url.startswith("file://"):
            pathlib.Path(unquote(urlparse(file_url).path)).unlink(missing_ok=True)
            return
        if file_url.startswith("gs://"):
            bucket_name, blob_path = file_url[len("gs://"):].split("/", 1)
            client = self._client or storage.Client()
            client.bucket(bucket_name).blob(blob_path).delete()
            return
        raise StorageError("URL de arquivo nao suportada.")

    def generate_signed_url(self, file_url: str, expires_minutes: int = 30) -> str:
        if file_url.startswith("file://"):
            return file_url
        if file_url.startswith("gs://"):
            bucket_name, blob_path = file_url[len("gs://"):].split("/", 1)
            client = self._client or storage.Client()
            blob = client.bucket(bucket_name).blob(blob_path)
            return blob.generate_signed_url(expiration=expires_minutes * 60, method="GET")
        raise StorageError("URL de arquivo nao suportada.")


def build_object_name(entity_id: str, kind: str, filename: str) -> str:
    safe_name = (filename or "arquivo").replace(" ", "_").replace("/", "_")
    return f"{kind}/{entity_id}/{uuid.uuid4().hex}_{safe_name}"


@lru_cache(maxsize=1)
def get_storage() -> StorageClient:
    return StorageClient()


def safe_signed_url(file_url: Optional[str]) -> Optional[str]:
    if not file_url:
        return None
    try:
        return get_storage().generate_signed_url(file_url)
    except Exception as exc:
        logger.warning("signed url failed url=%s error=%s", file_url, exc)
        return None


def safe_delete(file_url: Optional[str]) -> None:
    if not file_url:
        return
    try:
        get_storage().delete(file_url)
    except Exception as exc:
        logger.warning("blob cleanup failed url=%s error=%s", file_url, exc)
