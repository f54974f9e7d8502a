from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.regdesk.constants import DEFAULT_SIGNED_URL_EXPIRES_IN, STORAGE_LIST_LIMIT

# Local signed URLs are served by routes.local_document under this path.
LOCAL_DOWNLOAD_PATH = "/documents/local"


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StorageObject:
    key: str
    name: str
    size: int | None = None
    created_at: datetime | None = None

    @property
    def id(self) -> str:
        return self.key


def _normalize_key(key: str) -> str:
    safe_key = (key or "").lstrip("/").replace("\\", "/")
    if not safe_key or any(part == ".." for part in safe_key.split("/")):
        raise StorageError(f"Invalid storage key: {key!r}")
    return safe_key


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def list(self, prefix: str, *, limit: int = STORAGE_LIST_LIMIT) -> list[StorageObject]:
        raise NotImplementedError

    def signed_url(self, key: str, *, expires_in: int = DEFAULT_SIGNED_URL_EXPIRES_IN) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path
    signing_key: str = "change-me"

    def _path(self, key: str) -> Path:
        return self.root / _normalize_key(key)

    def _serializer(self) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(self.signing_key, salt="regdesk.local-document")

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        if not p.is_file():
            raise StorageError(f"Object not found: {key}")
        return p.open("rb")

    def list(self, prefix: str, *, limit: int = STORAGE_LIST_LIMIT) -> list[StorageObject]:
        folder = self._path(prefix)
        if not folder.is_dir():
            return []
        out: list[StorageObject] = []
        for p in sorted(folder.iterdir(), key=lambda x: x.name):
            if not p.is_file():
                continue
            st = p.stat()
            out.append(
                StorageObject(
                    key=f"{_normalize_key(prefix).rstrip('/')}/{p.name}",
                    name=p.name,
                    size=st.st_size,
                    created_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).replace(tzinfo=None),
                )
            )
            if len(out) >= limit:
                break
        return out

    def signed_url(self, key: str, *, expires_in: int = DEFAULT_SIGNED_URL_EXPIRES_IN) -> str:
        token = self._serializer().dumps({"k": _normalize_key(key), "e": int(expires_in)})
        return f"{LOCAL_DOWNLOAD_PATH}/{token}"

    def resolve_token(self, token: str) -> str:
        """Return the storage key a local signed URL points at, or raise StorageError."""
        try:
            payload, signed_at = self._serializer().loads(token, return_timestamp=True)
        except (BadSignature, SignatureExpired) as e:
            raise StorageError("Invalid document link.") from e
        age = (datetime.now(timezone.utc) - signed_at).total_seconds()
        if age > int(payload.get("e") or 0):
            raise StorageError("Document link expired.")
        return _normalize_key(payload["k"])


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def _client(self):
        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self._client().put_object(Bucket=self.bucket, Key=_normalize_key(key), Body=data, **extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 upload failed: {e}") from e

    def open(self, key: str) -> BinaryIO:
        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=_normalize_key(key))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 download failed: {e}") from e
        return obj["Body"]  # type: ignore[return-value]

    def list(self, prefix: str, *, limit: int = STORAGE_LIST_LIMIT) -> list[StorageObject]:
        folder = _normalize_key(prefix).rstrip("/") + "/"
        try:
            resp = self._client().list_objects_v2(Bucket=self.bucket, Prefix=folder, MaxKeys=limit)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 listing failed: {e}") from e
        out: list[StorageObject] = []
        for item in resp.get("Contents") or []:
            key = item["Key"]
            name = key[len(folder):]
            if not name or "/" in name:
                continue
            modified = item.get("LastModified")
            if modified is not None and modified.tzinfo:
                modified = modified.astimezone(timezone.utc).replace(tzinfo=None)
            out.append(StorageObject(key=key, name=name, size=item.get("Size"), created_at=modified))
        return out

    def signed_url(self, key: str, *, expires_in: int = DEFAULT_SIGNED_URL_EXPIRES_IN) -> str:
        try:
            return self._client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": _normalize_key(key)},
                ExpiresIn=int(expires_in),
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not sign URL: {e}") from e


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "us-east-1").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    root_s = (config.get("STORAGE_LOCAL_ROOT") or "").strip()
    root = Path(root_s) if root_s else Path(os.getcwd()) / "storage"
    return LocalStorage(root=root, signing_key=str(config.get("SECRET_KEY") or "change-me"))
