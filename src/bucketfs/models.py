"""bucketfs data models.

FileMetadata mirrors the object resource returned by Cloud Storage /
Firebase Storage (camelCase on the wire, snake_case in Python). The option
records replace free-form option dicts with the fields each operation
actually understands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bucketfs.errors import InvalidArgumentError

DOWNLOAD_TOKENS_KEY = "firebaseStorageDownloadTokens"

# Provider fields set_metadata() may change besides contentType and metadata,
# keyed by wire name. Values are the google-cloud-storage Blob property names.
WRITABLE_EXTRA_FIELDS = {
    "cacheControl": "cache_control",
    "contentDisposition": "content_disposition",
    "contentEncoding": "content_encoding",
    "contentLanguage": "content_language",
}
_WIRE_NAME_BY_ATTRIBUTE = {attr: wire for wire, attr in WRITABLE_EXTRA_FIELDS.items()}

MetadataValue = str | int | float | None

SignedUrlAction = Literal["read", "write"]
SignedUrlVersion = Literal["v2", "v4"]


class FileMetadata(BaseModel):
    """Metadata record for a single object.

    Attributes:
        kind: Resource kind reported by the store (e.g. "storage#object").
        id: Provider identifier of the object generation.
        name: Object key.
        content_type: MIME type of the content.
        size: Content length as a decimal string. Parse it before use,
            or call OnlineFilesystem.lstat().
        time_created: RFC 3339 creation timestamp.
        updated: RFC 3339 last-update timestamp.
        metadata: Custom key/value attributes. A value of None asks the
            store to delete that key on set_metadata().
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    kind: str | None = None
    id: str | None = None
    name: str | None = None
    content_type: str | None = Field(default=None, alias="contentType")
    size: str | None = None
    time_created: str | None = Field(default=None, alias="timeCreated")
    updated: str | None = None
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)

    @field_validator("size", mode="before")
    @classmethod
    def size_as_decimal_string(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("time_created", "updated", mode="before")
    @classmethod
    def timestamp_as_string(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.isoformat()
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def metadata_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def download_tokens(self) -> list[str]:
        """Return the Firebase download tokens stored in custom metadata."""
        raw = self.metadata.get(DOWNLOAD_TOKENS_KEY)
        if raw is None:
            return []
        return [t.strip() for t in str(raw).split(",") if t.strip()]

    def writable_extras(self) -> dict[str, Any]:
        """Return the extra provider fields to patch, keyed by wire name.

        Both wire names (cacheControl) and attribute names (cache_control) are
        accepted. A None value clears the field.

        Raises:
            InvalidArgumentError: If an extra field cannot be changed by callers.
        """
        extras: dict[str, Any] = {}
        for name, value in (self.model_extra or {}).items():
            wire = name if name in WRITABLE_EXTRA_FIELDS else _WIRE_NAME_BY_ATTRIBUTE.get(name)
            if wire is None:
                raise InvalidArgumentError(
                    f"Field {name!r} cannot be changed with set_metadata", key=self.name
                )
            extras[wire] = value
        return extras

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire (camelCase) representation, dropping unset fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class Stat:
    """Minimal stat result: content size in bytes."""

    size: int


@dataclass(frozen=True)
class TokenUrl:
    """A freshly generated download token and the public URL embedding it."""

    token: str
    url: str


@dataclass(frozen=True)
class WriteOptions:
    """Options for opening an object for writing.

    Attributes:
        resumable: Use the provider's resumable (chunked) upload protocol.
            Off by default; writes go out as a single request on finish.
        content_type: MIME type to store with the object.
        metadata: Custom metadata to store with the object.
        chunk_size: Chunk size for resumable uploads.
        provider_options: Extra keyword arguments forwarded verbatim to the
            provider upload call (e.g. if_generation_match).
    """

    resumable: bool = False
    content_type: str | None = None
    metadata: dict[str, str] | None = None
    chunk_size: int | None = None
    provider_options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReadOptions:
    """Options for opening an object for reading.

    Attributes:
        start: First byte offset to read (inclusive).
        end: Last byte offset to read (inclusive).
        chunk_size: Provider download chunk size.
    """

    start: int | None = None
    end: int | None = None
    chunk_size: int | None = None


@dataclass(frozen=True)
class UrlOptions:
    """Options for signed URL generation."""

    content_type: str | None = None


@dataclass(frozen=True)
class SignedUrlRequest:
    """A signed URL request as handed to a storage client."""

    action: SignedUrlAction
    expires: datetime
    content_type: str | None = None
    version: SignedUrlVersion = "v4"
