"""Domain models for secret management."""
import base64
import enum
import re
import types
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import SecretArgumentError, SecretParseError

# Kubernetes secret data keys: alphanumerics, '-', '_' and '.'
KEY_PATTERN = re.compile(r'^[-._a-zA-Z0-9]+$')
MAX_KEY_LENGTH = 253

# Ceiling enforced client-side; clusters reject far smaller payloads (~1 MiB)
MAX_VALUE_BYTES = 1024 ** 3

OPAQUE_TYPE = "Opaque"

MASK = "********"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as emitted by the API server."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise SecretParseError(f"Invalid timestamp '{value}': {e}")


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class ProvenanceKind(enum.Enum):
    """Kind of change recorded in a managed-fields entry."""
    CREATE = "create"
    UPDATE = "update"
    OTHER = "other"


@dataclass(frozen=True)
class ProvenanceRecord:
    """One decoded ``metadata.managedFields`` entry."""
    kind: ProvenanceKind
    manager: str
    time: Optional[datetime]

    @classmethod
    def from_managed_field(cls, entry: Dict[str, Any]) -> "ProvenanceRecord":
        manager = entry.get("manager") or ""
        operation = entry.get("operation") or ""

        if "create" in manager.lower():
            kind = ProvenanceKind.CREATE
        elif operation in ("Update", "Apply"):
            kind = ProvenanceKind.UPDATE
        else:
            kind = ProvenanceKind.OTHER

        return cls(kind=kind, manager=manager, time=parse_timestamp(entry.get("time")))


class SecretValue:
    """Secret payload that refuses to print itself."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._data = bytes(data)

    def reveal(self) -> bytes:
        return self._data

    def encoded(self) -> str:
        """Base64 text as stored under a secret's ``data`` map."""
        return base64.b64encode(self._data).decode("ascii")

    @classmethod
    def from_encoded(cls, encoded: str) -> "SecretValue":
        try:
            return cls(base64.b64decode(encoded, validate=True))
        except (ValueError, TypeError) as e:
            raise SecretParseError(f"Secret data is not valid base64: {e}")

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretValue):
            return NotImplemented
        return self._data == other._data

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        return f"SecretValue('{MASK}')"

    def __str__(self) -> str:
        return MASK


@dataclass(frozen=True)
class SecretKeyValue:
    """A single data key and the value to store under it."""
    key: str
    value: SecretValue

    def __post_init__(self):
        if not self.key or len(self.key) > MAX_KEY_LENGTH:
            raise SecretArgumentError(
                f"Secret key must be 1-{MAX_KEY_LENGTH} characters, got {len(self.key or '')}"
            )
        if not KEY_PATTERN.match(self.key):
            raise SecretArgumentError(
                f"Invalid secret key '{self.key}': allowed characters are letters, digits, '-', '_' and '.'"
            )
        if not isinstance(self.value, SecretValue):
            object.__setattr__(self, "value", SecretValue(self.value))
        if len(self.value) > MAX_VALUE_BYTES:
            raise SecretArgumentError(
                f"Secret value for '{self.key}' exceeds {MAX_VALUE_BYTES} bytes"
            )


@dataclass(frozen=True)
class SecretIdentity:
    """A secret as it appears in a listing."""
    namespace: str
    name: str


@dataclass(frozen=True)
class SecretRecord:
    """Metadata view of a secret; never carries values."""
    name: str
    namespace: str
    type: str
    data_keys: Tuple[str, ...]
    created_on: Optional[datetime]
    updated_on: Optional[datetime] = None
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "annotations", types.MappingProxyType(dict(self.annotations)))

    @property
    def data_count(self) -> int:
        return len(self.data_keys)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "namespace": self.namespace,
            "type": self.type,
            "data_count": self.data_count,
            "data_keys": list(self.data_keys),
            "created_on": _format_timestamp(self.created_on),
            "updated_on": _format_timestamp(self.updated_on),
            "annotations": dict(self.annotations),
        }

    def to_text(self) -> str:
        lines = [
            f"Name:        {self.name}",
            f"Namespace:   {self.namespace}",
            f"Type:        {self.type}",
            f"Data count:  {self.data_count}",
            f"Data keys:   {', '.join(self.data_keys) or '(none)'}",
            f"Created on:  {_format_timestamp(self.created_on) or '-'}",
            f"Updated on:  {_format_timestamp(self.updated_on) or '-'}",
        ]
        if self.annotations:
            lines.append("Annotations:")
            for key, value in sorted(self.annotations.items()):
                lines.append(f"  {key}={value}")
        else:
            lines.append("Annotations: (none)")
        return "\n".join(lines)
