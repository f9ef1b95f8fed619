"""Workflow for reading secret metadata."""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..domains.config_loader import AllNamespacesPolicy
from ..domains.errors import (
    REMOTE_ERRORS,
    SecretAccessError,
    SecretArgumentError,
    SecretNotFoundError,
)
from ..domains.models import (
    OPAQUE_TYPE,
    ProvenanceKind,
    ProvenanceRecord,
    SecretIdentity,
    SecretRecord,
    SecretValue,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


def build_record(secret: Dict[str, Any]) -> SecretRecord:
    """
    Normalize a secret object (as returned by kubectl) into a SecretRecord.

    ``created_on`` is the object's own creationTimestamp. ``updated_on`` is
    the most recent UPDATE provenance time later than creation, or None
    for a never-updated secret. Creators that record an Update or Apply
    entry at creation time (helm, kubectl apply, controllers) do not count.

    Raises:
        SecretParseError: If a timestamp cannot be parsed
        KeyError: If metadata.name is missing
    """
    metadata = secret.get("metadata") or {}
    created_on = parse_timestamp(metadata.get("creationTimestamp"))
    provenance = [
        ProvenanceRecord.from_managed_field(entry)
        for entry in metadata.get("managedFields") or []
    ]
    update_times = [
        record.time for record in provenance
        if record.kind is ProvenanceKind.UPDATE and record.time is not None
        and (created_on is None or record.time > created_on)
    ]

    return SecretRecord(
        name=metadata["name"],
        namespace=metadata.get("namespace", ""),
        type=secret.get("type") or OPAQUE_TYPE,
        data_keys=tuple(sorted((secret.get("data") or {}).keys())),
        created_on=created_on,
        updated_on=max(update_times) if update_times else None,
        annotations=dict(metadata.get("annotations") or {}),
    )


class SecretReader:
    """Fetches secrets and turns them into SecretRecords."""

    def __init__(
        self,
        client,
        default_namespace: Callable[[], str],
        policy: Optional[AllNamespacesPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.default_namespace = default_namespace
        self.policy = policy or AllNamespacesPolicy()
        self.sleep = sleep

    def _fetch(self, namespace: str, name: str, include_provenance: bool = False) -> Dict[str, Any]:
        try:
            return self.client.get_secret(namespace, name, include_provenance=include_provenance)
        except REMOTE_ERRORS as e:
            raise SecretNotFoundError(f"Secret '{name}' not found in namespace '{namespace}': {e}")

    def read_metadata(self, namespace: str, name: str) -> SecretRecord:
        secret = self._fetch(namespace, name, include_provenance=True)
        try:
            record = build_record(secret)
        except (KeyError, SecretArgumentError) as e:
            raise SecretNotFoundError(f"Secret '{namespace}/{name}' could not be parsed: {e}")
        logger.debug(f"Read metadata for secret '{namespace}/{name}' ({record.data_count} keys)")
        return record

    def read_data_keys(self, namespace: str, name: str) -> Tuple[str, ...]:
        secret = self._fetch(namespace, name)
        return tuple(sorted((secret.get("data") or {}).keys()))

    def read_value(self, namespace: str, name: str, key: str) -> SecretValue:
        data = self._fetch(namespace, name).get("data") or {}
        if key not in data:
            raise SecretArgumentError(
                f"Key '{key}' not present in secret '{namespace}/{name}'. "
                f"Available keys: {', '.join(sorted(data)) or '(none)'}"
            )
        return SecretValue.from_encoded(data[key])

    def list_secret_names(self, namespace: str) -> List[str]:
        try:
            identities = self.client.list_secrets(namespace=namespace)
        except REMOTE_ERRORS as e:
            raise SecretNotFoundError(f"Cannot list secrets in namespace '{namespace}': {e}")
        return [identity.name for identity in identities]

    def read_namespace_metadata(self, namespace: str) -> List[SecretRecord]:
        return [self.read_metadata(namespace, name) for name in self.list_secret_names(namespace)]

    def _list_cluster_wide(self) -> Optional[List[SecretIdentity]]:
        attempts = 1 + max(self.policy.retries, 0)
        for attempt in range(1, attempts + 1):
            try:
                return self.client.list_secrets(all_namespaces=True)
            except REMOTE_ERRORS as e:
                logger.warning(f"Cluster-wide secret listing failed (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    self.sleep(self.policy.backoff_seconds * (2 ** (attempt - 1)))
        return None

    def read_all_metadata(self) -> List[SecretRecord]:
        """
        Read metadata for every secret the caller can list.

        Falls back to the default namespace, once, when the cluster-wide
        listing is refused. Reads run sequentially in listing order and the
        first failing read aborts the whole listing.
        """
        identities = self._list_cluster_wide()
        if identities is None:
            if not self.policy.fallback_to_default:
                raise SecretAccessError("Cannot list secrets across all namespaces")
            namespace = self.default_namespace()
            logger.warning(f"Falling back to secrets in default namespace '{namespace}'")
            return self.read_namespace_metadata(namespace)

        return [self.read_metadata(identity.namespace, identity.name) for identity in identities]
