"""Permission and visibility checks run before reading or mutating secrets."""
import logging

from .errors import REMOTE_ERRORS, SecretAccessError, SecretArgumentError

logger = logging.getLogger(__name__)

NAME_LABEL = "kubernetes.io/metadata.name"
MUTATING_VERBS = ("create", "delete", "update")


class AccessChecker:
    """Answers "may I?" and "does it exist?" questions against the cluster.

    Checks return booleans and never raise for absence or remote failure:
    a probe that cannot be answered counts as denied.
    """

    def __init__(self, client):
        self.client = client

    def namespace_accessible(self, namespace: str) -> bool:
        try:
            metadata = self.client.get_namespace(namespace).get("metadata") or {}
        except REMOTE_ERRORS as e:
            logger.debug(f"Namespace '{namespace}' not accessible: {e}")
            return False

        labels = metadata.get("labels") or {}
        canonical = labels.get(NAME_LABEL, metadata.get("name"))
        return canonical == namespace

    def secret_visible(self, namespace: str, name: str) -> bool:
        try:
            if not self.client.check_permission(namespace, "get"):
                logger.debug(f"No 'get' permission on secrets in '{namespace}'")
                return False
            if not self.client.check_permission(namespace, "list"):
                logger.debug(f"No 'list' permission on secrets in '{namespace}'")
                return False
            if not self.namespace_accessible(namespace):
                return False
            names = [identity.name for identity in self.client.list_secrets(namespace=namespace)]
        except REMOTE_ERRORS as e:
            logger.debug(f"Visibility check for secret '{namespace}/{name}' failed: {e}")
            return False
        return name in names

    def can_mutate(self, namespace: str, verb: str) -> bool:
        if verb not in MUTATING_VERBS:
            raise SecretArgumentError(
                f"Unsupported verb '{verb}', expected one of: {', '.join(MUTATING_VERBS)}"
            )
        try:
            return self.client.check_permission(namespace, verb)
        except REMOTE_ERRORS as e:
            logger.warning(f"Permission probe '{verb}' in '{namespace}' failed: {e}")
            return False

    def require(self, namespace: str, verb: str) -> None:
        """Raise SecretAccessError unless ``verb`` is allowed on secrets in ``namespace``."""
        if not self.can_mutate(namespace, verb):
            raise SecretAccessError(
                f"Not allowed to {verb} secrets in namespace '{namespace}'"
            )
