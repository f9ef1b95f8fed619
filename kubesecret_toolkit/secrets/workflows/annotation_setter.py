"""Workflow for applying and verifying secret annotations."""
import logging
from typing import Dict, List

from ..domains.access import AccessChecker
from ..domains.errors import REMOTE_ERRORS, SecretArgumentError, SecretNotFoundError

logger = logging.getLogger(__name__)


class AnnotationSetter:
    """Applies annotations one key at a time, then verifies them together.

    Keys that were applied before a failure stay applied: a failed result
    means "re-verify and re-apply", not "nothing changed".
    """

    def __init__(self, client, access: AccessChecker):
        self.client = client
        self.access = access

    def apply(self, namespace: str, name: str, annotations: Dict[str, str]) -> Dict[str, str]:
        """
        Overwrite each annotation on the secret and check the combined result.

        Returns:
            The merged annotation mapping reported by kubectl

        Raises:
            SecretArgumentError: If no annotations were given, or any
                requested key is missing or differs afterwards
            SecretNotFoundError: If the secret is not visible
            SecretAccessError: If update permission is missing
        """
        if not annotations:
            raise SecretArgumentError("At least one annotation is required")
        if not self.access.secret_visible(namespace, name):
            raise SecretNotFoundError(f"Secret '{name}' not found in namespace '{namespace}'")
        self.access.require(namespace, "update")

        merged: Dict[str, str] = {}
        for key, value in annotations.items():
            try:
                view = self.client.annotate_secret(namespace, name, key, value, overwrite=True)
            except REMOTE_ERRORS as e:
                logger.error(f"Failed to set annotation '{key}' on secret '{namespace}/{name}': {e}")
                continue
            merged.update(view)

        mismatched: List[str] = [
            key for key, value in annotations.items()
            if merged.get(key) != value
        ]
        if mismatched:
            raise SecretArgumentError(
                f"Annotations not applied to secret '{namespace}/{name}': {', '.join(mismatched)}"
            )

        logger.info(f"Applied {len(annotations)} annotation(s) to secret '{namespace}/{name}'")
        return merged
