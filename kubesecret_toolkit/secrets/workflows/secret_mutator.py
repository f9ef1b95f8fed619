"""Workflow for creating and patching secrets.

Neither operation is atomic. ``create_ephemeral`` deletes before it creates,
so a failed create leaves no secret behind; ``set_value`` checks keys and then
patches, so a concurrent writer can slip in between. There is no
resourceVersion precondition on any call.
"""
import logging
import time
from typing import Callable, Dict, Optional

from ..domains.access import AccessChecker
from ..domains.errors import (
    REMOTE_ERRORS,
    SecretArgumentError,
    SecretNotFoundError,
)
from ..domains.kubectl_client import escape_pointer
from ..domains.models import OPAQUE_TYPE, SecretKeyValue, SecretRecord
from .annotation_setter import AnnotationSetter
from .secret_reader import SecretReader

logger = logging.getLogger(__name__)


class SecretMutator:
    """Ephemeral create and single-key update against existing secrets."""

    def __init__(
        self,
        client,
        access: AccessChecker,
        reader: SecretReader,
        annotations: AnnotationSetter,
        settle_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.access = access
        self.reader = reader
        self.annotations = annotations
        self.settle_seconds = settle_seconds
        self.sleep = sleep

    def create_ephemeral(
        self,
        namespace: str,
        name: str,
        key_value: SecretKeyValue,
        annotations: Optional[Dict[str, str]] = None,
    ) -> SecretRecord:
        """
        Replace any secret called ``name`` with one holding exactly ``key_value``.

        Returns:
            A fresh read of the created secret

        Raises:
            SecretAccessError: If create or delete permission is missing
            SecretArgumentError: If kubectl rejects the create, or an
                annotation cannot be verified
        """
        self.access.require(namespace, "create")
        self.access.require(namespace, "delete")

        if self.access.secret_visible(namespace, name):
            logger.info(f"Deleting existing secret '{namespace}/{name}'")
            try:
                self.client.delete_secret(namespace, name)
            except REMOTE_ERRORS as e:
                # Treated as already absent; the create below decides
                logger.warning(f"Delete of secret '{namespace}/{name}' failed: {e}")

        try:
            self.client.create_secret(
                namespace, name, {key_value.key: key_value.value}, secret_type=OPAQUE_TYPE
            )
        except REMOTE_ERRORS as e:
            raise SecretArgumentError(f"Failed to create secret '{namespace}/{name}': {e}")
        logger.info(f"Created secret '{namespace}/{name}' with key '{key_value.key}'")

        if annotations:
            if self.settle_seconds > 0:
                self.sleep(self.settle_seconds)
            self.annotations.apply(namespace, name, annotations)

        return self.reader.read_metadata(namespace, name)

    def set_value(
        self,
        namespace: str,
        name: str,
        key_value: SecretKeyValue,
        add: bool = False,
    ) -> SecretRecord:
        """
        Patch one data key of an existing secret.

        Args:
            add: Allow ``key_value.key`` to be a key the secret does not have yet

        Returns:
            A fresh read of the patched secret

        Raises:
            SecretAccessError: If update permission is missing
            SecretNotFoundError: If the secret is not visible
            SecretArgumentError: If the key is new and ``add`` is False, or
                kubectl rejects the patch
        """
        self.access.require(namespace, "update")
        if not self.access.secret_visible(namespace, name):
            raise SecretNotFoundError(f"Secret '{name}' not found in namespace '{namespace}'")

        existing_keys = self.reader.read_data_keys(namespace, name)
        key = key_value.key
        if key not in existing_keys and not add:
            raise SecretArgumentError(
                f"Key '{key}' does not exist in secret '{namespace}/{name}'. "
                f"Use --add to add a new key."
            )

        encoded = key_value.value.encoded()
        if not existing_keys:
            # No data map yet, so /data/<key> has no parent to patch into
            path, value, op = "/data", {key: encoded}, "add"
        elif key in existing_keys:
            path, value, op = f"/data/{escape_pointer(key)}", encoded, "replace"
        else:
            path, value, op = f"/data/{escape_pointer(key)}", encoded, "add"

        try:
            self.client.patch_secret_field(namespace, name, path, value, op=op)
        except REMOTE_ERRORS as e:
            raise SecretArgumentError(f"Failed to patch key '{key}' of secret '{namespace}/{name}': {e}")
        logger.info(f"Set key '{key}' on secret '{namespace}/{name}' ({op})")

        return self.reader.read_metadata(namespace, name)
