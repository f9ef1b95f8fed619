"""Command-level secret operations composed from the access, read and write workflows."""
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Union

from ..domains.access import AccessChecker
from ..domains.config_loader import ToolkitSettings, load_settings
from ..domains.errors import REMOTE_ERRORS, SecretAccessError
from ..domains.kubectl_client import KubectlClient
from ..domains.models import SecretKeyValue, SecretRecord, SecretValue
from .annotation_setter import AnnotationSetter
from .secret_mutator import SecretMutator
from .secret_reader import SecretReader

logger = logging.getLogger(__name__)

FALLBACK_NAMESPACE = "default"


class SecretOperations:
    """Entry point used by the CLI; one instance per command invocation."""

    def __init__(self, client, settings: ToolkitSettings, sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.settings = settings
        self._default_namespace: Optional[str] = None

        self.access = AccessChecker(client)
        self.reader = SecretReader(
            client,
            default_namespace=lambda: self.default_namespace,
            policy=settings.all_namespaces,
            sleep=sleep,
        )
        self.annotations = AnnotationSetter(client, self.access)
        self.mutator = SecretMutator(
            client,
            self.access,
            self.reader,
            self.annotations,
            settle_seconds=settings.settle_seconds,
            sleep=sleep,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[ToolkitSettings] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "SecretOperations":
        if settings is None:
            settings = load_settings()
        return cls(KubectlClient(settings, cancel_event=cancel_event), settings)

    @property
    def default_namespace(self) -> str:
        """Configured namespace, else the kubeconfig context's, else ``default``."""
        if self._default_namespace is None:
            namespace = self.settings.namespace
            if not namespace:
                try:
                    namespace = self.client.current_namespace()
                except REMOTE_ERRORS as e:
                    logger.warning(f"Could not read namespace from kubeconfig context: {e}")
            self._default_namespace = namespace or FALLBACK_NAMESPACE
        return self._default_namespace

    def _resolve(self, namespace: Optional[str]) -> str:
        return namespace or self.default_namespace

    def _require_namespace(self, namespace: str) -> None:
        if not self.access.namespace_accessible(namespace):
            raise SecretAccessError(f"Namespace '{namespace}' is not accessible")

    def get_metadata(
        self,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        all_namespaces: bool = False,
    ) -> Union[SecretRecord, List[SecretRecord]]:
        """
        Read metadata for one secret, a whole namespace, or every namespace.

        Returns:
            A SecretRecord when ``name`` is given, otherwise a list
        """
        if all_namespaces:
            return self.reader.read_all_metadata()

        namespace = self._resolve(namespace)
        self._require_namespace(namespace)
        if name:
            return self.reader.read_metadata(namespace, name)
        return self.reader.read_namespace_metadata(namespace)

    def get_value(self, name: str, key: str, namespace: Optional[str] = None) -> SecretValue:
        namespace = self._resolve(namespace)
        self._require_namespace(namespace)
        return self.reader.read_value(namespace, name, key)

    def create_secret(
        self,
        name: str,
        key_value: SecretKeyValue,
        namespace: Optional[str] = None,
        annotations: Optional[Dict[str, str]] = None,
    ) -> SecretRecord:
        namespace = self._resolve(namespace)
        self._require_namespace(namespace)
        return self.mutator.create_ephemeral(namespace, name, key_value, annotations=annotations)

    def set_value(
        self,
        name: str,
        key_value: SecretKeyValue,
        namespace: Optional[str] = None,
        add: bool = False,
    ) -> SecretRecord:
        namespace = self._resolve(namespace)
        self._require_namespace(namespace)
        return self.mutator.set_value(namespace, name, key_value, add=add)

    def set_annotations(
        self,
        name: str,
        annotations: Dict[str, str],
        namespace: Optional[str] = None,
    ) -> SecretRecord:
        namespace = self._resolve(namespace)
        self._require_namespace(namespace)
        self.annotations.apply(namespace, name, annotations)
        return self.reader.read_metadata(namespace, name)
