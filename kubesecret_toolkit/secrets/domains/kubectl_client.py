"""kubectl command-line wrapper.

Every cluster interaction goes through ``KubectlClient``. Each method is one
blocking kubectl invocation whose JSON output is decoded into plain dicts;
callers in ``workflows`` turn those into domain models.
"""
import json
import logging
import os
import subprocess
import tempfile
import threading
from typing import Any, Dict, List, Optional, Sequence

from .config_loader import ToolkitSettings
from .errors import (
    KubectlError,
    KubectlForbiddenError,
    KubectlNotFoundError,
    KubectlTimeoutError,
    OperationCancelledError,
    SecretParseError,
)
from .models import OPAQUE_TYPE, SecretIdentity, SecretValue

logger = logging.getLogger(__name__)


def escape_pointer(segment: str) -> str:
    """Escape one JSON-pointer path segment (RFC 6901)."""
    return segment.replace("~", "~0").replace("/", "~1")


class KubectlClient:
    """Thin wrapper around the kubectl binary."""

    def __init__(self, settings: ToolkitSettings, cancel_event: Optional[threading.Event] = None):
        self.settings = settings
        self.cancel_event = cancel_event

    def _base_command(self) -> List[str]:
        command = [self.settings.kubectl_binary]
        if self.settings.kubeconfig:
            command.append(f"--kubeconfig={self.settings.kubeconfig}")
        if self.settings.context:
            command.append(f"--context={self.settings.context}")
        return command

    def _execute(self, args: Sequence[str], stdin: Optional[str] = None) -> subprocess.CompletedProcess:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelledError("Operation cancelled before kubectl call")

        command = self._base_command() + list(args)
        logger.debug(f"Running: {' '.join(command)}")
        try:
            return subprocess.run(
                command,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.settings.timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            raise KubectlTimeoutError(
                f"kubectl {args[0]} timed out after {self.settings.timeout_seconds}s"
            )
        except FileNotFoundError:
            raise KubectlError(f"kubectl binary not found: {self.settings.kubectl_binary}")

    def _run(self, args: Sequence[str], stdin: Optional[str] = None) -> str:
        result = self._execute(args, stdin=stdin)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            message = f"kubectl {' '.join(args[:2])} failed: {stderr or f'exit code {result.returncode}'}"
            lowered = stderr.lower()
            if "notfound" in lowered or "not found" in lowered:
                raise KubectlNotFoundError(message, result.returncode, stderr)
            if "forbidden" in lowered:
                raise KubectlForbiddenError(message, result.returncode, stderr)
            raise KubectlError(message, result.returncode, stderr)
        return result.stdout

    def _run_json(self, args: Sequence[str], stdin: Optional[str] = None) -> Dict[str, Any]:
        output = self._run(list(args) + ["-o", "json"], stdin=stdin)
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise SecretParseError(f"Unparsable output from kubectl {args[0]}: {e}")
        if not isinstance(data, dict):
            raise SecretParseError(f"Unexpected output from kubectl {args[0]}: expected an object")
        return data

    # Namespaces

    def get_namespace(self, name: str) -> Dict[str, Any]:
        return self._run_json(["get", "namespace", name])

    def list_namespaces(self) -> List[Dict[str, Any]]:
        return self._run_json(["get", "namespaces"]).get("items") or []

    def current_namespace(self) -> Optional[str]:
        """Namespace of the active kubeconfig context, if one is set."""
        output = self._run(["config", "view", "--minify", "-o", "jsonpath={..namespace}"])
        return output.strip() or None

    # Secrets

    def get_secret(self, namespace: str, name: str, include_provenance: bool = False) -> Dict[str, Any]:
        args = ["get", "secret", name, "--namespace", namespace]
        if include_provenance:
            args.append("--show-managed-fields")
        return self._run_json(args)

    def list_secrets(self, namespace: Optional[str] = None, all_namespaces: bool = False) -> List[SecretIdentity]:
        args = ["get", "secrets"]
        if all_namespaces:
            args.append("--all-namespaces")
        elif namespace:
            args.extend(["--namespace", namespace])
        else:
            raise ValueError("list_secrets needs a namespace or all_namespaces=True")

        identities = []
        for item in self._run_json(args).get("items") or []:
            metadata = item.get("metadata") or {}
            if "name" not in metadata:
                raise SecretParseError("Secret listing entry without metadata.name")
            identities.append(SecretIdentity(
                namespace=metadata.get("namespace") or namespace or "",
                name=metadata["name"],
            ))
        return identities

    def create_secret(
        self,
        namespace: str,
        name: str,
        data: Dict[str, SecretValue],
        secret_type: str = OPAQUE_TYPE,
    ) -> Dict[str, Any]:
        """Create a secret from a manifest piped on stdin, keeping values off argv."""
        manifest = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": name, "namespace": namespace},
            "type": secret_type,
            "data": {key: value.encoded() for key, value in data.items()},
        }
        return self._run_json(["create", "--filename", "-"], stdin=json.dumps(manifest))

    def delete_secret(self, namespace: str, name: str) -> None:
        self._run(["delete", "secret", name, "--namespace", namespace, "--ignore-not-found"])

    def patch_secret_field(
        self,
        namespace: str,
        name: str,
        field_path: str,
        new_value: Any,
        op: str = "replace",
    ) -> Dict[str, Any]:
        """
        Apply a single-operation JSON patch to a secret.

        The patch document is written to a private temporary file and passed
        with --patch-file so encoded values never appear in the process list.
        """
        patch = [{"op": op, "path": field_path, "value": new_value}]
        fd, patch_path = tempfile.mkstemp(prefix="kubesecrets-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(patch, f)
            return self._run_json([
                "patch", "secret", name,
                "--namespace", namespace,
                "--type", "json",
                "--patch-file", patch_path,
            ])
        finally:
            os.unlink(patch_path)

    def annotate_secret(
        self,
        namespace: str,
        name: str,
        key: str,
        value: str,
        overwrite: bool = True,
    ) -> Dict[str, str]:
        """Set one annotation and return the annotations kubectl reports back."""
        args = ["annotate", "secret", name, f"{key}={value}", "--namespace", namespace]
        if overwrite:
            args.append("--overwrite")
        secret = self._run_json(args)
        return dict((secret.get("metadata") or {}).get("annotations") or {})

    # Authorization

    def check_permission(self, namespace: str, verb: str, resource: str = "secrets") -> bool:
        """Ask ``kubectl auth can-i``; exit status 1 with "no" means denied."""
        result = self._execute(["auth", "can-i", verb, resource, "--namespace", namespace])
        answer = (result.stdout or "").strip().lower()
        if answer.startswith("yes"):
            return True
        if answer.startswith("no"):
            return False
        stderr = (result.stderr or "").strip()
        raise KubectlError(
            f"kubectl auth can-i {verb} {resource} failed: {stderr or f'exit code {result.returncode}'}",
            result.returncode,
            stderr,
        )
