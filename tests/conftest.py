"""Shared fixtures: an in-memory cluster speaking the KubectlClient contract."""
import base64
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from kubesecret_toolkit.secrets.domains import preferences
from kubesecret_toolkit.secrets.domains.config_loader import AllNamespacesPolicy, ToolkitSettings
from kubesecret_toolkit.secrets.domains.errors import (
    KubectlError,
    KubectlForbiddenError,
    KubectlNotFoundError,
)
from kubesecret_toolkit.secrets.domains.models import SecretIdentity
from kubesecret_toolkit.secrets.workflows.secret_operations import SecretOperations


class FakeCluster:
    """Stand-in for KubectlClient backed by dicts.

    Knobs:
        denied: set of (namespace, verb) permission probes answering "no"
        forbid_cluster_list: refuse list_secrets(all_namespaces=True)
        fail_annotation_keys: annotation keys whose annotate call fails
        fail_create / fail_patch / fail_delete: make those calls fail
        context_namespace: value returned by current_namespace()
    """

    def __init__(self, namespaces=("default",)):
        self.namespaces = {ns: {"kubernetes.io/metadata.name": ns} for ns in namespaces}
        self.secrets = {}
        self.denied = set()
        self.forbid_cluster_list = False
        self.fail_annotation_keys = set()
        self.fail_create = False
        self.fail_patch = False
        self.fail_delete = False
        self.context_namespace = None
        self.calls = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> str:
        self._clock += timedelta(minutes=1)
        return self._clock.strftime("%Y-%m-%dT%H:%M:%SZ")

    def _secret(self, namespace, name):
        try:
            return self.secrets[(namespace, name)]
        except KeyError:
            raise KubectlNotFoundError(
                f'secrets "{name}" not found', 1, f'Error from server (NotFound): secrets "{name}" not found'
            )

    def _view(self, secret, include_provenance=True):
        metadata = {
            "name": secret["name"],
            "namespace": secret["namespace"],
            "creationTimestamp": secret["creationTimestamp"],
        }
        if secret["annotations"]:
            metadata["annotations"] = dict(secret["annotations"])
        if include_provenance:
            metadata["managedFields"] = [dict(entry) for entry in secret["managedFields"]]
        view = {"apiVersion": "v1", "kind": "Secret", "metadata": metadata, "type": secret["type"]}
        if secret["data"] is not None:
            view["data"] = dict(secret["data"])
        return view

    def _record_change(self, secret, manager):
        secret["managedFields"] = [
            entry for entry in secret["managedFields"] if entry["manager"] != manager
        ]
        secret["managedFields"].append({"manager": manager, "operation": "Update", "time": self._tick()})

    # seeding helper, not part of the client contract
    def add_secret(self, namespace, name, data=None, annotations=None, secret_type="Opaque"):
        self.namespaces.setdefault(namespace, {"kubernetes.io/metadata.name": namespace})
        created = self._tick()
        self.secrets[(namespace, name)] = {
            "name": name,
            "namespace": namespace,
            "type": secret_type,
            "data": None if data is None else {
                key: base64.b64encode(value.encode()).decode() for key, value in data.items()
            },
            "annotations": dict(annotations or {}),
            "creationTimestamp": created,
            "managedFields": [{"manager": "kubectl-create", "operation": "Update", "time": created}],
        }

    def value_of(self, namespace, name, key) -> str:
        return base64.b64decode(self.secrets[(namespace, name)]["data"][key]).decode()

    # KubectlClient contract

    def get_namespace(self, name):
        self.calls.append(("get_namespace", name))
        if name not in self.namespaces:
            raise KubectlNotFoundError(f'namespaces "{name}" not found', 1)
        return {"metadata": {"name": name, "labels": dict(self.namespaces[name])}}

    def list_namespaces(self):
        return [self.get_namespace(name) for name in self.namespaces]

    def current_namespace(self):
        return self.context_namespace

    def get_secret(self, namespace, name, include_provenance=False):
        self.calls.append(("get_secret", namespace, name))
        return self._view(self._secret(namespace, name), include_provenance)

    def list_secrets(self, namespace=None, all_namespaces=False):
        self.calls.append(("list_secrets", namespace, all_namespaces))
        if all_namespaces:
            if self.forbid_cluster_list:
                raise KubectlForbiddenError("secrets is forbidden at the cluster scope", 1)
            keys = list(self.secrets)
        else:
            if namespace not in self.namespaces:
                raise KubectlNotFoundError(f'namespaces "{namespace}" not found', 1)
            keys = [key for key in self.secrets if key[0] == namespace]
        return [SecretIdentity(namespace=ns, name=name) for ns, name in keys]

    def create_secret(self, namespace, name, data, secret_type="Opaque"):
        self.calls.append(("create_secret", namespace, name))
        if self.fail_create:
            raise KubectlError("create failed", 1)
        if (namespace, name) in self.secrets:
            raise KubectlError(f'secrets "{name}" already exists', 1)
        created = self._tick()
        self.secrets[(namespace, name)] = {
            "name": name,
            "namespace": namespace,
            "type": secret_type,
            "data": {key: value.encoded() for key, value in data.items()},
            "annotations": {},
            "creationTimestamp": created,
            "managedFields": [{"manager": "kubectl-create", "operation": "Update", "time": created}],
        }
        return self._view(self.secrets[(namespace, name)])

    def delete_secret(self, namespace, name):
        self.calls.append(("delete_secret", namespace, name))
        if self.fail_delete:
            raise KubectlError("delete failed", 1)
        self.secrets.pop((namespace, name), None)

    def patch_secret_field(self, namespace, name, field_path, new_value, op="replace"):
        self.calls.append(("patch_secret_field", namespace, name, field_path, op))
        if self.fail_patch:
            raise KubectlError("patch failed", 1)
        secret = self._secret(namespace, name)
        if field_path == "/data":
            secret["data"] = dict(new_value)
        else:
            key = field_path[len("/data/"):].replace("~1", "/").replace("~0", "~")
            if op == "replace" and key not in (secret["data"] or {}):
                raise KubectlError("the server rejected our request: replace of missing path", 1)
            secret["data"][key] = new_value
        self._record_change(secret, "kubectl-patch")
        return self._view(secret)

    def annotate_secret(self, namespace, name, key, value, overwrite=True):
        self.calls.append(("annotate_secret", namespace, name, key))
        if key in self.fail_annotation_keys:
            raise KubectlError(f"annotate {key} failed", 1)
        secret = self._secret(namespace, name)
        if key in secret["annotations"] and not overwrite:
            raise KubectlError(f"'{key}' already has a value", 1)
        secret["annotations"][key] = value
        self._record_change(secret, "kubectl-annotate")
        return dict(secret["annotations"])

    def check_permission(self, namespace, verb, resource="secrets"):
        self.calls.append(("check_permission", namespace, verb))
        return (namespace, verb) not in self.denied

    def mutating_calls(self):
        mutating = {"create_secret", "delete_secret", "patch_secret_field", "annotate_secret"}
        return [call for call in self.calls if call[0] in mutating]


@pytest.fixture
def cluster():
    return FakeCluster(namespaces=("default", "apps"))


@pytest.fixture
def settings():
    return ToolkitSettings(namespace="default", settle_seconds=0, all_namespaces=AllNamespacesPolicy())


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def operations(cluster, settings, sleeps):
    return SecretOperations(cluster, settings, sleep=sleeps.append)


@pytest.fixture
def temp_home(tmp_path, monkeypatch):
    """Point HOME and the preferences module at a temporary directory."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setattr(Path, "home", lambda: fake_home)
    for var in ("KUBESECRETS_NAMESPACE", "KUBESECRETS_CONTEXT", "KUBECONFIG"):
        monkeypatch.delenv(var, raising=False)

    fake_config_dir = fake_home / ".config" / "kubesecret-toolkit"
    monkeypatch.setattr(preferences, "PREFERENCES_DIR", fake_config_dir)
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", fake_config_dir / "preferences.json")
    return fake_home
