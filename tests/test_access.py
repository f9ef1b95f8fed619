"""Tests for AccessChecker."""
import pytest

from kubesecret_toolkit.secrets.domains.access import AccessChecker
from kubesecret_toolkit.secrets.domains.errors import (
    KubectlError,
    OperationCancelledError,
    SecretAccessError,
    SecretArgumentError,
)


@pytest.fixture
def access(cluster):
    return AccessChecker(cluster)


class TestNamespaceAccessible:

    def test_existing_namespace(self, access):
        assert access.namespace_accessible("apps") is True

    def test_missing_namespace_returns_false(self, access):
        """A missing namespace is a normal outcome, never an exception."""
        assert access.namespace_accessible("missing-ns") is False

    def test_label_mismatch_returns_false(self, access, cluster):
        cluster.namespaces["apps"] = {"kubernetes.io/metadata.name": "other"}
        assert access.namespace_accessible("apps") is False

    def test_falls_back_to_metadata_name_without_label(self, access, cluster):
        cluster.namespaces["apps"] = {}
        assert access.namespace_accessible("apps") is True

    def test_remote_error_returns_false(self, access, cluster, monkeypatch):
        def boom(name):
            raise KubectlError("connection refused", 1)
        monkeypatch.setattr(cluster, "get_namespace", boom)
        assert access.namespace_accessible("apps") is False

    def test_cancellation_propagates(self, access, cluster, monkeypatch):
        def cancelled(name):
            raise OperationCancelledError("cancelled")
        monkeypatch.setattr(cluster, "get_namespace", cancelled)
        with pytest.raises(OperationCancelledError):
            access.namespace_accessible("apps")


class TestSecretVisible:

    def test_visible_secret(self, access, cluster):
        cluster.add_secret("apps", "my-secret", {"k": "v"})
        assert access.secret_visible("apps", "my-secret") is True

    def test_absent_secret(self, access):
        assert access.secret_visible("apps", "my-secret") is False

    @pytest.mark.parametrize("verb", ["get", "list"])
    def test_missing_read_permission(self, access, cluster, verb):
        cluster.add_secret("apps", "my-secret", {"k": "v"})
        cluster.denied.add(("apps", verb))
        assert access.secret_visible("apps", "my-secret") is False

    def test_missing_namespace(self, access):
        assert access.secret_visible("missing-ns", "my-secret") is False

    def test_listing_error_returns_false(self, access, cluster, monkeypatch):
        cluster.add_secret("apps", "my-secret", {"k": "v"})

        def boom(namespace=None, all_namespaces=False):
            raise KubectlError("timeout", 1)
        monkeypatch.setattr(cluster, "list_secrets", boom)
        assert access.secret_visible("apps", "my-secret") is False


class TestCanMutate:

    @pytest.mark.parametrize("verb", ["create", "delete", "update"])
    def test_allowed_verbs(self, access, verb):
        assert access.can_mutate("apps", verb) is True

    def test_denied_verb(self, access, cluster):
        cluster.denied.add(("apps", "delete"))
        assert access.can_mutate("apps", "delete") is False

    def test_unknown_verb_rejected(self, access):
        with pytest.raises(SecretArgumentError):
            access.can_mutate("apps", "patch")

    def test_probe_failure_is_denial(self, access, cluster, monkeypatch):
        def boom(namespace, verb, resource="secrets"):
            raise KubectlError("unauthorized", 1)
        monkeypatch.setattr(cluster, "check_permission", boom)
        assert access.can_mutate("apps", "create") is False

    def test_require_raises_access_error(self, access, cluster):
        cluster.denied.add(("apps", "update"))
        with pytest.raises(SecretAccessError) as exc_info:
            access.require("apps", "update")
        assert "update" in str(exc_info.value)
