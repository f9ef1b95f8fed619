"""Exception hierarchy for secret operations."""
from typing import Optional


class KubeSecretError(Exception):
    """Base class for every error raised by kubesecret-toolkit."""
    pass


class SecretAccessError(KubeSecretError):
    """Namespace is inaccessible or the caller lacks a required verb."""
    pass


class SecretNotFoundError(KubeSecretError):
    """Target namespace or secret does not exist or is not visible."""
    pass


class SecretArgumentError(KubeSecretError):
    """Invalid input, missing key, or a rejected mutation."""
    pass


class SecretParseError(SecretArgumentError):
    """kubectl output could not be decoded."""
    pass


class OperationCancelledError(KubeSecretError):
    """The cancellation token was set before a remote call."""
    pass


class KubectlError(KubeSecretError):
    """A kubectl invocation exited with a non-zero status."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class KubectlNotFoundError(KubectlError):
    """kubectl reported that the requested object does not exist."""
    pass


class KubectlForbiddenError(KubectlError):
    """kubectl reported that the request was forbidden."""
    pass


class KubectlTimeoutError(KubectlError):
    """kubectl did not finish within the configured timeout."""
    pass


# Failures of a remote call itself, as opposed to cancellation or bad input
REMOTE_ERRORS = (KubectlError, SecretParseError)
