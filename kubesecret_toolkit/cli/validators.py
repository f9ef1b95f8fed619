"""Input validation for CLI arguments."""
import re
import sys
from typing import Dict, List, Optional

from kubesecret_toolkit.secrets.domains.models import KEY_PATTERN, MAX_KEY_LENGTH

# DNS-1123 subdomain (secret names) and label (namespaces)
SUBDOMAIN_PATTERN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')
LABEL_PATTERN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$')


def _fail(message: str, hint: Optional[str] = None) -> None:
    print(f"Error: {message}", file=sys.stderr)
    if hint:
        print(f"\n{hint}", file=sys.stderr)
    sys.exit(2)


def validate_secret_name(name: str) -> None:
    """
    Validate a secret name against Kubernetes object naming rules.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        _fail("Secret name cannot be empty")
    if len(name) > 253 or not SUBDOMAIN_PATTERN.match(name):
        _fail(
            f"Invalid secret name '{name}'",
            "Secret names must be at most 253 characters of lowercase letters,\n"
            "digits, '-' and '.', starting and ending with a letter or digit.\n"
            "  ✓ my-secret\n"
            "  ✓ db.credentials\n"
            "  ✗ My_Secret (uppercase, underscore)",
        )


def validate_namespace(namespace: Optional[str]) -> None:
    """Validate a namespace name; None means "use the default" and passes."""
    if namespace is None:
        return
    if len(namespace) > 63 or not LABEL_PATTERN.match(namespace):
        _fail(
            f"Invalid namespace '{namespace}'",
            "Namespaces must be at most 63 characters of lowercase letters,\n"
            "digits and '-', starting and ending with a letter or digit.",
        )


def validate_key_name(key: str) -> None:
    """Validate a secret data key."""
    if not key or len(key) > MAX_KEY_LENGTH or not KEY_PATTERN.match(key):
        _fail(
            f"Invalid secret key '{key}'",
            f"Keys must be 1-{MAX_KEY_LENGTH} characters of letters, digits, '-', '_' and '.'.\n"
            "  ✓ myapikey\n"
            "  ✓ tls.crt\n"
            "  ✗ api key (contains space)",
        )


def parse_annotations(pairs: Optional[List[str]]) -> Dict[str, str]:
    """
    Turn ["k=v", ...] into a dict.

    Raises:
        SystemExit with code 2 on an entry without '=' or with an empty key
    """
    annotations: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            _fail(f"Invalid annotation '{pair}'", "Annotations must look like KEY=VALUE.")
        annotations[key] = value
    return annotations
