"""Configuration loader for kubesecret-toolkit."""
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .preferences import get_preference

logger = logging.getLogger(__name__)

ENV_NAMESPACE = "KUBESECRETS_NAMESPACE"
ENV_CONTEXT = "KUBESECRETS_CONTEXT"
ENV_KUBECONFIG = "KUBECONFIG"

KNOWN_SECTIONS = ("kubectl", "defaults", "all_namespaces")


class ConfigError(Exception):
    """Configuration error exception."""
    pass


@dataclass(frozen=True)
class AllNamespacesPolicy:
    """What to do when the cluster-wide secret listing is refused."""
    fallback_to_default: bool = True
    retries: int = 0
    backoff_seconds: float = 1.0


@dataclass(frozen=True)
class ToolkitSettings:
    """Resolved settings handed to the client and every workflow."""
    kubectl_binary: str = "kubectl"
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    timeout_seconds: float = 30.0
    namespace: Optional[str] = None
    settle_seconds: float = 2.0
    all_namespaces: AllNamespacesPolicy = field(default_factory=AllNamespacesPolicy)


def default_config_path() -> Path:
    return Path.home() / ".config" / "kubesecret-toolkit" / "config.yml"


def _get_config_path() -> Optional[str]:
    """
    Locate the config file.

    Priority order:
    1. User preference (``config_path`` in preferences.json)
    2. Default location: ~/.config/kubesecret-toolkit/config.yml

    Returns:
        Absolute path to the config file, or None when neither exists
    """
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    return None


def _require_number(section: Dict[str, Any], key: str, path: str, minimum: float = 0) -> None:
    if key not in section:
        return
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{path}.{key}' must be a number, got {value!r}")
    if value < minimum:
        raise ConfigError(f"'{path}.{key}' must be >= {minimum}, got {value}")


def _validate(config: Dict[str, Any], config_path: str) -> None:
    for name in config:
        if name not in KNOWN_SECTIONS:
            raise ConfigError(
                f"Unknown section '{name}' in config at {config_path}\n"
                f"Allowed sections: {', '.join(KNOWN_SECTIONS)}"
            )
        if not isinstance(config[name], dict):
            raise ConfigError(f"Section '{name}' in config at {config_path} must be a mapping")

    kubectl = config.get("kubectl", {})
    if "binary" in kubectl and not kubectl["binary"]:
        raise ConfigError("'kubectl.binary' cannot be empty")
    _require_number(kubectl, "timeout_seconds", "kubectl", minimum=1)

    defaults = config.get("defaults", {})
    _require_number(defaults, "settle_seconds", "defaults")

    policy = config.get("all_namespaces", {})
    if "fallback_to_default" in policy and not isinstance(policy["fallback_to_default"], bool):
        raise ConfigError("'all_namespaces.fallback_to_default' must be true or false")
    _require_number(policy, "retries", "all_namespaces")
    _require_number(policy, "backoff_seconds", "all_namespaces")
    if "retries" in policy and not isinstance(policy["retries"], int):
        raise ConfigError("'all_namespaces.retries' must be an integer")


def load_config() -> Dict[str, Any]:
    """
    Load and validate the YAML config file.

    Returns:
        Dict with optional ``kubectl``, ``defaults`` and ``all_namespaces``
        sections; empty when no config file exists

    Raises:
        ConfigError: If the file cannot be read, parsed, or fails validation
    """
    config_path = _get_config_path()
    if config_path is None:
        logger.debug("No config file found, using built-in defaults")
        return {}

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if config is None:
        raise ConfigError(f"Config file at {config_path} is empty")
    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    _validate(config, config_path)
    logger.info(f"Configuration loaded successfully from {config_path}")
    return config


def load_settings(config: Optional[Dict[str, Any]] = None) -> ToolkitSettings:
    """
    Build ToolkitSettings from the config file, preferences and environment.

    Namespace priority: KUBESECRETS_NAMESPACE, then the ``namespace``
    preference, then ``defaults.namespace``. Context and kubeconfig likewise
    prefer KUBESECRETS_CONTEXT and KUBECONFIG over the config file.
    """
    if config is None:
        config = load_config()

    kubectl = config.get("kubectl", {})
    defaults = config.get("defaults", {})
    policy = config.get("all_namespaces", {})

    namespace = (
        os.getenv(ENV_NAMESPACE)
        or get_preference("namespace")
        or defaults.get("namespace")
    )
    if namespace:
        logger.debug(f"Using default namespace: {namespace}")

    return ToolkitSettings(
        kubectl_binary=kubectl.get("binary", "kubectl"),
        kubeconfig=os.getenv(ENV_KUBECONFIG) or kubectl.get("kubeconfig"),
        context=os.getenv(ENV_CONTEXT) or kubectl.get("context"),
        timeout_seconds=float(kubectl.get("timeout_seconds", 30.0)),
        namespace=namespace or None,
        settle_seconds=float(defaults.get("settle_seconds", 2.0)),
        all_namespaces=AllNamespacesPolicy(
            fallback_to_default=policy.get("fallback_to_default", True),
            retries=policy.get("retries", 0),
            backoff_seconds=float(policy.get("backoff_seconds", 1.0)),
        ),
    )
