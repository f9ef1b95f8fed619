"""CLI entrypoint for kubesecret-toolkit."""
import sys
import argparse
import getpass
import json
import logging
from pathlib import Path

import yaml

from kubesecret_toolkit.secrets.domains.config_loader import ConfigError
from kubesecret_toolkit.secrets.domains.errors import KubeSecretError, SecretArgumentError
from kubesecret_toolkit.secrets.domains.models import SecretKeyValue, SecretValue
from kubesecret_toolkit.secrets.workflows.secret_operations import SecretOperations

from .validators import (
    parse_annotations,
    validate_key_name,
    validate_namespace,
    validate_secret_name,
)

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _operations(args) -> SecretOperations:
    return SecretOperations.from_settings()


def _emit(result, output: str) -> None:
    """Print a SecretRecord or list of them in the requested format."""
    records = result if isinstance(result, list) else [result]

    if output == "json":
        payload = [r.to_dict() for r in records] if isinstance(result, list) else result.to_dict()
        print(json.dumps(payload, indent=2))
    elif output == "yaml":
        payload = [r.to_dict() for r in records] if isinstance(result, list) else result.to_dict()
        print(yaml.safe_dump(payload, sort_keys=False), end="")
    elif not records:
        print("No secrets found.")
    else:
        print("\n\n".join(r.to_text() for r in records))


def _read_secret_value(args) -> SecretValue:
    """
    Read the value for --key without ever taking it from argv.

    Sources, in order: --from-file (raw bytes), piped stdin (one trailing
    newline stripped), interactive prompt.
    """
    if args.from_file:
        path = Path(args.from_file)
        if not path.is_file():
            print(f"Error: File not found: {path}", file=sys.stderr)
            sys.exit(2)
        return SecretValue(path.read_bytes())

    if not sys.stdin.isatty():
        data = sys.stdin.buffer.read()
        if data.endswith(b"\r\n"):
            data = data[:-2]
        elif data.endswith(b"\n"):
            data = data[:-1]
        return SecretValue(data)

    return SecretValue(getpass.getpass(f"Value for '{args.key}': "))


def cmd_version(args):
    """Show version information."""
    print(f"kubesecret-toolkit {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from kubesecret_toolkit.secrets.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_set_namespace(args):
    """Set default namespace preference."""
    from kubesecret_toolkit.secrets.domains.preferences import set_preference

    validate_namespace(args.namespace)
    set_preference("namespace", args.namespace)
    print(f"Default namespace set to: {args.namespace}")


def cmd_config_show(args):
    """Show current config file path and default namespace."""
    from kubesecret_toolkit.secrets.domains.config_loader import default_config_path
    from kubesecret_toolkit.secrets.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        print("Source: default" if default_config.exists() else "Source: default (file not found)")

    namespace = get_preference("namespace")
    print(f"Default namespace: {namespace or '(from config or kubeconfig context)'}")


def cmd_config_clear(args):
    """Clear config path and namespace preferences."""
    from kubesecret_toolkit.secrets.domains.config_loader import default_config_path
    from kubesecret_toolkit.secrets.domains.preferences import clear_preference

    clear_preference("config_path")
    clear_preference("namespace")
    print(f"Preferences cleared. Will use default config: {default_config_path()}")


def cmd_secrets_get(args):
    """Show metadata for one secret, a namespace, or all namespaces."""
    if args.all_namespaces and (args.name or args.namespace):
        print("Error: --all-namespaces cannot be combined with a name or --namespace", file=sys.stderr)
        sys.exit(2)
    if args.name:
        validate_secret_name(args.name)
    validate_namespace(args.namespace)

    result = _operations(args).get_metadata(
        name=args.name,
        namespace=args.namespace,
        all_namespaces=args.all_namespaces,
    )
    _emit(result, args.output)


def cmd_secrets_get_value(args):
    """Write the decoded value of one key to stdout."""
    validate_secret_name(args.name)
    validate_namespace(args.namespace)
    validate_key_name(args.key)

    value = _operations(args).get_value(args.name, args.key, namespace=args.namespace)
    sys.stdout.buffer.write(value.reveal())
    # Raw bytes when redirected so the output can be fed back to --from-file
    if sys.stdout.isatty():
        sys.stdout.buffer.write(b"\n")
    sys.stdout.flush()


def cmd_secrets_create(args):
    """Create (or recreate) a secret with a single key."""
    validate_secret_name(args.name)
    validate_namespace(args.namespace)
    validate_key_name(args.key)
    annotations = parse_annotations(args.annotation)

    key_value = SecretKeyValue(args.key, _read_secret_value(args))
    record = _operations(args).create_secret(
        args.name,
        key_value,
        namespace=args.namespace,
        annotations=annotations or None,
    )
    _emit(record, args.output)


def cmd_secrets_set(args):
    """Set the value of one key on an existing secret."""
    validate_secret_name(args.name)
    validate_namespace(args.namespace)
    validate_key_name(args.key)

    key_value = SecretKeyValue(args.key, _read_secret_value(args))
    record = _operations(args).set_value(
        args.name,
        key_value,
        namespace=args.namespace,
        add=args.add,
    )
    _emit(record, args.output)


def cmd_secrets_annotate(args):
    """Apply annotations to an existing secret."""
    validate_secret_name(args.name)
    validate_namespace(args.namespace)
    annotations = parse_annotations(args.annotations)

    record = _operations(args).set_annotations(args.name, annotations, namespace=args.namespace)
    _emit(record, args.output)


def _add_namespace_argument(parser):
    parser.add_argument(
        "-n", "--namespace",
        help="Namespace (defaults to KUBESECRETS_NAMESPACE, the namespace preference, "
             "the config file, then the kubeconfig context)"
    )


def _add_output_argument(parser):
    parser.add_argument(
        "-o", "--output",
        choices=["text", "json", "yaml"],
        default="text",
        help="Output format (default: text)"
    )


def _add_value_arguments(parser):
    parser.add_argument(
        "--key",
        required=True,
        help="Data key inside the secret (letters, digits, '-', '_', '.')"
    )
    parser.add_argument(
        "--from-file",
        help="Read the value from this file. Without it the value is read from "
             "piped stdin or prompted for; values are never accepted as arguments."
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubesecrets",
        description="kubesecret-toolkit CLI - inspect and update Kubernetes secrets through kubectl",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (access denied, secret not found, kubectl failure, etc.)
  2 - Usage error (invalid arguments, missing key without --add, etc.)

Environment variables:
  KUBESECRETS_NAMESPACE - Default namespace (overrides preference and config file)
  KUBESECRETS_CONTEXT   - kubeconfig context to use
  KUBECONFIG            - kubeconfig file to use

Configuration:
  Default location: ~/.config/kubesecret-toolkit/config.yml
  Custom path: Set with 'kubesecrets config set-path <path>'
  View current: Run 'kubesecrets config show'
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log kubectl invocations and workflow steps to stderr"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of kubesecret-toolkit"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage kubesecret-toolkit configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="""
Set the configuration file path preference.

This stores the absolute path to your config file in:
~/.config/kubesecret-toolkit/preferences.json
        """
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    config_set_namespace_parser = config_subparsers.add_parser(
        "set-namespace",
        help="Set default namespace",
        description="Store the namespace used when -n/--namespace is omitted"
    )
    config_set_namespace_parser.add_argument("namespace", help="Namespace name")

    config_subparsers.add_parser(
        "show",
        help="Show current config path and default namespace",
        description="Display the configuration file path, its source, and the default namespace"
    )

    config_subparsers.add_parser(
        "clear",
        help="Clear stored preferences",
        description="Remove the config path and namespace preferences"
    )

    # secrets command
    secrets_parser = subparsers.add_parser(
        "secrets",
        help="Secret operations",
        description="Inspect and update Kubernetes secrets"
    )
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")

    get_parser = secrets_subparsers.add_parser(
        "get",
        help="Show secret metadata",
        description="""
Show metadata (type, data keys, timestamps, annotations) without values.

Modes:
  NAME given      - one secret
  no NAME         - every secret in the namespace
  -A              - every namespace; falls back to the default namespace
                    when cluster-wide listing is not permitted
        """
    )
    get_parser.add_argument("name", nargs="?", help="Secret name")
    _add_namespace_argument(get_parser)
    get_parser.add_argument(
        "-A", "--all-namespaces",
        action="store_true",
        help="Read secrets in every namespace"
    )
    _add_output_argument(get_parser)

    get_value_parser = secrets_subparsers.add_parser(
        "get-value",
        help="Print one decoded value",
        description="Print the decoded value stored under --key"
    )
    get_value_parser.add_argument("name", help="Secret name")
    _add_namespace_argument(get_value_parser)
    get_value_parser.add_argument("--key", required=True, help="Data key to print")

    create_parser = secrets_subparsers.add_parser(
        "create",
        help="Create or replace a secret with one key",
        description="""
Delete any secret with this name, then create an Opaque secret holding
exactly one key. The delete and create are separate calls: if the create
fails, the namespace is left without the secret.
        """
    )
    create_parser.add_argument("name", help="Secret name")
    _add_namespace_argument(create_parser)
    _add_value_arguments(create_parser)
    create_parser.add_argument(
        "--annotation",
        action="append",
        metavar="KEY=VALUE",
        help="Annotation to apply after creation (repeatable)"
    )
    _add_output_argument(create_parser)

    set_parser = secrets_subparsers.add_parser(
        "set",
        help="Set one key on an existing secret",
        description="""
Replace the value of an existing key. Adding a key the secret does not
already have requires --add.
        """
    )
    set_parser.add_argument("name", help="Secret name")
    _add_namespace_argument(set_parser)
    _add_value_arguments(set_parser)
    set_parser.add_argument(
        "--add",
        action="store_true",
        help="Allow adding a key that does not exist yet"
    )
    _add_output_argument(set_parser)

    annotate_parser = secrets_subparsers.add_parser(
        "annotate",
        help="Set annotations on an existing secret",
        description="""
Overwrite each KEY=VALUE annotation, then verify all of them. If any
annotation is missing afterwards the command fails, even though others
may already have been applied.
        """
    )
    annotate_parser.add_argument("name", help="Secret name")
    annotate_parser.add_argument("annotations", nargs="+", metavar="KEY=VALUE")
    _add_namespace_argument(annotate_parser)
    _add_output_argument(annotate_parser)

    return parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (access denied, not found, kubectl failure, etc.)
        2 - Usage errors (invalid arguments, rejected key, etc.)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    config_commands = {
        "set-path": cmd_config_set_path,
        "set-namespace": cmd_config_set_namespace,
        "show": cmd_config_show,
        "clear": cmd_config_clear,
    }
    secrets_commands = {
        "get": cmd_secrets_get,
        "get-value": cmd_secrets_get_value,
        "create": cmd_secrets_create,
        "set": cmd_secrets_set,
        "annotate": cmd_secrets_annotate,
    }

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            handler = config_commands.get(args.config_command)
            if handler is None:
                parser.print_help()
                sys.exit(2)
            handler(args)
        elif args.command == "secrets":
            handler = secrets_commands.get(args.secrets_command)
            if handler is None:
                parser.print_help()
                sys.exit(2)
            handler(args)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except SecretArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (KubeSecretError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
