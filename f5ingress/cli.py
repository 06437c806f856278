"""Command-line interface for f5ingress."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from .logging_config import setup_logging, get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATHS = [Path("f5ingress.yaml"), Path("/etc/f5ingress/config.yaml")]


def load_config(path: Optional[str], partition: Optional[str] = None):
    """Load the controller configuration.

    Args:
        path: Configuration file; when None the default locations are tried.
        partition: Overrides the partition from the file.

    Raises:
        ConfigurationError: If no usable configuration is found.
        pydantic.ValidationError: If the file content is invalid.
    """
    import yaml
    from .errors import ConfigurationError
    from .models import ControllerConfig

    config_path = None
    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")
    else:
        for candidate in DEFAULT_CONFIG_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    config_data = {}
    if config_path:
        logger.debug("Loading configuration file", config_path=str(config_path))
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

    if partition:
        config_data["partition"] = partition
    if not config_data.get("partition"):
        raise ConfigurationError("No partition configured; pass --partition or set it in the config file")

    controller_config = ControllerConfig(**config_data)
    logger.info("Configuration loaded",
                config_path=str(config_path) if config_path else None,
                partition=controller_config.partition)
    return controller_config


def _load_cluster_config(path: Optional[str]):
    """Cluster settings only; the partition is not needed to derive desired state."""
    import yaml
    from .errors import ConfigurationError
    from .models import ClusterConfig

    if not path:
        return ClusterConfig()
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    with open(config_path) as f:
        config_data = yaml.safe_load(f) or {}
    return ClusterConfig(**(config_data.get("cluster") or {}))


def _load_snapshot(path: str):
    import yaml
    from .errors import ConfigurationError
    from .kube import snapshot_from_manifests

    snapshot_path = Path(path)
    if not snapshot_path.exists():
        raise ConfigurationError(f"Snapshot file not found: {snapshot_path}")
    with open(snapshot_path) as f:
        documents = list(yaml.safe_load_all(f))
    return snapshot_from_manifests(documents)


async def _desired_from_cluster(cluster_config):
    from .desired import build_desired_state
    from .kube import KubeClusterClient

    async with KubeClusterClient(cluster_config) as cluster:
        return await build_desired_state(cluster)


async def _current_from_bigip(controller_config):
    from .bigip import BigIPClient
    from .current import build_current_state

    async with BigIPClient(controller_config.bigip.with_env_defaults()) as adc:
        return await build_current_state(adc, controller_config.engine)


def _fail(message: str) -> None:
    print(message, file=sys.stderr)
    sys.exit(1)


def desired_command(args: argparse.Namespace) -> None:
    """Print the desired state derived from the cluster or a snapshot file."""
    from pydantic import ValidationError
    from .desired import derive_desired_state
    from .errors import F5IngressError
    from .serialize import dump_state

    setup_logging(args.verbose)

    try:
        if args.snapshot:
            state = derive_desired_state(_load_snapshot(args.snapshot))
        else:
            state = asyncio.run(_desired_from_cluster(_load_cluster_config(args.config)))
    except (F5IngressError, ValidationError) as e:
        logger.error("Could not derive desired state", error=str(e))
        _fail(f"Could not derive desired state: {e}")

    print(dump_state(state))


def current_command(args: argparse.Namespace) -> None:
    """Print the current state of the configured BIG-IP partition."""
    from pydantic import ValidationError
    from .errors import F5IngressError
    from .serialize import dump_state

    setup_logging(args.verbose)

    try:
        controller_config = load_config(args.config, args.partition)
        state = asyncio.run(_current_from_bigip(controller_config))
    except (F5IngressError, ValidationError) as e:
        logger.error("Could not fetch current state", error=str(e))
        _fail(f"Could not fetch current state: {e}")

    print(dump_state(state))


def state_command(args: argparse.Namespace) -> None:
    """Print desired and current state side by side."""
    from pydantic import ValidationError
    from .errors import F5IngressError
    from .serialize import state_to_data

    setup_logging(args.verbose)

    async def run_both(controller_config):
        desired = await _desired_from_cluster(controller_config.cluster)
        current = await _current_from_bigip(controller_config)
        return desired, current

    try:
        controller_config = load_config(args.config, args.partition)
        desired, current = asyncio.run(run_both(controller_config))
    except (F5IngressError, ValidationError) as e:
        logger.error("Could not build state", error=str(e))
        _fail(f"Could not build state: {e}")

    print(json.dumps({
        "desired": state_to_data(desired),
        "current": state_to_data(current),
    }, indent=2, ensure_ascii=False))


def serve_command(args: argparse.Namespace) -> None:
    """Start the f5ingress API server."""
    # Import heavy dependencies only when needed
    import uvicorn
    from pydantic import ValidationError
    from .api import app, initialize_controller
    from .errors import F5IngressError

    setup_logging(args.verbose)

    try:
        controller_config = load_config(args.config, args.partition)
    except (F5IngressError, ValidationError) as e:
        logger.error("Failed to load configuration", error=str(e))
        _fail(f"Error loading configuration: {e}")

    initialize_controller(controller_config)

    logger.info("Starting f5ingress server", host=args.host, port=args.port)
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="info" if not args.verbose else "debug"
    )


def init_config_command(args: argparse.Namespace) -> None:
    """Generate a sample configuration file."""
    import yaml

    sample_config = {
        "partition": "k8s-auto",
        "cluster": {
            "kubeconfig_path": "~/.kube/config",
            "context": "prod-us-east-1",
        },
        "bigip": {
            "host": "bigip.example.com",
            "username": "admin",
            "password": "change-me",
            "verify_ssl": True,
            "login_provider": "tmos",
        },
        "refresh_interval": 60,
    }

    config_yaml = yaml.dump(sample_config, default_flow_style=False, sort_keys=False)

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(config_yaml)
        print(f"Sample configuration written to {output_path}")
    else:
        print("Sample configuration:\n")
        print(config_yaml)


def validate_config_command(args: argparse.Namespace) -> None:
    """Validate a configuration file."""
    from pydantic import ValidationError
    from .errors import F5IngressError

    try:
        controller_config = load_config(args.config)
    except (F5IngressError, ValidationError, OSError) as e:
        _fail(f"✗ Configuration file {args.config} is invalid: {e}")

    print(f"✓ Configuration file {args.config} is valid")
    print("\nConfiguration summary:")
    print(f"  Partition: {controller_config.partition}")
    print(f"  Kubeconfig: {controller_config.cluster.kubeconfig_path or 'in-cluster'}")
    print(f"  BIG-IP host: {controller_config.bigip.host or 'from F5_HOST'}")
    print(f"  Refresh interval: {controller_config.refresh_interval}s")


def version_command(args: argparse.Namespace) -> None:
    """Show version information."""
    from . import __version__
    print(f"f5ingress {__version__}")


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="f5ingress: derive BIG-IP virtual servers from Kubernetes Ingresses",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    desired_parser = subparsers.add_parser("desired", help="Print the desired state derived from Kubernetes")
    desired_source = desired_parser.add_mutually_exclusive_group()
    desired_source.add_argument(
        "--config", "-c",
        help="Configuration file path (cluster section is used)"
    )
    desired_source.add_argument(
        "--snapshot", "-s",
        help="Read Ingress, Service and Pod manifests from a YAML or JSON file instead of a cluster"
    )
    desired_parser.set_defaults(func=desired_command)

    for name, func, help_text in (
        ("current", current_command, "Print the current state of the BIG-IP partition"),
        ("state", state_command, "Print desired and current state"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--config", "-c", help="Configuration file path")
        sub.add_argument("--partition", "-p", help="BIG-IP partition (overrides the config file)")
        sub.set_defaults(func=func)

    serve_parser = subparsers.add_parser("serve", help="Start the f5ingress API server")
    serve_parser.add_argument(
        "--config", "-c",
        help="Configuration file path"
    )
    serve_parser.add_argument(
        "--partition", "-p",
        help="BIG-IP partition (overrides the config file)"
    )
    serve_parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    serve_parser.set_defaults(func=serve_command)

    init_parser = subparsers.add_parser("init-config", help="Generate a sample configuration file")
    init_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)"
    )
    init_parser.set_defaults(func=init_config_command)

    validate_parser = subparsers.add_parser("validate-config", help="Validate a configuration file")
    validate_parser.add_argument(
        "--config", "-c",
        required=True,
        help="Configuration file path"
    )
    validate_parser.set_defaults(func=validate_config_command)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=version_command)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
