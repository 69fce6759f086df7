"""Command line entry point for Namespace Labeler."""

import argparse
import logging
import signal
import sys

from kubernetes import config
from kubernetes.config.config_exception import ConfigException

from .config import DEFAULT_WORKERS
from .controller import NamespaceLabelController

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Namespace Labeler - Keep the managed-by label on every namespace"
    )
    parser.add_argument(
        "--kubeconfig",
        default="",
        help="Path to a kubeconfig file (default: ~/.kube/config, then in-cluster)"
    )
    parser.add_argument(
        "--in-cluster",
        action="store_true",
        help="Use in-cluster config (for running inside Kubernetes)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run in dry-run mode (no changes made)"
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Number of worker threads (default: {DEFAULT_WORKERS})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging"
    )
    args = parser.parse_args(argv)
    if args.workers < 1:
        parser.error("--workers must be at least 1")
    return args


def load_kubernetes_config(kubeconfig: str = "", in_cluster: bool = False) -> None:
    """
    Load Kubernetes client configuration.

    Without an explicit kubeconfig path the default kubeconfig is tried
    first, then the in-cluster service account.

    Raises:
        ConfigException: If no usable configuration is found
    """
    if in_cluster:
        config.load_incluster_config()
        logger.info("Loaded in-cluster configuration")
        return

    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        logger.info(f"Loaded kubeconfig from {kubeconfig}")
        return

    try:
        config.load_kube_config()
        logger.info("Loaded kubeconfig from default location")
    except ConfigException:
        config.load_incluster_config()
        logger.info("No kubeconfig found, loaded in-cluster configuration")


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    # Set log level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load Kubernetes configuration
    try:
        load_kubernetes_config(args.kubeconfig, args.in_cluster)
    except Exception as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        sys.exit(1)

    # Create and run controller
    controller = NamespaceLabelController(
        dry_run=args.dry_run,
        workers=args.workers
    )

    def handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        controller.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    if not controller.run():
        logger.error("Controller failed to start")
        sys.exit(1)

    logger.info("Controller stopped")
