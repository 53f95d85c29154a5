"""Kopf entry point of the gateway operator.

Run with: kopf run src/controller.py
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Any

# Add src directory to path for imports when run as script by Kopf
_src_dir = Path(__file__).parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import kopf
from prometheus_client import start_http_server

from metrics import SNAPSHOT_OBJECTS, init_metrics, set_operator_info
from models import Kind
from resources.snapshot import COUNTED_KINDS, counts
from state import state
from store import Subscription

# Import event handlers (registers with Kopf)
import handlers  # noqa: F401

logger = logging.getLogger(__name__)

# Operator version
OPERATOR_VERSION = "0.1.0"

_reporter: threading.Thread | None = None


def report_snapshots(subscription: Subscription) -> None:
    """Follow the snapshot store and keep the per-class object gauges current."""
    for event in subscription:
        if event.deleted or event.value is None:
            logger.debug(f"Snapshot entry {event.key} deleted")
            for kind in COUNTED_KINDS:
                SNAPSHOT_OBJECTS.labels(gateway_class=event.key, kind=kind.value).set(0)
            continue
        logger.debug(f"Snapshot entry {event.key} updated")
        for kind, count in counts(event.value).items():
            SNAPSHOT_OBJECTS.labels(gateway_class=event.key, kind=kind).set(count)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure operator settings and start the reconciliation workers."""
    global _reporter

    config = state.get_config()

    # Reduce logging noise
    settings.posting.level = logging.WARNING
    # Set watching namespace - explicit cluster-wide or specific namespace
    if config.watch_namespace:
        settings.watching.namespaces = [config.watch_namespace]
    else:
        settings.watching.clusterwide = True

    # Start Prometheus metrics server
    try:
        start_http_server(config.metrics_port)
        logger.info("Prometheus metrics server started on port %d", config.metrics_port)
    except OSError as e:
        logger.warning(
            "Failed to start metrics server on port %d: %s", config.metrics_port, e
        )

    init_metrics([kind.value for kind in Kind])
    set_operator_info(OPERATOR_VERSION, config.controller_name)

    state.get_dispatcher().start()
    _reporter = threading.Thread(
        target=report_snapshots,
        args=(state.get_store().subscribe(),),
        name="snapshot-reporter",
        daemon=True,
    )
    _reporter.start()

    logger.info(
        "Gateway operator started (version %s, controller %s)",
        OPERATOR_VERSION,
        config.controller_name,
    )


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Stop workers and release resources on operator shutdown."""
    logger.info("Gateway operator shutting down")
    state.close()
    if _reporter is not None:
        _reporter.join(timeout=5)


def main() -> None:
    """Entry point for running the operator."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Kopf will be run via the CLI, but this allows direct invocation for testing
    logger.info("Starting gateway operator...")
    logger.info("Use 'kopf run src/controller.py' to run the operator")
    sys.exit(0)


if __name__ == "__main__":
    main()
