"""
Logging setup for harness runs

Two streams matter during a run: the harness's own records and the merged
stdout/stderr of every etcd node, which arrives on the ``NODE_OUTPUT_LOGGER``
logger as ``[node-i] line``. Node output can dwarf everything else, so it can
be sent to its own file or silenced independently of the harness level.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

NODE_OUTPUT_LOGGER = "etcd_flood.cluster.output"

HARNESS_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
NODE_OUTPUT_FORMAT = "%(asctime)s %(message)s"


def _close_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    node_log_file: Optional[str] = None,
    quiet_nodes: bool = False
):
    """
    Configure the root logger and the node output logger.

    Args:
        log_level: Harness level name, e.g. "DEBUG"
        log_file: Also write harness records here
        node_log_file: Write node output here only, instead of to the
            harness handlers
        quiet_nodes: Drop node output below WARNING

    Returns:
        The root logger
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    for path in (log_file, node_log_file):
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(HARNESS_FORMAT)

    logger = logging.getLogger()
    logger.setLevel(level)

    # Re-running setup must not duplicate output
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    node_logger = logging.getLogger(NODE_OUTPUT_LOGGER)
    _close_handlers(node_logger)
    if node_log_file:
        node_handler = logging.FileHandler(node_log_file)
        node_handler.setFormatter(logging.Formatter(NODE_OUTPUT_FORMAT))
        node_logger.addHandler(node_handler)
        node_logger.propagate = False
    else:
        node_logger.propagate = True
    if quiet_nodes:
        node_logger.setLevel(logging.WARNING)
    elif node_log_file:
        node_logger.setLevel(logging.INFO)
    else:
        node_logger.setLevel(logging.NOTSET)

    return logger
