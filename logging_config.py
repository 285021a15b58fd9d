"""
Logging configuration for the detector CLI.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys


def setup(level=logging.INFO):
    """
    Configure root logging for console output.

    - Shorter timestamp format (HH:MM:SS instead of full datetime)
    - Per-candidate detail only at DEBUG
    """

    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers
    root.handlers.clear()

    # Log to stderr so --json output on stdout stays parseable
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    logging.getLogger("__main__").setLevel(level)

    # Package loggers come from get_logger() with their own handler and
    # level; route them through the root handler instead
    for name in list(logging.root.manager.loggerDict):
        if name == "loop_arbitrage" or name.startswith("loop_arbitrage."):
            package_logger = logging.getLogger(name)
            package_logger.handlers.clear()
            package_logger.setLevel(level)


def setup_minimal():
    """
    Only warnings and errors.
    Good for scripted use when you only care about problems.
    """
    setup(level=logging.WARNING)


def setup_debug():
    """
    Verbose logging for debugging.
    Shows every rejected candidate and fallback.
    """
    setup(level=logging.DEBUG)
