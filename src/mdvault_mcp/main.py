#!/usr/bin/env python
"""Main entry point for the mdvault MCP server."""
import argparse
import atexit
import logging
import os
import sys

from mdvault_mcp import __version__
from mdvault_mcp.config import TRANSPORTS, config, load_vaults_file, parse_vault_list
from mdvault_mcp.exceptions import ConfigurationError
from mdvault_mcp.observability import configure_logging, metrics
from mdvault_mcp.server.mcp_server import VaultMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Markdown vault MCP server")
    parser.add_argument(
        "--config",
        help='JSON file mapping vault names to directories: {"paths": {"name": "dir"}}',
        type=str,
        default=None,
    )
    parser.add_argument(
        "--vault",
        help="Vault as NAME=PATH (repeatable)",
        action="append",
        default=[],
    )
    parser.add_argument(
        "--transport",
        help="MCP transport",
        choices=list(TRANSPORTS),
        default=None,
    )
    parser.add_argument(
        "--port",
        help="Port for the sse transport",
        type=int,
        default=None,
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("MDVAULT_LOG_LEVEL", "INFO"),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.config:
        config.vaults = load_vaults_file(args.config)
    if args.vault:
        config.vaults = {**config.vaults, **parse_vault_list(";".join(args.vault))}
    if args.transport:
        config.transport = args.transport
    if args.port:
        config.port = args.port
    config.log_level = args.log_level.upper()


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main(argv=None):
    """Run the mdvault MCP server."""
    args = parse_args(argv)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        update_config(args)
        config.require_vaults()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    # Register metrics save on shutdown
    atexit.register(_save_metrics_on_exit)

    try:
        logger.info(f"Starting mdvault MCP server {__version__}")
        server = VaultMcpServer(config)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
