#!/usr/bin/env python3
"""
Wakegate - Entry Point
========================
One-command startup for the Wakegate wake-on-LAN console.

Usage:
    python app.py                          # Start with settings from config.yaml
    python app.py --port 9000              # Start on a custom port
    python app.py --hash-password "secret" # Print a bcrypt hash for config.yaml

This script:
    1. Creates config.yaml / devices.json from their examples if missing
    2. Loads environment variables from .env
    3. Validates configuration, password hash and TLS files
    4. Starts the uvicorn server (HTTPS unless web.tls is false)

Any configuration problem stops the process before it listens.
"""

import os
import sys
import shutil
import logging
import argparse
import uvicorn
from dotenv import load_dotenv

logger = logging.getLogger("wakegate")


def main():
    """Parse arguments, validate config, and start the web server."""

    # -- Parse command-line arguments ------------------------------------------
    parser = argparse.ArgumentParser(
        description="Wakegate - Wake-on-LAN console",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port number for the web console (overrides config.yaml)",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host binding address (overrides config.yaml)",
    )
    parser.add_argument(
        "--hash-password", metavar="PASSWORD", default=None,
        help="Print a bcrypt hash of PASSWORD for auth.hashed_password and exit",
    )
    parser.add_argument(
        "--log-level", default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging verbosity (default: info)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # -- Password hash helper --------------------------------------------------
    if args.hash_password is not None:
        from gateway.auth import hash_password
        try:
            hashed = hash_password(args.hash_password)
        except ValueError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            sys.exit(1)
        print("Copy this hash into config.yaml (auth.hashed_password):")
        print(hashed)
        return

    # -- Resolve project directory ---------------------------------------------
    project_dir = os.path.dirname(os.path.abspath(__file__))

    # -- Ensure configuration files exist --------------------------------------
    for name in ("config.yaml", "devices.json"):
        target = os.path.join(project_dir, name)
        example = target + ".example"
        if not os.path.exists(target) and os.path.exists(example):
            shutil.copy2(example, target)
            logger.info("Created %s from template", name)

    # -- Load environment variables from .env ----------------------------------
    env_path = os.path.join(project_dir, ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path)

    # -- Validate configuration before listening -------------------------------
    from gateway.auth import load_credential_store
    from gateway.config import ConfigError, ConfigManager

    config_manager = ConfigManager(project_dir)
    try:
        config = config_manager.load()
        load_credential_store(config, config_manager.load_env())
        tls = config_manager.tls_files(config)
    except ConfigError as e:
        logger.critical("Cannot start: %s", e)
        sys.exit(1)

    # Command-line args override config file
    host = args.host or config["web"]["host"]
    port = args.port or config["web"]["port"]
    scheme = "https" if tls else "http"
    if not tls:
        logger.warning("TLS is disabled; passwords travel in clear text")

    logger.info("Wakegate console on %s://%s:%s", scheme, host, port)

    # -- Start the web server --------------------------------------------------
    ssl_options = {}
    if tls:
        ssl_options = {"ssl_certfile": tls[0], "ssl_keyfile": tls[1]}

    uvicorn.run(
        "gateway.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
        log_level=args.log_level,
        **ssl_options,
    )


if __name__ == "__main__":
    main()
