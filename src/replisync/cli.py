"""CLI entry point for replisync."""

import json
import logging
import sys
import urllib.error
import urllib.request

import uvicorn

from replisync.config import config


def main():
    """Main entry point: runs the sync server."""
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logger = logging.getLogger("replisync.cli")

    args = sys.argv[1:]

    command = "start"
    host = config.server_host
    port = config.server_port

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("start", "status", "init-config", "help"):
            command = arg
        elif arg == "--host" and i + 1 < len(args):
            host = args[i + 1]
            i += 1
        elif arg == "--port" and i + 1 < len(args):
            port = int(args[i + 1])
            i += 1
        else:
            print(f"Unknown argument: {arg}")
            print("Run 'replisync help' for usage info.")
            sys.exit(1)
        i += 1

    if command == "start":
        logger.info(f"Starting replisync on http://{host}:{port}")
        logger.info(f"Database: {config.db_path}")
        from replisync.api import app
        uvicorn.run(app, host=host, port=port, log_level="warning")

    elif command == "status":
        url = f"http://localhost:{port}/api/status"
        try:
            with urllib.request.urlopen(url, timeout=2) as resp:
                data = json.loads(resp.read())
        except (urllib.error.URLError, OSError):
            print("replisync is not running")
            sys.exit(1)
        print("replisync is running")
        print(f"   Database: {data['db_path']}")
        print(f"   Timestamp: {data['timestamp']}")

    elif command == "init-config":
        if config.ensure_config_file():
            print(f"Created default config at {config.path}")
        else:
            print(f"Config already exists at {config.path}")

    elif command == "help":
        print("Usage: replisync [start|status|init-config|help] [options]")
        print("")
        print("Commands:")
        print("  start        Start the sync server (default)")
        print("  status       Check if the server is running")
        print("  init-config  Write a default config file")
        print("  help         Show this help message")
        print("")
        print("Options:")
        print(f"  --host HOST  Address to bind (default: {config.server_host})")
        print(f"  --port PORT  Port to listen on (default: {config.server_port})")


if __name__ == "__main__":
    main()
