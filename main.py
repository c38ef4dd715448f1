"""mamastale — dev launcher. Starts the API server in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="mamastale dev launcher")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON config file (default: $MAMASTALE_CONFIG or built-in defaults)")
    parser.add_argument("--port", default=BACKEND_PORT, help="API port")
    args = parser.parse_args()

    # Build env for the subprocess so the server picks up the same config file
    env = os.environ.copy()
    if args.config:
        env["MAMASTALE_CONFIG"] = str(args.config.resolve())

    proc = subprocess.Popen(
        ["uv", "run", "uvicorn", "mamastale.app:app", "--reload", "--host", HOST, "--port", str(args.port)],
        cwd=ROOT, env=env,
    )

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting API on http://localhost:{args.port} ...")
    proc.wait()


if __name__ == "__main__":
    main()
