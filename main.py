"""Cafe Assistant — dev launcher. Starts the backend under uvicorn."""

import argparse
import os
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "3000")


def main():
    parser = argparse.ArgumentParser(description="Cafe Assistant dev launcher")
    parser.add_argument("--catalog", type=Path, default=None,
                        help="JSON shop catalog (default: built-in menu)")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server on source changes")
    args = parser.parse_args()

    # Build env for the subprocess so the backend picks up the same catalog
    env = os.environ.copy()
    if args.catalog:
        env["CATALOG_PATH"] = str(args.catalog.resolve())

    if not env.get("API_KEY"):
        print("Missing API_KEY env var. The assistant will answer with a configuration notice until set.")
    print(f"Starting backend on http://localhost:{PORT} (provider={env.get('PROVIDER', 'openai')}) ...")

    cmd = [sys.executable, "-m", "uvicorn", "backend.app:app", "--host", HOST, "--port", PORT]
    if args.reload:
        cmd.append("--reload")
    try:
        return subprocess.call(cmd, cwd=ROOT, env=env)
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
