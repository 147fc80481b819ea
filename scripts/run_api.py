#!/usr/bin/env python
"""
Run the basket pricing API (FastAPI via uvicorn).

Usage:
    python scripts/run_api.py [--port 8000]
"""
import subprocess
import sys
import os
from pathlib import Path


def main():
    project_root = Path(__file__).parent.parent
    os.chdir(project_root)

    # Ensure src is in python path
    env = os.environ.copy()
    src_path = str(project_root / "src")
    if "PYTHONPATH" in env:
        env["PYTHONPATH"] = f"{src_path}{os.pathsep}{env['PYTHONPATH']}"
    else:
        env["PYTHONPATH"] = src_path

    port = "8000"
    if "--port" in sys.argv:
        port = sys.argv[sys.argv.index("--port") + 1]

    print(f"Starting Basket Pricing API on port {port}...")
    try:
        subprocess.run([
            sys.executable, "-m", "uvicorn",
            "basket_pricing.api.main:app",
            "--host", "0.0.0.0",
            "--port", port,
            "--reload"
        ], env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
