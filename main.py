"""Crystal Sanctuary: dev launcher. Starts the API server in watch mode."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Crystal Sanctuary dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--world", type=Path, default=None,
                        help="World configuration file (default: packaged preset)")
    parser.add_argument("--no-reload", action="store_true",
                        help="Disable auto-reload")
    parser.add_argument("--debug", action="store_true",
                        help="Log scores, thresholds and gateway calls")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The app factory reads these when uvicorn (re)imports it
    if args.data_dir:
        os.environ["SANCTUARY_DATA_DIR"] = str(args.data_dir.resolve())
    if args.world:
        os.environ["SANCTUARY_WORLD_FILE"] = str(args.world.resolve())

    print(f"Starting backend on http://localhost:{PORT} ...")
    uvicorn.run(
        "backend.app:create_app",
        factory=True,
        host=HOST,
        port=int(PORT),
        reload=not args.no_reload,
    )


if __name__ == "__main__":
    main()
