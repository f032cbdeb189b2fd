"""Revisionist — dev launcher. Starts the API server in watch mode."""

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
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def main():
    parser = argparse.ArgumentParser(description="Revisionist dev launcher")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON config file (default: ./config.json)")
    parser.add_argument("--ai-objectives", action="store_true",
                        help="Ask the LLM for a fresh objective every game")
    parser.add_argument("--no-reload", action="store_true",
                        help="Disable auto-reload")
    args = parser.parse_args()

    # The app reads these when it builds each session
    if args.config:
        os.environ["CONFIG_PATH"] = str(args.config.resolve())
    if args.ai_objectives:
        os.environ["OBJECTIVE_SOURCE"] = "ai"

    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting backend on http://localhost:{PORT} ...")
    uvicorn.run(
        "revisionist.app:app",
        host=HOST,
        port=int(PORT),
        reload=not args.no_reload,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
