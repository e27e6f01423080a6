"""
CampShare — Entry Point.

Single entry point: `python main.py` loads the local state and keeps it in
sync until interrupted.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.app import main

if __name__ == "__main__":
    main()
