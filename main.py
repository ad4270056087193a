"""
Tymer — Entry Point.

Single entry point: `python main.py` starts the terminal gate runner.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.cli.gate_runner import main

if __name__ == "__main__":
    main()
