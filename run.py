"""
Entry point for the panel divider service.

Running this script with ``python run.py`` starts the FastAPI server
defined in ``backend/divider/main.py``.  The ``backend`` directory is
added to the Python path first so that ``divider`` can be imported
without installing the project.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import uvicorn

logging.basicConfig(
    level=logging.DEBUG if os.getenv("DIVIDER_DEBUG") else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    """Run the Uvicorn server hosting the divider API."""
    backend_dir = Path(__file__).resolve().parent / "backend"
    if str(backend_dir) not in sys.path:
        sys.path.append(str(backend_dir))

    # Imported after sys.path is adjusted.
    from divider.main import app  # type: ignore

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
