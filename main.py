"""
ASGI entrypoint for deployments (e.g. Render).

The FastAPI app lives in `backend/propertyhub/main.py` and uses imports like
`from propertyhub.db ...`, which requires `backend/` to be on `PYTHONPATH`.

With this repo-root `main.py` a host can run:
  uvicorn main:app --host 0.0.0.0 --port $PORT
"""

from __future__ import annotations

import sys
from pathlib import Path


_BACKEND_DIR = Path(__file__).resolve().parent / "backend"

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from propertyhub.main import app  # noqa: E402,F401
