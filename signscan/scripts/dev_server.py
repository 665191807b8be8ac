"""
Run the API locally.

Usage:
    python signscan/scripts/dev_server.py              # real webcam
    CAMERA_ADAPTER=mock python signscan/scripts/dev_server.py
"""
import os
import sys
from pathlib import Path

import uvicorn

ROOT = Path(__file__).parents[2]
sys.path.insert(0, str(ROOT))

if __name__ == "__main__":
    uvicorn.run(
        "signscan.services.api:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
