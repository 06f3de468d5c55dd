import logging
import os
import sys
import uvicorn

# backend ディレクトリをPythonパスに追加（app パッケージは backend/app 配下）
current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(current_dir, "backend"))

from app.main import app  # noqa: E402

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    logger.info(f"Starting server on port {port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
