"""
Entrypoint for running the backend server directly.
"""
import uvicorn

from giftlists.core.config import settings
from giftlists.main import app

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=(settings.log_level or "info").lower())
