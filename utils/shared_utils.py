"""
Shared utility functions for routers and services
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from starlette.requests import Request

from config.settings import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Write all events to LOG_DIR/app.log and to the console"""
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_dir / "app.log"),
            logging.StreamHandler(),
        ],
    )


def get_client_ip(request: Request, trust_proxy: bool = False) -> str:
    """Peer address, or the first X-Forwarded-For entry when the proxy is trusted"""
    if trust_proxy:
        xff = request.headers.get("x-forwarded-for")
        if xff:
            # Take first IP in the list
            return xff.split(",")[0].strip()
    client = request.client
    return client.host if client else "unknown"


def log_endpoint_event(endpoint: str, project_id: Optional[str] = None, result: str = "success", details: Optional[dict] = None):
    """Log endpoint execution to app.log"""
    log_data = {
        "endpoint": endpoint,
        "project_id": project_id or "none",
        "result": result,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        log_data.update(details)
    level = logging.INFO if result == "success" else logging.ERROR
    logger.log(level, f"{endpoint} | project={project_id} | {result} | {json.dumps(log_data, default=str)}")
