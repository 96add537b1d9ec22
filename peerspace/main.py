"""
Peerspace server entry point.

Logging is configured before anything else so startup is captured in the
log files; ``app`` is the ASGI application served by uvicorn.
"""

from .app.factory import create_app
from .config import get_config
from .structured_logging.enhanced_logging_config import get_logger, setup_enhanced_logging

config = get_config()
setup_enhanced_logging(config.to_dict())

logger = get_logger(__name__)
logger.info("Logging setup completed", environment=config.logging.environment)

app = create_app()
