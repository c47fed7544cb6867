"""Process-wide logging configuration.

Entry points (API factory, arq worker, notification listener) call
``configure_logging`` once; library modules only ever create their own
``logging.getLogger(__name__)``.
"""

import logging

from invoice_scanner.shared.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Application settings providing log_level
    """
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    # Third-party HTTP clients are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
