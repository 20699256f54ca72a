import logging
import os
from typing import Optional


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging once. Level can be given explicitly or taken from
    LOG_LEVEL env var (default INFO).
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
    )
    # The client logs every request at INFO
    logging.getLogger("elasticsearch").setLevel(logging.WARNING)
