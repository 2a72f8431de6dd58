import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO"):
    """Configure root logging once for the whole process."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
    # uvicorn's access log already records every request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
