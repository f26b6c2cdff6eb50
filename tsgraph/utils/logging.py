import logging


def get_logger(name: str = "tsgraph", level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format="%(levelname)s %(message)s")
    return logging.getLogger(name)
