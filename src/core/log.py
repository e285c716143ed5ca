import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(processName)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging; called once per process (CLI and every worker)."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)
