import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def setup_logging(level: str = "INFO", debug: bool = False) -> None:
    """Configure the root logger once for the service process."""
    global _configured

    if _configured:
        return

    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # zeroconf is chatty at DEBUG about every malformed packet on the LAN
    logging.getLogger("zeroconf").setLevel(logging.WARNING)
    _configured = True
