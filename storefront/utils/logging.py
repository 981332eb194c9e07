# storefront/utils/logging.py
import logging
import sys

from storefront.utils.settings import LOG_LEVEL

_ROOT = "storefront"

root_logger = logging.getLogger(_ROOT)
root_logger.setLevel(LOG_LEVEL)

if not root_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOG_LEVEL)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(handler)

# bez duplikatow w root loggerze
root_logger.propagate = False


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Zwraca logger podpiety pod "storefront".
    Nazwy modulow (storefront.services.x) trafiaja do tego samego drzewa.
    """
    if not name:
        return root_logger
    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
