import logging
import os
import sys

def setup_logging(level: str | None = None) -> None:
    lvl_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    lvl = getattr(logging, lvl_name, logging.INFO)

    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    # keep uvicorn in sync
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(lvl)
    # paho logs every keepalive at DEBUG
    logging.getLogger("paho").setLevel(max(lvl, logging.INFO))


def hex_dump(data: bytes | bytearray) -> str:
    """Format bytes as hex string: '8C 00 00 02 01 8F'"""
    return " ".join(f"{b:02X}" for b in data)
