import logging
import sys

# Package logger; module loggers (logging.getLogger(__name__)) propagate into it
log = logging.getLogger("device_agent")

FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    log.setLevel(level)

    if not any(getattr(h, "_device_agent", False) for h in log.handlers):
        # Console handler
        ch = logging.StreamHandler(sys.stdout)
        ch._device_agent = True
        ch.setFormatter(logging.Formatter(FORMAT))
        log.addHandler(ch)

    for h in log.handlers:
        h.setLevel(level)
    return log
