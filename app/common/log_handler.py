import logging
import os
import re
import sys


class RedactSecretsFilter(logging.Filter):
    """Masks the shared secret of otpauth:// URIs and secret=... pairs before a record is written."""

    pattern = re.compile(r"(secret=)[A-Za-z2-7=]+", re.IGNORECASE)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.pattern.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _build_logger():
    logger = logging.getLogger("election_auth")

    # Prevent creation of handlers more than once
    if logger.handlers:
        return logger

    logger.setLevel(os.getenv("LOG_LEVEL", "DEBUG").upper())

    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(name)s "
        "%(message)s  (in %(filename)s:%(lineno)d)"
    )

    # ---- Console (stdout) Handler ----
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RedactSecretsFilter())

    logger.addHandler(console_handler)

    return logger


log = _build_logger()

def handle_global_exception(exc_type, exc_value, exc_traceback):
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    log.critical(
        "UNCAUGHT EXCEPTION",
        exc_info=(exc_type, exc_value, exc_traceback),
    )

sys.excepthook = handle_global_exception
