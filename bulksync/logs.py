"""Logging setup with credential redaction."""
import logging
import re

# Credentials that must never reach a log line
_SECRET_PATTERNS = [
    (re.compile(r'(Token|Bearer)\s+[A-Za-z0-9._-]+'), r'\1 ***'),
    (re.compile(r'(token|apiKey|api_key)=[A-Za-z0-9._-]+'), r'\1=***'),
]

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def redact(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactingFilter(logging.Filter):
    """Masks API tokens in every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger for command-line use."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, "%H:%M:%S"))
    handler.addFilter(RedactingFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # urllib3 debug output repeats every request line
    logging.getLogger("urllib3").setLevel(logging.INFO if verbose else logging.WARNING)
