import logging
import logging.config
import re

# Contact details must never reach a log sink verbatim.
CONTACT_PATTERNS = [
    re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"),
    re.compile(r"\+?\d[\d\s().-]{4,}\d"),
    re.compile(r"(?i)((?:email|phone(?:_?number)?)\s*[=:]\s*)(?!%)([^,\s]+)"),
]

# printf-style conversion specifiers, and a contact label right before one
_PLACEHOLDER = re.compile(r"%(?:\([^)]*\))?[-#0 +]*(?:\*|\d+)?(?:\.(?:\*|\d+))?[diouxXeEfFgGcrsa%]")
_LABELLED = re.compile(r"(?i)(?:email|phone(?:_?number)?)\s*[=:]\s*\Z")

REDACTED = "[REDACTED]"


class PIISafeFilter(logging.Filter):
    def _sanitize(self, value: object) -> object:
        if not isinstance(value, str):
            return value

        redacted = value
        for pattern in CONTACT_PATTERNS:
            if pattern.groups:
                redacted = pattern.sub(rf"\1{REDACTED}", redacted)
            else:
                redacted = pattern.sub(REDACTED, redacted)
        return redacted

    def _labelled_positions(self, msg: object) -> set[int]:
        """Indexes of positional args that fill an ``email=%s``-style slot."""
        if not isinstance(msg, str):
            return set()
        positions: set[int] = set()
        index = 0
        for match in _PLACEHOLDER.finditer(msg):
            if match.group().endswith("%"):
                continue
            if _LABELLED.search(msg, 0, match.start()):
                positions.add(index)
            index += 1
        return positions

    def filter(self, record: logging.LogRecord) -> bool:
        labelled = self._labelled_positions(record.msg)
        record.msg = self._sanitize(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(
                REDACTED if position in labelled and item is not None else self._sanitize(item)
                for position, item in enumerate(record.args)
            )
        elif isinstance(record.args, dict):
            record.args = {key: self._sanitize(value) for key, value in record.args.items()}

        return True


def setup_logging() -> None:
    from app.core.settings import get_settings

    settings = get_settings()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "pii_safe": {
                    "()": "app.core.logging.PIISafeFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["pii_safe"],
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": settings.log_level.upper(),
                },
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }
    )
