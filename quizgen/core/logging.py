import logging


class SecretsFilter(logging.Filter):
    """Redact secret-bearing fields from structured logs."""

    BLOCKED_KEYS = {"api_key", "authorization", "token", "request_payload"}

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.BLOCKED_KEYS:
            if hasattr(record, key):
                setattr(record, key, "[REDACTED]")
        return True


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # handler-level so records propagated from module loggers are covered too
    for handler in logging.getLogger().handlers:
        if not any(isinstance(existing, SecretsFilter) for existing in handler.filters):
            handler.addFilter(SecretsFilter())
