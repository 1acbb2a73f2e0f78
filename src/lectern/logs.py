"""Logging setup with credential masking."""

from __future__ import annotations

import logging

MASK = "****MASKED****"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def scrub_secrets(text: str, secrets: list[str]) -> str:
    """Replace every configured secret in text with a mask.

    Args:
        text: Text that may contain credentials
        secrets: Credential values to hide

    Returns:
        Text with credentials replaced by mask
    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


def mask_credential(value: str | None) -> str:
    """Short preview of a credential for diagnostics output."""
    if not value:
        return "(not set)"
    if len(value) <= 6:
        return MASK
    return f"{value[:4]}...{MASK}"


class MaskingFilter(logging.Filter):
    """Log filter that masks upstream API credentials."""

    def __init__(self, secrets: list[str]):
        super().__init__()
        self._secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        if isinstance(record.msg, str):
            record.msg = scrub_secrets(record.msg, self._secrets)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: scrub_secrets(v, self._secrets) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    scrub_secrets(a, self._secrets) if isinstance(a, str) else a
                    for a in record.args
                )
        return True


def setup_logging(level: int = logging.INFO, secrets: list[str] | None = None) -> None:
    """Configure root logging with credential masking.

    Filters go on the handlers so records from every logger
    (httpx, uvicorn, lectern.*) pass through the mask.
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    masking = MaskingFilter(secrets or [])
    for handler in root_logger.handlers:
        handler.addFilter(masking)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
