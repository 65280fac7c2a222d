"""Keep the compute API key and AWS credentials out of log output."""

import logging
import os
import re

SECRET_ENV_VARS = ("IMAGEVOL_API_KEY", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN")
MASK = "***"

_MIN_SECRET_LENGTH = 8

# Built on first use so env vars set before logging starts are picked up
_secret_re: re.Pattern | None = None


def _secret_pattern() -> re.Pattern | None:
    """One alternation over every secret value currently in the environment."""
    global _secret_re
    if _secret_re is None:
        values = {os.environ.get(var, "") for var in SECRET_ENV_VARS}
        values = sorted((v for v in values if len(v) >= _MIN_SECRET_LENGTH), key=len, reverse=True)
        _secret_re = re.compile("|".join(map(re.escape, values))) if values else re.compile(r"(?!)")
    return _secret_re


def reset_secret_cache():
    """Forget the cached secret values; the next call re-reads the environment."""
    global _secret_re
    _secret_re = None


def redact_secrets(text: str) -> str:
    return _secret_pattern().sub(MASK, text)


class SecretRedactingFilter(logging.Filter):
    """Handler filter masking credentials in a record's message and its %-args."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(str(record.msg))
        if isinstance(record.args, dict):
            record.args = {k: redact_secrets(v) if isinstance(v, str) else v for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(redact_secrets(a) if isinstance(a, str) else a for a in record.args)
        return True
