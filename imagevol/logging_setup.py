"""CLI logging setup."""

import logging
import sys

from imagevol.redact import SecretRedactingFilter


def setup_cli_logging(verbose=False):
    """Configure the root logger with a plain %(message)s stdout handler.

    Secret values are masked by a filter on the handler, so records from
    every logger pass through it.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
