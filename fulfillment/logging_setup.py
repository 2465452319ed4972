from __future__ import annotations

import logging
import sys

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logging(level: str = 'INFO') -> None:
    """Install a single stdout handler on the root logger.

    Existing root handlers are removed so repeated CLI invocations in one
    process do not duplicate output.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    logging.getLogger('sqlalchemy.engine').setLevel(logging.INFO if level.upper() == 'DEBUG' else logging.WARNING)
