from __future__ import annotations

import logging
import logging.config

from warehouse_portal.config import settings


def setup_logging() -> None:
    logging.config.dictConfig(
        {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                    'datefmt': '%Y-%m-%d %H:%M:%S',
                },
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': settings.log_level,
                    'formatter': 'default',
                    'stream': 'ext://sys.stdout',
                },
            },
            'loggers': {
                '': {
                    'level': settings.log_level,
                    'handlers': ['console'],
                },
                'sqlalchemy.engine': {
                    'level': 'WARNING',
                },
            },
        }
    )
    logging.getLogger(__name__).info('Logging configured at %s', settings.log_level)
