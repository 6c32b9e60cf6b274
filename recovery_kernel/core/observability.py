"""
Observability Configuration for the Recovery Kernel

Provides consistent logging schema and invocation correlation IDs
across the engine components.
"""

import logging
import logging.config
import sys
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

# Context variables for invocation correlation
invocation_id: ContextVar[Optional[str]] = ContextVar('invocation_id', default=None)
caller_id: ContextVar[Optional[str]] = ContextVar('caller_id', default=None)


class InvocationIdFilter(logging.Filter):
    """Add invocation ID and caller to all log records."""

    def filter(self, record):
        record.invocation_id = invocation_id.get() or "no-invocation"
        record.caller = caller_id.get() or "no-caller"
        if not hasattr(record, 'component'):
            record.component = record.name
        return True


class ComponentAdapter(logging.LoggerAdapter):
    """Logger adapter that adds component context."""

    def __init__(self, logger, component: str):
        super().__init__(logger, {'component': component})

    def process(self, msg, kwargs):
        if 'extra' not in kwargs:
            kwargs['extra'] = {}
        if self.extra and 'component' in self.extra:
            kwargs['extra']['component'] = self.extra['component']
        return msg, kwargs


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """
    Configure logging for the kernel.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging output
    """
    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'filters': {
            'invocation_id': {
                '()': InvocationIdFilter,
            },
        },
        'formatters': {
            'detailed': {
                'format': '%(asctime)s [%(levelname)s] %(component)s %(name)s '
                          '%(invocation_id)s caller=%(caller)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'simple': {
                'format': '[%(levelname)s] %(component)s - %(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': level,
                'formatter': 'simple',
                'stream': sys.stdout,
                'filters': ['invocation_id']
            }
        },
        'loggers': {
            'recovery_kernel': {
                'level': level,
                'handlers': ['console'],
                'propagate': True,
            },
        }
    }

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        config['handlers']['file'] = {
            'class': 'logging.FileHandler',
            'level': level,
            'formatter': 'detailed',
            'filename': str(log_file),
            'filters': ['invocation_id']
        }
        config['loggers']['recovery_kernel']['handlers'].append('file')

    logging.config.dictConfig(config)


def get_logger(component: str) -> ComponentAdapter:
    """
    Get a logger for a specific component.

    Args:
        component: Component name (e.g., 'guardians', 'recovery', 'batch')

    Returns:
        Logger adapter with component context
    """
    logger = logging.getLogger(f'recovery_kernel.{component}')
    return ComponentAdapter(logger, component)


def generate_invocation_id() -> str:
    """Generate a new invocation ID."""
    return str(uuid.uuid4())[:8]


def log_security_event(event_type: str, severity: str = "INFO", **kwargs) -> ComponentAdapter:
    """Log security events (refusals, ownership changes) with appropriate severity."""
    logger = get_logger('security.events')
    log_method = getattr(logger, severity.lower(), logger.info)
    log_method(f"Security {event_type}", extra={'event_type': event_type, **kwargs})
    return logger
