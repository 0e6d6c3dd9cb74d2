"""
Centralized logging configuration for the clinic CRM

PRODUCTION (LOG_LEVEL=INFO):
- Lifecycle events only: lead created/converted, no-show reconciled, dispatch results
- WARNING for best-effort failures (auto messages, calendar sync)
- ERROR/EXCEPTION with full stacktrace

DEVELOPMENT (LOG_LEVEL=DEBUG):
- Full DEBUG logging, SQL echo through sqlalchemy.engine at INFO
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from flask import has_request_context, request, session

LOG_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL
}

# Quieted in production, INFO in development
NOISY_LOGGERS = ('werkzeug', 'sqlalchemy.engine', 'sqlalchemy.pool', 'urllib3', 'requests')

_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


class CrmJSONFormatter(logging.Formatter):
    """One JSON object per line, tagged with the request path and CRM user when there is one"""

    def format(self, record):
        entry = {
            'ts': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }

        if has_request_context():
            entry['path'] = request.path
            user = session.get('crm_user')
            if isinstance(user, dict):
                entry['user'] = user.get('name')
                entry['role'] = user.get('role')

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                entry[key] = value

        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def _resolve_level():
    name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = LOG_LEVELS.get(name)
    if level is None:
        # logging isn't configured yet
        print(f"WARNING: Invalid LOG_LEVEL '{name}', defaulting to INFO", file=sys.stderr)
        return 'INFO', logging.INFO
    return name, level


def configure_logging(log_to_file: bool = True):
    """
    Configure root logging for the whole application.

    Environment Variables:
        LOG_LEVEL: DEBUG, INFO, WARNING, ERROR. Default: INFO
        LOG_JSON: Enable JSON line format (0 or 1). Default: 0
        LOG_DIR: Directory for the rotating file handler. Default: logs
    """
    level_name, log_level = _resolve_level()
    is_production = log_level >= logging.INFO
    use_json = os.getenv('LOG_JSON', '0') == '1'

    if use_json:
        formatter = CrmJSONFormatter()
    else:
        formatter = logging.Formatter('[%(asctime)s] %(levelname)-8s [%(name)s] %(message)s',
                                      datefmt='%Y-%m-%d %H:%M:%S')

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        log_dir = os.getenv('LOG_DIR', 'logs')
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(os.path.join(log_dir, 'clinic_crm.log'),
                                            maxBytes=10 * 1024 * 1024, backupCount=5, encoding='utf-8'))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    lib_level = logging.WARNING if is_production else logging.INFO
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(lib_level)

    root_logger.info(f'[Logging] level={level_name} json={use_json} file={log_to_file}')
    return root_logger
