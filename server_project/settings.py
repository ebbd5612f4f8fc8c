"""
Settings for the PostgreSQL MCP server.

Environment variables are read from the process environment and from a
local .env file. Database and SSH tunnel settings are parsed and validated
by mcp_servers.postgres_server.config; this module only holds the
process-level knobs (server identity, logging, startup timeouts).
"""

import os
import logging.config
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

SERVER_NAME = 'postgres-mcp-server'
SERVER_VERSION = '1.0.0'
SERVER_DESCRIPTION = 'MCP server providing read-only access to PostgreSQL databases'

# MCP protocol revision advertised in the initialize handshake
PROTOCOL_VERSION = '2024-11-05'

# How long tool calls wait for the pool to come up before giving up
DB_READY_TIMEOUT_MS = int(os.getenv('DB_READY_TIMEOUT_MS', '10000'))

# Pool close grace period before connections are terminated
DB_CLOSE_TIMEOUT_MS = int(os.getenv('DB_CLOSE_TIMEOUT_MS', '10000'))

_LOG_LEVELS = {
    'debug': 'DEBUG',
    'info': 'INFO',
    'warn': 'WARNING',
    'warning': 'WARNING',
    'error': 'ERROR',
}

LOG_LEVEL = _LOG_LEVELS.get(os.getenv('LOG_LEVEL', 'info').lower(), 'INFO')
LOG_FILE = os.getenv('LOG_FILE')

# stdout carries the JSON-RPC stream, so every handler writes to stderr
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '[{asctime}] {levelname}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'level': LOG_LEVEL,
            'class': 'logging.StreamHandler',
            'stream': 'ext://sys.stderr',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'mcp_servers': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'security': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'security_audit': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'asyncssh': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}

if LOG_FILE:
    LOGGING['handlers']['file'] = {
        'level': LOG_LEVEL,
        'class': 'logging.FileHandler',
        'filename': LOG_FILE,
        'formatter': 'verbose',
    }
    LOGGING['root']['handlers'].append('file')
    for logger_config in LOGGING['loggers'].values():
        logger_config['handlers'].append('file')


def configure_logging():
    """Apply the LOGGING configuration"""
    logging.config.dictConfig(LOGGING)
