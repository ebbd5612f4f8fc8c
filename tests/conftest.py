"""
Pytest configuration and fixtures for the PostgreSQL MCP server

Provides common fixtures and configuration for all tests. No test needs a
live database or SSH server: the pool and tunnel are replaced by fakes.
"""

import pytest


@pytest.fixture
def database_env():
    """Minimal complete database environment"""
    return {
        'POSTGRES_HOST': 'db.internal',
        'POSTGRES_DATABASE': 'analytics',
        'POSTGRES_USER': 'reader',
        'POSTGRES_PASSWORD': 's3cret',
    }


@pytest.fixture
def ssh_env(database_env):
    """Database environment plus an enabled password-authenticated tunnel"""
    env = dict(database_env)
    env.update({
        'SSH_TUNNEL_ENABLED': 'true',
        'SSH_HOST': 'bastion.example.com',
        'SSH_USERNAME': 'deploy',
        'SSH_PASSWORD': 'hunter2',
    })
    return env


# Test markers
pytest.mark.unit = pytest.mark.unit
pytest.mark.integration = pytest.mark.integration
pytest.mark.security = pytest.mark.security
