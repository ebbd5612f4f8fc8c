"""
Test the MCP tool handlers against a fake pool

Handlers never raise: every failure comes back as {success: False, error}.
"""

import asyncio

import pytest
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock

from mcp_servers.postgres_server.config import DatabaseConfig
from mcp_servers.postgres_server.database import DatabaseManager, InitializationError
from mcp_servers.postgres_server.tools import TOOL_MODULES
from mcp_servers.postgres_server.tools.describe_table_tool import (
    COLUMNS_SQL,
    FOREIGN_KEYS_SQL,
    INDEXES_SQL,
    handle_describe_table_tool,
)
from mcp_servers.postgres_server.tools.list_tables_tool import LIST_TABLES_SQL, handle_list_tables_tool
from mcp_servers.postgres_server.tools.query_tool import handle_query_tool
from mcp_servers.postgres_server.tools.version_tool import handle_version_tool
from server_project import settings

from .fakes import FakePool


async def ready_manager(pool, insecure=False):
    config = DatabaseConfig(host='db', database='app', username='u', password='p', insecure=insecure)
    manager = DatabaseManager(
        config_loader=lambda: config,
        tunnel_config_loader=lambda: None,
        pool_factory=AsyncMock(return_value=pool),
    )
    await manager.initialize()
    return manager


@pytest.mark.unit
class TestToolDefinitions(IsolatedAsyncioTestCase):

    async def test_every_tool_accepts_format(self):
        names = []
        for module in TOOL_MODULES:
            definition = module.TOOL_DEFINITION
            names.append(definition['name'])
            self.assertIn('format', definition['inputSchema']['properties'])
        self.assertEqual(names, ['query', 'list_tables', 'describe_table', 'version'])


@pytest.mark.unit
class TestQueryTool(IsolatedAsyncioTestCase):

    async def test_paginated_result(self):
        pool = FakePool(rows=[{'id': 1}, {'id': 2}, {'id': 3}])
        manager = await ready_manager(pool)

        result = await handle_query_tool(manager, {'sql': 'SELECT id FROM t', 'limit': 2})

        self.assertTrue(result['success'])
        self.assertEqual(pool.fetch_calls[0][0], 'SELECT id FROM t LIMIT 3')
        self.assertEqual(result['data'], [{'id': 1}, {'id': 2}])
        self.assertEqual(result['rowCount'], 2)
        self.assertTrue(result['limitApplied'])
        self.assertEqual(result['pagination'], {'limit': 2, 'offset': 0, 'hasMore': True})

    async def test_defaults(self):
        pool = FakePool(rows=[{'id': 1}])
        manager = await ready_manager(pool)

        result = await handle_query_tool(manager, {'sql': 'SELECT id FROM t;'})

        self.assertEqual(pool.fetch_calls[0][0], 'SELECT id FROM t LIMIT 1001')
        self.assertFalse(result['limitApplied'])
        self.assertEqual(result['pagination'], {'limit': 1000, 'offset': 0, 'hasMore': False})

    async def test_has_more_at_row_cap(self):
        pool = FakePool(rows=[{'id': i} for i in range(1001)])
        manager = await ready_manager(pool)

        result = await handle_query_tool(manager, {'sql': 'SELECT id FROM big'})

        self.assertEqual(result['rowCount'], 1000)
        self.assertTrue(result['pagination']['hasMore'])

    async def test_offset(self):
        pool = FakePool(rows=[])
        manager = await ready_manager(pool)

        result = await handle_query_tool(manager, {'sql': 'SELECT * FROM t', 'limit': 10, 'offset': 20})

        self.assertEqual(pool.fetch_calls[0][0], 'SELECT * FROM t LIMIT 11 OFFSET 20')
        self.assertEqual(result['data'], [])
        self.assertEqual(result['pagination'], {'limit': 10, 'offset': 20, 'hasMore': False})

    async def test_explicit_pagination_kept(self):
        pool = FakePool(rows=[])
        manager = await ready_manager(pool)

        await handle_query_tool(manager, {'sql': 'SELECT * FROM t LIMIT 5 OFFSET 5', 'limit': 50})

        self.assertEqual(pool.fetch_calls[0][0], 'SELECT * FROM t LIMIT 5 OFFSET 5')

    async def test_write_blocked(self):
        pool = FakePool()
        manager = await ready_manager(pool)

        result = await handle_query_tool(manager, {'sql': 'DELETE FROM users'})

        self.assertFalse(result['success'])
        self.assertIn('DELETE', result['error'])
        self.assertEqual(pool.fetch_calls, [])

    async def test_write_allowed_in_insecure_mode_without_pagination(self):
        pool = FakePool(rows=[])
        manager = await ready_manager(pool, insecure=True)

        result = await handle_query_tool(manager, {'sql': 'DELETE FROM sessions WHERE expired'})

        self.assertTrue(result['success'])
        self.assertEqual(pool.fetch_calls[0][0], 'DELETE FROM sessions WHERE expired')

    async def test_invalid_pagination(self):
        manager = await ready_manager(FakePool())

        result = await handle_query_tool(manager, {'sql': 'SELECT 1', 'limit': 0})
        self.assertEqual(result, {'success': False, 'error': 'Invalid limit: must be a positive integer'})

        result = await handle_query_tool(manager, {'sql': 'SELECT 1', 'offset': -5})
        self.assertFalse(result['success'])
        self.assertIn('Invalid offset', result['error'])

    async def test_missing_sql(self):
        manager = await ready_manager(FakePool())

        result = await handle_query_tool(manager, {})

        self.assertFalse(result['success'])
        self.assertIn('sql parameter is required', result['error'])

    async def test_driver_error_returned(self):
        manager = await ready_manager(FakePool(error=RuntimeError('syntax error at or near "FORM"')))

        result = await handle_query_tool(manager, {'sql': 'SELECT * FORM t'})

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Query execution failed: syntax error at or near "FORM"')

    async def test_database_not_started(self):
        config = DatabaseConfig(host='db', database='app', username='u', password='p')
        manager = DatabaseManager(config_loader=lambda: config, tunnel_config_loader=lambda: None,
                                  pool_factory=AsyncMock())

        result = await handle_query_tool(manager, {'sql': 'SELECT 1'})

        self.assertFalse(result['success'])
        self.assertIn('not started', result['error'])

    async def test_write_rejected_while_database_is_starting(self):
        async def very_slow_factory(**kwargs):
            await asyncio.sleep(5)
            return FakePool()

        config = DatabaseConfig(host='db', database='app', username='u', password='p')
        manager = DatabaseManager(config_loader=lambda: config, tunnel_config_loader=lambda: None,
                                  pool_factory=AsyncMock(side_effect=very_slow_factory))
        init_task = asyncio.create_task(manager.initialize())
        await asyncio.sleep(0)

        loop = asyncio.get_running_loop()
        start = loop.time()
        result = await handle_query_tool(manager, {'sql': 'DELETE FROM users'}, ready_timeout=2)

        self.assertLess(loop.time() - start, 1.0)
        self.assertFalse(result['success'])
        self.assertIn('DELETE', result['error'])

        init_task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await init_task

    async def test_write_rejected_after_failed_initialization(self):
        manager = DatabaseManager(
            config_loader=lambda: DatabaseConfig(host='db', database='app', username='u', password='p'),
            tunnel_config_loader=lambda: None,
            pool_factory=AsyncMock(side_effect=OSError('connection refused')),
        )
        with self.assertRaises(InitializationError):
            await manager.initialize()

        result = await handle_query_tool(manager, {'sql': 'DROP TABLE users'})

        self.assertFalse(result['success'])
        self.assertIn('DROP', result['error'])
        self.assertNotIn('initialize', result['error'])

    async def test_insecure_flag_known_before_initialization(self):
        config = DatabaseConfig(host='db', database='app', username='u', password='p', insecure=True)
        manager = DatabaseManager(config_loader=lambda: config, tunnel_config_loader=lambda: None,
                                  pool_factory=AsyncMock())

        self.assertTrue(manager.insecure)


@pytest.mark.unit
class TestListTablesTool(IsolatedAsyncioTestCase):

    async def test_lists_public_schema_by_default(self):
        tables = [
            {'schema': 'public', 'tableName': 'orders', 'tableType': 'BASE TABLE'},
            {'schema': 'public', 'tableName': 'order_totals', 'tableType': 'VIEW'},
        ]
        pool = FakePool(rows=tables)
        manager = await ready_manager(pool)

        result = await handle_list_tables_tool(manager, {})

        self.assertEqual(result, {'success': True, 'tables': tables, 'tableCount': 2})
        self.assertEqual(pool.fetch_calls, [(LIST_TABLES_SQL, ('public',))])

    async def test_schema_filter_is_bound(self):
        pool = FakePool(rows=[])
        manager = await ready_manager(pool)

        result = await handle_list_tables_tool(manager, {'schema': "x'; DROP TABLE t; --"})

        self.assertEqual(result['tableCount'], 0)
        self.assertEqual(pool.fetch_calls[0][1], ("x'; DROP TABLE t; --",))

    async def test_error_returned(self):
        manager = await ready_manager(FakePool(error=RuntimeError('permission denied')))

        result = await handle_list_tables_tool(manager, {'schema': 'secret'})

        self.assertFalse(result['success'])
        self.assertIn('permission denied', result['error'])


@pytest.mark.unit
class TestDescribeTableTool(IsolatedAsyncioTestCase):

    COLUMNS = [
        {'columnName': 'id', 'dataType': 'integer', 'isNullable': 'NO', 'columnDefault': None,
         'characterMaximumLength': None, 'numericPrecision': 32, 'numericScale': 0},
        {'columnName': 'customer_id', 'dataType': 'integer', 'isNullable': 'YES', 'columnDefault': None,
         'characterMaximumLength': None, 'numericPrecision': 32, 'numericScale': 0},
    ]
    INDEXES = [{'indexName': 'orders_pkey', 'columnName': 'id', 'isUnique': True, 'isPrimary': True}]
    FOREIGN_KEYS = [{'constraintName': 'orders_customer_fk', 'columnName': 'customer_id',
                     'referencedTable': 'customers', 'referencedColumn': 'id'}]

    def catalog(self, query, args):
        return {
            COLUMNS_SQL: self.COLUMNS,
            INDEXES_SQL: self.INDEXES,
            FOREIGN_KEYS_SQL: self.FOREIGN_KEYS,
        }[query]

    async def test_describes_table(self):
        pool = FakePool(rows=self.catalog)
        manager = await ready_manager(pool)

        result = await handle_describe_table_tool(manager, {'table': 'orders', 'schema': 'sales'})

        self.assertTrue(result['success'])
        self.assertEqual(result['schema'], 'sales')
        self.assertEqual(result['tableName'], 'orders')
        self.assertEqual(result['columns'], self.COLUMNS)
        self.assertEqual(result['indexes'], self.INDEXES)
        self.assertEqual(result['foreignKeys'], self.FOREIGN_KEYS)
        self.assertEqual([args for _, args in pool.fetch_calls], [('sales', 'orders')] * 3)

    async def test_unknown_table(self):
        pool = FakePool(rows=[])
        manager = await ready_manager(pool)

        result = await handle_describe_table_tool(manager, {'table': 'nope'})

        self.assertEqual(result, {'success': False, 'error': "Table 'public.nope' not found"})
        self.assertEqual(len(pool.fetch_calls), 1)

    async def test_missing_table_argument(self):
        manager = await ready_manager(FakePool())

        result = await handle_describe_table_tool(manager, {'schema': 'public'})

        self.assertFalse(result['success'])
        self.assertIn('table parameter is required', result['error'])


@pytest.mark.unit
class TestVersionTool(IsolatedAsyncioTestCase):

    async def test_reports_server_identity(self):
        result = await handle_version_tool(None, {})

        self.assertEqual(result, {
            'success': True,
            'name': settings.SERVER_NAME,
            'version': settings.SERVER_VERSION,
            'description': settings.SERVER_DESCRIPTION,
        })
