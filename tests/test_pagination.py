"""
Test LIMIT / OFFSET rewriting and pagination parameter validation
"""

import pytest
from unittest import TestCase

from security.pagination import PaginationWindow, apply_pagination, validate_pagination
from security.query_validator import QueryLimits, QueryValidationError


@pytest.mark.unit
class TestApplyPagination(TestCase):

    def test_adds_limit(self):
        self.assertEqual(apply_pagination("SELECT * FROM t", 10, 0), "SELECT * FROM t LIMIT 10")

    def test_adds_limit_and_offset(self):
        self.assertEqual(apply_pagination("SELECT * FROM t", 10, 20), "SELECT * FROM t LIMIT 10 OFFSET 20")

    def test_no_offset_when_zero(self):
        self.assertNotIn("OFFSET", apply_pagination("SELECT * FROM t", 5))

    def test_existing_limit_and_offset_untouched(self):
        sql = "SELECT * FROM t LIMIT 5 OFFSET 10"
        self.assertEqual(apply_pagination(sql, 100, 50), sql)

    def test_existing_limit_kept_offset_added(self):
        self.assertEqual(
            apply_pagination("SELECT * FROM t LIMIT 5", 100, 30),
            "SELECT * FROM t LIMIT 5 OFFSET 30"
        )

    def test_existing_offset_kept_limit_added(self):
        self.assertEqual(
            apply_pagination("SELECT * FROM t OFFSET 3", 7, 30),
            "SELECT * FROM t OFFSET 3 LIMIT 7"
        )

    def test_existing_clauses_detected_case_insensitively(self):
        sql = "select * from t limit 5 offset 2"
        self.assertEqual(apply_pagination(sql, 100, 50), sql)

    def test_strips_trailing_semicolon_and_whitespace(self):
        self.assertEqual(apply_pagination("  SELECT 1;  ", 10), "SELECT 1 LIMIT 10")

    def test_trailing_line_comment_moves_clause_to_new_line(self):
        self.assertEqual(
            apply_pagination("SELECT * FROM t -- all rows", 10, 5),
            "SELECT * FROM t -- all rows\nLIMIT 10 OFFSET 5"
        )


@pytest.mark.unit
class TestValidatePagination(TestCase):

    def test_defaults(self):
        self.assertEqual(validate_pagination(), PaginationWindow(limit=1000, offset=0))

    def test_limit_capped_at_max_rows(self):
        self.assertEqual(validate_pagination(limit=5000).limit, 1000)

    def test_custom_max_rows(self):
        window = validate_pagination(limit=50, offset=10, limits=QueryLimits(max_rows=20))
        self.assertEqual(window, PaginationWindow(limit=20, offset=10))

    def test_integral_float_accepted(self):
        self.assertEqual(validate_pagination(limit=10.0, offset=2.0), PaginationWindow(limit=10, offset=2))

    def test_invalid_limit(self):
        for limit in (0, -1, 1.5, "10", True):
            with self.assertRaises(QueryValidationError) as context:
                validate_pagination(limit=limit)
            self.assertIn("Invalid limit", str(context.exception))

    def test_invalid_offset(self):
        for offset in (-1, 2.5, "0", False):
            with self.assertRaises(QueryValidationError) as context:
                validate_pagination(offset=offset)
            self.assertIn("Invalid offset", str(context.exception))
