"""Tests for registering records with DuckDB."""

import duckdb
import pytest

from reportstudio.core.relations import (
    as_text,
    blank_sql,
    fetch_ids,
    number_sql,
    register_records,
    relation_cursor,
)

RECORDS = [
    {"name": "a", "n": "1,500"},
    {"name": "b", "n": 7},
    {"name": None, "n": " "},
    {"name": "d", "n": "inf"},
    {"name": "e", "nested": {"y": 1, "x": 2}},
]


class TestAsText:
    """Tests for the registered text form of cells."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, None),
            (float("nan"), None),
            (3, "3"),
            (True, "True"),
            ({"y": 1, "x": 2}, '{"x": 2, "y": 1}'),
            ([1, "a"], '[1, "a"]'),
        ],
    )
    def test_as_text(self, value, expected):
        assert as_text(value) == expected


class TestRegisterRecords:
    """Tests for querying registered records."""

    def test_columns_read_as_text(self):
        with relation_cursor() as cursor:
            with register_records(cursor, RECORDS, ["name", "n", "nested"]) as rel:
                rows = cursor.execute(
                    f"SELECT {rel.ref('name')}, {rel.ref('nested')} FROM {rel.name} "
                    f"ORDER BY {rel.row_id()}"
                ).fetchall()
        assert rows[0] == ("a", None)
        assert rows[2] == (None, None)
        assert rows[4] == ("e", '{"x": 2, "y": 1}')

    def test_numbers_and_blanks(self):
        with relation_cursor() as cursor:
            with register_records(cursor, RECORDS, ["n"]) as rel:
                value = rel.ref("n")
                rows = cursor.execute(
                    f"SELECT {number_sql(value)}, {blank_sql(value)} FROM {rel.name} "
                    f"ORDER BY {rel.row_id()}"
                ).fetchall()
        assert [r[0] for r in rows] == [1500.0, 7.0, None, None, None]
        assert [r[1] for r in rows] == [False, False, True, False, True]

    def test_unknown_column_is_null(self):
        with relation_cursor() as cursor:
            with register_records(cursor, RECORDS, ["name"]) as rel:
                missing = rel.ref("nope")
                ids = fetch_ids(
                    cursor, f"SELECT {rel.row_id()} FROM {rel.name} WHERE {missing} IS NULL"
                )
        assert sorted(ids) == [0, 1, 2, 3, 4]

    def test_view_is_dropped_after_the_block(self, manager):
        with manager.duckdb_cursor() as cursor:
            with register_records(cursor, RECORDS, ["name"]) as rel:
                name = rel.name
            with pytest.raises(duckdb.Error):
                cursor.execute(f"SELECT * FROM {name}")

    def test_empty_records(self):
        with relation_cursor() as cursor:
            with register_records(cursor, [], ["a"]) as rel:
                row = cursor.execute(f"SELECT COUNT(*) FROM {rel.name}").fetchone()
        assert row == (0,)
