"""Mock psycopg2 connections for tests that never touch a real database."""
from unittest.mock import MagicMock


def make_conn(fetchall_rows=None, fetchone_row=None):
    """
    Returns (mock_conn, mock_cursor).

    Supports the ``with conn.cursor(...) as cur:`` pattern used in retail_pulse.db.
    mock_cursor.fetchall() → fetchall_rows  (default [])
    mock_cursor.fetchone() → fetchone_row   (default None)
    """
    mock_cursor = MagicMock()
    mock_cursor.fetchall.return_value = fetchall_rows if fetchall_rows is not None else []
    mock_cursor.fetchone.return_value = fetchone_row

    mock_ctx = MagicMock()
    mock_ctx.__enter__ = MagicMock(return_value=mock_cursor)
    mock_ctx.__exit__ = MagicMock(return_value=False)

    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_ctx
    return mock_conn, mock_cursor
