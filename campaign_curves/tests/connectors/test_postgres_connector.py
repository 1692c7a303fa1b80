import unittest
from unittest.mock import patch, MagicMock

import pandas as pd
import psycopg2  # To mock its exceptions and objects
from psycopg2 import sql

from campaign_curves.connectors.postgres import FETCH_PAGE_SIZE, PostgresConnector

MOCK_DB_COLUMNS = ['event_id', 'event_date']


def _mock_connection(cursor):
    mock_connection_obj = MagicMock()
    mock_connection_obj.cursor.return_value.__enter__.return_value = cursor
    return mock_connection_obj


class TestPostgresConnector(unittest.TestCase):

    def setUp(self):
        self.config = {
            "host": "localhost",
            "port": 5432,
            "username": "testuser",
            "password": "testpassword",
            "database": "testdb"
        }

    @patch('psycopg2.connect')
    def test_connect_success(self, mock_connect):
        mock_connection_obj = MagicMock()
        mock_connect.return_value = mock_connection_obj

        connector = PostgresConnector(self.config)
        connector.connect()

        mock_connect.assert_called_once_with(
            host="localhost",
            port=5432,
            user="testuser",
            password="testpassword",
            dbname="testdb",
            sslmode="prefer",
        )
        self.assertEqual(connector.connection, mock_connection_obj)
        connector.disconnect()

    @patch('psycopg2.connect', side_effect=psycopg2.OperationalError("Connection failed"))
    def test_connect_failure(self, mock_connect):
        connector = PostgresConnector(self.config)
        with self.assertRaisesRegex(ConnectionError, "Could not connect to PostgreSQL: Connection failed"):
            connector.connect()
        mock_connect.assert_called_once()

    @patch('psycopg2.connect')
    def test_disconnect(self, mock_connect):
        mock_connection_obj = MagicMock()
        mock_connect.return_value = mock_connection_obj

        connector = PostgresConnector(self.config)
        connector.connect()
        self.assertIsNotNone(connector.connection)

        connector.disconnect()
        mock_connection_obj.close.assert_called_once()
        self.assertIsNone(connector.connection)

    def test_build_query_without_filters(self):
        query, params = PostgresConnector(self.config).build_query("events", MOCK_DB_COLUMNS)

        self.assertIsInstance(query, sql.Composed)
        self.assertIn("'events'", repr(query))
        self.assertNotIn("WHERE", repr(query))
        self.assertEqual(params, [])

    def test_build_query_filters_compare_as_text(self):
        query, params = PostgresConnector(dict(self.config, schema="reporting")).build_query(
            "donations", ["event_id", "d_amount"], {"event_id": [101, "102"], "d_status": ["paid"]})

        self.assertIn("'reporting'", repr(query))
        self.assertIn("::text = ANY(%s)", repr(query))
        self.assertEqual(params, [["101", "102"], ["paid"]])

    @patch('psycopg2.connect')
    def test_read_table_success(self, mock_connect):
        mock_data = [("e1", "2025-03-14T08:00:00"), ("e2", "2025-04-04T08:00:00")]

        mock_cursor_obj = MagicMock()
        mock_cursor_obj.fetchmany.return_value = mock_data
        mock_cursor_obj.description = [(col,) for col in MOCK_DB_COLUMNS]
        mock_connection_obj = _mock_connection(mock_cursor_obj)
        mock_connect.return_value = mock_connection_obj

        with PostgresConnector(self.config) as connector:
            df = connector.read_table("events", MOCK_DB_COLUMNS, {"event_id": ["e1", "e2"]})

        mock_connection_obj.cursor.assert_called_once()
        mock_cursor_obj.execute.assert_called_once()
        self.assertEqual(mock_cursor_obj.execute.call_args.args[1], [["e1", "e2"]])
        mock_cursor_obj.fetchmany.assert_called_once_with(FETCH_PAGE_SIZE)

        self.assertIsInstance(df, pd.DataFrame)
        self.assertListEqual(df.columns.tolist(), MOCK_DB_COLUMNS)
        self.assertEqual(df['event_id'].iloc[1], "e2")

    @patch('psycopg2.connect')
    def test_read_table_pages_through_results(self, mock_connect):
        full_page = [("e", "2025-03-14")] * FETCH_PAGE_SIZE
        mock_cursor_obj = MagicMock()
        mock_cursor_obj.fetchmany.side_effect = [full_page, [("last", "2025-03-14")]]
        mock_cursor_obj.description = [(col,) for col in MOCK_DB_COLUMNS]
        mock_connect.return_value = _mock_connection(mock_cursor_obj)

        with PostgresConnector(self.config) as connector:
            df = connector.read_table("events", MOCK_DB_COLUMNS)

        self.assertEqual(mock_cursor_obj.fetchmany.call_count, 2)
        self.assertEqual(len(df), FETCH_PAGE_SIZE + 1)
        self.assertEqual(df['event_id'].iloc[-1], "last")

    @patch('psycopg2.connect')
    def test_read_table_db_error(self, mock_connect):
        mock_cursor_obj = MagicMock()
        mock_cursor_obj.execute.side_effect = psycopg2.Error("relation does not exist")
        mock_connection_obj = _mock_connection(mock_cursor_obj)
        mock_connect.return_value = mock_connection_obj

        with PostgresConnector(self.config) as connector:
            with self.assertRaisesRegex(RuntimeError, "Could not read events from PostgreSQL: relation does not exist"):
                connector.read_table("events", MOCK_DB_COLUMNS)

        mock_connection_obj.rollback.assert_called_once()

    @patch('psycopg2.connect')
    def test_read_table_missing_column(self, mock_connect):
        mock_cursor_obj = MagicMock()
        mock_cursor_obj.fetchmany.return_value = [("e1",)]
        mock_cursor_obj.description = [("event_id",)]
        mock_connect.return_value = _mock_connection(mock_cursor_obj)

        with PostgresConnector(self.config) as connector:
            with self.assertRaisesRegex(ValueError, "Table 'events' is missing columns \\['event_date'\\]"):
                connector.read_table("events", MOCK_DB_COLUMNS)


if __name__ == '__main__':
    unittest.main()
