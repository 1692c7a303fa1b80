import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd
import psycopg2
from psycopg2 import sql

from .base import BaseConnector

logger = logging.getLogger(__name__)

FETCH_PAGE_SIZE = 1000


class PostgresConnector(BaseConnector):
    """
    Connector for the PostgreSQL database the sync pipeline writes to.
    """

    def __init__(self, config: dict):
        super().__init__(config)
        self.connection = None

    def connect(self):
        """
        Establishes a connection to the PostgreSQL database.
        """
        try:
            self.connection = psycopg2.connect(
                host=self.config.get("host"),
                port=self.config.get("port", 5432),
                user=self.config.get("username"),
                password=self.config.get("password"),
                dbname=self.config.get("database"),
                sslmode=self.config.get("sslmode", "prefer"),
            )
            logger.info(
                f"Successfully connected to PostgreSQL database: {self.config.get('database')} at {self.config.get('host')}")
        except psycopg2.Error as e:
            logger.error(f"Error connecting to PostgreSQL: {e}")
            raise ConnectionError(f"Could not connect to PostgreSQL: {e}")

    def disconnect(self):
        """
        Closes the database connection.
        """
        if self.connection:
            self.connection.close()
            self.connection = None
            logger.info(
                f"Disconnected from PostgreSQL database: {self.config.get('database')} at {self.config.get('host')}")

    def build_query(self, table: str, columns: List[str], filters: Optional[Dict[str, Iterable]] = None):
        """
        Composes a SELECT for the table. Filter columns are cast to text so ids compare
        the same way whether the column is an integer, a uuid or a string.
        """
        query = sql.SQL("SELECT {columns} FROM {table}").format(
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            table=self._table_identifier(table),
        )
        params = []
        if filters:
            conditions = [sql.SQL("{}::text = ANY(%s)").format(sql.Identifier(column)) for column in filters]
            query = query + sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
            params = [[str(value) for value in values] for values in filters.values()]
        return query, params

    def read_table(self, table: str, columns: List[str],
                   filters: Optional[Dict[str, Iterable]] = None) -> pd.DataFrame:
        """
        Reads a table page by page and returns the rows as a pandas DataFrame.
        """
        if not self.connection:
            self.connect()

        query, params = self.build_query(table, columns, filters)
        try:
            with self.connection.cursor() as cursor:
                logger.debug(f"Reading {table} from PostgreSQL with filters on {list((filters or {}).keys())}")
                cursor.execute(query, params)
                colnames = [desc[0] for desc in cursor.description]
                rows = []
                while True:
                    batch = cursor.fetchmany(FETCH_PAGE_SIZE)
                    rows.extend(batch)
                    if len(batch) < FETCH_PAGE_SIZE:
                        break

            df = pd.DataFrame(rows, columns=colnames)
            logger.info(f"Successfully read {table} from PostgreSQL. Fetched {len(df)} rows.")
            return self._validate_columns(df, table, columns)
        except psycopg2.Error as e:
            logger.error(f"Error reading {table} from PostgreSQL: {e}")
            self.connection.rollback()
            raise RuntimeError(f"Could not read {table} from PostgreSQL: {e}")

    def _table_identifier(self, table: str):
        schema = self.config.get("schema")
        return sql.Identifier(schema, table) if schema else sql.Identifier(table)
