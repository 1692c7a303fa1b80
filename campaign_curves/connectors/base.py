from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

import pandas as pd


class BaseConnector(ABC):
    """
    Abstract base class for campaign data connectors.
    Each connector reads one of the synced reporting tables and returns it as a pandas DataFrame.
    """

    def __init__(self, config: dict):
        """
        Initialize the connector with its configuration.

        Args:
            config (dict): Source-specific connection parameters.
        """
        self.config = config

    @abstractmethod
    def connect(self):
        """
        Establish a connection to the source.
        This method should store the connection object in an instance variable.
        """
        pass

    @abstractmethod
    def disconnect(self):
        """
        Close the connection.
        """
        pass

    @abstractmethod
    def read_table(self, table: str, columns: List[str],
                   filters: Optional[Dict[str, Iterable]] = None) -> pd.DataFrame:
        """
        Read rows of a table.

        Args:
            table (str): The table name, e.g. "event_entries".
            columns (List[str]): The columns to return.
            filters (dict, optional): Column name to allowed values. Values are compared as
                strings so identifiers match whatever type the source stores them as.

        Returns:
            pd.DataFrame: The matching rows with exactly the requested columns.
        """
        pass

    def __enter__(self):
        """
        Context management entry point.
        """
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """
        Context management exit point. Ensures disconnection.
        """
        self.disconnect()

    def _validate_columns(self, df: pd.DataFrame, table: str, columns: List[str]) -> pd.DataFrame:
        """
        Checks that a result carries every requested column and returns it restricted to them.

        Raises:
            ValueError: If a requested column is missing from the result.
        """
        missing = [column for column in columns if column not in df.columns]
        if missing:
            raise ValueError(f"Table '{table}' is missing columns {missing}. Available columns: {df.columns.tolist()}")
        return df[columns]
