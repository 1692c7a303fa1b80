import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .base import BaseConnector

logger = logging.getLogger(__name__)


class CsvConnector(BaseConnector):
    """
    Connector for a directory of CSV exports, one ``<table>.csv`` file per table.

    Every cell is read as a string; the curve engine parses dates, flags and amounts
    itself and tolerates values it cannot read.
    """

    def __init__(self, config: dict):
        super().__init__(config)
        self.directory = None

    def connect(self):
        directory = Path(self.config.get("path", "."))
        if not directory.is_dir():
            logger.error(f"CSV data directory not found: {directory}")
            raise ConnectionError(f"CSV data directory not found: {directory}")
        self.directory = directory

    def disconnect(self):
        self.directory = None

    def read_table(self, table: str, columns: List[str],
                   filters: Optional[Dict[str, Iterable]] = None) -> pd.DataFrame:
        if self.directory is None:
            self.connect()

        table_path = self.directory / f"{table}.csv"
        if not table_path.exists():
            raise FileNotFoundError(f"CSV file for table '{table}' not found at: {table_path}")

        df = pd.read_csv(table_path, dtype=str, keep_default_na=True)
        df = self._validate_columns(df, table, columns)

        for column, values in (filters or {}).items():
            allowed = {str(value) for value in values}
            df = df[df[column].isin(allowed)]

        logger.debug(f"Read {len(df)} rows from {table_path}")
        return df.reset_index(drop=True)
