from .base import BaseConnector
from .csv_files import CsvConnector
from .postgres import PostgresConnector

import logging

logger = logging.getLogger(__name__)

_CONNECTOR_MAP = {
    "csv": CsvConnector,
    "postgres": PostgresConnector,
}

def get_connector(connection_type: str, config: dict) -> BaseConnector:
    """
    Factory function to get a data connector instance.

    Args:
        connection_type (str): The type of data source (e.g., "csv", "postgres").
        config (dict): The configuration dictionary for the connector.

    Returns:
        BaseConnector: An instance of the appropriate connector.

    Raises:
        ValueError: If the connection_type is not supported.
    """
    connector_class = _CONNECTOR_MAP.get(str(connection_type).lower())
    if not connector_class:
        logger.error(f"Unsupported data connection type: {connection_type}")
        raise ValueError(f"Unsupported data connection type: {connection_type}. Supported types are: {list(_CONNECTOR_MAP.keys())}")

    logger.info(f"Creating connector of type: {connection_type}")
    return connector_class(config)

__all__ = [
    "BaseConnector",
    "CsvConnector",
    "PostgresConnector",
    "get_connector",
]
