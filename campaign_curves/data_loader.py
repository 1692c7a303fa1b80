import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Tuple

import pandas as pd
import requests
import yaml
from yaml.scanner import ScannerError

from campaign_curves.connectors import BaseConnector, get_connector
from campaign_curves.constants import (
    MATCHED_DONATION_TYPE,
    MAX_FETCH_WORKERS,
    PAID_DONATION_STATUS,
    TABLE_COLUMNS,
    UNKNOWN_CATEGORY_NAME,
)
from campaign_curves.controller_utility import SafeLineLoader
from campaign_curves.groups import GroupData, GroupInfo
from campaign_curves.markers import PriceWindow
from campaign_curves.week_utility import coerce_boolean

logger = logging.getLogger(__name__)


def _records(df: pd.DataFrame) -> List[dict]:
    """DataFrame rows as plain dicts with NaN replaced by None."""
    return df.astype(object).where(df.notna(), None).to_dict(orient="records")


class DataLoader:

    def __init__(self, cfg: dict, connector_factory: Callable[[], BaseConnector] = None):
        """
        Initializes the DataLoader that reads campaign data based on the fallback logic:
        1. Use `connector_factory` if provided.
        2. If not, use the `data_source` section of the `cfg`.
        3. If not, use `db_config_url` (and optionally `connection`) from the `setup` section.
        4. If none is available, raise an error.

        Args:
            cfg (dict): The report YAML configuration.
            connector_factory (callable, optional): Returns a fresh connector for every fetch.
        """
        self.cfg = cfg
        if connector_factory:
            logger.info("Connector factory provided. Using it as the data source.")
            self.connector_factory = connector_factory
        else:
            connection_type, connection_config = self._resolve_connection()
            self.connector_factory = lambda: get_connector(connection_type, connection_config)

    def _resolve_connection(self) -> Tuple[str, dict]:
        data_source = self.cfg.get("data_source")
        if data_source:
            if "type" not in data_source or "config" not in data_source:
                raise ValueError(f"'data_source' must have 'type' and 'config', at line: "
                                 f"{data_source.get('__line__', 'N/A')}")
            logger.info(f"Using '{data_source['type']}' data source from the report config.")
            return data_source["type"], data_source["config"]

        setup = self.cfg.get("setup") or {}
        db_config_url = setup.get("db_config_url")
        if not db_config_url:
            raise ValueError(
                "No data source provided. Please provide either a 'data_source' section or a 'db_config_url' "
                "in the setup section of your YAML config.")

        connections = _load_connections_from_url_or_path(db_config_url)
        if not connections:
            raise ValueError(f"No connections defined in {db_config_url}.")
        connection_name = setup.get("connection") or next(iter(connections))
        connection = connections.get(connection_name)
        if not connection:
            raise ValueError(f"Connection '{connection_name}' not found in the connections file.")

        logger.info(f"Using connection '{connection_name}' from {db_config_url}.")
        return connection["type"], connection["config"]

    def load_catalogue(self) -> List[GroupInfo]:
        """
        Reads every event group with its category name, ordered the way group pickers list
        them: most recent year first, then category name.
        """
        try:
            with self.connector_factory() as connector:
                categories = connector.read_table("event_category", TABLE_COLUMNS["event_category"])
                groups = connector.read_table("event_group", TABLE_COLUMNS["event_group"])
        except Exception as e:
            logger.error(f"Failed to load the event group catalogue: {e}", exc_info=True)
            raise RuntimeError(f"Failed to load the event group catalogue: {e}")

        category_names = {str(row["id"]): row["display_name"] for row in _records(categories)}
        catalogue = []
        for row in _records(groups):
            try:
                year = int(float(row["year"]))
            except (TypeError, ValueError):
                logger.warning(f"Skipping event group {row['id']} with invalid year {row['year']!r}")
                continue
            category_id = str(row["event_category_id"])
            catalogue.append(GroupInfo(
                id=str(row["id"]),
                category_id=category_id,
                category_name=category_names.get(category_id) or UNKNOWN_CATEGORY_NAME,
                year=year,
            ))

        catalogue.sort(key=lambda group: (-group.year, group.category_name, group.id))
        logger.info(f"Loaded {len(catalogue)} event groups.")
        return catalogue

    def fetch_group(self, group: GroupInfo) -> GroupData:
        """
        Fetches the entries, donations, event dates and price windows of one group.

        Only events mapped to the group with reporting switched on are read. Donations are
        narrowed to paid, non-matched rows at read time.
        """
        with self.connector_factory() as connector:
            mappings = connector.read_table("event_group_event", TABLE_COLUMNS["event_group_event"],
                                            {"event_group_id": [group.id]})
            event_ids = sorted({
                str(row["event_id"]) for row in _records(mappings)
                if row["event_id"] is not None and coerce_boolean(row["include_in_reporting"]) is not False
            })
            if not event_ids:
                logger.info(f"No reporting events mapped to {group.label}.")
                return GroupData(group)

            events = connector.read_table("events", TABLE_COLUMNS["events"], {"event_id": event_ids})
            discounts = connector.read_table("event_group_discount", TABLE_COLUMNS["event_group_discount"],
                                             {"event_group_id": [group.id]})
            entries = connector.read_table("event_entries", TABLE_COLUMNS["event_entries"],
                                           {"event_id": event_ids})
            donations = connector.read_table("donations", TABLE_COLUMNS["donations"],
                                             {"event_id": event_ids, "d_status": [PAID_DONATION_STATUS]})

        donation_rows = [row for row in _records(donations) if row["donation_type"] != MATCHED_DONATION_TYPE]
        group_data = GroupData(
            group=group,
            entries=_records(entries),
            donations=donation_rows,
            event_dates=[row["event_date"] for row in _records(events)],
            price_windows=[PriceWindow.from_row(row) for row in _records(discounts)],
        )
        logger.info(f"Fetched {len(group_data.entries)} entries and {len(group_data.donations)} donations "
                    f"for {group.label} across {len(event_ids)} events.")
        return group_data

    def fetch_groups(self, groups: Iterable[GroupInfo]) -> Dict[str, GroupData]:
        """
        Fetches several groups concurrently and returns them keyed by group id.

        Raises:
            RuntimeError: If any group fails to load. Partial results are discarded.
        """
        unique_groups = list({group.id: group for group in groups}.values())
        if not unique_groups:
            return {}

        with ThreadPoolExecutor(max_workers=min(len(unique_groups), MAX_FETCH_WORKERS)) as executor:
            futures = {group.id: (group, executor.submit(self.fetch_group, group)) for group in unique_groups}
            results = {}
            for group_id, (group, future) in futures.items():
                try:
                    results[group_id] = future.result()
                except Exception as e:
                    logger.error(f"Failed to load data for {group.label}: {e}", exc_info=True)
                    raise RuntimeError(f"Failed to load data for {group.label}: {e}")

        return results


def _load_connections_from_url_or_path(url_or_path: str) -> dict:
    """
    Loads and parses a connections YAML file from a URL or a local file path.

    Args:
        url_or_path (str): The URL or local file path to the connections YAML file.

    Returns:
        dict: A dictionary mapping connection names to their configurations.
    """
    if url_or_path.lower().startswith(('http://', 'https://')):
        try:
            response = requests.get(url_or_path, allow_redirects=True)
            response.raise_for_status()
            content = response.content.decode("utf-8")
            config_data = yaml.load(content, Loader=SafeLineLoader)
            logger.info(f"Successfully fetched connections file from URL: {url_or_path}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to fetch connections file from URL: {url_or_path}. Error: {e}", exc_info=True)
            raise ConnectionError(f"Failed to fetch connections file from URL: {url_or_path}")
        except (ScannerError, yaml.YAMLError) as e:
            logger.error(f"Error parsing connections YAML from {url_or_path}: {e}", exc_info=True)
            raise ValueError(f"Error parsing connections YAML from {url_or_path}: {e}")
    else:
        try:
            with open(url_or_path, 'r') as f:
                config_data = yaml.load(f.read(), Loader=SafeLineLoader)
            logger.info(f"Successfully read connections file from local path: {url_or_path}")
        except FileNotFoundError:
            logger.error(f"Connections configuration file not found at local path: {url_or_path}")
            raise FileNotFoundError(f"Connections configuration file not found at: {url_or_path}")
        except (ScannerError, yaml.YAMLError) as e:
            logger.error(f"Error parsing connections YAML from {url_or_path}: {e}", exc_info=True)
            raise ValueError(f"Error parsing connections YAML from {url_or_path}: {e}")

    if not isinstance(config_data, dict) or "connections" not in config_data:
        raise ValueError(f"Invalid connections YAML structure from {url_or_path}. Missing 'connections' key.")
    if not isinstance(config_data["connections"], list):
        raise ValueError(f"Invalid connections YAML structure from {url_or_path}. 'connections' must be a list.")

    connections_map = {}
    for conn in config_data["connections"]:
        if not isinstance(conn, dict) or "name" not in conn or "type" not in conn or "config" not in conn:
            line = conn.get('__line__', 'N/A') if isinstance(conn, dict) else 'N/A'
            raise ValueError(
                f"Invalid connection entry in {url_or_path} near line {line}. Each connection must have 'name', "
                f"'type', and 'config'.")
        if conn["name"] in connections_map:
            raise ValueError(
                f"Duplicate connection name '{conn['name']}' found in {url_or_path} near line {conn['__line__']}.")
        connections_map[conn["name"]] = conn

    logger.info(f"Successfully loaded {len(connections_map)} connections from {url_or_path}.")
    return connections_map
