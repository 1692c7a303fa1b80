import logging
import numbers

from campaign_curves.connectors import _CONNECTOR_MAP
from campaign_curves.constants import COMBINE_MODES, MAX_PROJECTION_SOURCES
from campaign_curves.week_utility import parse_projection_date

logger = logging.getLogger(__name__)

# Any leap year, so 02-29 is accepted as a format
_FORMAT_CHECK_YEAR = 2024


class ReportValidator:
    def __init__(self, cfg: dict):
        """
        Initializes the ReportValidator that validates the yaml report config before any data is fetched.

        Args:
            cfg (dict): The report YAML configuration, loaded with the SafeLineLoader.
        """
        self.cfg = cfg

    def validate_yaml(self):
        self.check_setup()
        self.check_offset_days()
        self.check_projection_date()
        self.check_combine_modes()
        self.check_projection_weights()
        self.check_data_source()

    @property
    def _setup(self) -> dict:
        return self.cfg['setup']

    def _line(self) -> str:
        return self._setup.get('__line__', 'N/A')

    def check_setup(self):
        """
        Checks that the configuration has a setup section.

        Raises:
            KeyError: If the 'setup' section is missing or is not a mapping.
        """
        if not isinstance(self.cfg, dict) or not isinstance(self.cfg.get('setup'), dict):
            raise KeyError("The report configuration must have a SETUP section")

    def check_offset_days(self):
        """
        Raises:
            ValueError: If 'offset_days' is not a whole number of days.
        """
        offset_days = self._setup.get('offset_days')
        if offset_days is None:
            return
        if isinstance(offset_days, bool) or not isinstance(offset_days, int):
            raise ValueError(f"offset_days must be a whole number of days, got {offset_days!r}, at line: "
                             f"{self._line()}")

    def check_projection_date(self):
        """
        Raises:
            ValueError: If 'projection_date' is neither an ISO date nor a month and day.
        """
        projection_date = self._setup.get('projection_date')
        if projection_date is None:
            return
        if parse_projection_date(str(projection_date), _FORMAT_CHECK_YEAR) is None:
            raise ValueError(f"projection_date is in an invalid format, examples of correct formats: 2025-08-15 or "
                             f"08-15, at line: {self._line()}")

    def check_combine_modes(self):
        """
        Raises:
            KeyError: If a combine mode is not one of the supported modes.
        """
        for key in ('registrations_combine_mode', 'donations_combine_mode'):
            mode = self._setup.get(key)
            if mode is not None and mode not in COMBINE_MODES:
                raise KeyError(f"Invalid value provided for {key} {mode}, supported values are {list(COMBINE_MODES)}, "
                               f"at line: {self._line()}")

    def check_projection_weights(self):
        """
        Validates the projection source weights: a list of at most three non-negative
        numbers, most recent prior year first.

        Raises:
            ValueError: If the weights are not a list, are too many, or any weight is negative or not a number.
        """
        weights = self._setup.get('projection_source_weights')
        if weights is None:
            return
        if not isinstance(weights, list) or len(weights) > MAX_PROJECTION_SOURCES:
            raise ValueError(f"projection_source_weights must be a list of at most {MAX_PROJECTION_SOURCES} numbers, "
                             f"at line: {self._line()}")
        for weight in weights:
            if isinstance(weight, bool) or not isinstance(weight, numbers.Real) or weight < 0:
                raise ValueError(f"projection_source_weights must be non-negative numbers, got {weight!r}, at line: "
                                 f"{self._line()}")

    def check_data_source(self):
        """
        Raises:
            KeyError: If the config names neither a data_source nor a db_config_url, or the data_source is malformed.
        """
        data_source = self.cfg.get('data_source')
        if data_source is None:
            if not self._setup.get('db_config_url'):
                raise KeyError(f"Either a DATA_SOURCE section or setup.db_config_url is required, at line: "
                               f"{self._line()}")
            return

        line = data_source.get('__line__', 'N/A') if isinstance(data_source, dict) else 'N/A'
        if not isinstance(data_source, dict) or 'type' not in data_source or 'config' not in data_source:
            raise KeyError(f"DATA_SOURCE must have 'type' and 'config', at line: {line}")
        if str(data_source['type']).lower() not in _CONNECTOR_MAP:
            raise KeyError(f"Invalid data source type {data_source['type']}, supported types are "
                           f"{list(_CONNECTOR_MAP.keys())}, at line: {line}")
