import json
import logging

import click

import campaign_curves.controller_utility as controller_util
import campaign_curves.validator as validator
from campaign_curves.data_loader import DataLoader
from campaign_curves.report import ReportSettings, plan_report

logger = logging.getLogger(__name__)


def process_input(cfg: dict, connector_factory=None, today=None):
    """
    Build the campaign report for a loaded YAML configuration.

    Args:
        cfg (dict): The report configuration, loaded with the SafeLineLoader.
        connector_factory (callable, optional): Returns a fresh data connector, overriding the configured source.
        today (datetime.date, optional): The default projection date.

    Returns:
        EventReport: The assembled report.
    """
    try:
        report_validator = validator.ReportValidator(cfg)
        report_validator.validate_yaml()
    except Exception as e:
        logger.error("Yaml validation failed", exc_info=True)
        raise Exception(f"Invalid configuration provided: {e}")

    settings = ReportSettings.from_config(cfg)

    try:
        loader = DataLoader(cfg, connector_factory=connector_factory)
        plan = plan_report(loader.load_catalogue(), settings)
        group_data = loader.fetch_groups(plan.groups_to_fetch)
    except Exception as error:
        logger.error(error, exc_info=True)
        raise Exception(f"Could not load campaign data due to: {error}")

    try:
        report = controller_util.get_event_report(plan, group_data, settings, today)
    except Exception as err:
        logger.error(err, exc_info=True)
        raise Exception(f"Error while creating report, caused by: {err}")

    return report


@click.group()
@click.option("--log-level", default="INFO", help="Logging level")
def main(log_level: str) -> None:
    """Campaign curve reports."""
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@main.command()
@click.option("--config", "config_path", required=True, help="Report config file path or URL")
@click.option("--output", type=click.File("w"), default="-", help="Where to write the report JSON")
@click.option("--group", default=None, help="Event group to report on")
@click.option("--compare", default=None, help="First comparison group, or 'none'")
@click.option("--compare2", default=None, help="Second comparison group, or 'none'")
@click.option("--offset-days", default=None, type=int, help="Shift comparison event dates by this many days")
@click.option("--projection/--no-projection", default=None, help="Project the current campaign forward")
@click.option("--projection-date", default=None, help="Projection date (YYYY-MM-DD or MM-DD)")
def report(config_path, output, group, compare, compare2, offset_days, projection, projection_date) -> None:
    """Build a campaign curve report and print it as JSON."""
    try:
        if config_path.lower().startswith(('http://', 'https://')):
            cfg = controller_util.load_yaml_from_url(config_path)
        else:
            with open(config_path) as config_file:
                cfg = controller_util.load_yaml_from_stream(config_file)
    except Exception as e:
        logger.error(e, exc_info=True)
        raise click.ClickException(f"Failed to load yaml, due to {e}")

    # Override the config setup based on the command line options
    setup = {}
    if isinstance(cfg, dict):
        # An empty "setup:" key loads as None
        setup = cfg.get("setup") or {}
        cfg["setup"] = setup
    if group is not None:
        setup["group"] = group
    if compare is not None:
        setup["compare_group"] = compare
    if compare2 is not None:
        setup["compare_group_2"] = compare2
    if offset_days is not None:
        setup["offset_days"] = offset_days
    if projection is not None:
        setup["projection"] = projection
    if projection_date is not None:
        setup["projection_date"] = projection_date

    try:
        event_report = process_input(cfg)
    except Exception as e:
        raise click.ClickException(str(e))

    output.write(json.dumps(event_report, indent=4, cls=controller_util.Encoder))
    output.write("\n")


if __name__ == "__main__":
    main()
