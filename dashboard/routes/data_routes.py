import logging
import re

from fastapi import APIRouter, Depends, Query

from dashboard.auth.dependencies import get_feed_client
from dashboard.core.errors import BadRequest, DashboardError, UpstreamFailure
from dashboard.feeds import transform
from dashboard.feeds.client import DataFeedClient
from dashboard.feeds.countries import COUNTRY_NAMES, convert_to_iso2, convert_to_iso3

router = APIRouter(tags=["data"])

logger = logging.getLogger(__name__)

COUNTRY_CODE_PATTERN = re.compile(r"^[A-Za-z]{2,3}$")
FEED_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

ALIGNMENT_PATH = "alignment_graph/alignment_data.json"
PHASE_IN_PATH = "phase_in_bar_chart/phase_in_data.json"
AGGREGATED_COST_PATH = "aggregated_cost/aggregated_cost_data.json"
AGGREGATED_BENEFIT_PATH = "aggregated_cost/aggregated_benefit_data.json"
COUNTRY_INFO_PATH = "country_info/country_info_list.json"
AIR_POLLUTION_BENEFITS_PATH = "cost_benefit/discounted_benefit_35_50.json"
COUNTRY_BENEFITS_PATH = "cost_benefit/country_cost_35_50.json"
GLOBAL_BENEFITS_PATH = "cost_benefit/global_cost_35_50.json"
TOTAL_COST_PATH = "cost_benefit/total_cost_35_50.json"


def require_country(country: str | None) -> str:
    if not country or not country.strip():
        raise BadRequest("Country parameter is required")
    country = country.strip()
    if not COUNTRY_CODE_PATTERN.match(country):
        raise BadRequest(f"Invalid country code: {country}")
    return country


def require_feed_key(value: str, name: str) -> str:
    if not FEED_KEY_PATTERN.match(value):
        raise BadRequest(f"Invalid {name}: {value}")
    return value


def _variables(variables) -> list[dict]:
    return [variable.to_dict() for variable in variables]


@router.get("/alignment-data")
def alignment_data(country: str = "IND", feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country)
    return transform.alignment_rows(feed.fetch_json(ALIGNMENT_PATH, cache=True), country)


@router.get("/phase-in-data")
def phase_in_data(country: str = "in", feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country)
    rows = transform.year_rows(feed.fetch_json(PHASE_IN_PATH, cache=True), country)
    return {"variables": _variables(transform.PHASE_IN_VARIABLES), "data": rows}


@router.get("/cost-variables")
def cost_variables(country: str = "in", feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country)
    rows = transform.year_rows(
        feed.fetch_json(AGGREGATED_COST_PATH, cache=True),
        country,
        variables=transform.COST_VARIABLES,
        year_keys=transform.COST_YEAR_KEYS,
    )
    return {"variables": _variables(transform.COST_VARIABLES), "data": rows}


@router.get("/benefit-variables")
def benefit_variables(country: str = "in", feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country)
    variables, rows = transform.benefit_rows(feed.fetch_json(AGGREGATED_BENEFIT_PATH, cache=True), country)
    return {"variables": _variables(variables), "data": rows}


@router.get("/cost-data")
def cost_data(feed: DataFeedClient = Depends(get_feed_client)):
    countries = {}
    for country in COUNTRY_NAMES:
        try:
            countries[country] = transform.process_cost_data(feed.fetch_json(f"cost_by_country/{country}_costs.json"))
        except DashboardError as exc:
            logger.warning("Cost data unavailable for %s: %s", country, exc.message)
            countries[country] = None
    return {"countries": countries}


@router.get("/phase-out-data")
def phase_out_data(country: str | None = None, feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country)
    code = convert_to_iso2(country)
    try:
        return feed.fetch_json(f"phaser_out_bar_charts/phaseout_data_{code}.json")
    except DashboardError as exc:
        logger.warning("Phase-out data unavailable for %s: %s", code, exc.message)
        return {"country_code": country.upper(), "country_name": country.upper(), "scenarios": {}}


@router.get("/phase-out-pipeline")
def phase_out_pipeline(country: str | None = None, feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country).lower()
    return feed.fetch_json(f"phase_out_pipeline/{country}_pipeline_data.json")


@router.get("/phase-out-assets")
def phase_out_assets(
    country: str | None = None,
    allocate: bool = False,
    sort_by: str | None = None,
    descending: bool = True,
    feed: DataFeedClient = Depends(get_feed_client),
):
    country = require_country(country)
    iso2 = convert_to_iso2(country).lower()
    try:
        assets = transform.filter_phase_out_assets(feed.fetch_json(f"power_plant_assets/asset_data_{iso2}.json"))
    except DashboardError as exc:
        logger.warning("Phase-out assets unavailable for %s: %s", iso2, exc.message)
        return []

    if allocate:
        assets = transform.allocate_owner_emissions(assets)
    if sort_by:
        assets = transform.sort_assets(assets, sort_by, descending=descending)
    return assets


@router.get("/map-data")
def map_data(
    country: str | None = None,
    order: str = "maturity",
    feed: DataFeedClient = Depends(get_feed_client),
):
    country = require_country(country)
    order = require_feed_key(order, "order")
    return feed.fetch_json(f"phase_out_order_maps/{convert_to_iso3(country)}_{order}_data.json")


@router.get("/asset-data")
def asset_data(
    country: str = "UGA",
    scenario: str = "maturity",
    feed: DataFeedClient = Depends(get_feed_client),
):
    country = require_country(country)
    scenario = require_feed_key(scenario, "scenario")
    return transform.unwrap_assets(feed.fetch_json(f"asset_info/{country}_{scenario}_asset_info.json"))


@router.get("/company-data")
def company_data(country: str | None = None, feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country)
    return feed.fetch_json(f"company_info/{country}_company_info.json")


@router.get("/country-info")
def country_info(country: str = "in", feed: DataFeedClient = Depends(get_feed_client)):
    country = require_country(country)
    return transform.normalize_country_info(feed.fetch_json(COUNTRY_INFO_PATH, cache=True), country)


@router.get("/system-cost-benefits")
def system_cost_benefits(
    country: str | None = None,
    scc: str | None = None,
    time_horizon: str | None = Query(default=None, alias="timeHorizon"),
    feed: DataFeedClient = Depends(get_feed_client),
):
    country = require_country(country)
    documents = {}
    for path in (TOTAL_COST_PATH, AIR_POLLUTION_BENEFITS_PATH, COUNTRY_BENEFITS_PATH, GLOBAL_BENEFITS_PATH):
        try:
            document = feed.fetch_json(path, cache=True)
        except DashboardError as exc:
            logger.warning("Cost/benefit feed %s unavailable: %s", path, exc.message)
            continue
        documents[path] = document if isinstance(document, dict) else {}

    if not documents:
        raise UpstreamFailure("All data fetches failed")

    return transform.system_cost_benefits(
        country,
        scc,
        time_horizon,
        total_cost=documents.get(TOTAL_COST_PATH, {}),
        air_pollution=documents.get(AIR_POLLUTION_BENEFITS_PATH, {}),
        country_benefits=documents.get(COUNTRY_BENEFITS_PATH, {}),
        global_benefits=documents.get(GLOBAL_BENEFITS_PATH, {}),
    )
