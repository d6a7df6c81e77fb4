import logging
from dataclasses import dataclass
from typing import Callable

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from dashboard.auth.dependencies import get_current_identity, get_feed_client
from dashboard.core.errors import BadRequest, NotFound
from dashboard.feeds import export, transform
from dashboard.feeds.client import DataFeedClient
from dashboard.routes.data_routes import (
    AGGREGATED_BENEFIT_PATH,
    AGGREGATED_COST_PATH,
    PHASE_IN_PATH,
    require_country,
)

# Exports need an identity even when the session gate skips its redirect for `auth_redirect`.
router = APIRouter(tags=["downloads"], dependencies=[Depends(get_current_identity)])

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
}


@dataclass(frozen=True)
class Download:
    file_prefix: str
    total_label: str
    load: Callable[[DataFeedClient, str], tuple[list, list[dict]]]


def _phase_in(feed: DataFeedClient, country: str):
    return transform.PHASE_IN_VARIABLES, transform.year_rows(feed.fetch_json(PHASE_IN_PATH, cache=True), country)


def _costs(feed: DataFeedClient, country: str):
    rows = transform.year_rows(
        feed.fetch_json(AGGREGATED_COST_PATH, cache=True),
        country,
        variables=transform.COST_VARIABLES,
        year_keys=transform.COST_YEAR_KEYS,
    )
    return transform.COST_VARIABLES, rows


def _benefits(feed: DataFeedClient, country: str):
    return transform.benefit_rows(feed.fetch_json(AGGREGATED_BENEFIT_PATH, cache=True), country)


DOWNLOADS = {
    "phase-in": Download("phase_in_data", "Total Capacity (GW)", _phase_in),
    "cost-variables": Download("stacked_cost_data", "Total Cost (Billion)", _costs),
    "benefit-variables": Download("stacked_benefit_data", "Total Benefit (Billion)", _benefits),
}


@router.get("/{filename}")
def download(
    filename: str,
    country: str = "in",
    variables: str | None = None,
    feed: DataFeedClient = Depends(get_feed_client),
):
    dataset, _, file_format = filename.rpartition(".")
    if dataset not in DOWNLOADS:
        raise NotFound(f"Unknown dataset: {dataset or filename}")
    if file_format not in MEDIA_TYPES:
        raise BadRequest("Format must be csv or json")

    country = require_country(country)
    entry = DOWNLOADS[dataset]
    available, rows = entry.load(feed, country)

    selected_ids = [item.strip() for item in variables.split(",") if item.strip()] if variables else []
    selected = export.select_variables(available, selected_ids)
    if selected_ids and not selected:
        raise BadRequest("None of the requested variables exist in this dataset")

    if file_format == "csv":
        content = export.to_csv(rows, selected, country, entry.total_label)
    else:
        content = export.to_json_document(rows, selected, country)

    suffix = "custom" if selected_ids else "all_variables"
    attachment = f"{entry.file_prefix}_{country.lower()}_{suffix}.{file_format}"
    logger.info("Serving %s export for %s", dataset, country)
    return Response(
        content=content,
        media_type=MEDIA_TYPES[file_format],
        headers={"Content-Disposition": f'attachment; filename="{attachment}"'},
    )
