"""Pure functions turning raw feed documents into chart-ready rows."""

import logging
from dataclasses import dataclass
from typing import Any

from dashboard.core.errors import NotFound
from dashboard.feeds.countries import convert_to_iso2, convert_to_iso3

logger = logging.getLogger(__name__)

FIRST_YEAR = "2024"
LAST_YEAR = "2050"
MIN_PHASE_OUT_YEAR = 2000
MAX_PHASE_OUT_YEAR = 2100


@dataclass(frozen=True)
class Variable:
    id: str
    name: str
    color: str
    source_key: str | None = None

    @property
    def key(self) -> str:
        return self.source_key or self.id

    def to_dict(self) -> dict:
        data = {"id": self.id, "name": self.name, "color": self.color}
        if self.source_key is not None:
            data["sourceKey"] = self.source_key
        return data


PHASE_IN_VARIABLES = (
    Variable("solar", "Solar", "#82ca9d", "solar"),
    Variable("onshore_wind", "Onshore Wind", "#4caf50", "onshore_wind"),
    Variable("offshore_wind", "Offshore Wind", "#00b4d8", "offshore_wind"),
    Variable("hydropower", "Hydropower", "#0077b6", "hydropower"),
    Variable("geothermal", "Geothermal", "#0096c7", "geothermal"),
    Variable("battery_short", "Short-term Battery", "#ffbd59", "battery_short"),
    Variable("battery_long", "Long-term Battery", "#ff7c43", "battery_long"),
)
PHASE_IN_YEAR_KEYS = ("solar", "hydropower", "onshore_wind")

COST_VARIABLES = (
    Variable("cost_battery_grid", "Grid Battery", "#e65c1a", "battery_grid"),
    Variable("cost_battery_long", "Long-term Battery", "#ff7c43", "battery_long"),
    Variable("cost_battery_pe", "PE Battery", "#ff9e6d", "battery_pe"),
    Variable("cost_battery_short", "Short-term Battery", "#ffbd59", "battery_short"),
    Variable("opportunity_cost", "Opportunity", "#ffd29c", "opportunity_cost"),
    Variable("worker_compensation_cost", "Worker Compensation", "#b3de69", "worker_compensation"),
    Variable("worker_retraining_cost", "Worker Retraining", "#d4e79e", "worker_retraining"),
    Variable("solar_cost", "Solar", "#80d3e8", "solar"),
    Variable("wind_offshore_cost", "Wind Offshore", "#48cae4", "wind_offshore"),
    Variable("wind_onshore_cost", "Wind Onshore", "#00b4d8", "wind_onshore"),
    Variable("geothermal_cost", "Geothermal", "#0096c7", "geothermal"),
    Variable("hydropower_cost", "Hydropower", "#0077b6", "hydropower"),
)
COST_YEAR_KEYS = ("battery_grid",)

BENEFIT_VARIABLES = (
    Variable("Coal", "Coal", "#ff7c43"),
    Variable("Gas", "Gas", "#ffa600"),
    Variable("Oil", "Oil", "#ffd29c"),
    Variable("Reduced Air Pollution", "Reduced Air Pollution", "#00b4d8"),
)

COST_COLORS = {
    "Opportunity Cost to Owners (Coal)": "#5176ae",
    "Opportunity Cost to Owners (Gas)": "#5b85c4",
    "Opportunity Cost to Owners (Oil)": "#6594da",
    "Grid Extension Investment": "#9986e3",
    "Renewables for Electrolyzers Investment": "#d895e7",
    "Long-term Storage Investment": "#a367db",
    "Short-term Storage Investment": "#B07EC5",
    "Renewable Energy Investment": "#68b7dc",
    "Workers Compensation & Retraining Costs": "#87CEEB",
}

SECTOR_FIELDS = (
    "Asset_Amount_operating",
    "Asset_Amount_planned",
    "Capacity_operating",
    "Capacity_planned",
    "Emissions_operating",
    "Emissions_planned",
)

OPPORTUNITY_COST_KEY = "Opportunity costs (in trillion dollars)"
INVESTMENT_COST_KEY = "Investment costs (in trillion dollars)"
GDP_KEY = "GDP over time period (in trillion dollars)"


def country_entry(data: Any, country: str) -> dict:
    """Return the block for `country` from a country-keyed feed document.

    Aggregate feeds are keyed by ISO3 codes, a few older ones by ISO2, so
    both are tried.
    """
    if isinstance(data, dict):
        for key in (convert_to_iso3(country), convert_to_iso2(country), country.strip().upper()):
            if data.get(key):
                return data[key]
    raise NotFound(f"No data available for country code: {convert_to_iso3(country)}")


def _year_int(year: str) -> int | None:
    try:
        return int(year)
    except (TypeError, ValueError):
        return None


def _number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _years_between(series: dict) -> list[str]:
    return sorted(year for year in series if FIRST_YEAR <= year <= LAST_YEAR)


def alignment_rows(data: Any, country: str) -> list[dict]:
    country_data = country_entry(data, country)
    intensity = country_data.get("Emission_Intensity") or {}
    targets = country_data.get("Emission_Intensity_Target") or {}

    years = sorted((year for year in intensity if _year_int(year) is not None), key=_year_int)
    rows = []
    for year in years:
        target = targets.get(year)
        rows.append(
            {
                "Year": year,
                "Asset-based Pathway": _number(intensity[year]) / 1000,
                "Disclosed Target": target / 1000 if target else None,
            }
        )
    return rows


def year_rows(data: Any, country: str, variables=PHASE_IN_VARIABLES, year_keys=PHASE_IN_YEAR_KEYS) -> list[dict]:
    """One row per year from 2024 to 2050, one column per variable, missing values as 0."""
    country_data = country_entry(data, country)
    if not any(isinstance(series, dict) and series for series in country_data.values()):
        raise NotFound(f"No data available for country code: {convert_to_iso3(country)}")

    year_source = next((country_data[key] for key in year_keys if country_data.get(key)), {})
    rows = []
    for year in _years_between(year_source):
        row = {"year": year}
        for variable in variables:
            value = (country_data.get(variable.key) or {}).get(year)
            row[variable.id] = value if value is not None else 0
        rows.append(row)
    return rows


def benefit_rows(data: Any, country: str) -> tuple[list[Variable], list[dict]]:
    """Benefit rows plus the variables that actually carry data for the country."""
    country_data = country_entry(data, country)
    available = [variable for variable in BENEFIT_VARIABLES if country_data.get(variable.id)]
    if not available:
        raise NotFound(f"No benefit data available for country code: {convert_to_iso3(country)}")

    rows = []
    for year in _years_between(country_data[available[0].id]):
        row = {"year": year}
        for variable in BENEFIT_VARIABLES:
            value = (country_data.get(variable.id) or {}).get(year)
            row[variable.id] = value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0
        rows.append(row)
    return available, rows


def process_cost_data(data: dict) -> dict:
    """Make sure every known cost type has a series, filling gaps with zeros."""
    years = list(data.get("years") or [])
    costs = data.get("costs") or {}
    return {
        "years": years,
        "costs": {cost_type: costs.get(cost_type) or [0 for _ in years] for cost_type in COST_COLORS},
    }


def _has_valid_phase_out_year(asset: Any) -> bool:
    if not isinstance(asset, dict):
        return False
    year = asset.get("phase_out_year")
    if isinstance(year, bool) or not isinstance(year, (int, float)):
        return False
    return MIN_PHASE_OUT_YEAR < year < MAX_PHASE_OUT_YEAR


def filter_phase_out_assets(data: Any) -> list[dict]:
    if not isinstance(data, list):
        return []
    valid = [asset for asset in data if _has_valid_phase_out_year(asset)]
    dropped = len(data) - len(valid)
    if dropped:
        logger.info("Dropped %d assets without a usable phase_out_year", dropped)
    return valid


def allocate_owner_emissions(assets: list[dict]) -> list[dict]:
    """Split each asset's emissions across its owners by share holding.

    Assets listing a single `owner` instead of `owners` keep their full
    emissions.
    """
    rows = []
    for asset in assets:
        emissions = _number(asset.get("emissions"))
        owners = asset.get("owners")
        if isinstance(owners, list) and owners:
            for owner in owners:
                owner = owner if isinstance(owner, dict) else {"name": owner}
                rows.append(
                    {
                        **asset,
                        "owner": owner.get("name"),
                        "share_holding": owner.get("share_holding"),
                        "allocated_emissions": emissions * _number(owner.get("share_holding")),
                    }
                )
        else:
            rows.append({**asset, "allocated_emissions": emissions})
    return rows


def sort_assets(assets: list[dict], key: str, descending: bool = False) -> list[dict]:
    """Sort by `key`, always keeping rows without a value at the end."""
    present = [asset for asset in assets if asset.get(key) is not None]
    missing = [asset for asset in assets if asset.get(key) is None]
    return sorted(present, key=lambda asset: asset[key], reverse=descending) + missing


def unwrap_assets(data: Any) -> Any:
    if isinstance(data, dict) and isinstance(data.get("assets"), list):
        return data["assets"]
    return data


def normalize_country_info(data: Any, country: str) -> dict:
    iso3 = convert_to_iso3(country)
    records = data if isinstance(data, list) else []
    country_data = next(
        (dict(record) for record in records if isinstance(record, dict) and record.get("Country_ISO3") == iso3),
        None,
    )
    if country_data is None:
        raise NotFound("Country not found")

    operating = country_data.get("Asset_Amount_operating")
    if isinstance(operating, (int, float)) and not isinstance(operating, bool) and operating:
        country_data["Asset_Amount_operating"] = {"total_assets": operating, "technologies": []}

    sector_values = {field: country_data.get(field) for field in SECTOR_FIELDS}
    if country_data.get("Sector") and not country_data.get("Sectors"):
        country_data["Sectors"] = [country_data["Sector"]]
        country_data["SectorData"] = {"all": dict(sector_values), country_data["Sector"]: dict(sector_values)}
    elif country_data.get("Sectors") and not country_data.get("SectorData"):
        sector_data = {"all": dict(sector_values)}
        for sector in country_data["Sectors"]:
            sector_data[sector] = dict(sector_values)
        country_data["SectorData"] = sector_data
    return country_data


def _percentage(value: float, total: float) -> float:
    if not total:
        return 0
    return round(value / total * 100, 1)


def system_cost_benefits(
    country: str,
    scc: str | None,
    time_horizon: str | None,
    total_cost: dict,
    air_pollution: dict,
    country_benefits: dict,
    global_benefits: dict,
) -> dict:
    """Totals and GDP shares behind the system cost/benefit donut charts.

    Every input may be an empty dict when its feed was unavailable; the
    corresponding figures then come out as 0.
    """
    iso3 = convert_to_iso3(country) if country else ""
    time_key = "2024-2035" if time_horizon == "2035" else "2024-2050"

    cost_data = total_cost.get(iso3) or {}
    opportunity_cost = _number((cost_data.get(OPPORTUNITY_COST_KEY) or {}).get(time_key))
    investment_cost = _number((cost_data.get(INVESTMENT_COST_KEY) or {}).get(time_key))
    gdp = _number((cost_data.get(GDP_KEY) or {}).get(time_key))
    cost_total = opportunity_cost + investment_cost

    air_pollution_benefit = _number((air_pollution.get(iso3) or {}).get(time_horizon or ""))
    country_benefit = _number(
        ((country_benefits.get(iso3) or {}).get(f"scc {scc} CC benefit (in trillion dollars)") or {}).get(time_key)
    )
    world_benefit = _number(
        ((global_benefits.get(iso3) or {}).get(f"scc {scc} GC benefit (in trillion dollars)") or {}).get(time_key)
    )
    benefit_total = air_pollution_benefit + country_benefit + world_benefit

    return {
        "costs": [
            {"name": "Opportunity Costs", "value": opportunity_cost, "color": "#ff7c43"},
            {"name": "Investment Costs", "value": investment_cost, "color": "#ffa600"},
        ],
        "totalCost": cost_total,
        "costGdpPercentage": _percentage(cost_total, gdp),
        "airPollutionBenefit": air_pollution_benefit,
        "countryBenefit": country_benefit,
        "worldBenefit": world_benefit,
        "totalBenefit": benefit_total,
        "benefitGdpPercentage": _percentage(benefit_total, gdp) if benefit_total > 0 else 0,
    }
