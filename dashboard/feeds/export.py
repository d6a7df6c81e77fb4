import csv
import io
import json

from dashboard.feeds.countries import country_name
from dashboard.feeds.transform import Variable

DECIMAL_PLACES = 4


def select_variables(variables, selected_ids=None) -> list[Variable]:
    """Keep declaration order; an empty selection means every variable."""
    if not selected_ids:
        return list(variables)
    wanted = set(selected_ids)
    return [variable for variable in variables if variable.id in wanted]


def _value(row: dict, variable: Variable) -> float:
    value = row.get(variable.id)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def to_csv(rows: list[dict], variables, country: str, total_label: str) -> str:
    """Year, country, one column per variable and a row total, 4 decimals each."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(["Year", "Country", *[variable.name for variable in variables], total_label])

    name = country_name(country)
    for row in rows:
        values = [_value(row, variable) for variable in variables]
        writer.writerow(
            [
                row.get("year"),
                name,
                *[f"{value:.{DECIMAL_PLACES}f}" for value in values],
                f"{sum(values):.{DECIMAL_PLACES}f}",
            ]
        )
    return output.getvalue()


def to_json_document(rows: list[dict], variables, country: str) -> str:
    document = {
        "country": country_name(country),
        "variables": [variable.to_dict() for variable in variables],
        "data": [
            {"year": row.get("year"), **{variable.id: _value(row, variable) for variable in variables}}
            for row in rows
        ],
    }
    return json.dumps(document, indent=2)
