"""Country code helpers for the per-country data feeds."""

ISO2_TO_ISO3 = {
    'au': 'AUS',
    'br': 'BRA',
    'ca': 'CAN',
    'cn': 'CHN',
    'de': 'DEU',
    'eg': 'EGY',
    'fr': 'FRA',
    'gb': 'GBR',
    'id': 'IDN',
    'in': 'IND',
    'ir': 'IRN',
    'it': 'ITA',
    'jp': 'JPN',
    'ke': 'KEN',
    'kr': 'KOR',
    'kz': 'KAZ',
    'mx': 'MEX',
    'ng': 'NGA',
    'pl': 'POL',
    'ru': 'RUS',
    'th': 'THA',
    'tr': 'TUR',
    'tz': 'TZA',
    'ug': 'UGA',
    'us': 'USA',
    'vn': 'VNM',
    'za': 'ZAF',
}

ISO3_TO_ISO2 = {iso3: iso2.upper() for iso2, iso3 in ISO2_TO_ISO3.items()}

# Countries covered by the dashboard datasets.
COUNTRY_NAMES = {
    'eg': 'Egypt',
    'id': 'Indonesia',
    'in': 'India',
    'ir': 'Iran',
    'ke': 'Kenya',
    'mx': 'Mexico',
    'ng': 'Nigeria',
    'th': 'Thailand',
    'tz': 'Tanzania',
    'ug': 'Uganda',
    'vn': 'Vietnam',
    'za': 'South Africa',
}


def convert_to_iso3(country_code: str) -> str:
    """Return the ISO3 form of a 2- or 3-letter code.

    Unmapped 2-letter codes come back uppercased and otherwise unchanged.
    """
    code = country_code.strip()
    if len(code) == 3:
        return code.upper()
    return ISO2_TO_ISO3.get(code.lower(), code.upper())


def convert_to_iso2(country_code: str) -> str:
    code = country_code.strip().upper()
    if len(code) == 2:
        return code
    return ISO3_TO_ISO2.get(code, code[:2])


def country_name(country_code: str) -> str:
    iso2 = convert_to_iso2(country_code).lower()
    return COUNTRY_NAMES.get(iso2, country_code.upper())
