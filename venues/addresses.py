"""
Postal address parsing for venue records.

Seed files and geocoding results carry single-line addresses
("23641 La Palma Ave, Yorba Linda, CA 92887, USA"); the catalog stores
structured components alongside the original line.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

# US state abbreviations and full names
STATE_ABBREVIATIONS = {
    'alabama': 'AL', 'alaska': 'AK', 'arizona': 'AZ', 'arkansas': 'AR', 'california': 'CA',
    'colorado': 'CO', 'connecticut': 'CT', 'delaware': 'DE', 'florida': 'FL', 'georgia': 'GA',
    'hawaii': 'HI', 'idaho': 'ID', 'illinois': 'IL', 'indiana': 'IN', 'iowa': 'IA',
    'kansas': 'KS', 'kentucky': 'KY', 'louisiana': 'LA', 'maine': 'ME', 'maryland': 'MD',
    'massachusetts': 'MA', 'michigan': 'MI', 'minnesota': 'MN', 'mississippi': 'MS', 'missouri': 'MO',
    'montana': 'MT', 'nebraska': 'NE', 'nevada': 'NV', 'new hampshire': 'NH', 'new jersey': 'NJ',
    'new mexico': 'NM', 'new york': 'NY', 'north carolina': 'NC', 'north dakota': 'ND', 'ohio': 'OH',
    'oklahoma': 'OK', 'oregon': 'OR', 'pennsylvania': 'PA', 'rhode island': 'RI', 'south carolina': 'SC',
    'south dakota': 'SD', 'tennessee': 'TN', 'texas': 'TX', 'utah': 'UT', 'vermont': 'VT',
    'virginia': 'VA', 'washington': 'WA', 'west virginia': 'WV', 'wisconsin': 'WI', 'wyoming': 'WY',
    'district of columbia': 'DC'
}

COUNTRY_SUFFIXES = [", United States", ", USA", ", US", " United States", " USA"]

ADDRESS_PATTERN = re.compile(
    r'^(?P<street>.+?),\s*(?P<city>[^,]+?),\s*(?P<state>[A-Za-z][A-Za-z .]*?)\.?'
    r'(?:\s+(?P<postal>\d{5}(?:-\d{4})?))?$'
)


def parse_address(address: Optional[str]) -> dict:
    """
    Split a single-line US address into components.

    Unparseable input is kept whole in formatted_address with empty components.

    Examples:
        "23641 La Palma Ave, Yorba Linda, CA 92887" ->
            street_address="23641 La Palma Ave", city="Yorba Linda",
            state="CA", postal_code="92887"
    """
    result = {
        "formatted_address": "",
        "street_address": "",
        "city": "",
        "state": "",
        "postal_code": "",
        "country": "US",
    }
    if not address or not address.strip():
        return result

    cleaned = re.sub(r'\s+', ' ', address.strip())
    result["formatted_address"] = cleaned

    for country in COUNTRY_SUFFIXES:
        if cleaned.endswith(country):
            cleaned = cleaned[:-len(country)].strip().rstrip(",")

    # Some sources write "City, CA, 92887"
    cleaned = re.sub(r',\s*(\d{5}(?:-\d{4})?)$', r' \1', cleaned)

    match = ADDRESS_PATTERN.match(cleaned)
    if not match:
        return result

    result["street_address"] = match.group("street").strip()
    result["city"] = match.group("city").strip()
    result["state"] = normalize_state(match.group("state"))
    result["postal_code"] = match.group("postal") or ""
    return result


def normalize_state(state: str) -> str:
    """Normalize state to 2-letter abbreviation."""
    if not state:
        return ""

    state = state.strip().rstrip(".")

    # Already 2 letters
    if len(state) == 2:
        return state.upper()

    # Look up full name
    state_lower = state.lower()
    if state_lower in STATE_ABBREVIATIONS:
        return STATE_ABBREVIATIONS[state_lower]

    return state.upper()


def to_decimal(value) -> Optional[Decimal]:
    """Convert a coordinate to a 6-place Decimal, or None."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal('0.000001'))
    except (InvalidOperation, ValueError, TypeError):
        return None
