"""
Time zone catalog: country names ↔ ISO codes, curated multi-zone countries,
capital cities, and the merged autocomplete index.

Pure lookup tables. Offsets come from zoneinfo; anything that depends on
"which offset is current" takes an optional `at` instant (default: now).
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

# ---------------------------------------------------------------------------
# Countries (ISO 3166-1 alpha-2, English display names)
# ---------------------------------------------------------------------------

COUNTRY_NAMES = {
    "AD": "Andorra", "AE": "United Arab Emirates", "AF": "Afghanistan",
    "AG": "Antigua & Barbuda", "AI": "Anguilla", "AL": "Albania",
    "AM": "Armenia", "AO": "Angola", "AQ": "Antarctica", "AR": "Argentina",
    "AS": "American Samoa", "AT": "Austria", "AU": "Australia", "AW": "Aruba",
    "AX": "Åland Islands", "AZ": "Azerbaijan",
    "BA": "Bosnia & Herzegovina", "BB": "Barbados", "BD": "Bangladesh",
    "BE": "Belgium", "BF": "Burkina Faso", "BG": "Bulgaria", "BH": "Bahrain",
    "BI": "Burundi", "BJ": "Benin", "BL": "St. Barthélemy", "BM": "Bermuda",
    "BN": "Brunei", "BO": "Bolivia", "BQ": "Caribbean Netherlands",
    "BR": "Brazil", "BS": "Bahamas", "BT": "Bhutan", "BV": "Bouvet Island",
    "BW": "Botswana", "BY": "Belarus", "BZ": "Belize",
    "CA": "Canada", "CC": "Cocos (Keeling) Islands", "CD": "Congo - Kinshasa",
    "CF": "Central African Republic", "CG": "Congo - Brazzaville",
    "CH": "Switzerland", "CI": "Côte d’Ivoire", "CK": "Cook Islands",
    "CL": "Chile", "CM": "Cameroon", "CN": "China", "CO": "Colombia",
    "CR": "Costa Rica", "CU": "Cuba", "CV": "Cape Verde", "CW": "Curaçao",
    "CX": "Christmas Island", "CY": "Cyprus", "CZ": "Czechia",
    "DE": "Germany", "DJ": "Djibouti", "DK": "Denmark", "DM": "Dominica",
    "DO": "Dominican Republic", "DZ": "Algeria",
    "EC": "Ecuador", "EE": "Estonia", "EG": "Egypt", "EH": "Western Sahara",
    "ER": "Eritrea", "ES": "Spain", "ET": "Ethiopia",
    "FI": "Finland", "FJ": "Fiji", "FK": "Falkland Islands",
    "FM": "Micronesia", "FO": "Faroe Islands", "FR": "France",
    "GA": "Gabon", "GB": "United Kingdom", "GD": "Grenada", "GE": "Georgia",
    "GF": "French Guiana", "GG": "Guernsey", "GH": "Ghana", "GI": "Gibraltar",
    "GL": "Greenland", "GM": "Gambia", "GN": "Guinea", "GP": "Guadeloupe",
    "GQ": "Equatorial Guinea", "GR": "Greece",
    "GS": "South Georgia & South Sandwich Islands", "GT": "Guatemala",
    "GU": "Guam", "GW": "Guinea-Bissau", "GY": "Guyana",
    "HK": "Hong Kong SAR China", "HM": "Heard & McDonald Islands",
    "HN": "Honduras", "HR": "Croatia", "HT": "Haiti", "HU": "Hungary",
    "ID": "Indonesia", "IE": "Ireland", "IL": "Israel", "IM": "Isle of Man",
    "IN": "India", "IO": "British Indian Ocean Territory", "IQ": "Iraq",
    "IR": "Iran", "IS": "Iceland", "IT": "Italy",
    "JE": "Jersey", "JM": "Jamaica", "JO": "Jordan", "JP": "Japan",
    "KE": "Kenya", "KG": "Kyrgyzstan", "KH": "Cambodia", "KI": "Kiribati",
    "KM": "Comoros", "KN": "St. Kitts & Nevis", "KP": "North Korea",
    "KR": "South Korea", "KW": "Kuwait", "KY": "Cayman Islands",
    "KZ": "Kazakhstan",
    "LA": "Laos", "LB": "Lebanon", "LC": "St. Lucia", "LI": "Liechtenstein",
    "LK": "Sri Lanka", "LR": "Liberia", "LS": "Lesotho", "LT": "Lithuania",
    "LU": "Luxembourg", "LV": "Latvia", "LY": "Libya",
    "MA": "Morocco", "MC": "Monaco", "MD": "Moldova", "ME": "Montenegro",
    "MF": "St. Martin", "MG": "Madagascar", "MH": "Marshall Islands",
    "MK": "North Macedonia", "ML": "Mali", "MM": "Myanmar (Burma)",
    "MN": "Mongolia", "MO": "Macao SAR China", "MP": "Northern Mariana Islands",
    "MQ": "Martinique", "MR": "Mauritania", "MS": "Montserrat", "MT": "Malta",
    "MU": "Mauritius", "MV": "Maldives", "MW": "Malawi", "MX": "Mexico",
    "MY": "Malaysia", "MZ": "Mozambique",
    "NA": "Namibia", "NC": "New Caledonia", "NE": "Niger",
    "NF": "Norfolk Island", "NG": "Nigeria", "NI": "Nicaragua",
    "NL": "Netherlands", "NO": "Norway", "NP": "Nepal", "NR": "Nauru",
    "NU": "Niue", "NZ": "New Zealand",
    "OM": "Oman",
    "PA": "Panama", "PE": "Peru", "PF": "French Polynesia",
    "PG": "Papua New Guinea", "PH": "Philippines", "PK": "Pakistan",
    "PL": "Poland", "PM": "St. Pierre & Miquelon", "PN": "Pitcairn Islands",
    "PR": "Puerto Rico", "PS": "Palestinian Territories", "PT": "Portugal",
    "PW": "Palau", "PY": "Paraguay",
    "QA": "Qatar",
    "RE": "Réunion", "RO": "Romania", "RS": "Serbia", "RU": "Russia",
    "RW": "Rwanda",
    "SA": "Saudi Arabia", "SB": "Solomon Islands", "SC": "Seychelles",
    "SD": "Sudan", "SE": "Sweden", "SG": "Singapore", "SH": "St. Helena",
    "SI": "Slovenia", "SJ": "Svalbard & Jan Mayen", "SK": "Slovakia",
    "SL": "Sierra Leone", "SM": "San Marino", "SN": "Senegal", "SO": "Somalia",
    "SR": "Suriname", "SS": "South Sudan", "ST": "São Tomé & Príncipe",
    "SV": "El Salvador", "SX": "Sint Maarten", "SY": "Syria",
    "SZ": "Eswatini",
    "TC": "Turks & Caicos Islands", "TD": "Chad",
    "TF": "French Southern Territories", "TG": "Togo", "TH": "Thailand",
    "TJ": "Tajikistan", "TK": "Tokelau", "TL": "Timor-Leste",
    "TM": "Turkmenistan", "TN": "Tunisia", "TO": "Tonga", "TR": "Turkey",
    "TT": "Trinidad & Tobago", "TV": "Tuvalu", "TW": "Taiwan",
    "TZ": "Tanzania",
    "UA": "Ukraine", "UG": "Uganda", "UM": "U.S. Outlying Islands",
    "US": "United States", "UY": "Uruguay", "UZ": "Uzbekistan",
    "VA": "Vatican City", "VC": "St. Vincent & Grenadines", "VE": "Venezuela",
    "VG": "British Virgin Islands", "VI": "U.S. Virgin Islands",
    "VN": "Vietnam", "VU": "Vanuatu",
    "WF": "Wallis & Futuna", "WS": "Samoa",
    "YE": "Yemen", "YT": "Mayotte",
    "ZA": "South Africa", "ZM": "Zambia", "ZW": "Zimbabwe",
}

ALIASES = {
    "usa": "US", "us": "US",
    "uk": "GB", "england": "GB", "britain": "GB", "great britain": "GB",
    "uae": "AE", "south korea": "KR", "north korea": "KP",
    "russia": "RU", "nz": "NZ",
}

# Display spelling of the aliases in the autocomplete index
ALIAS_DISPLAY = [
    "USA", "US", "UK", "England", "Britain", "Great Britain", "UAE",
    "South Korea", "North Korea", "Russia", "NZ",
]

COUNTRY_NAME_TO_CODE = {name.lower(): code for code, name in COUNTRY_NAMES.items()}
COUNTRY_NAME_TO_CODE.update(ALIASES)

# ---------------------------------------------------------------------------
# Curated zones. Countries not listed resolve through geocoding instead.
# ---------------------------------------------------------------------------

MULTI_ZONE_COUNTRIES = {
    "US": ["America/New_York", "America/Chicago", "America/Denver",
           "America/Los_Angeles", "America/Anchorage", "Pacific/Honolulu"],
    "AU": ["Australia/Sydney", "Australia/Adelaide", "Australia/Darwin",
           "Australia/Perth", "Australia/Brisbane"],
    "CA": ["America/St_Johns", "America/Halifax", "America/Toronto",
           "America/Winnipeg", "America/Edmonton", "America/Vancouver"],
    "RU": ["Europe/Moscow", "Europe/Samara", "Asia/Yekaterinburg", "Asia/Omsk",
           "Asia/Krasnoyarsk", "Asia/Irkutsk", "Asia/Yakutsk",
           "Asia/Vladivostok", "Asia/Kamchatka"],
    "BR": ["America/Sao_Paulo", "America/Manaus", "America/Rio_Branco",
           "America/Noronha"],
    "CN": ["Asia/Shanghai"],
    "IN": ["Asia/Kolkata"],
    "MX": ["America/Mexico_City", "America/Chihuahua", "America/Tijuana"],
    "ID": ["Asia/Jakarta", "Asia/Makassar", "Asia/Jayapura"],
    "CL": ["America/Santiago", "Pacific/Easter"],
    "NZ": ["Pacific/Auckland", "Pacific/Chatham"],
    "PT": ["Europe/Lisbon", "Atlantic/Azores"],
    "ES": ["Europe/Madrid", "Atlantic/Canary"],
    "GB": ["Europe/London"],
    "FR": ["Europe/Paris"],
    "DE": ["Europe/Berlin"],
    "JP": ["Asia/Tokyo"],
    "KR": ["Asia/Seoul"],
    "ZA": ["Africa/Johannesburg"],
    "AR": ["America/Argentina/Buenos_Aires"],
    "EG": ["Africa/Cairo"],
    "NG": ["Africa/Lagos"],
    "KE": ["Africa/Nairobi"],
    "AE": ["Asia/Dubai"],
    "SA": ["Asia/Riyadh"],
    "TH": ["Asia/Bangkok"],
    "SG": ["Asia/Singapore"],
    "MY": ["Asia/Kuala_Lumpur"],
    "PH": ["Asia/Manila"],
    "PK": ["Asia/Karachi"],
    "BD": ["Asia/Dhaka"],
    "TR": ["Europe/Istanbul"],
    "UA": ["Europe/Kyiv"],
    "PL": ["Europe/Warsaw"],
    "IT": ["Europe/Rome"],
    "SE": ["Europe/Stockholm"],
    "NO": ["Europe/Oslo"],
    "FI": ["Europe/Helsinki"],
    "DK": ["Europe/Copenhagen"],
    "NL": ["Europe/Amsterdam"],
    "BE": ["Europe/Brussels"],
    "CH": ["Europe/Zurich"],
    "AT": ["Europe/Vienna"],
    "GR": ["Europe/Athens"],
    "IE": ["Europe/Dublin"],
    "IL": ["Asia/Jerusalem"],
    "CO": ["America/Bogota"],
    "PE": ["America/Lima"],
    "VE": ["America/Caracas"],
    "EC": ["America/Guayaquil", "Pacific/Galapagos"],
}

ZONE_TO_COUNTRY_CODE = {
    zone: code
    for code, zones in MULTI_ZONE_COUNTRIES.items()
    for zone in zones
}

CAPITAL_CITIES = {
    "kabul": "AF", "tirana": "AL", "algiers": "DZ", "andorra la vella": "AD",
    "luanda": "AO", "buenos aires": "AR", "yerevan": "AM", "canberra": "AU",
    "vienna": "AT", "baku": "AZ", "nassau": "BS", "manama": "BH", "dhaka": "BD",
    "bridgetown": "BB", "minsk": "BY", "brussels": "BE", "belmopan": "BZ",
    "porto-novo": "BJ", "thimphu": "BT", "la paz": "BO", "sucre": "BO",
    "sarajevo": "BA", "gaborone": "BW", "brasilia": "BR",
    "bandar seri begawan": "BN", "sofia": "BG", "ouagadougou": "BF",
    "gitega": "BI", "phnom penh": "KH", "yaounde": "CM", "ottawa": "CA",
    "praia": "CV", "bangui": "CF", "n'djamena": "TD", "santiago": "CL",
    "beijing": "CN", "bogota": "CO", "moroni": "KM", "kinshasa": "CD",
    "brazzaville": "CG", "san jose": "CR", "zagreb": "HR", "havana": "CU",
    "nicosia": "CY", "prague": "CZ", "copenhagen": "DK", "djibouti": "DJ",
    "roseau": "DM", "santo domingo": "DO", "quito": "EC", "cairo": "EG",
    "san salvador": "SV", "malabo": "GQ", "asmara": "ER", "tallinn": "EE",
    "addis ababa": "ET", "suva": "FJ", "helsinki": "FI", "paris": "FR",
    "libreville": "GA", "banjul": "GM", "tbilisi": "GE", "berlin": "DE",
    "accra": "GH", "athens": "GR", "guatemala city": "GT", "conakry": "GN",
    "bissau": "GW", "georgetown": "GY", "port-au-prince": "HT",
    "tegucigalpa": "HN", "budapest": "HU", "reykjavik": "IS",
    "new delhi": "IN", "delhi": "IN", "jakarta": "ID", "tehran": "IR",
    "baghdad": "IQ", "dublin": "IE", "jerusalem": "IL", "rome": "IT",
    "kingston": "JM", "tokyo": "JP", "amman": "JO", "astana": "KZ",
    "nairobi": "KE", "tarawa": "KI", "pyongyang": "KP", "seoul": "KR",
    "kuwait city": "KW", "bishkek": "KG", "vientiane": "LA", "riga": "LV",
    "beirut": "LB", "maseru": "LS", "monrovia": "LR", "tripoli": "LY",
    "vaduz": "LI", "vilnius": "LT", "luxembourg": "LU", "antananarivo": "MG",
    "lilongwe": "MW", "kuala lumpur": "MY", "male": "MV", "bamako": "ML",
    "valletta": "MT", "nouakchott": "MR", "port louis": "MU",
    "mexico city": "MX", "chisinau": "MD", "monaco": "MC",
    "ulaanbaatar": "MN", "podgorica": "ME", "rabat": "MA", "maputo": "MZ",
    "naypyidaw": "MM", "windhoek": "NA", "kathmandu": "NP",
    "amsterdam": "NL", "wellington": "NZ", "managua": "NI", "niamey": "NE",
    "abuja": "NG", "oslo": "NO", "muscat": "OM", "islamabad": "PK",
    "panama city": "PA", "port moresby": "PG", "asuncion": "PY",
    "lima": "PE", "manila": "PH", "warsaw": "PL", "lisbon": "PT",
    "doha": "QA", "bucharest": "RO", "moscow": "RU", "kigali": "RW",
    "riyadh": "SA", "dakar": "SN", "belgrade": "RS", "victoria": "SC",
    "freetown": "SL", "singapore": "SG", "bratislava": "SK",
    "ljubljana": "SI", "honiara": "SB", "mogadishu": "SO", "pretoria": "ZA",
    "cape town": "ZA", "madrid": "ES", "colombo": "LK", "khartoum": "SD",
    "paramaribo": "SR", "mbabane": "SZ", "stockholm": "SE", "bern": "CH",
    "damascus": "SY", "taipei": "TW", "dushanbe": "TJ", "dodoma": "TZ",
    "bangkok": "TH", "lome": "TG", "nuku'alofa": "TO",
    "port of spain": "TT", "tunis": "TN", "ankara": "TR", "ashgabat": "TM",
    "kampala": "UG", "kyiv": "UA", "kiev": "UA", "abu dhabi": "AE",
    "london": "GB", "washington": "US", "washington dc": "US",
    "washington d.c.": "US", "montevideo": "UY", "tashkent": "UZ",
    "port vila": "VU", "caracas": "VE", "hanoi": "VN", "sanaa": "YE",
    "lusaka": "ZM", "harare": "ZW",
}


# ---------------------------------------------------------------------------
# Offsets
# ---------------------------------------------------------------------------

def _instant(at: datetime | None) -> datetime:
    if at is None:
        return datetime.now(timezone.utc)
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at


def utc_offset_seconds(zone_id: str, at: datetime | None = None) -> int:
    """UTC offset of `zone_id` at the given instant, in seconds."""
    off = _instant(at).astimezone(ZoneInfo(zone_id)).utcoffset()
    return int(off.total_seconds()) if off else 0


def format_utc_offset(seconds: int) -> str:
    """UTC+5, UTC+5:30, UTC-3:30."""
    sign = "+" if seconds >= 0 else "-"
    hours, rem = divmod(abs(seconds), 3600)
    minutes = rem // 60
    if minutes:
        return f"UTC{sign}{hours}:{minutes:02d}"
    return f"UTC{sign}{hours}"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def country_code(name: str) -> str | None:
    return COUNTRY_NAME_TO_CODE.get(name.strip().lower())


def country_name(code: str) -> str | None:
    return COUNTRY_NAMES.get(code.upper())


def capital_city_country_code(city: str) -> str | None:
    return CAPITAL_CITIES.get(city.strip().lower())


def time_zones(code: str, at: datetime | None = None) -> list[str]:
    """Curated zones for a country, one per distinct offset, ascending.

    Empty for countries outside the curated table: those are resolved by
    geocoding the country name instead.
    """
    identifiers = MULTI_ZONE_COUNTRIES.get(code.upper())
    if not identifiers:
        return []
    seen: dict[int, str] = {}
    for zone_id in identifiers:
        offset = utc_offset_seconds(zone_id, at)
        seen.setdefault(offset, zone_id)
    return [seen[offset] for offset in sorted(seen)]


def country_has_multiple_time_zones(code: str, at: datetime | None = None) -> bool:
    # Distinct offsets, not identifiers: Sydney and Brisbane share one in winter.
    identifiers = MULTI_ZONE_COUNTRIES.get(code.upper(), [])
    return len({utc_offset_seconds(z, at) for z in identifiers}) > 1


def city_name(zone_id: str) -> str:
    parts = zone_id.split("/")
    if len(parts) < 2:
        return zone_id
    return parts[-1].replace("_", " ")


def friendly_name(zone_id: str) -> str:
    """"Canada/Toronto" for curated zones, the raw identifier otherwise."""
    code = ZONE_TO_COUNTRY_CODE.get(zone_id)
    if code:
        name = country_name(code)
        if name:
            return f"{name}/{city_name(zone_id)}"
    return zone_id


def location_name(zone_id: str, country: str | None = None) -> str:
    """Saved-location label, preferring the geocoder's country name."""
    if country:
        return f"{country}/{city_name(zone_id)}"
    return friendly_name(zone_id)


def pill_display_name(location_name: str, zone_id: str, at: datetime | None = None) -> str:
    """Short label: the country alone unless it spans several offsets."""
    parts = location_name.split("/", 1)
    if len(parts) != 2:
        return location_name
    code = ZONE_TO_COUNTRY_CODE.get(zone_id)
    if code and country_has_multiple_time_zones(code, at):
        return location_name
    return parts[0]


# ---------------------------------------------------------------------------
# Autocomplete
# ---------------------------------------------------------------------------

def capitalize_words(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


_SEARCHABLE_NAMES = sorted(
    list(COUNTRY_NAMES.values())
    + [capitalize_words(city) for city in CAPITAL_CITIES]
    + ALIAS_DISPLAY
)


def searchable_names() -> list[str]:
    return list(_SEARCHABLE_NAMES)


def autocomplete(prefix: str) -> str | None:
    if len(prefix) < 2:
        return None
    lower = prefix.lower()
    for name in _SEARCHABLE_NAMES:
        if name.lower().startswith(lower):
            return name
    return None
