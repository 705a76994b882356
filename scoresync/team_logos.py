"""Fallback NHL team logo URLs for payloads that carry no logo of their own."""

_NHL_LOGO_BASE = "https://assets.nhle.com/logos/nhl/svg"

# Mapping: full team name -> NHL abbreviation
_TEAM_ABBREVS: dict[str, str] = {
    "Anaheim Ducks": "ANA",
    "Arizona Coyotes": "ARI",
    "Boston Bruins": "BOS",
    "Buffalo Sabres": "BUF",
    "Calgary Flames": "CGY",
    "Carolina Hurricanes": "CAR",
    "Chicago Blackhawks": "CHI",
    "Colorado Avalanche": "COL",
    "Columbus Blue Jackets": "CBJ",
    "Dallas Stars": "DAL",
    "Detroit Red Wings": "DET",
    "Edmonton Oilers": "EDM",
    "Florida Panthers": "FLA",
    "Los Angeles Kings": "LAK",
    "Minnesota Wild": "MIN",
    "Montreal Canadiens": "MTL",
    "Montréal Canadiens": "MTL",
    "Nashville Predators": "NSH",
    "New Jersey Devils": "NJD",
    "New York Islanders": "NYI",
    "New York Rangers": "NYR",
    "Ottawa Senators": "OTT",
    "Philadelphia Flyers": "PHI",
    "Pittsburgh Penguins": "PIT",
    "San Jose Sharks": "SJS",
    "Seattle Kraken": "SEA",
    "St. Louis Blues": "STL",
    "St Louis Blues": "STL",
    "Tampa Bay Lightning": "TBL",
    "Toronto Maple Leafs": "TOR",
    "Utah Hockey Club": "UTA",
    "Utah Mammoth": "UTA",
    "Vancouver Canucks": "VAN",
    "Vegas Golden Knights": "VGK",
    "Washington Capitals": "WSH",
    "Winnipeg Jets": "WPG",
}
_KNOWN_ABBREVS = frozenset(_TEAM_ABBREVS.values())


def team_abbrev(team_name: str) -> str | None:
    return _TEAM_ABBREVS.get(team_name.strip())


def team_logo_url(abbrev: str | None = None, team_name: str | None = None) -> str | None:
    """Return the NHL CDN logo URL for an abbreviation or full team name.

    Returns None when neither identifies a known team.
    """
    code = (abbrev or "").strip().upper()
    if code not in _KNOWN_ABBREVS:
        code = team_abbrev(team_name or "") or ""
    if not code:
        return None
    return f"{_NHL_LOGO_BASE}/{code}_light.svg"
