"""
Jurisdiction rule base.

Per issuing region knowledge used both to brief the vision model and to
apply deterministic expiration logic after the fact. Lookups never fail:
anything we don't know about gets ``DEFAULT_PROFILE``.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional, Tuple

from config import DEFAULT_JURISDICTION_VALIDITY


@dataclass(frozen=True)
class JurisdictionRuleProfile:
    code: str
    name: str
    expiration_policy: str
    max_validity_years: int
    license_number_format: str
    security_features: Tuple[str, ...] = ()
    quirks: Tuple[str, ...] = ()
    # Set when the license expires on a birthday instead of after a fixed term
    expiration_age: Optional[int] = None
    is_default: bool = field(default=False, compare=False)

    @property
    def age_based(self) -> bool:
        return self.expiration_age is not None


_MIN_YEARS, _MAX_YEARS = DEFAULT_JURISDICTION_VALIDITY

DEFAULT_PROFILE = JurisdictionRuleProfile(
    code="DEFAULT",
    name="Unknown jurisdiction",
    expiration_policy=(
        f"Assume a generic {_MIN_YEARS}-{_MAX_YEARS} year validity period from the issue date."
    ),
    max_validity_years=_MAX_YEARS,
    license_number_format="Varies; alphanumeric, typically 7-13 characters",
    security_features=("ghost portrait", "hologram or optically variable overlay", "microprint"),
    quirks=("Format and layout cannot be checked against a known template",),
    is_default=True,
)


_PROFILES = (
    JurisdictionRuleProfile(
        code="AZ",
        name="Arizona",
        expiration_policy=(
            "Licenses are valid until the holder's 65th birthday. The expiration "
            "field may be blank or read 00/00/0000; the photo must be renewed every 12 years. "
            "Licenses issued at age 60 or older expire after 5 years."
        ),
        max_validity_years=50,
        license_number_format="One letter followed by 8 digits (e.g. D12345678), or 9 digits",
        security_features=("ghost portrait", "state seal hologram", "UV-reactive saguaro pattern", "microprint border"),
        quirks=("Under-21 licenses use a vertical (portrait) layout",),
        expiration_age=65,
    ),
    JurisdictionRuleProfile(
        code="CA",
        name="California",
        expiration_policy="Expires on the holder's birthday 5 years after issue.",
        max_validity_years=5,
        license_number_format="One letter followed by 7 digits (e.g. A1234567)",
        security_features=("ghost portrait", "bear and state seal holograms", "laser-perforated outline", "microprint"),
        quirks=("Under-21 licenses use a vertical layout", "Federal limits apply text on non-REAL ID cards"),
    ),
    JurisdictionRuleProfile(
        code="TX",
        name="Texas",
        expiration_policy="Expires on the holder's birthday 8 years after issue (6 years for older cards).",
        max_validity_years=8,
        license_number_format="8 digits",
        security_features=("ghost portrait", "state outline hologram", "tactile date of birth", "UV ink"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="FL",
        name="Florida",
        expiration_policy="Expires on the holder's birthday 8 years after issue.",
        max_validity_years=8,
        license_number_format="One letter followed by 12 digits, often printed X123-456-78-901-0",
        security_features=("ghost portrait", "state seal hologram", "UV-reactive ink", "laser-engraved data"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="NY",
        name="New York",
        expiration_policy="Expires on the holder's birthday 8 years after issue.",
        max_validity_years=8,
        license_number_format="9 digits, usually printed in groups of 3",
        security_features=("ghost portrait", "Statue of Liberty hologram", "tactile text", "UV ink"),
        quirks=("Under-21 licenses use a vertical layout", "Enhanced licenses carry a machine readable zone on the back"),
    ),
    JurisdictionRuleProfile(
        code="NV",
        name="Nevada",
        expiration_policy="Expires on the holder's birthday 8 years after issue (4 years for ages 65 and over).",
        max_validity_years=8,
        license_number_format="10 or 12 digits",
        security_features=("ghost portrait", "state seal hologram", "UV ink", "microprint"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="CO",
        name="Colorado",
        expiration_policy="Expires on the holder's birthday 5 years after issue.",
        max_validity_years=5,
        license_number_format="9 digits, often printed ##-###-####",
        security_features=("ghost portrait", "mountain hologram", "tactile date of birth"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="UT",
        name="Utah",
        expiration_policy="Expires on the holder's birthday 8 years after issue.",
        max_validity_years=8,
        license_number_format="4 to 10 digits",
        security_features=("ghost portrait", "state seal hologram", "UV ink"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="NM",
        name="New Mexico",
        expiration_policy="Expires 4 or 8 years after issue, on the holder's birthday.",
        max_validity_years=8,
        license_number_format="9 digits",
        security_features=("ghost portrait", "Zia symbol hologram", "UV ink"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="WA",
        name="Washington",
        expiration_policy="Expires on the holder's birthday 8 years after issue (6 years for older cards).",
        max_validity_years=8,
        license_number_format="WDL followed by 9 letters or digits, or a legacy 12-character name-derived code",
        security_features=("ghost portrait", "Mount Rainier hologram", "laser-engraved data", "UV ink"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="IL",
        name="Illinois",
        expiration_policy="Expires on the holder's birthday 4 years after issue.",
        max_validity_years=4,
        license_number_format="One letter followed by 11 digits, often printed X###-####-####",
        security_features=("ghost portrait", "state seal hologram", "tactile text"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
    JurisdictionRuleProfile(
        code="GA",
        name="Georgia",
        expiration_policy="Expires on the holder's birthday 8 years after issue.",
        max_validity_years=8,
        license_number_format="9 digits",
        security_features=("ghost portrait", "peach hologram", "UV ink"),
        quirks=("Under-21 licenses use a vertical layout",),
    ),
)

JURISDICTIONS: Dict[str, JurisdictionRuleProfile] = {p.code: p for p in _PROFILES}
_BY_NAME = {p.name.lower(): p for p in _PROFILES}


def get_profile(jurisdiction: Optional[str]) -> JurisdictionRuleProfile:
    """Look up a profile by postal code or full name, falling back to the default."""
    if not jurisdiction:
        return DEFAULT_PROFILE
    key = jurisdiction.strip()
    return JURISDICTIONS.get(key.upper()) or _BY_NAME.get(key.lower()) or DEFAULT_PROFILE


def add_years(start: date, years: int) -> date:
    """Anniversary date; Feb 29 rolls back to Feb 28 in non leap years."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


def age_based_expiration(profile: JurisdictionRuleProfile, date_of_birth: date) -> Optional[date]:
    if profile.expiration_age is None:
        return None
    try:
        return add_years(date_of_birth, profile.expiration_age)
    except ValueError:
        # Misread birth year pushes the anniversary past date.max
        return None


def _render_profile(profile: JurisdictionRuleProfile) -> str:
    lines = [
        f"{profile.name} ({profile.code})",
        f"- Expiration: {profile.expiration_policy}",
        f"- Maximum plausible validity: {profile.max_validity_years} years",
        f"- License number format: {profile.license_number_format}",
    ]
    if profile.expiration_age is not None:
        lines.append(
            f"- If the expiration field is blank, expiration = date of birth + {profile.expiration_age} years"
        )
    if profile.security_features:
        lines.append(f"- Known security features: {', '.join(profile.security_features)}")
    for quirk in profile.quirks:
        lines.append(f"- Note: {quirk}")
    return "\n".join(lines)


def render_rules(jurisdiction: Optional[str]) -> str:
    """Rule block for one jurisdiction, or the generic block when unknown."""
    profile = get_profile(jurisdiction)
    if profile.is_default:
        hint = f" ('{jurisdiction}')" if jurisdiction else ""
        return (
            f"ISSUING JURISDICTION: unknown{hint}\n"
            f"- Expiration: {profile.expiration_policy}\n"
            f"- Treat any validity span longer than {profile.max_validity_years} years as unusual, not fraudulent\n"
            f"- License number format: {profile.license_number_format}\n"
            "- Identify the issuing jurisdiction from the card itself and apply what you know about it"
        )
    return "ISSUING JURISDICTION RULES:\n" + _render_profile(profile)


def render_reference() -> str:
    """Reference covering every known jurisdiction, stable across requests."""
    blocks = [_render_profile(p) for p in sorted(JURISDICTIONS.values(), key=lambda p: p.code)]
    blocks.append(_render_profile(DEFAULT_PROFILE).replace("Unknown jurisdiction (DEFAULT)", "Any other jurisdiction"))
    return "JURISDICTION REFERENCE\n\n" + "\n\n".join(blocks)
