"""Location matching between readings and users' monitored locations.

Matching is a case-insensitive substring test in both directions so that
naming variants line up, e.g. a user watching "Jaipur" is alerted for a
reading tagged "Jaipur Municipal Corporation". Short names can over-match
("Ra" matches many towns); that behaviour is kept as-is pending product
review.
"""

from collections.abc import Iterable


def normalize_location(name: str | None) -> str:
    """Trim and casefold a location name for comparison."""
    if not name:
        return ""
    return name.strip().casefold()


def is_monitored(
    reading_location: str | None,
    user_monitored_locations: Iterable[str] | None,
) -> bool:
    """Decide whether a reading location is of interest to a user.

    Args:
        reading_location: Location tag of the incoming reading.
        user_monitored_locations: The user's monitored locations. Empty,
            None, or all-blank means the user monitors everywhere.

    Returns:
        True if the user should be evaluated for this reading.
    """
    wanted = [
        normalize_location(loc)
        for loc in (user_monitored_locations or [])
    ]
    wanted = [loc for loc in wanted if loc]
    if not wanted:
        return True

    location = normalize_location(reading_location)
    if not location:
        return False

    return any(loc in location or location in loc for loc in wanted)
