"""Fuzzy grouping of the same physical climb across activities."""

import logging
from typing import Optional, Sequence

from telemetry_analytics.config import GroupingConfig
from telemetry_analytics.models.analysis import ClimbGroup, ClimbRecord

logger = logging.getLogger(__name__)


class ClimbGrouper:
    """Group climb records that look like repeat attempts of one climb.

    Membership is judged against the group's seed only, so grouping is not
    transitive: two records may each match a seed without matching each other,
    and a record that would match a later seed is claimed by the earlier one.
    """

    def __init__(self, config: Optional[GroupingConfig] = None):
        self.config = config or GroupingConfig()

    def matches(self, seed: ClimbRecord, other: ClimbRecord) -> bool:
        """True when ``other`` is within tolerance of ``seed``."""
        if seed.distance_km <= 0 or seed.elevation_m <= 0:
            return False
        distance_diff = abs(seed.distance_km - other.distance_km) / seed.distance_km
        elevation_diff = abs(seed.elevation_m - other.elevation_m) / seed.elevation_m
        return (
            distance_diff < self.config.distance_tolerance
            and elevation_diff < self.config.elevation_tolerance
        )

    def group(self, records: Sequence[ClimbRecord]) -> list[ClimbGroup]:
        """Group records, largest seed elevation first.

        Args:
            records: Climb records in a fixed order (seeds are taken in this order)

        Returns:
            At most ``max_groups`` groups
        """
        used: set[int] = set()
        groups = []

        for i, seed in enumerate(records):
            if i in used:
                continue
            used.add(i)
            members = [seed]

            for j in range(i + 1, len(records)):
                if j not in used and self.matches(seed, records[j]):
                    members.append(records[j])
                    used.add(j)

            groups.append(ClimbGroup(seed=seed, members=members))

        # sorted() is stable, ties keep input order
        groups = sorted(groups, key=lambda g: g.seed.elevation_m, reverse=True)
        logger.info(f"Grouped {len(records)} climbs into {len(groups)} groups")
        return groups[:self.config.max_groups]
