"""
Leveling Table for the Course Storefront
Single source of truth for the XP threshold table and level progress
"""

from typing import Dict, NamedTuple


# Cumulative XP needed to reach level i + 1
LEVEL_THRESHOLDS = (
    0, 200, 500, 1500, 3000, 5000, 7000, 9000, 11000, 13000,
    15000, 17000, 19000, 21000, 23000, 25000, 27000, 29000,
    31000, 33000, 35000, 37000, 39000, 41000, 43000, 45000,
    47000, 49000, 51000, 53000, 55000, 57000, 59000, 61000,
    63000, 65000
)

MAX_LEVEL = len(LEVEL_THRESHOLDS)


class LevelInfo(NamedTuple):
    level: int
    xp_into_level: int
    xp_for_next_level: int
    xp_to_next: int

    @property
    def progress_percent(self) -> float:
        if self.xp_for_next_level <= 0:
            return 100.0
        return min(100.0, round(self.xp_into_level / self.xp_for_next_level * 100, 1))


class LevelingTable:
    """Maps cumulative XP to level using LEVEL_THRESHOLDS"""

    @staticmethod
    def level_for(total_xp: int) -> int:
        """
        Level = 1 + highest index whose threshold is <= total_xp,
        clamped to [1, MAX_LEVEL].

        Examples:
        - 0 XP = Level 1
        - 199 XP = Level 1
        - 200 XP = Level 2
        - 65000 XP and above = Level 36
        """
        total_xp = max(0, total_xp or 0)
        level = 1
        for index, threshold in enumerate(LEVEL_THRESHOLDS):
            if threshold > total_xp:
                break
            level = index + 1
        return min(max(level, 1), MAX_LEVEL)

    @staticmethod
    def level_info(total_xp: int) -> LevelInfo:
        """Level plus progress towards the next one (zeroes at max level)"""
        total_xp = max(0, total_xp or 0)
        level = LevelingTable.level_for(total_xp)
        current_threshold = LEVEL_THRESHOLDS[level - 1]

        if level >= MAX_LEVEL:
            xp_for_next = 0
        else:
            xp_for_next = LEVEL_THRESHOLDS[level] - current_threshold

        xp_into_level = total_xp - current_threshold
        xp_to_next = max(0, xp_for_next - xp_into_level) if xp_for_next else 0

        return LevelInfo(level, xp_into_level, xp_for_next, xp_to_next)

    @staticmethod
    def get_level_progress(total_xp: int) -> Dict:
        """Level progress as a JSON-ready dict"""
        info = LevelingTable.level_info(total_xp)
        return {
            'level': info.level,
            'total_xp': max(0, total_xp or 0),
            'xp_into_level': info.xp_into_level,
            'xp_for_next_level': info.xp_for_next_level,
            'xp_to_next': info.xp_to_next,
            'progress_percent': info.progress_percent,
            'is_max_level': info.level >= MAX_LEVEL
        }
