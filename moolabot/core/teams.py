"""
Team labels used across the store, ranking and role code
"""

BULLAS = "bullas"
BERAS = "beras"
TEAMS = (BULLAS, BERAS)

# Leaderboard filter value meaning "every team"
ALL_TEAMS = "all"

TEAM_EMOJI = {
    BULLAS: "🐂",
    BERAS: "🐻",
}


def other_team(team: str) -> str:
    if team not in TEAMS:
        raise ValueError(f"Unknown team: {team}")
    return BERAS if team == BULLAS else BULLAS
