"""
Matchsight - Constants

Rank tiers, game-mode labels, loadout socket identifiers and the polling
defaults used by the live session engine.
"""

from enum import StrEnum

# ============================================================================
# Client
# ============================================================================

# Process that must be alive for the local API to be worth polling
GAME_PROCESS_NAME = "Valorant.exe"

# Lockfile name reported while only the launcher is up
LAUNCHER_LOCKFILE_NAME = "Riot Client"

# Loopback host of the local API
LOCAL_HOST = "127.0.0.1"

# Static catalog service
CATALOG_API_BASE = "https://valorant-api.com/v1"

# Base64 encoded platform descriptor expected by the remote game services
CLIENT_PLATFORM = (
    "ew0KCSJwbGF0Zm9ybVR5cGUiOiAiUEMiLA0KCSJwbGF0Zm9ybU9TIjogIldpbmRvd3MiLA0KCSJwbGF0Zm9ybU9TVmVyc2lvbiI6"
    "ICIxMC4wLjE5MDQyLjEuMjU2LjY0Yml0IiwNCgkicGxhdGZvcm1DaGlwc2V0IjogIlVua25vd24iDQp9"
)
CLIENT_USER_AGENT = "ShooterGame/13 Windows/10.0.19043.1.256.64bit"


class Domain(StrEnum):
    """Endpoint families reachable through the local API transport."""

    LOCAL = "local"  # https://127.0.0.1:{port}
    GLZ = "glz"  # match/pregame services for the player's shard
    PD = "pd"  # player data (mmr, names, match history)
    SHARED = "shared"  # content service
    CUSTOM = "custom"  # absolute URL, entitlement headers attached


# ============================================================================
# Loadouts
# ============================================================================

SKIN_SOCKET = "bcef87d6-209b-46c6-8b19-fbe40bd95abc"
CHROMA_SOCKET = "3ad1b2b2-acdb-4524-852f-954a76ddae0a"
LEVEL_SOCKET = "e7c63390-eda7-46e0-bb7a-a6abdacd2433"

DEFAULT_WEAPON = "Vandal"

# Team whose inventory slots are listed after the other team's
OFFSET_TEAM = "Red"
DEFAULT_TEAM = "Blue"


# ============================================================================
# Ranks
# ============================================================================

NUMBERTORANKS = [
    "Unranked",
    "Unranked",
    "Unranked",
    "Iron 1",
    "Iron 2",
    "Iron 3",
    "Bronze 1",
    "Bronze 2",
    "Bronze 3",
    "Silver 1",
    "Silver 2",
    "Silver 3",
    "Gold 1",
    "Gold 2",
    "Gold 3",
    "Platinum 1",
    "Platinum 2",
    "Platinum 3",
    "Diamond 1",
    "Diamond 2",
    "Diamond 3",
    "Ascendant 1",
    "Ascendant 2",
    "Ascendant 3",
    "Immortal 1",
    "Immortal 2",
    "Immortal 3",
    "Radiant",
]

# Tiers at or above this carry a leaderboard position
LEADERBOARD_MIN_TIER = 21

# Seasons played before Ascendant was added; their tiers above 20 sit 3 lower
BEFORE_ASCENDANT_SEASONS = frozenset(
    {
        "0df5adb9-4dcb-6899-1306-3e9860661dd3",
        "3f61c772-4560-cd3f-5d3f-a7ab5abda6b3",
        "0530b9c4-4980-f2ee-df5d-09864cd00542",
        "46ea6166-4573-1128-9cea-60a15640059b",
        "fcf2c8f4-4324-e50b-2e23-718e4a3ab046",
        "97b6e739-44cc-ffa7-49ad-398ba502ceb0",
        "ab57ef51-4e59-da91-cc8d-51a5a2b9b8ff",
        "52e9749a-429b-7060-99fe-4595426a0cf7",
        "71c81c67-4fae-ceb1-844c-aab2bb8710fa",
        "2a27e5d2-4d30-c9e2-b15a-93b8909a442c",
        "4cb622e1-4244-6da3-7276-8daaf1c01be2",
        "a16955a5-4ad0-f761-5e9e-389df1c892fb",
        "97b39124-46ce-8b55-8fd1-7cbf7ffe173f",
        "573f53ac-41a5-3a7d-d9ce-d6a6298e5704",
        "d929bc38-4ab6-7da4-94f0-ee84f8ac141e",
        "3e47230a-463c-a301-eb7d-67bb60357d4f",
        "808202d6-4f2b-a8ff-1feb-b3a0590ad79f",
    }
)
ASCENDANT_TIER_SHIFT = 3


def rank_label(tier: int | None) -> str:
    """Human readable rank for a competitive tier number."""
    if tier is None or tier < 0 or tier >= len(NUMBERTORANKS):
        return NUMBERTORANKS[0]
    return NUMBERTORANKS[tier]


# ============================================================================
# Queues and game modes
# ============================================================================

GAMEMODES = {
    "newmap": "New Map",
    "competitive": "Competitive",
    "unrated": "Unrated",
    "swiftplay": "Swiftplay",
    "spikerush": "Spike Rush",
    "deathmatch": "Deathmatch",
    "ggteam": "Escalation",
    "onefa": "Replication",
    "hurm": "Team Deathmatch",
    "custom": "Custom",
    "snowball": "Snowball Fight",
    "": "Custom",
}

CUSTOM_GAME_LABEL = "Custom Game"
CUSTOM_PROVISIONING_FLOW = "CustomGame"
CUSTOM_PARTY_STATE = "CUSTOM_GAME_SETUP"

COMPETITIVE_QUEUE = "competitive"
UNRATED_QUEUE = "unrated"
PREMIER_QUEUE = "premier"

# Placeholder used when a hidden player has no agent yet
HIDDEN_PLAYER_NAME = "Player"

# Agent id -> name, used when the catalog service is unreachable
FALLBACK_AGENTS = {
    "e370fa57-4757-3604-3648-499e1f642d3f": "Gekko",
    "dade69b4-4f5a-8528-247b-219e5a1facd6": "Fade",
    "5f8d3a7f-467b-97f3-062c-13acf203c006": "Breach",
    "cc8b64c8-4b25-4ff9-6e7f-37b4da43d235": "Deadlock",
    "b444168c-4e35-8076-db47-ef9bf368f384": "Tejo",
    "f94c3b30-42be-e959-889c-5aa313dba261": "Raze",
    "22697a3d-45bf-8dd7-4fec-84a9e28c69d7": "Chamber",
    "601dbbe7-43ce-be57-2a40-4abd24953621": "KAY/O",
    "6f2a04ca-43e0-be17-7f36-b3908627744d": "Skye",
    "117ed9e3-49f3-6512-3ccf-0cada7e3823b": "Cypher",
    "320b2a48-4d9b-a075-30f1-1f93a9b638fa": "Sova",
    "1e58de9c-4950-5125-93e9-a0aee9f98746": "Killjoy",
    "95b78ed7-4637-86d9-7e41-71ba8c293152": "Harbor",
    "efba5359-4016-a1e5-7626-b1ae76895940": "Vyse",
    "707eab51-4836-f488-046a-cda6bf494859": "Viper",
    "eb93336a-449b-9c1b-0a54-a891f7921d69": "Phoenix",
    "92eeef5d-43b5-1d4a-8d03-b3927a09034b": "Veto",
    "41fb69c1-4189-7b37-f117-bcaf1e96f1bf": "Astra",
    "9f0d8ba9-4140-b941-57d3-a7ad57c6b417": "Brimstone",
    "0e38b510-41a8-5780-5e8f-568b2a4f2d6c": "Iso",
    "1dbf2edd-4729-0984-3115-daa5eed44993": "Clove",
    "bb2a4828-46eb-8cd1-e765-15848195d751": "Neon",
    "7f94d92c-4234-0a36-9646-3a87eb8b5c89": "Yoru",
    "df1cb487-4902-002e-5c17-d28e83e78588": "Waylay",
    "569fdd95-4d10-43ab-ca70-79becc718b46": "Sage",
    "a3bfb853-43b2-7238-a4f1-ad90e9e46bcc": "Reyna",
    "8e253930-4c05-31dd-1b6c-968525494517": "Omen",
    "add6443a-41bd-e414-f6ad-e58d267f4e95": "Jett",
}


# ============================================================================
# Polling defaults (seconds)
# ============================================================================

NOT_RUNNING_INTERVAL = 2.0
NOT_RUNNING_BACKOFF_INTERVAL = 5.0
MENUS_INTERVAL = 0.5
PREGAME_INTERVAL = 0.25
INGAME_INTERVAL = 0.5
DISCONNECTED_INTERVAL = 5.0

FAILURE_THRESHOLD = 3
MAX_PATIENCE_RETRIES = 15
INITIAL_DETECTION_ATTEMPTS = 15
INITIAL_DETECTION_INTERVAL = 1.0

# Repeated "not running" messages are logged at most this often
NOT_RUNNING_LOG_INTERVAL = 5 * 60
