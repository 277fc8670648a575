"""Domain-level constants."""

MAX_MEMBER_COLORS = 20
PALETTE_EXHAUSTED = f"No available colors (maximum {MAX_MEMBER_COLORS} members per trip)"

DEFAULT_MAX_MEMBERS = 10
MAX_MEMBERS_LIMIT = 50

INVITATION_CODE_LENGTH = 8
INVITATION_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
DEFAULT_INVITATION_EXPIRES_HOURS = 72
MAX_INVITATION_EXPIRES_HOURS = 720
DEFAULT_INVITATION_MAX_USES = 1
MAX_INVITATION_USES = 100
DEFAULT_INVITATION_DESCRIPTION = "Trip invitation"

SYSTEM_PLACE_WISH_LEVEL = 5
SYSTEM_PLACE_STAY_MINUTES = 60

# Categories that mark auto-generated route endpoints.
SYSTEM_PLACE_CATEGORIES = frozenset({
    "departure_point",
    "destination_point",
    "return_point",
    "transportation",
})
SYSTEM_PLACE_TYPES = frozenset({"departure", "destination", "airport"})

SAME_AS_DEPARTURE = "same as departure location"

DEFAULT_OPTIMIZATION_PREFERENCES = {
    "fairness_weight": 0.6,
    "efficiency_weight": 0.4,
    "auto_optimize": False,
    "include_meals": True,
    "preferred_transport": None,
}

DEFAULT_SCHEDULED_STAY_MINUTES = 120
DEFAULT_SCHEDULED_CATEGORY = "attraction"
FIRST_SLOT_HOUR = 8

# Schedule edits keep every stop inside one calendar day.
LAST_SLOT_MINUTE = 24 * 60 - 1

SHARE_TOKEN_LENGTH = 32
SHARE_TOKEN_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
DEFAULT_SHARE_EXPIRES_HOURS = 168
MAX_SHARE_EXPIRES_HOURS = 24 * 90
DEFAULT_SHARE_PERMISSIONS = {
    "can_view_places": True,
    "can_view_optimization": True,
}
