"""Domain package exports."""

from voypath.domain.constants import (
    DEFAULT_MAX_MEMBERS,
    DEFAULT_OPTIMIZATION_PREFERENCES,
    MAX_MEMBER_COLORS,
    MAX_MEMBERS_LIMIT,
)
from voypath.domain.enums import (
    BookingType,
    ColorType,
    MemberRole,
    PlaceSource,
    ScheduleEditAction,
    ShareType,
    SortOrder,
    TransportMode,
    TripStatus,
)
from voypath.domain.exceptions import (
    AuthenticationRequired,
    Conflict,
    DomainError,
    Gone,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from voypath.domain.models import (
    Booking,
    DailySchedule,
    InvitationCode,
    OptimizationResult,
    Place,
    PlaceContribution,
    ScheduledPlace,
    Trip,
    TripMember,
    TripShare,
    User,
)

__all__ = [
    "AuthenticationRequired",
    "Booking",
    "BookingType",
    "ColorType",
    "Conflict",
    "DailySchedule",
    "DomainError",
    "Gone",
    "InvitationCode",
    "MemberRole",
    "NotFound",
    "OptimizationResult",
    "PermissionDenied",
    "Place",
    "PlaceContribution",
    "PlaceSource",
    "ScheduledPlace",
    "ScheduleEditAction",
    "ShareType",
    "SortOrder",
    "TransportMode",
    "Trip",
    "TripMember",
    "TripShare",
    "TripStatus",
    "User",
    "ValidationFailed",
    "DEFAULT_MAX_MEMBERS",
    "DEFAULT_OPTIMIZATION_PREFERENCES",
    "MAX_MEMBER_COLORS",
    "MAX_MEMBERS_LIMIT",
]
