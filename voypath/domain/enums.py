"""Domain enums."""

from enum import Enum


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class PlaceSource(str, Enum):
    USER = "user"
    SYSTEM = "system"


class ColorType(str, Enum):
    SINGLE = "single"
    GRADIENT = "gradient"
    GOLD = "gold"


class TripStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"


class BookingType(str, Enum):
    FLIGHT = "flight"
    HOTEL = "hotel"
    WALKING = "walking"
    CAR = "car"


class TransportMode(str, Enum):
    WALKING = "walking"
    CAR = "car"
    FLIGHT = "flight"
    PUBLIC_TRANSPORT = "public_transport"
    BUS = "bus"
    TRAIN = "train"
    BICYCLE = "bicycle"
    TAXI = "taxi"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ShareType(str, Enum):
    EXTERNAL_VIEW = "external_view"
    COLLABORATION = "collaboration"


class ScheduleEditAction(str, Enum):
    REORDER = "reorder"
    RESIZE = "resize"
    INSERT = "insert"
    DELETE = "delete"
