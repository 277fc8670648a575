"""Service layer public exports."""

from voypath.services.export_formatter import export_trip_markdown
from voypath.services.flight_service import search_flights
from voypath.services.trip_service import create_trip, list_trips

__all__ = ["create_trip", "export_trip_markdown", "list_trips", "search_flights"]
