"""TravelRelay - resilient upstream-call layer for a travel-data API."""

__version__ = "0.1.0"
