from travelrelay.adapters.travel.service import OPERATIONS, TravelAPIService

__all__ = ["OPERATIONS", "TravelAPIService"]
