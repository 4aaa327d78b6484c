"""
Models package for stored documents and request payloads
"""

from hikeplanner.models.recommendation import AIRecommendation
from hikeplanner.models.trail import Trail
from hikeplanner.models.trip import TripPlan
from hikeplanner.models.user import UserProfile

__all__ = ["UserProfile", "Trail", "TripPlan", "AIRecommendation"]
