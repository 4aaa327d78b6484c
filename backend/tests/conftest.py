"""
Shared fixtures. Every test runs against the in-memory document store.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Must be set before hikeplanner.core.config is imported
os.environ["DATABASE_BACKEND"] = "memory"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Add parent directory to path to import hikeplanner modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest  # noqa: E402

from hikeplanner.db.database import COLLECTIONS  # noqa: E402
from hikeplanner.db.memory import MemoryDocumentStore  # noqa: E402
from hikeplanner.repositories import Repositories  # noqa: E402


@pytest.fixture
def stores():
    return {name: MemoryDocumentStore(name) for name in COLLECTIONS}


@pytest.fixture
def repos(stores):
    return Repositories.from_stores(stores)


def user_payload(email="hiker@example.com", **overrides):
    payload = {
        "email": email,
        "displayName": "Sam Ridge",
        "fitnessLevel": "intermediate",
        "preferences": {
            "preferredDifficulty": ["intermediate"],
            "maxHikingDistance": 20,
            "terrainTypes": ["mountain"],
            "groupSize": "small",
        },
        "location": {"city": "Boulder", "state": "CO", "country": "USA", "region": "colorado"},
    }
    payload.update(overrides)
    return payload


def trail_payload(name="Mesa Trail", region="colorado", difficulty="intermediate", distance=8.0, **overrides):
    payload = {
        "name": name,
        "description": f"{name} through pine forest",
        "location": {
            "region": region,
            "park": "Chautauqua Park",
            "country": "USA",
            "coordinates": {
                "start": {"longitude": -105.28, "latitude": 39.99},
                "end": {"longitude": -105.26, "latitude": 39.93},
            },
        },
        "characteristics": {
            "difficulty": difficulty,
            "distance": distance,
            "duration": {"min": 2, "max": 4},
            "elevationGain": 400,
            "trailType": "point-to-point",
            "surface": ["dirt"],
        },
        "features": {
            "scenicViews": True,
            "waterFeatures": False,
            "wildlife": ["deer"],
            "seasonality": {"bestMonths": [5, 6, 9], "accessibleMonths": [4, 5, 6, 7, 8, 9, 10]},
        },
        "safety": {"riskLevel": 2, "requiresPermit": False},
        "amenities": {"parking": True, "restrooms": True, "camping": False, "drinkingWater": False},
    }
    payload.update(overrides)
    return payload


def trip_payload(title="Weekend in the Flatirons", region="colorado", start_in_days=10, **overrides):
    start = datetime(2030, 6, 1, tzinfo=timezone.utc) + timedelta(days=start_in_days)
    payload = {
        "title": title,
        "description": "Two days of ridge walking",
        "dates": {
            "startDate": start.isoformat(),
            "endDate": (start + timedelta(days=2)).isoformat(),
            "flexibility": 2,
        },
        "location": {"region": region, "coordinates": {"longitude": -105.27, "latitude": 40.01}, "radius": 50},
        "participants": {"count": 3, "fitnessLevels": ["intermediate"]},
        "preferences": {
            "difficulty": ["intermediate"],
            "duration": {"min": 2, "max": 6},
            "distance": {"min": 5, "max": 15},
            "elevationGain": {"min": 0, "max": 900},
            "trailTypes": ["loop"],
        },
        "equipment": ["boots"],
        "budget": {"amount": 300, "currency": "usd", "includesAccommodation": False},
    }
    payload.update(overrides)
    return payload


def recommendation_payload(trip_id, trail_ids=("trail-1",), confidence=0.9, **overrides):
    payload = {
        "tripId": trip_id,
        "trailIds": list(trail_ids),
        "reasoning": "Matches the group's fitness and preferred season",
        "confidence": confidence,
        "factors": {
            "fitnessMatch": 0.9,
            "preferenceAlignment": 0.8,
            "seasonalSuitability": 0.7,
            "safetyConsiderations": 0.95,
        },
        "alternatives": [{"trailId": "trail-2", "reason": "Shorter option", "confidence": 0.6}],
    }
    payload.update(overrides)
    return payload
