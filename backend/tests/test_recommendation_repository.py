from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import recommendation_payload
from hikeplanner.core.exceptions import NotFoundError
from hikeplanner.models.common import utcnow
from hikeplanner.models.recommendation import AIRecommendationCreate, RecommendationFeedback


async def _seed(repos, user_id="user-1", trip_id="trip-1", **kwargs):
    data = AIRecommendationCreate.model_validate(recommendation_payload(trip_id, **kwargs))
    return await repos.recommendations.create_recommendation(user_id, data)


def test_confidence_outside_unit_interval_is_rejected():
    with pytest.raises(PydanticValidationError):
        AIRecommendationCreate.model_validate(recommendation_payload("trip-1", confidence=1.5))


def test_empty_trail_list_is_rejected():
    with pytest.raises(PydanticValidationError):
        AIRecommendationCreate.model_validate(recommendation_payload("trip-1", trail_ids=()))


@pytest.mark.asyncio
async def test_default_expiry_is_seven_days_out(repos):
    recommendation = await _seed(repos)

    remaining = recommendation.expires_at - utcnow()
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)
    assert recommendation.partition_key == "user-1"


@pytest.mark.asyncio
async def test_expired_recommendations_are_hidden_and_swept(repos):
    live = await _seed(repos)
    await _seed(repos, expiresAt=(utcnow() - timedelta(hours=1)).isoformat())
    await _seed(repos, user_id="user-2", expiresAt=(utcnow() - timedelta(days=2)).isoformat())

    page = await repos.recommendations.find_by_user_id("user-1")
    assert [r.id for r in page.items] == [live.id]
    assert len(await repos.recommendations.find_expired_recommendations()) == 2

    assert await repos.recommendations.delete_expired_recommendations() == 2
    assert await repos.recommendations.count() == 1


@pytest.mark.asyncio
async def test_user_pages_keep_working_as_time_moves(repos):
    created = [await _seed(repos, trip_id=f"trip-{index}") for index in range(3)]

    first = await repos.recommendations.find_by_user_id("user-1", limit=2)
    second = await repos.recommendations.find_by_user_id(
        "user-1", limit=2, continuation_token=first.continuation_token
    )

    assert first.has_more is True
    assert len(first.items) == 2
    assert {r.id for r in first.items + second.items} == {r.id for r in created}


@pytest.mark.asyncio
async def test_find_by_trip_id_orders_by_confidence(repos):
    await _seed(repos, trip_id="trip-1", confidence=0.5)
    await _seed(repos, trip_id="trip-1", confidence=0.95)
    await _seed(repos, trip_id="trip-2", confidence=0.7)

    found = await repos.recommendations.find_by_trip_id("trip-1", "user-1")
    assert [r.confidence for r in found] == [0.95, 0.5]


@pytest.mark.asyncio
async def test_high_confidence_threshold(repos):
    await _seed(repos, confidence=0.8)
    await _seed(repos, confidence=0.79)

    found = await repos.recommendations.find_high_confidence_recommendations("user-1")
    assert [r.confidence for r in found] == [0.8]


@pytest.mark.asyncio
async def test_recommendations_for_trail_cross_partitions(repos):
    await _seed(repos, user_id="user-1", trail_ids=("trail-1", "trail-2"))
    await _seed(repos, user_id="user-2", trail_ids=("trail-2",))
    await _seed(repos, user_id="user-3", trail_ids=("trail-3",))

    found = await repos.recommendations.find_recommendations_for_trail("trail-2")
    assert {r.user_id for r in found} == {"user-1", "user-2"}


@pytest.mark.asyncio
async def test_similar_recommendations(repos):
    await _seed(repos, trail_ids=("trail-1",), confidence=0.9)
    await _seed(repos, trail_ids=("trail-9",), confidence=0.9)
    await _seed(repos, trail_ids=("trail-1",), confidence=0.4)

    found = await repos.recommendations.find_similar_recommendations("user-1", ["trail-1", "trail-5"])
    assert [r.trail_ids for r in found] == [["trail-1"]]
    assert await repos.recommendations.find_similar_recommendations("user-1", []) == []


@pytest.mark.asyncio
async def test_extend_expiry(repos):
    recommendation = await _seed(repos)

    extended = await repos.recommendations.extend_recommendation_expiry(recommendation.id, "user-1", 3)

    assert extended.expires_at - recommendation.expires_at == timedelta(days=3)


@pytest.mark.asyncio
async def test_extend_expired_recommendation_counts_from_now(repos):
    recommendation = await _seed(repos, expiresAt=(utcnow() - timedelta(days=3)).isoformat())

    extended = await repos.recommendations.extend_recommendation_expiry(recommendation.id, "user-1", 2)

    assert extended.expires_at > utcnow() + timedelta(days=1, hours=23)


@pytest.mark.asyncio
async def test_extend_missing_recommendation(repos):
    with pytest.raises(NotFoundError):
        await repos.recommendations.extend_recommendation_expiry("ghost", "user-1", 2)


@pytest.mark.asyncio
async def test_record_feedback(repos):
    recommendation = await _seed(repos)

    updated = await repos.recommendations.record_feedback(
        recommendation.id, "user-1", RecommendationFeedback(rating=4, selected_trail="trail-1", helpful=True)
    )

    assert updated.feedback.rating == 4
    assert updated.feedback.selected_trail == "trail-1"
    assert updated.feedback.submitted_at is not None


@pytest.mark.asyncio
async def test_recommendation_stats(repos):
    first = await _seed(repos, confidence=0.9)
    await _seed(repos, confidence=0.5, expiresAt=(utcnow() - timedelta(days=1)).isoformat())
    await repos.recommendations.record_feedback(first.id, "user-1", RecommendationFeedback(rating=5))

    stats = await repos.recommendations.get_recommendation_stats("user-1")

    assert stats.total == 2
    assert stats.active == 1
    assert stats.expired == 1
    assert stats.average_confidence == 0.7
    assert stats.top_factors["fitnessMatch"] == 0.9
    assert stats.with_feedback == 1
    assert stats.average_feedback_rating == 5
