import pytest

from conftest import trail_payload
from hikeplanner.core.exceptions import BadRequestError, NotFoundError
from hikeplanner.models.trail import TrailCreate, TrailSearchRequest


async def _seed(repos, **kwargs):
    return await repos.trails.create_trail(TrailCreate.model_validate(trail_payload(**kwargs)))


def _search(**kwargs):
    return TrailSearchRequest.model_validate(kwargs)


@pytest.mark.asyncio
async def test_create_trail_starts_active_and_unrated(repos):
    trail = await _seed(repos)

    assert trail.is_active is True
    assert trail.partition_key == "colorado"
    assert trail.ratings.count == 0
    assert trail.ratings.average == 0


@pytest.mark.asyncio
async def test_search_by_difficulty(repos):
    await _seed(repos, name="Easy Loop", difficulty="beginner")
    await _seed(repos, name="Knife Edge", difficulty="expert")
    await _seed(repos, name="Ridge Run", difficulty="advanced")

    result = await repos.trails.search_trails(_search(filters={"difficulty": ["advanced", "expert"]}))

    assert {trail.name for trail in result.trails} == {"Knife Edge", "Ridge Run"}
    assert result.total == 2


@pytest.mark.asyncio
async def test_distance_bounds_are_inclusive(repos):
    for distance in (4.9, 5, 7.5, 10, 10.1):
        await _seed(repos, name=f"Trail {distance}", distance=distance)

    result = await repos.trails.search_trails(_search(filters={"distance": {"min": 5, "max": 10}}))

    assert sorted(trail.characteristics.distance for trail in result.trails) == [5, 7.5, 10]


@pytest.mark.asyncio
async def test_zero_is_a_real_lower_bound(repos):
    await _seed(repos, name="Short", distance=0.5)

    result = await repos.trails.search_trails(_search(filters={"distance": {"min": 0}}))
    assert [trail.name for trail in result.trails] == ["Short"]


@pytest.mark.asyncio
async def test_text_search_is_case_insensitive(repos):
    await _seed(repos, name="Royal Arch")
    await _seed(repos, name="Green Mountain")

    result = await repos.trails.search_trails(_search(query="royal"))
    assert [trail.name for trail in result.trails] == ["Royal Arch"]


@pytest.mark.asyncio
async def test_feature_and_amenity_filters(repos):
    await _seed(repos, name="Camping Trail", amenities={"parking": True, "camping": True})
    await _seed(repos, name="Day Trail")

    result = await repos.trails.search_trails(
        _search(filters={"amenities": {"camping": True}, "features": {"wildlife": ["deer", "elk"]}})
    )
    assert [trail.name for trail in result.trails] == ["Camping Trail"]


@pytest.mark.asyncio
async def test_region_filter_stays_in_partition(repos):
    await _seed(repos, name="Flatirons", region="colorado")
    await _seed(repos, name="Half Dome", region="california")

    result = await repos.trails.search_trails(_search(filters={"region": "california"}))
    assert [trail.name for trail in result.trails] == ["Half Dome"]


@pytest.mark.asyncio
async def test_total_is_only_reported_on_first_page(repos):
    for index in range(5):
        await _seed(repos, name=f"Trail {index}")

    first = await repos.trails.search_trails(_search(limit=2, sortBy="name", sortOrder="asc"))
    assert first.total == 5
    assert first.has_more is True
    assert [trail.name for trail in first.trails] == ["Trail 0", "Trail 1"]

    second = await repos.trails.search_trails(
        _search(limit=2, sortBy="name", sortOrder="asc", continuationToken=first.continuation_token)
    )
    assert second.total is None
    assert [trail.name for trail in second.trails] == ["Trail 2", "Trail 3"]


@pytest.mark.asyncio
async def test_token_from_another_filter_is_rejected(repos):
    for name, difficulty in (("A1", "advanced"), ("A2", "advanced"), ("B1", "beginner"), ("B2", "beginner")):
        await _seed(repos, name=name, difficulty=difficulty)

    advanced = await repos.trails.search_trails(_search(filters={"difficulty": ["advanced"]}, limit=1))
    assert advanced.continuation_token

    with pytest.raises(BadRequestError):
        await repos.trails.search_trails(
            _search(filters={"difficulty": ["beginner"]}, continuationToken=advanced.continuation_token)
        )


@pytest.mark.asyncio
async def test_sort_by_difficulty_follows_the_scale(repos):
    for difficulty in ("expert", "beginner", "advanced", "intermediate"):
        await _seed(repos, name=f"{difficulty} trail", difficulty=difficulty)

    ascending = await repos.trails.search_trails(_search(sortBy="difficulty", sortOrder="asc"))
    descending = await repos.trails.search_trails(_search(sortBy="difficulty", sortOrder="desc"))

    scale = ["beginner", "intermediate", "advanced", "expert"]
    assert [trail.characteristics.difficulty for trail in ascending.trails] == scale
    assert [trail.characteristics.difficulty for trail in descending.trails] == scale[::-1]


@pytest.mark.asyncio
async def test_rating_updates_running_average_and_breakdown(repos):
    trail = await _seed(repos)

    await repos.trails.update_trail_rating(trail.id, "colorado", 4)
    rated = await repos.trails.update_trail_rating(trail.id, "colorado", 5)

    assert rated.ratings.count == 2
    assert rated.ratings.average == 4.5
    assert rated.ratings.breakdown == {"4": 1, "5": 1}


@pytest.mark.asyncio
async def test_rating_missing_trail_is_not_found(repos):
    with pytest.raises(NotFoundError):
        await repos.trails.update_trail_rating("ghost", "colorado", 3)


@pytest.mark.asyncio
async def test_find_by_ids_tolerates_missing_ids(repos):
    first = await _seed(repos, name="One", region="colorado")
    second = await _seed(repos, name="Two", region="utah")

    found = await repos.trails.find_by_ids([first.id, "ghost", second.id])

    assert {trail.id for trail in found} == {first.id, second.id}
    assert (await repos.trails.find_any_partition(second.id)).name == "Two"
    assert await repos.trails.find_any_partition("ghost") is None
    assert await repos.trails.find_by_ids([]) == []


@pytest.mark.asyncio
async def test_deactivated_trails_are_hidden_from_search(repos):
    trail = await _seed(repos, name="Closed Trail")
    await repos.trails.deactivate_trail(trail.id, "colorado")

    assert (await repos.trails.search_trails(_search())).trails == []

    await repos.trails.reactivate_trail(trail.id, "colorado")
    assert len((await repos.trails.search_trails(_search())).trails) == 1


@pytest.mark.asyncio
async def test_top_rated_requires_enough_ratings(repos):
    popular = await _seed(repos, name="Popular")
    obscure = await _seed(repos, name="Obscure")
    await repos.trails.update(
        popular.id, "colorado", {"ratings": {"average": 4.2, "count": 6, "breakdown": {}}}, popular.etag
    )
    await repos.trails.update(
        obscure.id, "colorado", {"ratings": {"average": 5, "count": 5, "breakdown": {}}}, obscure.etag
    )

    top = await repos.trails.find_top_rated_trails()
    assert [trail.name for trail in top] == ["Popular"]


@pytest.mark.asyncio
async def test_find_by_region_and_park(repos):
    await _seed(repos, name="Flatirons", region="colorado")
    await _seed(repos, name="Angels Landing", region="utah", location={
        "region": "utah",
        "park": "Zion National Park",
        "country": "USA",
        "coordinates": {
            "start": {"longitude": -112.95, "latitude": 37.26},
            "end": {"longitude": -112.94, "latitude": 37.27},
        },
    })

    page = await repos.trails.find_by_region("utah")
    assert [trail.name for trail in page.items] == ["Angels Landing"]
    assert [t.name for t in await repos.trails.find_trails_by_park("Zion National Park")] == ["Angels Landing"]


@pytest.mark.asyncio
async def test_recommended_trails_respect_distance_cap(repos):
    await _seed(repos, name="Short Beginner", difficulty="beginner", distance=4)
    await _seed(repos, name="Long Beginner", difficulty="beginner", distance=12)

    found = await repos.trails.find_recommended_trails(difficulty="beginner", max_distance=5)
    assert [trail.name for trail in found] == ["Short Beginner"]


@pytest.mark.asyncio
async def test_find_by_risk_level(repos):
    await _seed(repos, name="Gentle", safety={"riskLevel": 1})
    await _seed(repos, name="Exposed", safety={"riskLevel": 4})

    found = await repos.trails.find_by_risk_level(2)
    assert [trail.name for trail in found] == ["Gentle"]
    assert len(await repos.trails.find_by_difficulty("intermediate")) == 2


@pytest.mark.asyncio
async def test_region_statistics(repos):
    await _seed(repos, name="A", region="colorado", distance=4, difficulty="beginner")
    await _seed(repos, name="B", region="colorado", distance=8, difficulty="advanced")
    await _seed(repos, name="C", region="utah", distance=10)

    stats = {entry.region: entry for entry in await repos.trails.get_region_statistics()}

    assert stats["colorado"].trail_count == 2
    assert stats["colorado"].average_distance == 6
    assert stats["colorado"].difficulty_breakdown == {"beginner": 1, "advanced": 1}
    assert stats["utah"].trail_count == 1
