from conftest import trail_payload, user_payload
from hikeplanner.models.common import DIFFICULTY_RANK, ErrorResponse
from hikeplanner.models.trail import TrailCreate
from hikeplanner.models.user import UserProfileCreate


def test_schema_example_keeps_camel_case_config():
    schema = UserProfileCreate.model_json_schema(by_alias=True)

    assert schema["example"]["displayName"] == "Alex Walker"
    assert "displayName" in schema["properties"]
    assert UserProfileCreate.model_config["populate_by_name"] is True

    user = UserProfileCreate.model_validate(user_payload(email="Mixed@Example.com"))
    assert user.to_document()["displayName"] == user.display_name
    assert user.email == "mixed@example.com"


def test_error_envelope_schema_example():
    assert ErrorResponse.model_json_schema()["example"]["error"]["statusCode"] == 404


def test_difficulty_rank_follows_the_scale():
    assert DIFFICULTY_RANK == {"beginner": 1, "intermediate": 2, "advanced": 3, "expert": 4}


def test_difficulty_rank_is_derived_not_trusted():
    payload = trail_payload(difficulty="expert")
    payload["characteristics"]["difficultyRank"] = 1

    trail = TrailCreate.model_validate(payload)

    assert trail.characteristics.difficulty_rank == 4
    assert trail.to_document()["characteristics"]["difficultyRank"] == 4
