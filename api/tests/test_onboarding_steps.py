from realsingles.services.onboarding_steps import (
    FINAL_STEP,
    ONBOARDING_STEPS,
    TOTAL_STEPS,
    completion_columns,
    get_field,
    get_step_by_id,
    get_step_by_number,
    phases,
    step_for_field,
    steps_payload,
)


def test_steps_are_numbered_contiguously_from_one():
    assert TOTAL_STEPS == 37
    assert [s.step_number for s in ONBOARDING_STEPS] == list(range(1, 38))
    assert len({s.id for s in ONBOARDING_STEPS}) == TOTAL_STEPS


def test_required_steps_cannot_be_skipped():
    required = [s for s in ONBOARDING_STEPS if s.is_required]
    assert [s.id for s in required] == ["name", "birthday", "gender", "interested-in", "photos"]
    assert all(not s.allow_skip for s in required)

    selfie = get_step_by_id("verification-selfie")
    assert selfie.phase == "required"
    assert selfie.is_required is False
    assert selfie.allow_skip is True


def test_final_step_is_complete_and_not_skippable():
    assert FINAL_STEP.id == "complete"
    assert FINAL_STEP.step_number == TOTAL_STEPS
    assert FINAL_STEP.allow_skip is False
    assert FINAL_STEP.fields == ()


def test_lookup_by_number_and_id_agree():
    for step in ONBOARDING_STEPS:
        assert get_step_by_number(step.step_number) is step
        assert get_step_by_id(step.id) is step
    assert get_step_by_id("missing") is None
    assert get_step_by_number(0) is None


def test_fields_resolve_by_api_key_or_column():
    by_key = get_field("DateOfBirth")
    by_column = get_field("date_of_birth")
    assert by_key is by_column
    assert by_key.input_type == "date"
    assert get_field("Nope") is None

    assert step_for_field("smoking").id == "habits"
    assert step_for_field("SocialLink2").id == "social-links"


def test_completion_columns_exclude_media_fields():
    columns = completion_columns()
    assert "profile_image_url" not in columns
    assert "verification_selfie_url" not in columns
    assert "display_name" in columns
    assert len(columns) == 41


def test_phases_keep_step_order():
    grouped = phases()
    assert grouped[0]["phase"] == "required"
    assert grouped[0]["steps"][:2] == ["name", "birthday"]
    assert grouped[-1]["phase"] == "complete"
    assert grouped[-1]["label"] == "Complete"


def test_steps_payload_is_serializable_shape():
    payload = steps_payload()
    assert payload["total_steps"] == TOTAL_STEPS
    first = payload["steps"][0]
    assert first["fields"][0]["key"] == "DisplayName"
    assert isinstance(first["fields"][0]["options"], list)
    assert "required" in payload["phase_labels"]
