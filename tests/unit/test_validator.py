"""
Unit tests for lenient record validation.

Includes property-based testing with hypothesis for numeric coercion.
"""

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from src.core.models import RawUserRecord
from src.etl.validator import (
    is_clean_record,
    normalize_platform,
    validate_user,
    validate_user_batch,
)


class TestValidateUser:
    """Tests for validate_user"""

    def test_complete_record_is_clean(self, make_raw_user):
        """Test a record with id, name, email and a program is clean"""
        result = validate_user(make_raw_user())

        assert result.accepted is True
        assert result.is_clean is True
        assert result.errors == []
        assert result.record.user_id == "u1"

    def test_empty_object_is_accepted_but_messy(self):
        """Test an empty object passes validation"""
        result = validate_user({})

        assert result.accepted is True
        assert result.is_clean is False

    @pytest.mark.parametrize("missing", ["user_id", "name", "email", "advocacy_programs"])
    def test_missing_primary_field_is_messy(self, make_raw_user, missing):
        """Test each primary field is required for a clean record"""
        result = validate_user(make_raw_user(**{missing: None}))

        assert result.accepted is True
        assert result.is_clean is False

    def test_blank_name_is_messy(self, make_raw_user):
        """Test whitespace-only strings do not count as present"""
        result = validate_user(make_raw_user(name="   "))

        assert result.accepted is True
        assert result.is_clean is False

    @pytest.mark.parametrize("payload", [[1, 2], "text", 42, None])
    def test_non_object_is_rejected(self, payload):
        """Test a payload that is not a JSON object is rejected"""
        result = validate_user(payload)

        assert result.accepted is False
        assert result.record is None
        assert result.errors

    def test_nested_object_where_scalar_expected_is_rejected(self, make_raw_user):
        """Test a structural mismatch fails validation"""
        result = validate_user(make_raw_user(name={"first": "Jane"}))

        assert result.accepted is False
        assert any(error.startswith("name") for error in result.errors)

    def test_programs_as_string_is_rejected(self, make_raw_user):
        """Test a nested list field holding a scalar is rejected"""
        result = validate_user(make_raw_user(advocacy_programs="Acme"))

        assert result.accepted is False

    def test_single_program_object_is_wrapped(self, make_raw_user):
        """Test a single object is accepted where a list is expected"""
        result = validate_user(make_raw_user(advocacy_programs={"program_id": "p9", "brand": "Solo"}))

        assert result.accepted is True
        assert len(result.record.advocacy_programs) == 1
        assert result.record.advocacy_programs[0].program_id == "p9"

    def test_null_programs_are_accepted(self, make_raw_user):
        """Test null nested collections are treated as absent"""
        result = validate_user(make_raw_user(advocacy_programs=[{"tasks_completed": None}]))

        assert result.accepted is True
        assert result.record.advocacy_programs[0].tasks_completed is None

    def test_unknown_fields_are_preserved(self, make_raw_user):
        """Test extra fields survive validation"""
        result = validate_user(make_raw_user(favourite_color="teal"))

        assert result.accepted is True
        assert result.record.model_extra["favourite_color"] == "teal"

    def test_numeric_identifiers_become_strings(self, make_raw_user):
        """Test numeric ids are coerced to strings"""
        result = validate_user(make_raw_user(user_id=12345))

        assert result.record.user_id == "12345"

    def test_non_numeric_counts_degrade_to_none(self, make_raw_user):
        """Test junk numbers become None rather than failing"""
        programs = [
            {
                "program_id": "p1",
                "brand": "Acme",
                "tasks_completed": [{"likes": "no-data", "comments": "NaN", "shares": "7", "reach": True}],
                "total_sales_attributed": "lots",
            }
        ]

        result = validate_user(make_raw_user(advocacy_programs=programs))

        assert result.accepted is True
        program = result.record.advocacy_programs[0]
        task = program.tasks_completed[0]
        assert task.likes is None
        assert task.comments is None
        assert task.shares == 7.0
        assert task.reach is None
        assert program.total_sales_attributed is None

    def test_integers_too_large_for_float_degrade_to_none(self, make_raw_user):
        programs = [
            {
                "program_id": "p1",
                "tasks_completed": [{"likes": 10**400, "reach": -(10**400), "shares": 3}],
                "total_sales_attributed": 10**400,
            }
        ]

        result = validate_user(make_raw_user(advocacy_programs=programs))

        assert result.accepted is True
        program = result.record.advocacy_programs[0]
        task = program.tasks_completed[0]
        assert (task.likes, task.reach, task.shares) == (None, None, 3.0)
        assert program.total_sales_attributed is None

    def test_platform_is_normalized(self, make_raw_user):
        """Test task platforms are mapped onto the enumeration"""
        programs = [{"tasks_completed": [{"platform": " TikTok "}, {"platform": "Myspace"}]}]

        result = validate_user(make_raw_user(advocacy_programs=programs))

        tasks = result.record.advocacy_programs[0].tasks_completed
        assert [t.platform for t in tasks] == ["tiktok", "other"]

    @given(st.one_of(st.integers(min_value=-10**12, max_value=10**12), st.floats(allow_nan=False, allow_infinity=False)))
    def test_numbers_survive_coercion(self, value):
        """Test finite numbers pass through unchanged"""
        result = validate_user({"advocacy_programs": [{"total_sales_attributed": value}]})

        assert result.accepted is True
        assert result.record.advocacy_programs[0].total_sales_attributed == float(value)

    @given(st.text())
    def test_arbitrary_text_never_rejects_a_count(self, value):
        """Test any string in a numeric field is accepted"""
        result = validate_user({"advocacy_programs": [{"tasks_completed": [{"likes": value}]}]})

        assert result.accepted is True
        likes = result.record.advocacy_programs[0].tasks_completed[0].likes
        assert likes is None or math.isfinite(likes)


class TestNormalizePlatform:
    """Tests for platform normalization"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("instagram", "instagram"),
            ("  Instagram ", "instagram"),
            ("IG", "instagram"),
            ("x", "twitter"),
            ("fb", "facebook"),
            ("yt", "youtube"),
            ("Tik Tok", "tiktok"),
            ("LinkedIn", "linkedin"),
            ("snapchat", "other"),
            ("", "other"),
            (None, "other"),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_platform(value) == expected


class TestBatchValidation:
    """Tests for validate_user_batch"""

    def test_splits_valid_and_invalid(self, make_raw_user):
        """Test batch validation partitions and counts clean records"""
        records = [make_raw_user(), {"user_id": "u2"}, [1, 2]]

        valid, invalid, clean_count = validate_user_batch(records)

        assert [r.user_id for r in valid] == ["u1", "u2"]
        assert invalid == [[1, 2]]
        assert clean_count == 1

    def test_is_clean_record_directly(self):
        """Test the completeness heuristic on a normalized record"""
        record = RawUserRecord.model_validate(
            {"user_id": "u1", "name": "A", "email": "a@b.c", "advocacy_programs": []}
        )

        assert is_clean_record(record) is False
