"""tests/test_validator.py

Unit tests for answer schema validation (research_assistant/validator.py).
"""

from __future__ import annotations

from typing import Any

import pytest

from research_assistant.errors import ErrorKind, PipelineError
from research_assistant.models import AnswerPayload
from research_assistant.validator import validate_answer


class TestValidateAnswer:
    """Test suite for validate_answer."""

    def test_minimal_payload_accepted(self) -> None:
        """Test empty lists are valid."""
        payload = validate_answer({"summary": "x", "key_points": [], "source_links": []})

        assert payload == AnswerPayload(summary="x", key_points=[], source_links=[])

    def test_full_payload_accepted(self, valid_answer: dict[str, Any]) -> None:
        """Test a complete payload round-trips through the model."""
        assert validate_answer(valid_answer).model_dump() == valid_answer

    def test_missing_source_links_rejected(self) -> None:
        """Test a missing required field is a schema mismatch naming the field."""
        with pytest.raises(PipelineError) as excinfo:
            validate_answer({"summary": "x", "key_points": []})

        assert excinfo.value.kind is ErrorKind.SCHEMA_MISMATCH
        assert "source_links" in excinfo.value.details

    def test_wrong_type_rejected(self) -> None:
        """Test a string where a list is required is rejected."""
        with pytest.raises(PipelineError) as excinfo:
            validate_answer({"summary": "x", "key_points": "one point", "source_links": []})

        assert "key_points" in excinfo.value.details

    def test_non_string_items_not_coerced(self) -> None:
        """Test strict mode refuses numbers inside string lists."""
        with pytest.raises(PipelineError):
            validate_answer({"summary": "x", "key_points": [1, 2], "source_links": []})

    def test_non_string_summary_rejected(self) -> None:
        """Test a numeric summary is not silently converted."""
        with pytest.raises(PipelineError):
            validate_answer({"summary": 42, "key_points": [], "source_links": []})

    def test_extra_keys_ignored(self) -> None:
        """Test unknown keys from the model are dropped, not rejected."""
        payload = validate_answer(
            {"summary": "x", "key_points": [], "source_links": [], "confidence": 0.9}
        )
        assert "confidence" not in payload.model_dump()

    def test_non_object_candidate_rejected(self) -> None:
        """Test a list candidate is a schema mismatch."""
        with pytest.raises(PipelineError) as excinfo:
            validate_answer(["summary"])

        assert excinfo.value.kind is ErrorKind.SCHEMA_MISMATCH
        assert excinfo.value.status_code == 502
