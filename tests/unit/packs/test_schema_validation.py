from __future__ import annotations

import pytest

from packsync.core.schemas.validation import SchemaValidationError, validate_payload, validate_payload_safe

VALID = {"schemaVersion": 1, "id": "web", "displayName": "Web", "version": "1.2.0"}


def test_minimal_manifest_is_valid():
    assert validate_payload_safe(VALID, "pack.schema") == []


def test_errors_name_the_offending_field():
    errors = validate_payload_safe({**VALID, "id": "Bad Id"}, "pack.schema")

    assert len(errors) == 1
    assert errors[0].startswith("id: ")


def test_unknown_top_level_key_is_rejected():
    with pytest.raises(SchemaValidationError) as exc:
        validate_payload({**VALID, "extra": True}, "pack.schema")

    assert exc.value.errors


def test_missing_schema():
    with pytest.raises(FileNotFoundError):
        validate_payload_safe({}, "no-such-schema")
