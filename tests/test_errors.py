from __future__ import annotations

from realmsync.errors import (
    ApiError,
    ConfigurationError,
    NotFoundError,
    RealmSyncError,
    ValidationError,
)


def test_error_codes_and_messages() -> None:
    not_found = NotFoundError("document", "doc-1", "Document not found or empty")
    assert not_found.code == "not_found"
    assert str(not_found) == "Document not found or empty"
    assert not_found.to_dict() == {
        "code": "not_found",
        "message": "Document not found or empty",
        "details": {"resource": "document", "id": "doc-1"},
    }

    assert str(ConfigurationError("MODEL")) == "MODEL not configured"
    assert str(ApiError(429, "slow down")) == "API error 429: slow down"
    assert str(ValidationError("json", "Parse error: x")) == "Validation error: json - Parse error: x"


def test_errors_share_a_base_class() -> None:
    for error in (
        NotFoundError("entity"),
        ConfigurationError("OPENROUTER_API_KEY"),
        ApiError(500, "boom"),
        ValidationError("json", "bad"),
    ):
        assert isinstance(error, RealmSyncError)
    assert NotFoundError("entity").to_dict() == {
        "code": "not_found",
        "message": "Entity not found",
        "details": {"resource": "entity"},
    }
