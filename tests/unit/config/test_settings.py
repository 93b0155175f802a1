"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from yearlists.config import ListSettings, Settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.lists.min_year == 1000
        assert settings.lists.max_year == 9999
        assert settings.lists.setup_dismiss_hours == 24
        assert settings.lists.uncategorized_group_name == "Uncategorized"
        assert settings.database.url.startswith("sqlite+aiosqlite")

    def test_nested_environment_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("YEARLISTS_LISTS__SETUP_DISMISS_HOURS", "48")
        monkeypatch.setenv("YEARLISTS_OBSERVABILITY__LOG_JSON_FORMAT", "true")
        settings = Settings()
        assert settings.lists.setup_dismiss_hours == 48
        assert settings.observability.log_json_format is True

    def test_year_range_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError, match="min_year must not be greater than max_year"):
            ListSettings(min_year=2000, max_year=1999)

    def test_dismiss_hours_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ListSettings(setup_dismiss_hours=0)
