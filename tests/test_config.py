import logging

import pytest
import structlog
from pydantic import ValidationError

from lexsearch.config import CacheConfig, SearchConfig, Settings, load_settings
from lexsearch.exceptions import ConfigError
from lexsearch.logging_config import setup_logging


def test_defaults() -> None:
    settings = Settings()

    assert settings.app.name == "lexsearch"
    assert settings.search.max_results == 50
    assert settings.search.min_relevance == 0.1
    assert settings.search.fuzzy_threshold == 0.7
    assert settings.cache.default_ttl == 3600.0
    assert settings.cache.max_entries == 50
    assert settings.cache.durable_url is None
    assert settings.feedback.decay_factor == 0.95
    assert settings.feedback.max_score == 1000.0


def test_environment_overrides_nested_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEXSEARCH_SEARCH__MAX_RESULTS", "5")
    monkeypatch.setenv("LEXSEARCH_CACHE__DURABLE_URL", "sqlite:///cache.db")
    monkeypatch.setenv("LEXSEARCH_APP__LOG_LEVEL", "DEBUG")

    settings = load_settings()

    assert settings.search.max_results == 5
    assert settings.cache.durable_url == "sqlite:///cache.db"
    assert settings.app.log_level == "DEBUG"


def test_out_of_range_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        SearchConfig(min_relevance=1.5)
    with pytest.raises(ValidationError):
        CacheConfig(max_entries=0)


def test_invalid_environment_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEXSEARCH_SEARCH__MAX_RESULTS", "0")

    with pytest.raises(ConfigError):
        load_settings()


def test_setup_logging_does_not_stack_handlers() -> None:
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    try:
        settings = Settings()
        setup_logging(settings)
        setup_logging(settings)

        structlog_handlers = [
            h for h in root.handlers if isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)
        ]
        assert len(structlog_handlers) == 1
        assert root.level == logging.INFO
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
        structlog.reset_defaults()
