"""Tests for configuration loading and validation."""

import dataclasses

import pytest

from helpdesk.config import AppConfig, _validate_config, load_config


def replace_section(config, section, **changes):
    return dataclasses.replace(
        config, **{section: dataclasses.replace(getattr(config, section), **changes)}
    )


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_load_config_returns_validated_config(self):
        assert isinstance(load_config(), AppConfig)

    def test_config_is_frozen(self):
        config = AppConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.bot_name = "other"

    def test_confidence_floor_out_of_range(self):
        config = replace_section(AppConfig(), "dialog", confidence_floor=1.5)
        with pytest.raises(ValueError, match="CONFIDENCE_FLOOR"):
            _validate_config(config)

    def test_floor_above_confirmation_threshold(self):
        config = replace_section(
            AppConfig(), "dialog", confidence_floor=0.8, confirmation_threshold=0.6
        )
        with pytest.raises(ValueError, match="must not exceed CONFIRMATION_THRESHOLD"):
            _validate_config(config)

    def test_invalid_max_slot_retries(self):
        config = replace_section(AppConfig(), "dialog", max_slot_retries=0)
        with pytest.raises(ValueError, match="MAX_SLOT_RETRIES"):
            _validate_config(config)

    def test_invalid_no_match_limit(self):
        config = replace_section(AppConfig(), "handoff", max_no_match_before_handoff=0)
        with pytest.raises(ValueError, match="MAX_NO_MATCH_BEFORE_HANDOFF"):
            _validate_config(config)

    def test_sentiment_threshold_out_of_range(self):
        config = replace_section(AppConfig(), "handoff", sentiment_handoff_threshold=-2.0)
        with pytest.raises(ValueError, match="SENTIMENT_HANDOFF_THRESHOLD"):
            _validate_config(config)

    def test_negative_handoff_backoff(self):
        config = replace_section(AppConfig(), "handoff", retry_backoff_sec=(0.5, -1.0))
        with pytest.raises(ValueError, match="HANDOFF_RETRY_BACKOFF"):
            _validate_config(config)

    def test_invalid_session_ttl(self):
        config = replace_section(AppConfig(), "session", session_ttl_sec=0)
        with pytest.raises(ValueError, match="SESSION_TTL"):
            _validate_config(config)

    def test_invalid_worker_pool(self):
        config = replace_section(AppConfig(), "router", worker_pool_size=0)
        with pytest.raises(ValueError, match="WORKER_POOL_SIZE"):
            _validate_config(config)

    def test_zero_queue_depth_allowed(self):
        config = replace_section(AppConfig(), "router", max_queued_turns=0)
        _validate_config(config)

    def test_invalid_dependency_timeout(self):
        config = replace_section(AppConfig(), "knowledge", timeout_ms=0)
        with pytest.raises(ValueError, match="KNOWLEDGE_TIMEOUT_MS"):
            _validate_config(config)

    def test_max_reset_timeout_below_reset_timeout(self):
        config = replace_section(
            AppConfig(), "tickets", reset_timeout_sec=60.0, max_reset_timeout_sec=30.0
        )
        with pytest.raises(ValueError, match="TICKETS_MAX_RESET_TIMEOUT"):
            _validate_config(config)


class TestEnvironmentParsing:
    def test_safe_int_parsing(self):
        from helpdesk.config import _safe_int

        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_rejects_garbage(self, monkeypatch):
        from helpdesk.config import _safe_int

        monkeypatch.setenv("HELPDESK_TEST_INT", "lots")
        with pytest.raises(ValueError, match="HELPDESK_TEST_INT"):
            _safe_int("HELPDESK_TEST_INT", "1")

    def test_safe_float_parsing(self):
        from helpdesk.config import _safe_float

        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_tuple_drops_blanks(self, monkeypatch):
        from helpdesk.config import _safe_tuple

        monkeypatch.setenv("HELPDESK_TEST_PHRASES", "get me a human, ,operator")
        assert _safe_tuple("HELPDESK_TEST_PHRASES", ()) == ("get me a human", "operator")

    def test_safe_float_tuple(self, monkeypatch):
        from helpdesk.config import _safe_float_tuple

        monkeypatch.setenv("HELPDESK_TEST_BACKOFF", "0.1, 0.2,0.4")
        assert _safe_float_tuple("HELPDESK_TEST_BACKOFF", "1") == (0.1, 0.2, 0.4)

    def test_dependency_timeout_property(self):
        config = AppConfig()
        assert config.classifier.timeout_sec == config.classifier.timeout_ms / 1000.0
        assert {d.name for d in config.dependencies} == {
            "classifier", "knowledge", "tickets", "human_queue", "sentiment", "enrichment",
        }
