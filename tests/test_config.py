"""
Tests for environment-driven configuration.
"""

import pytest

from quorumctl.config import BackoffSettings, FallbackValues, Settings


class TestSettingsFromEnv:
    """Test cases for Settings.from_env."""

    def test_defaults(self):
        """Test that an empty environment yields the defaults."""
        settings = Settings.from_env({})

        assert settings == Settings()
        assert settings.database_url is None

    def test_values_are_read(self):
        """Test that QUORUMCTL_* variables override defaults."""
        settings = Settings.from_env(
            {
                "DATABASE_URL": "postgresql://localhost/db",
                "QUORUMCTL_CLUSTER_FILTER": "^prod",
                "QUORUMCTL_DRY_RUN": "yes",
                "QUORUMCTL_WORKERS": "8",
                "QUORUMCTL_DEBOUNCE": "0.5",
                "QUORUMCTL_BACKOFF_STEPS": "3",
                "QUORUMCTL_FALLBACK_CPU": "0.4",
                "QUORUMCTL_LOG_JSON": "1",
            }
        )

        assert settings.database_url == "postgresql://localhost/db"
        assert settings.cluster_filter == "^prod"
        assert settings.dry_run is True
        assert settings.workers == 8
        assert settings.debounce == 0.5
        assert settings.backoff.steps == 3
        assert settings.fallbacks.cpu == 0.4
        assert settings.log_json is True

    def test_empty_values_use_defaults(self):
        """Test that empty variables are treated as unset."""
        settings = Settings.from_env({"QUORUMCTL_WORKERS": "", "DATABASE_URL": ""})

        assert settings.workers == Settings().workers
        assert settings.database_url is None

    def test_non_numeric_value(self):
        """Test that a malformed number names the variable."""
        with pytest.raises(ValueError, match="QUORUMCTL_WORKERS"):
            Settings.from_env({"QUORUMCTL_WORKERS": "many"})

    def test_out_of_range_value(self):
        """Test that values are validated after parsing."""
        with pytest.raises(ValueError, match="workers"):
            Settings.from_env({"QUORUMCTL_WORKERS": "0"})


class TestSettingsOverrides:
    """Test cases for Settings.with_overrides."""

    def test_none_is_ignored(self):
        """Test that unset CLI options keep the environment value."""
        base = Settings(workers=3, cluster_filter="a")

        updated = base.with_overrides(workers=None, cluster_filter="b")

        assert updated.workers == 3
        assert updated.cluster_filter == "b"

    def test_overrides_are_validated(self):
        """Test that an invalid override is rejected."""
        with pytest.raises(ValueError, match="reconcile interval"):
            Settings().with_overrides(reconcile_interval=0)

    def test_penalty_bounds(self):
        """Test that the confidence penalty must be a fraction."""
        with pytest.raises(ValueError, match="penalty"):
            Settings(fallback_confidence_penalty=1.5).validate()


class TestBackoffSettings:
    """Test cases for BackoffSettings.validate."""

    @pytest.mark.parametrize(
        "changes,message",
        [
            ({"factor": 0.5}, "factor"),
            ({"steps": 0}, "steps"),
            ({"initial": 2.0, "max_delay": 1.0}, "max delay"),
        ],
    )
    def test_invalid(self, changes, message):
        """Test each rejected backoff setting."""
        with pytest.raises(ValueError, match=message):
            BackoffSettings(**changes).validate()


class TestFallbackValues:
    """Test cases for FallbackValues.for_query."""

    @pytest.mark.parametrize(
        "query,expected",
        [
            ("avg(rate(db_cpu_seconds_total[5m]))", 0.65),
            ("db_memory_bytes / db_memory_limit", 0.70),
            ("sum(db_connections_active)", 45.0),
            ("sum(rate(db_query_total[1m]))", 18.5),
            ("db_write_throughput", 850.0),
            ("db_replication_lag_seconds", 0.5),
        ],
    )
    def test_pattern_selects_fallback(self, query, expected):
        """Test that the query text picks the fallback category."""
        assert FallbackValues().for_query(query) == expected
