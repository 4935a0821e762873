"""Tests for configuration loading."""

from elicit.core.config import DEFAULT_CONFIG_PATH, ElicitConfig, get_config, set_config


def test_default_yaml_matches_defaults():
    assert DEFAULT_CONFIG_PATH.exists()
    assert ElicitConfig.from_yaml() == ElicitConfig()


def test_missing_file_gives_defaults(tmp_path):
    assert ElicitConfig.from_yaml(tmp_path / "nope.yaml") == ElicitConfig()


def test_partial_yaml_overrides(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text(
        "models:\n"
        "  matching: small-model\n"
        "conversation:\n"
        "  cutoffs:\n"
        "    tasks: 20\n"
        "canonicalization:\n"
        "  confidence_thresholds:\n"
        "    high: 0.7\n"
        "session:\n"
        "  backend: supabase\n"
        "  lock_timeout_seconds: 5\n"
    )

    config = ElicitConfig.from_yaml(path)

    assert config.matching_model == "small-model"
    assert config.hard_cutoff_tasks == 20
    assert config.turn_cutoff_tasks == 10
    assert config.high_confidence_score == 0.7
    assert config.session_backend == "supabase"
    assert config.session_lock_timeout == 5
    assert config.session_ttl_seconds == 3600


def test_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert ElicitConfig.from_yaml(path) == ElicitConfig()


def test_global_config():
    custom = ElicitConfig(finish_min_tasks=4)
    set_config(custom)
    assert get_config() is custom
