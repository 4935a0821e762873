"""
Configuration management for the task elicitation service.

Loads settings from YAML config file and provides typed access.
Secrets (API keys, hosts) are read from the environment only.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of elicit package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"


@dataclass
class ElicitConfig:
    """Configuration for the elicitation conversation and task pipeline."""

    # Model configuration
    chat_model: str = "gpt-4o"
    structured_model: str = "gpt-4o"
    matching_model: str = "gpt-4o-mini"
    chat_temperature: float = 0.7
    structured_temperature: float = 0.3
    chat_max_tokens: int = 500
    structured_max_tokens: int = 1000
    request_timeout: float = 30.0

    # Conversation policy thresholds
    max_suggestion_rounds: int = 3          # show-suggestions allowed per session
    stall_turn: int = 3                     # turn at which a stalled session gets suggestions
    stall_task_count: int = 3
    hard_cutoff_tasks: int = 15             # cutoff A
    turn_cutoff_tasks: int = 10             # cutoff B
    turn_cutoff_turn: int = 6
    coverage_cutoff_tasks: int = 8          # cutoff C
    finish_min_tasks: int = 10
    early_finish_categories: int = 3
    early_finish_turn: int = 2
    late_finish_turn: int = 5
    selection_finish_count: int = 3
    suggestion_count: int = 5
    exit_turn: int = 10
    exit_turn_tasks: int = 8

    # Canonicalization
    normalization_batch_size: int = 10
    extraction_limit: int = 20
    match_top_k: int = 5
    high_confidence_score: float = 0.6
    medium_confidence_score: float = 0.45
    low_confidence_score: float = 0.3

    # Taxonomy reference tasks
    occupation_match_threshold: float = 0.3
    reference_task_limit: int = 15
    local_taxonomy_path: str = "data/taxonomy_sample.json"

    # Sessions
    session_ttl_seconds: int = 3600
    session_backend: str = "memory"         # "memory" or "supabase"
    session_lock_timeout: float = 60.0      # seconds a turn waits for a busy session

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "ElicitConfig":
        """Load configuration from YAML file."""
        path = config_path or DEFAULT_CONFIG_PATH
        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        models = data.get('models', {})
        conversation = data.get('conversation', {})
        cutoffs = conversation.get('cutoffs', {})
        canonicalization = data.get('canonicalization', {})
        thresholds = canonicalization.get('confidence_thresholds', {})
        taxonomy = data.get('taxonomy', {})
        session = data.get('session', {})

        defaults = cls()
        return cls(
            chat_model=models.get('chat', defaults.chat_model),
            structured_model=models.get('structured', defaults.structured_model),
            matching_model=models.get('matching', defaults.matching_model),
            chat_temperature=models.get('chat_temperature', defaults.chat_temperature),
            structured_temperature=models.get('structured_temperature', defaults.structured_temperature),
            chat_max_tokens=models.get('chat_max_tokens', defaults.chat_max_tokens),
            structured_max_tokens=models.get('structured_max_tokens', defaults.structured_max_tokens),
            request_timeout=models.get('request_timeout', defaults.request_timeout),
            max_suggestion_rounds=conversation.get('max_suggestion_rounds', defaults.max_suggestion_rounds),
            stall_turn=conversation.get('stall_turn', defaults.stall_turn),
            stall_task_count=conversation.get('stall_task_count', defaults.stall_task_count),
            hard_cutoff_tasks=cutoffs.get('tasks', defaults.hard_cutoff_tasks),
            turn_cutoff_tasks=cutoffs.get('turn_tasks', defaults.turn_cutoff_tasks),
            turn_cutoff_turn=cutoffs.get('turn', defaults.turn_cutoff_turn),
            coverage_cutoff_tasks=cutoffs.get('coverage_tasks', defaults.coverage_cutoff_tasks),
            finish_min_tasks=conversation.get('finish_min_tasks', defaults.finish_min_tasks),
            early_finish_categories=conversation.get('early_finish_categories', defaults.early_finish_categories),
            early_finish_turn=conversation.get('early_finish_turn', defaults.early_finish_turn),
            late_finish_turn=conversation.get('late_finish_turn', defaults.late_finish_turn),
            selection_finish_count=conversation.get('selection_finish_count', defaults.selection_finish_count),
            suggestion_count=conversation.get('suggestion_count', defaults.suggestion_count),
            exit_turn=conversation.get('exit_turn', defaults.exit_turn),
            exit_turn_tasks=conversation.get('exit_turn_tasks', defaults.exit_turn_tasks),
            normalization_batch_size=canonicalization.get('normalization_batch_size', defaults.normalization_batch_size),
            extraction_limit=canonicalization.get('extraction_limit', defaults.extraction_limit),
            match_top_k=canonicalization.get('match_top_k', defaults.match_top_k),
            high_confidence_score=thresholds.get('high', defaults.high_confidence_score),
            medium_confidence_score=thresholds.get('medium', defaults.medium_confidence_score),
            low_confidence_score=thresholds.get('low', defaults.low_confidence_score),
            occupation_match_threshold=taxonomy.get('occupation_match_threshold', defaults.occupation_match_threshold),
            reference_task_limit=taxonomy.get('reference_task_limit', defaults.reference_task_limit),
            local_taxonomy_path=taxonomy.get('local_index', defaults.local_taxonomy_path),
            session_ttl_seconds=session.get('ttl_seconds', defaults.session_ttl_seconds),
            session_backend=session.get('backend', defaults.session_backend),
            session_lock_timeout=session.get('lock_timeout_seconds', defaults.session_lock_timeout),
        )


# Global config instance
_config: Optional[ElicitConfig] = None


def get_config() -> ElicitConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ElicitConfig.from_yaml()
    return _config


def set_config(config: ElicitConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
