"""Load settings.yaml into typed dataclasses. Collects provider API keys from the environment."""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from synapse.models import AgentProfile, Capability

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ProviderConfig:
    name: str
    sdk: str               # "anthropic", "openai", "gemini"
    api_key_env: str
    timeout_sec: float = 60.0
    stall_timeout_sec: float = 10.0
    base_url: str | None = None


@dataclass
class DefaultsConfig:
    max_rounds: int = 3
    turns_per_agent: int = 3
    max_passes: int = 3
    min_council: int = 2
    max_council: int = 5
    pacing_delay_sec: float = 1.5
    retry_attempts: int = 2
    retry_delay_sec: float = 2.0
    health_check_timeout_sec: float = 8.0
    heartbeat_interval_sec: float = 15.0
    idle_timeout_sec: float = 120.0
    session_ttl_sec: float = 7200.0
    history_turns: int = 8
    think_open_tag: str = "<think>"
    think_close_tag: str = "</think>"
    output_dir: Path = Path("output")


@dataclass
class ConsensusTuning:
    window: int = 6
    damping_min_turns: int = 8
    damping_factor: float = 0.6
    damped_ceiling: float = 0.7
    floor: float = 0.1
    neutral: float = 0.3
    substantive_min_chars: int = 150
    agreement_weight: float = 1.0
    substantive_weight: float = 2.0
    stance_shift_weight: float = 3.0
    disagreement_weight: float = 2.5


@dataclass
class MomentumTuning:
    recent_turns: int = 2
    disagreement_bump: float = 0.2
    large_delta: float = 0.10
    large_delta_bump: float = 0.3
    small_delta: float = 0.05
    small_delta_bump: float = 0.15
    intervention_bump: float = 0.25
    stance_change_bump: float = 0.15
    long_response_words: int = 200
    long_response_bump: float = 0.1
    carry_over: float = 0.3
    decay: float = 0.1
    direction_window: int = 3
    direction_margin: float = 0.05


@dataclass
class PsychologyTuning:
    contrarian_threshold: float = 0.6
    rotate_after_turns: int = 2
    recent_history: int = 3


@dataclass
class ConvergenceTuning:
    early_threshold: float = 0.95
    late_threshold: float = 0.85
    early_round_limit: int = 1
    synthesis_threshold: float = 0.85


@dataclass
class InfluenceTuning:
    key_moment_bonus: float = 0.35
    quote_bonus: float = 0.15
    quote_cap: float = 0.30
    consensus_shift: float = 0.08
    consensus_shift_bonus: float = 0.20
    intervention_bonus: float = 0.10
    first_citation_bonus: float = 0.10
    min_excerpt_chars: int = 10
    significant_word_len: int = 5
    overlap_cap: int = 3
    overlap_ratio: float = 0.5
    live_marker: str = "retrieved live"


@dataclass
class SearchTuning:
    budget: int = 6
    early_turn_limit: int = 4
    max_sources: int = 3
    max_results_per_source: int = 2
    timeout_sec: float = 8.0
    min_sentence_chars: int = 20
    max_sentence_chars: int = 200
    max_query_chars: int = 120


@dataclass
class TuningConfig:
    consensus: ConsensusTuning = field(default_factory=ConsensusTuning)
    momentum: MomentumTuning = field(default_factory=MomentumTuning)
    psychology: PsychologyTuning = field(default_factory=PsychologyTuning)
    convergence: ConvergenceTuning = field(default_factory=ConvergenceTuning)
    influence: InfluenceTuning = field(default_factory=InfluenceTuning)
    search: SearchTuning = field(default_factory=SearchTuning)


@dataclass
class PromptsConfig:
    turn_system: str
    opening_instruction: str
    turn_instruction: str
    research_block: str
    reaction_block: str
    intervention_note: str
    synthesis_system: str
    synthesis_user: str
    followup_system: str
    followup_user: str
    nudges: dict[str, str] = field(default_factory=dict)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    tuning: TuningConfig
    providers: dict[str, ProviderConfig]
    agents: list[AgentProfile]
    prompts: PromptsConfig
    api_keys: dict[str, list[str]] = field(default_factory=dict)
    available_providers: set[str] = field(default_factory=set)


def _build(cls: type, raw: dict[str, Any] | None, section: str) -> Any:
    """Instantiate a settings dataclass, ignoring (and logging) unknown keys."""
    raw = raw or {}
    known = {f.name for f in dataclasses.fields(cls)}
    for key in sorted(set(raw) - known):
        logger.warning("Unknown %s setting ignored: %s", section, key)
    return cls(**{k: v for k, v in raw.items() if k in known})


def _read_keys(env_name: str) -> list[str]:
    """A key variable may hold several comma-separated keys for rotation."""
    raw = os.environ.get(env_name, "")
    return [k.strip() for k in raw.split(",") if k.strip()]


def _parse_agent(raw: dict[str, Any]) -> AgentProfile:
    capabilities = tuple(
        Capability(id=str(cap_id), strength=float(strength))
        for cap_id, strength in (raw.get("capabilities") or {}).items()
    )
    return AgentProfile(
        id=str(raw["id"]),
        display_name=str(raw["display_name"]),
        provider=str(raw["provider"]),
        model=str(raw["model"]),
        capabilities=capabilities,
        max_tokens=int(raw.get("max_tokens", 2048)),
        temperature=float(raw.get("temperature", 0.7)),
        color=str(raw.get("color", "")),
        avatar=str(raw.get("avatar", "")),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs providers without API keys but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults = _build(DefaultsConfig, raw.get("defaults"), "defaults")
    defaults.output_dir = Path(defaults.output_dir)

    tuning_raw = raw.get("tuning") or {}
    tuning = TuningConfig(
        consensus=_build(ConsensusTuning, tuning_raw.get("consensus"), "tuning.consensus"),
        momentum=_build(MomentumTuning, tuning_raw.get("momentum"), "tuning.momentum"),
        psychology=_build(PsychologyTuning, tuning_raw.get("psychology"), "tuning.psychology"),
        convergence=_build(ConvergenceTuning, tuning_raw.get("convergence"), "tuning.convergence"),
        influence=_build(InfluenceTuning, tuning_raw.get("influence"), "tuning.influence"),
        search=_build(SearchTuning, tuning_raw.get("search"), "tuning.search"),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        turn_system=prompts_raw["turn_system"],
        opening_instruction=prompts_raw["opening_instruction"],
        turn_instruction=prompts_raw["turn_instruction"],
        research_block=prompts_raw["research_block"],
        reaction_block=prompts_raw["reaction_block"],
        intervention_note=prompts_raw["intervention_note"],
        synthesis_system=prompts_raw["synthesis_system"],
        synthesis_user=prompts_raw["synthesis_user"],
        followup_system=prompts_raw["followup_system"],
        followup_user=prompts_raw["followup_user"],
        nudges={k: str(v) for k, v in (raw.get("nudges") or {}).items()},
    )

    providers: dict[str, ProviderConfig] = {}
    api_keys: dict[str, list[str]] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        provider_cfg = ProviderConfig(
            name=provider_name,
            sdk=provider_raw["sdk"],
            api_key_env=provider_raw["api_key_env"],
            timeout_sec=float(provider_raw.get("timeout_sec", 60)),
            stall_timeout_sec=float(provider_raw.get("stall_timeout_sec", 10)),
            base_url=provider_raw.get("base_url"),
        )
        providers[provider_name] = provider_cfg

        keys = _read_keys(provider_cfg.api_key_env)
        if keys:
            api_keys[provider_name] = keys
            available_providers.add(provider_name)
            logger.info("Provider available: %s (%d key(s))", provider_name, len(keys))
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                provider_cfg.api_key_env,
            )

    agents = [_parse_agent(a) for a in raw.get("agents", [])]
    for agent in agents:
        if agent.provider not in providers:
            logger.warning("Agent %s references unknown provider %s", agent.id, agent.provider)

    return AppConfig(
        defaults=defaults,
        tuning=tuning,
        providers=providers,
        agents=agents,
        prompts=prompts,
        api_keys=api_keys,
        available_providers=available_providers,
    )
