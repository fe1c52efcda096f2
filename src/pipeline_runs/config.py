"""Configuration loader for the intelligence pipeline."""

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional

from common.config import ConfigSingleton, find_config_path, load_yaml, parse_duration

CONFIG_DIR = Path(__file__).resolve().parents[2] / "configs"
CONFIG_ENV_VAR = "PIPELINE_CONFIG"


@dataclass
class SchedulerConfig:
    max_concurrent_collections: int = 5
    tick_seconds: float = 60.0
    suspend_after_failures: int = 3
    failure_backoff_factor: float = 1.0
    max_backoff: Optional[timedelta] = timedelta(hours=6)
    jitter_seconds: float = 0.0


@dataclass
class CollectorConfig:
    timeout_seconds: float = 30.0


@dataclass
class ProcessingConfig:
    max_concurrent_analyses: int = 3


@dataclass
class PipelineSettings:
    collect_deadline_seconds: float = 300.0
    analysis_timeout_seconds: float = 600.0
    run_history: int = 50
    auto_reset: bool = True


@dataclass
class StoreConfig:
    backend: str = "memory"  # "memory" or "sql"
    url: Optional[str] = None  # falls back to DATABASE_URL


@dataclass
class AnalysisConfig:
    model: str = "gpt-4o-mini"


@dataclass
class ApiConfig:
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class PipelineConfig:
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    store: StoreConfig = field(default_factory=StoreConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    sources_file: Optional[str] = None


def load_config(config_name: str | None = None) -> PipelineConfig:
    """Load configuration from YAML file.

    Args:
        config_name: Name of config file (without .yaml extension) or a path.
                    If None, uses PIPELINE_CONFIG env var or "prod".

    Returns:
        Loaded PipelineConfig object
    """
    config_path = find_config_path(config_name, CONFIG_DIR, env_var=CONFIG_ENV_VAR)
    return _parse_config(load_yaml(config_path))


def _parse_config(data: dict) -> PipelineConfig:
    """Parse config dictionary into PipelineConfig object."""
    scheduler_data = data.get("scheduler", {})
    scheduler = SchedulerConfig(
        max_concurrent_collections=scheduler_data.get("max_concurrent_collections", 5),
        tick_seconds=scheduler_data.get("tick_seconds", 60.0),
        suspend_after_failures=scheduler_data.get("suspend_after_failures", 3),
        failure_backoff_factor=scheduler_data.get("failure_backoff_factor", 1.0),
        max_backoff=parse_duration(scheduler_data.get("max_backoff", "6 hours")),
        jitter_seconds=scheduler_data.get("jitter_seconds", 0.0),
    )

    collector = CollectorConfig(
        timeout_seconds=data.get("collector", {}).get("timeout_seconds", 30.0),
    )

    processing = ProcessingConfig(
        max_concurrent_analyses=data.get("processing", {}).get("max_concurrent_analyses", 3),
    )

    pipeline_data = data.get("pipeline", {})
    pipeline = PipelineSettings(
        collect_deadline_seconds=pipeline_data.get("collect_deadline_seconds", 300.0),
        analysis_timeout_seconds=pipeline_data.get("analysis_timeout_seconds", 600.0),
        run_history=pipeline_data.get("run_history", 50),
        auto_reset=pipeline_data.get("auto_reset", True),
    )

    store = StoreConfig(
        backend=data.get("store", {}).get("backend", "memory"),
        url=data.get("store", {}).get("url"),
    )
    if store.backend not in ("memory", "sql"):
        raise ValueError(f"Unknown store backend: {store.backend}")

    analysis = AnalysisConfig(
        model=data.get("analysis", {}).get("model", "gpt-4o-mini"),
    )

    api = ApiConfig(
        host=data.get("api", {}).get("host", "0.0.0.0"),
        port=data.get("api", {}).get("port", 8000),
    )

    return PipelineConfig(
        scheduler=scheduler,
        collector=collector,
        processing=processing,
        pipeline=pipeline,
        store=store,
        analysis=analysis,
        api=api,
        sources_file=data.get("sources_file"),
    )


_manager = ConfigSingleton(load_config)
get_config = _manager.get
set_config = _manager.set
reset_config = _manager.reset
