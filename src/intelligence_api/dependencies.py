"""Shared FastAPI dependencies."""

from common.config import ConfigSingleton
from pipeline_runs.service import IntelligencePipeline

# One pipeline per process, built from the global config on first use
_manager = ConfigSingleton(IntelligencePipeline.from_config)
get_pipeline = _manager.get
set_pipeline = _manager.set
reset_pipeline = _manager.reset
