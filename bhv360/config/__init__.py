"""Engine settings and the packaged default module catalog."""

from bhv360.config.settings import EngineSettings, load_engine_settings

__all__ = ["EngineSettings", "load_engine_settings"]
