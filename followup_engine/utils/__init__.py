"""
Utility modules: helpers, logging setup, runtime settings

Import directly to avoid circular imports:
    from followup_engine.utils.helpers import retry_async, minutes_since
    from followup_engine.utils.log_config import configure_logging
    from followup_engine.utils.runtime_settings import RuntimeSettingsManager
"""
