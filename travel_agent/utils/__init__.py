# Utility modules
from travel_agent.utils.config import settings
from travel_agent.utils.logging_config import setup_logging
from travel_agent.utils.observability import setup_tracing

__all__ = ["settings", "setup_logging", "setup_tracing"]
