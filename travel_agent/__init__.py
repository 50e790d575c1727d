"""Decision core of a conversational travel-planning assistant.

Usage:
    from travel_agent.agent.agents import TravelAgentService
    svc = TravelAgentService(logger, completion=..., flight_provider=...)
    envelope = await svc.process_message("Find flights from NYC to Paris", context, user_id)
"""

__version__ = "0.1.0"
