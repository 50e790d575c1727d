import logging

from opentelemetry.sdk.trace.sampling import Decision

from travel_agent.utils import logging_config, observability
from travel_agent.utils.observability import TravelCoreSampler


def test_setup_logging_is_idempotent(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.delenv("LOG_FILE", raising=False)
    logger = logging_config.setup_logging("travel_agent_test_logging")
    again = logging_config.setup_logging("travel_agent_test_logging")
    assert logger is again
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
    assert logging.getLogger("autogen_core").level == logging.WARNING


def test_setup_logging_writes_to_file(monkeypatch, tmp_path):
    log_file = tmp_path / "core.log"
    monkeypatch.setenv("LOG_FILE", str(log_file))
    logger = logging_config.setup_logging("travel_agent_test_file")
    logger.info("hello from the core")
    for handler in logger.handlers:
        handler.flush()
    assert "hello from the core" in log_file.read_text()


def test_sampler_drops_runtime_noise():
    sampler = TravelCoreSampler()
    assert sampler.should_sample(None, 1, "autogen process").decision is Decision.DROP
    assert sampler.should_sample(None, 1, "publish output_topic").decision is Decision.DROP
    assert sampler.should_sample(None, 1, "process_message").decision is Decision.RECORD_AND_SAMPLE
    assert sampler.should_sample(None, 1, None).decision is Decision.RECORD_AND_SAMPLE


def test_setup_tracing_installs_sampled_provider(monkeypatch):
    installed = []
    monkeypatch.setattr(observability.trace, "set_tracer_provider", installed.append)
    provider = observability.setup_tracing("travel_agent_test")
    try:
        assert installed == [provider]
        assert isinstance(provider.sampler, TravelCoreSampler)
        assert provider.resource.attributes["service.name"] == "travel_agent_test"
    finally:
        provider.shutdown()
