import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import Decision, Sampler, SamplingResult

logger = logging.getLogger(__name__)


class TravelCoreSampler(Sampler):
    """Sampler that keeps message, provider and LLM spans, drops autogen runtime noise."""

    BLOCKED_PATTERNS = (
        "autogen",
        "publish",
        "output_topic",
    )

    def should_sample(self, parent_context, trace_id, name, kind=None, attributes=None, links=None):
        name_lower = name.lower() if name else ""
        for blocked in self.BLOCKED_PATTERNS:
            if blocked in name_lower:
                return SamplingResult(Decision.DROP)
        return SamplingResult(Decision.RECORD_AND_SAMPLE)

    def get_description(self):
        return "TravelCoreSampler"


def setup_tracing(service_name: str = "travel_agent") -> TracerProvider:
    """Configure OpenTelemetry tracing for the travel core.

    Spans are opened by the core with ``trace.get_tracer(__name__)``; until this is
    called they go to the API's no-op tracer.

    Environment variables:
      - OTLP_GRPC_ENDPOINT: collector gRPC endpoint (default: http://localhost:4317)
      - OTLP_HTTP_ENDPOINT: collector HTTP endpoint (optional)
    """
    grpc_endpoint = os.getenv("OTLP_GRPC_ENDPOINT", "http://localhost:4317")
    http_endpoint = os.getenv("OTLP_HTTP_ENDPOINT", "").strip()

    resource = Resource.create({
        "service.name": service_name,
        "service.version": os.getenv("APP_VERSION", "dev"),
        "deployment.environment": os.getenv("ENVIRONMENT", "development"),
    })
    provider = TracerProvider(resource=resource, sampler=TravelCoreSampler())

    # Exporters ship in the optional "tracing" extra
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as OTLPGrpcExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPGrpcExporter(endpoint=grpc_endpoint, insecure=True)))
        logger.info("[Tracing] OTLP exporter (gRPC): %s", grpc_endpoint)
    except ImportError:
        logger.info("[Tracing] OTLP gRPC exporter not installed")

    if http_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as OTLPHttpExporter

            provider.add_span_processor(BatchSpanProcessor(OTLPHttpExporter(endpoint=f"{http_endpoint}/v1/traces")))
            logger.info("[Tracing] OTLP exporter (HTTP): %s/v1/traces", http_endpoint)
        except ImportError:
            logger.info("[Tracing] OTLP HTTP exporter not installed")

    trace.set_tracer_provider(provider)

    # LLM call spans with token usage
    try:
        from openinference.instrumentation.openai import OpenAIInstrumentor
        OpenAIInstrumentor().instrument()
        logger.info("[Tracing] OpenAI instrumented")
    except ImportError:
        logger.info("[Tracing] OpenAI instrumentation not installed")

    logger.info("[Tracing] Setup complete: %s", service_name)
    return provider
