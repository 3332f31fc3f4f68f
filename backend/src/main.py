import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from pki.api import certificates as certificates_api
from pki.errors import BootstrapError
from pki.services.bootstrap import bootstrap_ca
from shared.config import settings
from shared.logging import setup_logging
from shared.metrics import setup_metrics

logger = logging.getLogger(__name__)


# Setup OpenTelemetry Tracing
def setup_tracing() -> None:
    resource = Resource.create(
        {"service.name": settings.APP_NAME, "deployment.environment": settings.APP_ENV}
    )
    provider = TracerProvider(resource=resource)

    processor = BatchSpanProcessor(ConsoleSpanExporter())
    provider.add_span_processor(processor)

    trace.set_tracer_provider(provider)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    setup_logging()
    setup_tracing()
    setup_metrics(settings.APP_NAME)

    LoggingInstrumentor().instrument(set_logging_format=True)

    # Initialize Certificate Authority; a failure here must stop the process.
    try:
        app.state.ca_manager = bootstrap_ca(settings)
    except BootstrapError:
        logger.critical("Could not prepare CA, refusing to start")
        raise

    logger.info("Starting pki server", extra={"port": settings.PORT})
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Instrument FastAPI
FastAPIInstrumentor.instrument_app(app)

app.include_router(certificates_api.router)


@app.get("/healthz", response_class=PlainTextResponse)
async def health_check() -> str:
    return "healthy"


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)  # noqa: S104


if __name__ == "__main__":
    run()
