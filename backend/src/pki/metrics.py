"""OpenTelemetry metrics for the PKI module."""

from collections.abc import Iterator

from opentelemetry import metrics

meter = metrics.get_meter("pki")

certificates_signed_total = meter.create_counter(
    name="pki_certificates_signed_total",
    description="Total client certificates signed",
    unit="1",
)

csr_rejected_total = meter.create_counter(
    name="pki_csr_rejected_total",
    description="Total certificate signing requests rejected",
    unit="1",
)

serial_numbers_allocated_total = meter.create_counter(
    name="pki_serial_numbers_allocated_total",
    description="Total serial numbers allocated",
    unit="1",
)

signing_duration = meter.create_histogram(
    name="pki_signing_duration_seconds",
    description="CSR signing duration in seconds",
    unit="s",
)

# CA loaded gauge - track whether the CA was loaded or created
_ca_source: str | None = None


def _get_ca_loaded(
    options: metrics.CallbackOptions,
) -> Iterator[metrics.Observation]:
    """Callback to report CA loaded status."""
    if _ca_source:
        yield metrics.Observation(1, {"source": _ca_source})
    else:
        yield metrics.Observation(0, {"source": "none"})


ca_loaded_gauge = meter.create_observable_gauge(
    name="pki_ca_loaded",
    description="CA loaded (1=yes, 0=no)",
    unit="1",
    callbacks=[_get_ca_loaded],
)


class PKIMetrics:
    """Facade for PKI metrics with proper labels."""

    def record_certificate_signed(self, duration_seconds: float) -> None:
        """Record a signed certificate with duration."""
        certificates_signed_total.add(1)
        signing_duration.record(duration_seconds)

    def record_csr_rejected(self, reason: str) -> None:
        """Record CSR rejection. Labels: reason=parse|signature|signing|not_ready"""
        csr_rejected_total.add(1, {"reason": reason})

    def record_serial_allocated(self) -> None:
        serial_numbers_allocated_total.add(1)

    def record_ca_loaded(self, source: str) -> None:
        """Record CA loaded. Labels: source=loaded|created"""
        global _ca_source
        _ca_source = source


# Singleton instance
pki_metrics = PKIMetrics()
