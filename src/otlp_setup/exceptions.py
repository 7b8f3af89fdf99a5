"""Exception classes for the otlp_setup package.

Build errors are raised synchronously from ``PipelineBuilder.finish()`` and
are recoverable: the caller may reconfigure and build again. Lifecycle errors
signal misuse of a ``Pipeline``. Shutdown errors are reported after the
pipeline has reached its terminal state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from otlp_setup.api.types import Protocol


class OtlpSetupError(Exception):
    """Base class for every error raised by otlp_setup."""


class ConfigurationError(OtlpSetupError):
    """Raised when a configuration file is missing or invalid.

    In permissive validation mode only unreadable files and invalid YAML
    raise; other problems are logged and left for ``finish()`` to reject.
    """


class BuildError(OtlpSetupError):
    """Raised by ``PipelineBuilder`` when configuration cannot be built."""


class UnsupportedProtocol(BuildError):
    """The destination protocol has no available transport."""

    def __init__(self, protocol: "Protocol | str", reason: str | None = None) -> None:
        message = f"Unsupported protocol: {getattr(protocol, 'value', protocol)}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.protocol = protocol


class InvalidDestination(BuildError):
    """The destination URL or one of its headers is not usable."""


class InvalidSampleRate(BuildError):
    """Trace sample rate lies outside [0.0, 1.0]."""

    def __init__(self, sample_rate: object) -> None:
        super().__init__(f"sample_rate must be within [0.0, 1.0], got {sample_rate!r}")
        self.sample_rate = sample_rate


class NothingToExport(BuildError):
    """No signal (trace, logs, metrics) was enabled on the builder."""


class SignalAlreadyConfigured(BuildError):
    """A signal was enabled twice on the same builder."""


class ExporterInitFailed(BuildError):
    """Exporter construction failed inside the transport."""

    def __init__(self, signal: str, cause: BaseException) -> None:
        super().__init__(f"Failed to initialize {signal} exporter: {cause}")
        self.signal = signal
        self.cause = cause


class LifecycleError(OtlpSetupError):
    """Raised when a pipeline operation is not valid in its current state."""


class AlreadyInstalled(LifecycleError):
    """The pipeline has already been installed into a registry."""


class AlreadyShutDown(LifecycleError):
    """The pipeline is shutting down or has already shut down."""


class ShutdownError(OtlpSetupError):
    """Shutdown finished with errors.

    The pipeline is ``SHUT_DOWN`` regardless. ``errors`` maps each signal that
    did not finish cleanly to its exception, or to ``None`` when the signal
    simply ran out of time.
    """

    def __init__(self, message: str, errors: dict[str, BaseException | None]) -> None:
        super().__init__(message)
        self.errors = errors

    def __str__(self) -> str:
        details = " ".join(
            f"{signal}={error if error is not None else 'timeout'}"
            for signal, error in self.errors.items()
        )
        base = super().__str__()
        return f"{base}: {details}" if details else base


class ShutdownTimeout(ShutdownError):
    """At least one signal did not finish flushing before the deadline."""


class ExportFailed(ShutdownError):
    """At least one signal reported an export error while flushing."""


class ExportRejected(OtlpSetupError):
    """The exporter reported a batch as failed without raising.

    Recorded while a signal flushes and surfaced through ``ExportFailed``.
    """
