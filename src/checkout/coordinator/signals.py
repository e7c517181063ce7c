"""Best-effort checkout signals for notification and analytics collaborators.

Sinks receive ``checkout_started``, ``order_completed`` and ``payment_failed``.
A sink that raises is logged and skipped: analytics outages never fail a
checkout.
"""

from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)

CHECKOUT_STARTED = "checkout_started"
ORDER_COMPLETED = "order_completed"
PAYMENT_FAILED = "payment_failed"


class SignalSink(ABC):
    @abstractmethod
    def send(self, name: str, payload: dict) -> None: ...


class LoggingSignalSink(SignalSink):
    def send(self, name: str, payload: dict) -> None:
        logger.info("Checkout signal", signal=name, **payload)


class CheckoutSignals:
    def __init__(self, sinks: list[SignalSink] | None = None) -> None:
        self.sinks: list[SignalSink] = list(sinks) if sinks is not None else [LoggingSignalSink()]

    def register(self, sink: SignalSink) -> None:
        self.sinks.append(sink)

    def emit(self, name: str, **payload) -> None:
        for sink in self.sinks:
            try:
                sink.send(name, payload)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Checkout signal delivery failed",
                    signal=name,
                    sink=type(sink).__name__,
                    error=str(exc),
                )


_current_signals: CheckoutSignals | None = None


def get_signals() -> CheckoutSignals:
    global _current_signals
    if _current_signals is None:
        _current_signals = CheckoutSignals()
    return _current_signals


def set_signals(signals: CheckoutSignals) -> None:
    global _current_signals
    _current_signals = signals


def reset_signals() -> None:
    global _current_signals
    _current_signals = None
