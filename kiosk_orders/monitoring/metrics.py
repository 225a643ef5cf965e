"""
Prometheus metrics for the kiosk order backend.

Tracks:
- Orders created by payment method and total amounts
- Order status transitions
- Payment provider calls and errors
- Payment callback outcomes
- Receipt and push notification delivery
- Pending delayed transitions
"""
from prometheus_client import Counter, Gauge, Histogram

# Order metrics
orders_created_total = Counter(
    "orders_created_total",
    "Total number of orders created",
    ["payment_method"],
)

order_total_amount = Histogram(
    "order_total_amount",
    "Order totals in whole currency units",
    buckets=(5, 10, 20, 30, 50, 75, 100, 150, 250, 500),
)

order_transitions_total = Counter(
    "order_transitions_total",
    "Total order status transitions",
    ["to_status"],  # confirmed, ready
)

# Payment provider metrics
provider_requests_total = Counter(
    "payment_provider_requests_total",
    "Total payment provider API requests",
    ["provider", "status"],  # provider: stripe, swish
)

provider_errors_total = Counter(
    "payment_provider_errors_total",
    "Total payment provider API errors",
    ["provider", "error_type"],
)

provider_duration_seconds = Histogram(
    "payment_provider_duration_seconds",
    "Payment provider API call duration in seconds",
    ["provider"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Callback metrics
payment_callbacks_total = Counter(
    "payment_callbacks_total",
    "Total payment callbacks received",
    ["provider", "outcome"],  # succeeded, failed, processing, ignored, unmatched
)

payment_callback_duration_seconds = Histogram(
    "payment_callback_duration_seconds",
    "Payment callback handling duration in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Notification metrics
notifications_total = Counter(
    "notifications_total",
    "Total receipt and push notification attempts",
    ["channel", "delivered"],  # channel: receipt, ready
)

# Scheduler metrics
scheduled_transitions_pending = Gauge(
    "scheduled_transitions_pending",
    "Number of delayed ready transitions waiting to fire",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_order_created(payment_method: str, total_price: int) -> None:
        """Record a created order."""
        orders_created_total.labels(payment_method=payment_method).inc()
        order_total_amount.observe(total_price)

    @staticmethod
    def record_order_transition(to_status: str) -> None:
        order_transitions_total.labels(to_status=to_status).inc()

    @staticmethod
    def record_provider_call(provider: str, status: str, duration_seconds: float) -> None:
        """Record a payment provider API call."""
        provider_requests_total.labels(provider=provider, status=status).inc()
        provider_duration_seconds.labels(provider=provider).observe(duration_seconds)

    @staticmethod
    def record_provider_error(provider: str, error_type: str) -> None:
        provider_errors_total.labels(provider=provider, error_type=error_type).inc()

    @staticmethod
    def record_callback(provider: str, outcome: str, duration_seconds: float) -> None:
        """Record payment callback handling."""
        payment_callbacks_total.labels(provider=provider, outcome=outcome).inc()
        payment_callback_duration_seconds.labels(provider=provider).observe(duration_seconds)

    @staticmethod
    def record_notification(channel: str, delivered: bool) -> None:
        notifications_total.labels(
            channel=channel, delivered="true" if delivered else "false"
        ).inc()

    @staticmethod
    def set_scheduled_transitions(count: int) -> None:
        """Set the number of pending delayed transitions."""
        scheduled_transitions_pending.set(count)


# Export singleton instance
metrics = MetricsCollector()
