"""Prometheus metrics for the organization hierarchy service"""

import time
import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)


# Operation metrics
organization_operations_total = Counter(
    'organization_operations_total',
    'Total number of organization hierarchy operations',
    ['operation', 'status']
)

organization_operation_duration_seconds = Histogram(
    'organization_operation_duration_seconds',
    'Time spent in organization hierarchy operations',
    ['operation'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Hierarchy integrity metrics
organization_structural_conflicts_total = Counter(
    'organization_structural_conflicts_total',
    'Total number of rejected parent-pointer writes that would create a cycle'
)

# Tenancy metrics
tenant_resolutions_total = Counter(
    'tenant_resolutions_total',
    'Tenant resolutions by the source that produced the tenant',
    ['source']
)


class MetricsCollector:
    """Collector for hierarchy service metrics"""

    def record_operation(self, operation: str, status: str, duration_seconds: float):
        """Record a service operation"""
        organization_operations_total.labels(
            operation=operation,
            status=status
        ).inc()

        organization_operation_duration_seconds.labels(
            operation=operation
        ).observe(duration_seconds)

    def record_structural_conflict(self):
        """Record a rejected cyclic reparent"""
        organization_structural_conflicts_total.inc()

    def record_tenant_resolution(self, source: str):
        """Record which source resolved the active tenant"""
        tenant_resolutions_total.labels(source=source).inc()


# Global metrics collector instance
metrics_collector = MetricsCollector()


class MetricsTimer:
    """Context manager timing an operation and recording its outcome"""

    def __init__(self, operation: str, collector: MetricsCollector = metrics_collector):
        self.operation = operation
        self.collector = collector
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        status = "success" if exc_type is None else "failure"
        self.collector.record_operation(self.operation, status, duration)
        return False
