"""Request pipeline: ordered interceptors run around every route."""
from .interceptors import (
    AccessLogInterceptor,
    CorsInterceptor,
    InFlightTracker,
    RecoveryInterceptor,
    WriteDeadlineInterceptor,
)
from .pipeline import Interceptor, Next, Pipeline

__all__ = [
    "AccessLogInterceptor",
    "CorsInterceptor",
    "InFlightTracker",
    "Interceptor",
    "Next",
    "Pipeline",
    "RecoveryInterceptor",
    "WriteDeadlineInterceptor",
]
