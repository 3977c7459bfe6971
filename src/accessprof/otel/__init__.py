from accessprof.otel.span_processor import AccessProfSpanProcessor

__all__ = ["AccessProfSpanProcessor"]
