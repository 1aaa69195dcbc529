from .trace import TraceLogger, build_trace_logger

__all__ = ["TraceLogger", "build_trace_logger"]
