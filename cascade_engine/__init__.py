"""Rule-driven event processing engine with cascading events, monitors and a worker thread pool."""

__version__ = "1.0.0"