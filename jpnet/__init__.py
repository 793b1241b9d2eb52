"""Time values, locks, worker threads with timers, an HTTP client, packet framing and TCP transports."""

__version__ = "0.1.0"