"""slotbook: quantized appointment booking against Google Calendar."""

__version__ = "0.1.0"
