"""Town marketplace backend and WhatsApp shopping concierge."""

__version__ = "2.0.0"
