"""riskguard: real-time transaction risk evaluation and fraud ring detection."""

__version__ = "0.1.0"
