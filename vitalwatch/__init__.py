"""VitalWatch: real-time vital-sign risk monitoring and alerting."""

__version__ = "1.0.0"
