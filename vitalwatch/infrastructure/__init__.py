"""Infrastructure layer for VitalWatch: configuration, settings and scheduling."""
