from growhub.schemas.telemetry import SensorTelemetryPayload

__all__ = ["SensorTelemetryPayload"]
