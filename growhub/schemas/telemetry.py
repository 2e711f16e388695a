from pydantic import BaseModel, ConfigDict, Field


class SensorTelemetryPayload(BaseModel):
    """
    Sensor readings carried by a ``<device>/state`` message.

    Devices publish camelCase names; fields map onto the shared record's
    reading columns. Fields a device does not report stay None and are not
    merged; unknown fields are ignored.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    light_intensity: float | None = Field(default=None, alias="lightIntensity")
    temperature: float | None = None
    humidity: float | None = None
    pressure: float | None = None
    gas_resistance: float | None = Field(default=None, alias="gasResistance")
    water_level: float | None = Field(default=None, alias="waterLevel", ge=0.0, le=100.0)
    ph: float | None = Field(default=None, ge=0.0, le=14.0)
    ec: float | None = Field(default=None, ge=0.0)
    # Hydroponic kit reports its RTD probe as "temp"
    water_temperature: float | None = Field(default=None, alias="temp")

    def readings(self) -> dict[str, float]:
        return self.model_dump(exclude_none=True)
