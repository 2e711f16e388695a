"""Hardware-facing adapters: MQTT bus and sensor ingestion."""
