from growhub.services.container import HubContainer
from growhub.services.state_sync import StateSyncService, decode_json_object

__all__ = ["HubContainer", "StateSyncService", "decode_json_object"]
