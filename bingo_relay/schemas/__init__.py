"""
bingo_relay.schemas
~~~~~~~~~~~~~~~~~~~
Pydantic schemas for the wire protocol and the HTTP API.
"""
from bingo_relay.schemas.api_response import ApiResponse
from bingo_relay.schemas.relay_stats import RelayStatsData, RoomInfoData

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()

__all__ = ["ApiResponse", "RelayStatsData", "RoomInfoData"]
