"""orjson-backed default response class of the API."""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ORJSONResponse(JSONResponse):
    """JSON response encoded by orjson with sorted keys.

    orjson handles the UUIDs and datetimes in collection responses directly;
    pydantic models are dumped by alias first, so ``updated_at`` is sent as
    ``updatedAt`` where the model says so.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - any JSON-serializable content
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json", by_alias=True)
        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)
