"""POST /identify: reconcile a contact observation into its cluster.

The response keeps the ``primaryContatctId`` spelling; existing consumers
read that key.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from app.api.deps import get_identity_service
from app.identity.assembler import ConsolidatedContact
from app.identity.errors import IdentityError, ValidationError
from app.identity.observation import Observation
from app.identity.service import IdentityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["identify"])

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class IdentifyBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: StrictStr | None = None
    # strict: a JSON true must not become the phone number "1"
    phone_number: StrictStr | StrictInt | None = Field(default=None, alias="phoneNumber")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _serialize_view(view: ConsolidatedContact) -> dict:
    return {
        "contact": {
            "primaryContatctId": view.primary_contact_id,
            "emails": view.emails,
            "phoneNumbers": view.phone_numbers,
            "secondaryContactIds": view.secondary_contact_ids,
        }
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/identify", summary="Identify a contact by email and/or phone number")
def identify(body: IdentifyBody, service: IdentityService = Depends(get_identity_service)):
    try:
        observation = Observation.from_raw(body.email, body.phone_number)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    try:
        view = service.identify(observation)
    except IdentityError:
        # Already logged by the service with full context.
        return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})

    return _serialize_view(view)
