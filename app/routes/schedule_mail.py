import logging

import pytz
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from app.models.scheduled_emails import CancelRequest, ScheduleEmailRequest
from app.utils.dependencies import get_store, get_vault
from app.utils.errors import PersistenceError, ValidationError
from app.utils.scheduling_helper import cancel_scheduled_email, list_for_owner, schedule_email
from app.utils.time_slots import suggest_send_times

logger = logging.getLogger(__name__)

router = APIRouter()


def _request_error(e: PydanticValidationError) -> str:
    if any(err["type"] == "missing" for err in e.errors()):
        return "Missing required fields"
    fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
    return f"Invalid fields: {fields}"


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/schedule")
async def schedule_mail(request: Request, store=Depends(get_store), vault=Depends(get_vault)):
    data = await _read_json(request)
    if not isinstance(data, dict):
        return JSONResponse(content={"error": "Request body must be a JSON object"}, status_code=400)

    try:
        payload = ScheduleEmailRequest.model_validate(data)
        record_id, scheduled_for = await schedule_email(payload, store, vault)
    except PydanticValidationError as e:
        return JSONResponse(content={"error": _request_error(e)}, status_code=400)
    except ValidationError as e:
        return JSONResponse(content={"error": str(e)}, status_code=400)
    except PersistenceError:
        return JSONResponse(content={"error": "Failed to schedule email"}, status_code=500)

    logger.info(f"📅 Scheduled email {record_id} for {scheduled_for.isoformat()}")
    return {
        "success": True,
        "scheduledEmailId": record_id,
        "scheduledFor": scheduled_for.isoformat(),
        "message": "Email scheduled successfully",
    }


@router.get("/user-scheduled")
async def user_scheduled(userEmail: str = "", store=Depends(get_store)):
    try:
        emails = await list_for_owner(userEmail, store)
    except ValidationError as e:
        return JSONResponse(content={"error": str(e)}, status_code=400)
    except PersistenceError:
        return JSONResponse(content={"error": "Failed to fetch scheduled emails"}, status_code=500)

    return {"emails": [email.model_dump(mode="json", by_alias=True, exclude_none=True) for email in emails]}


@router.post("/cancel")
async def cancel_mail(request: Request, store=Depends(get_store)):
    data = await _read_json(request)
    if not isinstance(data, dict):
        return JSONResponse(content={"error": "Request body must be a JSON object"}, status_code=400)

    try:
        payload = CancelRequest.model_validate(data)
        cancelled = await cancel_scheduled_email(payload.id, str(payload.user_email), store)
    except PydanticValidationError as e:
        return JSONResponse(content={"error": _request_error(e)}, status_code=400)
    except PersistenceError:
        return JSONResponse(content={"error": "Failed to cancel scheduled email"}, status_code=500)

    return {"success": cancelled}


@router.get("/suggested-times")
async def suggested_times(timezone: str = "UTC"):
    try:
        suggestions = suggest_send_times(timezone)
    except pytz.UnknownTimeZoneError:
        return JSONResponse(content={"error": f"Unknown timezone: {timezone}"}, status_code=400)

    for suggestion in suggestions:
        suggestion["scheduledTime"] = suggestion["scheduledTime"].isoformat()
    return {"timezone": timezone, "suggestions": suggestions}
