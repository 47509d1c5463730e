# policyadmin/api/staff_api.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Annotated
from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field

from policyadmin.services import lifecycle
from policyadmin.services.errors import ValidationError
from policyadmin.services.notifications import NotificationOutbox, get_outbox
from policyadmin.services.roles import require_admin, require_staff
from policyadmin.services.users import create_user, list_staff

router = APIRouter(tags=["Staff"])

# ----- Annotated aliases -----
AdminOnly = Annotated[Dict[str, Any], Depends(require_admin)]
Staff = Annotated[Dict[str, Any], Depends(require_staff)]
Outbox = Annotated[NotificationOutbox, Depends(get_outbox)]


class EmployeeCreate(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class ReminderRequest(BaseModel):
    policy_id: Optional[int] = Field(None, validation_alias=AliasChoices("policy_id", "policyId"))


@router.post("/add-employee", summary="Create an employee account")
def add_employee(payload: EmployeeCreate, _current_user: AdminOnly) -> Dict[str, Any]:
    if not (payload.username or "").strip() or not (payload.password or "").strip():
        raise ValidationError("Username and password required")
    new_id = create_user(
        name=payload.name or payload.username or "",
        password=payload.password or "",
        role="employee",
        username=payload.username,
        email=payload.email,
        phone=payload.phone,
    )
    return {"status": "SUCCESS", "message": "Employee added successfully", "id": new_id}


@router.get("/employees", summary="List staff accounts")
def list_employees(
    _current_user: AdminOnly,
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[Dict[str, Any]]:
    return list_staff(limit=limit, offset=offset)


@router.post("/reminders", summary="Queue premium payment reminders")
def send_reminders(_current_user: Staff, outbox: Outbox, payload: Optional[ReminderRequest] = None) -> Dict[str, Any]:
    policy_id = payload.policy_id if payload else None
    queued = lifecycle.send_payment_reminders(outbox, policy_id=policy_id)
    return {"status": "OK", "message": "Reminders queued.", "queued": queued}
