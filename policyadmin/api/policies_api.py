# policyadmin/api/policies_api.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Annotated
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import AliasChoices, BaseModel, Field, model_validator

from policyadmin.services import config, lifecycle
from policyadmin.services.documents import DocumentStore, DocumentUpload, get_document_store
from policyadmin.services.errors import ValidationError
from policyadmin.services.notifications import NotificationOutbox, get_outbox
from policyadmin.services.roles import current_identity, optional_identity, require_staff

router = APIRouter(tags=["Policies"])

# ----- Annotated aliases -----
Identity = Annotated[Dict[str, Any], Depends(current_identity)]
MaybeIdentity = Annotated[Optional[Dict[str, Any]], Depends(optional_identity)]
Staff = Annotated[Dict[str, Any], Depends(require_staff)]
Outbox = Annotated[NotificationOutbox, Depends(get_outbox)]
Store = Annotated[DocumentStore, Depends(get_document_store)]


class BeneficiaryIn(BaseModel):
    name: Optional[str] = None
    relation: Optional[str] = None
    id_number: Optional[str] = Field(None, validation_alias=AliasChoices("id_number", "idNumber"))


class PolicyCreate(BaseModel):
    """Field names from the self-service form and the staff console are both accepted."""
    policy_type: Optional[str] = Field(None, validation_alias=AliasChoices("policy_type", "policyType", "type"))
    premium_amount: Optional[Decimal] = Field(
        None, validation_alias=AliasChoices("premium_amount", "premiumAmount", "premium"),
    )
    start_date: Optional[date] = Field(None, validation_alias=AliasChoices("start_date", "startDate"))
    payment_due_date: Optional[date] = Field(
        None, validation_alias=AliasChoices("payment_due_date", "paymentDueDate"),
    )
    holder_name: Optional[str] = Field(None, validation_alias=AliasChoices("holder_name", "holderName", "name"))
    holder_phone: Optional[str] = Field(
        None, validation_alias=AliasChoices("holder_phone", "holderPhone", "phone", "contact"),
    )
    owner_user_id: Optional[int] = Field(None, validation_alias=AliasChoices("owner_user_id", "ownerUserId"))
    beneficiaries: List[BeneficiaryIn] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def fold_flat_beneficiary(cls, data: Any) -> Any:
        # Older forms post a single beneficiary as flat fields:
        # b_name/b_relation (self-service) or beneficiary_name (staff).
        if not isinstance(data, dict) or data.get("beneficiaries"):
            return data
        name = data.get("b_name") or data.get("beneficiary_name")
        if not name:
            return data
        relation = data.get("b_relation") or data.get("beneficiary_relation")
        return {**data, "beneficiaries": [{"name": name, "relation": relation}]}


def read_uploads(files: Optional[List[UploadFile]]) -> List[DocumentUpload]:
    parts = [f for f in (files or []) if f is not None and f.filename]
    # Refuse before buffering anything when there are too many parts.
    if len(parts) > config.UPLOAD_MAX_FILES:
        raise ValidationError(f"At most {config.UPLOAD_MAX_FILES} documents may be uploaded")
    # One byte past the cap is enough for the size check to reject.
    return [
        DocumentUpload(f.filename, f.content_type, f.file.read(config.UPLOAD_MAX_BYTES + 1))
        for f in parts
    ]


def _create(payload: PolicyCreate, identity: Optional[Dict[str, Any]], outbox: NotificationOutbox) -> Dict[str, Any]:
    result = lifecycle.create_policy(
        identity,
        outbox,
        policy_type=payload.policy_type or "",
        premium_amount=payload.premium_amount,
        start_date=payload.start_date,
        payment_due_date=payload.payment_due_date,
        holder_name=payload.holder_name,
        holder_phone=payload.holder_phone,
        owner_user_id=payload.owner_user_id,
        beneficiaries=[b.model_dump() for b in payload.beneficiaries],
    )
    return {"message": "Policy created successfully", **result}


@router.post("/policies", status_code=201, summary="Create policy (anonymous, client or staff)")
def create_policy(payload: PolicyCreate, identity: MaybeIdentity, outbox: Outbox) -> Dict[str, Any]:
    return _create(payload, identity, outbox)


@router.post("/public-policy", status_code=201, summary="Self-service policy (starts pending)")
def create_public_policy(payload: PolicyCreate, outbox: Outbox) -> Dict[str, Any]:
    return _create(payload, None, outbox)


@router.post("/create-policy", status_code=201, summary="Staff-created policy")
def create_staff_policy(payload: PolicyCreate, staff: Staff, outbox: Outbox) -> Dict[str, Any]:
    return _create(payload, staff, outbox)


@router.get("/policies", summary="List policies")
def list_policies(
    identity: Identity,
    status: Optional[str] = None,
    policy_type: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> List[Dict[str, Any]]:
    return lifecycle.list_policies(identity, status=status, policy_type=policy_type, limit=limit, offset=offset)


@router.get("/policies/{policy_id}", summary="Policy with beneficiaries and claims")
def get_policy(policy_id: int, identity: Identity) -> Dict[str, Any]:
    return lifecycle.get_policy_detail(identity, policy_id)


@router.post("/policies/{policy_id}/activate", summary="Activate a pending policy")
def activate_policy(policy_id: int, staff: Staff, outbox: Outbox) -> Dict[str, Any]:
    return lifecycle.activate_policy(staff, policy_id, outbox)


@router.post("/policies/{policy_id}/deactivate", summary="Deactivate with reason and documents")
def deactivate_policy(
    policy_id: int,
    identity: Identity,
    outbox: Outbox,
    store: Store,
    reason: Optional[str] = Form(None),
    documents: Optional[List[UploadFile]] = File(None),
) -> Dict[str, Any]:
    result = lifecycle.deactivate_policy(identity, policy_id, reason, read_uploads(documents), outbox, store)
    return {"message": "Policy deactivated and documents saved.", **result}


@router.post("/deactivate-policy", summary="Deactivate (form variant)")
def deactivate_policy_form(
    identity: Identity,
    outbox: Outbox,
    store: Store,
    policy_id: Optional[int] = Form(None),
    policy_id_camel: Optional[int] = Form(None, alias="policyId"),
    reason: Optional[str] = Form(None),
    documents: Optional[List[UploadFile]] = File(None),
    docs: Optional[List[UploadFile]] = File(None),
) -> Dict[str, Any]:
    """Accepts `policy_id`/`documents` and the older `policyId`/`docs` spellings."""
    target = policy_id if policy_id is not None else policy_id_camel
    if target is None:
        raise ValidationError("policy_id is required")
    uploads = read_uploads([*(documents or []), *(docs or [])])
    result = lifecycle.deactivate_policy(identity, target, reason, uploads, outbox, store)
    return {"message": "Policy deactivated and documents saved.", **result}
