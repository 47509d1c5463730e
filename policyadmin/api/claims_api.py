# policyadmin/api/claims_api.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Annotated
from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from policyadmin.api.policies_api import read_uploads
from policyadmin.services import lifecycle
from policyadmin.services.documents import DocumentStore, get_document_store
from policyadmin.services.notifications import NotificationOutbox, get_outbox
from policyadmin.services.roles import current_identity, require_staff

router = APIRouter(prefix="/claims", tags=["Claims"])

Identity = Annotated[Dict[str, Any], Depends(current_identity)]
Staff = Annotated[Dict[str, Any], Depends(require_staff)]
Outbox = Annotated[NotificationOutbox, Depends(get_outbox)]
Store = Annotated[DocumentStore, Depends(get_document_store)]


class ClaimDecision(BaseModel):
    decision: str  # 'approve' | 'reject'


@router.post("", status_code=201, summary="Submit a claim with supporting documents")
def submit_claim(
    identity: Identity,
    store: Store,
    policy_id: int = Form(...),
    reason: Optional[str] = Form(None),
    documents: Optional[List[UploadFile]] = File(None),
) -> Dict[str, Any]:
    result = lifecycle.submit_claim(identity, policy_id, reason, read_uploads(documents), store)
    return {"message": "Claim submitted successfully.", **result}


@router.post("/{claim_id}/decision", summary="Approve or reject a pending claim")
def decide_claim(claim_id: int, payload: ClaimDecision, staff: Staff, outbox: Outbox) -> Dict[str, Any]:
    return lifecycle.decide_claim(staff, claim_id, payload.decision, outbox)
