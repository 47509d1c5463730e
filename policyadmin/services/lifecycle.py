# policyadmin/services/lifecycle.py
"""
Policy lifecycle and claim workflow.

    pending ──> active ──> deactivated | claimed
       └──────────────────> deactivated | claimed

- Terminal states never change; every transition is a conditional UPDATE on
  the current status, so two racing requests cannot both apply it.
- Documents always belong to a claim (one `claim_documents` row per file).
  Submitting a claim leaves the policy alone; approving it moves the policy
  to `claimed`. A direct deactivation records its reason and documents as an
  already approved claim.
- Notifications are enqueued on the caller's outbox only after commit.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pymysql

from policyadmin.db import connection, is_duplicate_key, transaction
from policyadmin.services import config
from policyadmin.services.documents import (
    DocumentStore, DocumentUpload, StoredDocument, validate_documents,
)
from policyadmin.services.errors import (
    Conflict, Forbidden, InternalError, NotFound, PolicyNumberCollision, ValidationError,
)
from policyadmin.services.notifications import (
    NotificationOutbox,
    claim_decided_message,
    payment_reminder_message,
    policy_activated_message,
    policy_created_message,
    policy_deactivated_message,
)
from policyadmin.services.policy_filters import Predicate, policy_list_predicate
from policyadmin.services.policy_numbers import generate_policy_number
from policyadmin.services.roles import is_staff
from policyadmin.services.users import get_user

logger = logging.getLogger(__name__)

PENDING, ACTIVE, DEACTIVATED, CLAIMED = "pending", "active", "deactivated", "claimed"
POLICY_STATUSES = (PENDING, ACTIVE, DEACTIVATED, CLAIMED)
TERMINAL_STATUSES = frozenset({DEACTIVATED, CLAIMED})
OPEN_STATUSES = (PENDING, ACTIVE)

CLAIM_PENDING, CLAIM_APPROVED, CLAIM_REJECTED = "pending", "approved", "rejected"
CLAIM_DECISIONS = {"approve": CLAIM_APPROVED, "reject": CLAIM_REJECTED}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _caller_id(identity: Optional[Mapping[str, Any]]) -> Optional[int]:
    if not identity or identity.get("user_id") is None:
        return None
    return int(identity["user_id"])


def _visible(identity: Mapping[str, Any], policy: Optional[Mapping[str, Any]]) -> bool:
    if policy is None:
        return False
    if is_staff(identity):
        return True
    owner = policy.get("user_id")
    return owner is not None and int(owner) == _caller_id(identity)


def _fetch_policy(cur, policy_id: int) -> Optional[Dict[str, Any]]:
    cur.execute("SELECT * FROM `policies` WHERE `id`=%s", (int(policy_id),))
    return cur.fetchone()


def _policy_for(identity: Mapping[str, Any], policy_id: int) -> Dict[str, Any]:
    """Load a policy the caller may see; other clients' policies look absent."""
    with connection() as conn:
        with conn.cursor() as cur:
            policy = _fetch_policy(cur, policy_id)
    if not _visible(identity, policy):
        raise NotFound("Policy not found")
    return policy


def _transition(cur, policy_id: int, from_states: Iterable[str], to_state: str, **extra: Any) -> bool:
    sets = ["`status`=%s"] + [f"`{col}`=%s" for col in extra]
    where, params = Predicate().eq("`id`", int(policy_id)).is_in("`status`", list(from_states)).where()
    cur.execute(
        f"UPDATE `policies` SET {', '.join(sets)}{where}",
        (to_state, *extra.values(), *params),
    )
    return cur.rowcount == 1


def _ensure_open(policy: Mapping[str, Any]) -> None:
    if policy["status"] in TERMINAL_STATUSES:
        raise Conflict(f"Policy {policy['policy_number']} is already {policy['status']}")


# ───────────────────────────────────────────────────────────────────────────────
# Create
# ───────────────────────────────────────────────────────────────────────────────
def _insert_policy(cur, policy_number: str, row: Mapping[str, Any]) -> int:
    try:
        cur.execute(
            """
            INSERT INTO `policies`
            (`policy_number`,`user_id`,`created_by`,`holder_name`,`holder_phone`,`policy_type`,
             `premium_amount`,`status`,`start_date`,`payment_due_date`,`created_at`)
            VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                policy_number, row["user_id"], row["created_by"], row["holder_name"],
                row["holder_phone"], row["policy_type"], row["premium_amount"], row["status"],
                row["start_date"], row["payment_due_date"], datetime.now(),
            ),
        )
    except pymysql.err.IntegrityError as e:
        if is_duplicate_key(e, "ux_policies_policy_number"):
            raise PolicyNumberCollision(policy_number) from e
        raise
    return int(cur.lastrowid)


def _insert_beneficiary(cur, policy_id: int, beneficiary: Mapping[str, Any]) -> None:
    cur.execute(
        "INSERT INTO `beneficiaries` (`policy_id`,`name`,`relation`,`id_number`) VALUES (%s,%s,%s,%s)",
        (
            policy_id,
            _clean(beneficiary.get("name")),
            _clean(beneficiary.get("relation")),
            _clean(beneficiary.get("id_number")),
        ),
    )


def create_policy(
    identity: Optional[Mapping[str, Any]],
    outbox: NotificationOutbox,
    *,
    policy_type: str,
    premium_amount: Optional[Decimal] = None,
    start_date: Optional[date] = None,
    payment_due_date: Optional[date] = None,
    holder_name: Optional[str] = None,
    holder_phone: Optional[str] = None,
    owner_user_id: Optional[int] = None,
    beneficiaries: Sequence[Mapping[str, Any]] = (),
) -> Dict[str, Any]:
    """
    Create a policy and its beneficiaries as one unit.

    Anonymous callers get a `pending` policy with no owner. Clients own what
    they create; staff may name an owner and are recorded as creator. Both
    start `active`.
    """
    policy_type = _clean(policy_type)
    if not policy_type:
        raise ValidationError("policy_type is required")
    if premium_amount is not None and premium_amount < 0:
        raise ValidationError("premium_amount must not be negative")
    for b in beneficiaries:
        if not _clean(b.get("name")):
            raise ValidationError("Every beneficiary needs a name")

    caller = _caller_id(identity)
    if identity is None:
        if owner_user_id is not None:
            raise Forbidden("Sign in to create a policy for a registered user")
        owner_id, created_by, status = None, None, PENDING
    elif is_staff(identity):
        owner_id, created_by, status = owner_user_id, caller, ACTIVE
    else:
        if owner_user_id is not None and int(owner_user_id) != caller:
            raise Forbidden("Clients may only create policies for themselves")
        owner_id, created_by, status = caller, None, ACTIVE

    owner: Dict[str, Any] = {}
    if owner_id is not None:
        try:
            owner = get_user(owner_id)
        except NotFound as e:
            raise NotFound("Policy owner not found") from e

    row = {
        "user_id": owner_id,
        "created_by": created_by,
        "holder_name": _clean(holder_name) or owner.get("name"),
        "holder_phone": _clean(holder_phone) or _clean(owner.get("phone")),
        "policy_type": policy_type,
        "premium_amount": premium_amount,
        "status": status,
        "start_date": start_date or date.today(),
        "payment_due_date": payment_due_date,
    }
    if not row["holder_phone"]:
        raise ValidationError("A contact phone number is required")

    attempts = max(1, config.POLICY_NUMBER_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        policy_number = generate_policy_number()
        try:
            with transaction() as conn:
                with conn.cursor() as cur:
                    policy_id = _insert_policy(cur, policy_number, row)
                    for b in beneficiaries:
                        _insert_beneficiary(cur, policy_id, b)
            break
        except PolicyNumberCollision:
            logger.warning("policy number %s collided (attempt %d/%d)", policy_number, attempt, attempts)
        except pymysql.err.MySQLError as e:
            logger.error("policy insert rolled back: %s", e)
            raise InternalError("Could not save the policy") from e
    else:
        raise InternalError("Could not allocate a unique policy number")

    logger.info(
        "policy created id=%s number=%s status=%s beneficiaries=%d",
        policy_id, policy_number, status, len(beneficiaries),
    )
    outbox.enqueue(
        row["holder_phone"],
        policy_created_message(row["holder_name"], policy_type, policy_number, status),
    )
    return {"policy_id": policy_id, "policy_number": policy_number, "status": status}


# ───────────────────────────────────────────────────────────────────────────────
# Read
# ───────────────────────────────────────────────────────────────────────────────
def list_policies(
    identity: Mapping[str, Any],
    status: Optional[str] = None,
    policy_type: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """Staff see every policy; clients only their own."""
    status = _clean(status)
    if status is not None:
        status = status.lower()
        if status not in POLICY_STATUSES:
            raise ValidationError(f"Unknown status filter: {status}")
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be positive and offset non-negative")

    if is_staff(identity):
        pred = policy_list_predicate(status=status, policy_type=_clean(policy_type))
    else:
        caller = _caller_id(identity)
        if caller is None:
            raise Forbidden("Identity has no user id")
        pred = policy_list_predicate(owner_user_id=caller, status=status, policy_type=_clean(policy_type))

    where, params = pred.where()
    with connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT p.* FROM `policies` p{where} ORDER BY p.`created_at` DESC, p.`id` DESC LIMIT %s OFFSET %s",
                (*params, int(limit), int(offset)),
            )
            return list(cur.fetchall() or [])


def get_policy_detail(identity: Mapping[str, Any], policy_id: int) -> Dict[str, Any]:
    with connection() as conn:
        with conn.cursor() as cur:
            policy = _fetch_policy(cur, policy_id)
            if not _visible(identity, policy):
                raise NotFound("Policy not found")

            cur.execute(
                "SELECT `id`,`name`,`relation`,`id_number` FROM `beneficiaries` WHERE `policy_id`=%s ORDER BY `id`",
                (policy["id"],),
            )
            beneficiaries = list(cur.fetchall() or [])

            cur.execute(
                """
                SELECT `id`,`reason`,`status`,`submitted_by`,`submitted_at`,`decided_by`,`decided_at`
                FROM `claims` WHERE `policy_id`=%s ORDER BY `id`
                """,
                (policy["id"],),
            )
            claims = list(cur.fetchall() or [])

            docs: Dict[int, List[Dict[str, Any]]] = {c["id"]: [] for c in claims}
            if claims:
                where, params = Predicate().is_in("`claim_id`", list(docs)).where()
                cur.execute(
                    "SELECT `id`,`claim_id`,`position`,`original_name`,`content_type`,`size_bytes` "
                    f"FROM `claim_documents`{where} ORDER BY `claim_id`, `position`",
                    params,
                )
                for d in cur.fetchall() or []:
                    docs[d.pop("claim_id")].append(d)

    for c in claims:
        c["documents"] = docs[c["id"]]
    return {"policy": policy, "beneficiaries": beneficiaries, "claims": claims}


# ───────────────────────────────────────────────────────────────────────────────
# Transitions
# ───────────────────────────────────────────────────────────────────────────────
def activate_policy(identity: Mapping[str, Any], policy_id: int, outbox: NotificationOutbox) -> Dict[str, Any]:
    policy = _policy_for(identity, policy_id)
    if policy["status"] != PENDING:
        raise Conflict(f"Only pending policies can be activated (status is {policy['status']})")

    with transaction() as conn:
        with conn.cursor() as cur:
            if not _transition(cur, policy["id"], [PENDING], ACTIVE):
                raise Conflict("Policy status changed concurrently")

    logger.info("policy activated id=%s by user=%s", policy["id"], _caller_id(identity))
    outbox.enqueue(policy["holder_phone"], policy_activated_message(policy["policy_number"]))
    return {"policy_id": policy["id"], "policy_number": policy["policy_number"], "status": ACTIVE}


def _validated_claim_input(reason: Optional[str], uploads: Sequence[DocumentUpload]) -> str:
    reason = _clean(reason)
    if not reason:
        raise ValidationError("reason is required")
    validate_documents(uploads)
    return reason


def _insert_claim(cur, policy_id: int, reason: str, status: str, submitted_by: Optional[int],
                  stored: Sequence[StoredDocument], decided_by: Optional[int] = None) -> int:
    now = datetime.now()
    cur.execute(
        """
        INSERT INTO `claims` (`policy_id`,`reason`,`status`,`submitted_by`,`submitted_at`,`decided_by`,`decided_at`)
        VALUES (%s,%s,%s,%s,%s,%s,%s)
        """,
        (policy_id, reason, status, submitted_by, now, decided_by, now if decided_by is not None else None),
    )
    claim_id = int(cur.lastrowid)
    for doc in stored:
        cur.execute(
            """
            INSERT INTO `claim_documents`
            (`claim_id`,`position`,`original_name`,`stored_path`,`content_type`,`size_bytes`)
            VALUES (%s,%s,%s,%s,%s,%s)
            """,
            (claim_id, doc.position, doc.original_name, doc.stored_path, doc.content_type, doc.size_bytes),
        )
    return claim_id


def submit_claim(
    identity: Mapping[str, Any],
    policy_id: int,
    reason: Optional[str],
    uploads: Sequence[DocumentUpload],
    store: Optional[DocumentStore] = None,
) -> Dict[str, Any]:
    """Record a pending claim with its documents; the policy status is untouched."""
    reason = _validated_claim_input(reason, uploads)
    policy = _policy_for(identity, policy_id)
    _ensure_open(policy)

    with connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM `claims` WHERE `policy_id`=%s AND `status`=%s LIMIT 1",
                (policy["id"], CLAIM_PENDING),
            )
            if cur.fetchone():
                raise Conflict("A claim on this policy is already awaiting a decision")

    store = store or DocumentStore()
    stored = store.save(policy["id"], uploads)
    try:
        with transaction() as conn:
            with conn.cursor() as cur:
                claim_id = _insert_claim(cur, policy["id"], reason, CLAIM_PENDING, _caller_id(identity), stored)
    except Exception:
        store.discard(stored)
        raise

    logger.info("claim submitted id=%s policy=%s documents=%d", claim_id, policy["id"], len(stored))
    return {
        "claim_id": claim_id,
        "policy_id": policy["id"],
        "status": CLAIM_PENDING,
        "documents": [d.original_name for d in stored],
    }


def decide_claim(
    identity: Mapping[str, Any],
    claim_id: int,
    decision: str,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    """Approve (policy -> claimed) or reject a pending claim."""
    new_status = CLAIM_DECISIONS.get(str(decision or "").strip().lower())
    if new_status is None:
        raise ValidationError("decision must be 'approve' or 'reject'")

    with transaction() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM `claims` WHERE `id`=%s", (int(claim_id),))
            claim = cur.fetchone()
            if not claim:
                raise NotFound("Claim not found")
            if claim["status"] != CLAIM_PENDING:
                raise Conflict(f"Claim is already {claim['status']}")
            policy = _fetch_policy(cur, claim["policy_id"])

            if new_status == CLAIM_APPROVED:
                _ensure_open(policy)
                applied = _transition(
                    cur, policy["id"], OPEN_STATUSES, CLAIMED,
                    deactivation_reason=claim["reason"], deactivated_at=datetime.now(),
                )
                if not applied:
                    raise Conflict("Policy status changed concurrently")

            cur.execute(
                "UPDATE `claims` SET `status`=%s, `decided_by`=%s, `decided_at`=%s WHERE `id`=%s AND `status`=%s",
                (new_status, _caller_id(identity), datetime.now(), claim["id"], CLAIM_PENDING),
            )
            if cur.rowcount != 1:
                raise Conflict("Claim was decided concurrently")

    policy_status = CLAIMED if new_status == CLAIM_APPROVED else policy["status"]
    logger.info("claim %s id=%s policy=%s", new_status, claim["id"], policy["id"])
    outbox.enqueue(policy["holder_phone"], claim_decided_message(policy["policy_number"], new_status))
    return {
        "claim_id": claim["id"],
        "policy_id": policy["id"],
        "status": new_status,
        "policy_status": policy_status,
    }


def deactivate_policy(
    identity: Mapping[str, Any],
    policy_id: int,
    reason: Optional[str],
    uploads: Sequence[DocumentUpload],
    outbox: NotificationOutbox,
    store: Optional[DocumentStore] = None,
) -> Dict[str, Any]:
    """
    Terminal deactivation. The reason and documents are kept as an approved
    claim. A second call on a terminal policy is a Conflict and changes nothing.
    """
    reason = _validated_claim_input(reason, uploads)
    policy = _policy_for(identity, policy_id)
    _ensure_open(policy)

    store = store or DocumentStore()
    stored = store.save(policy["id"], uploads)
    caller = _caller_id(identity)
    try:
        with transaction() as conn:
            with conn.cursor() as cur:
                applied = _transition(
                    cur, policy["id"], OPEN_STATUSES, DEACTIVATED,
                    deactivation_reason=reason, deactivated_at=datetime.now(),
                )
                if not applied:
                    raise Conflict(f"Policy {policy['policy_number']} is already terminal")
                claim_id = _insert_claim(
                    cur, policy["id"], reason, CLAIM_APPROVED, caller, stored, decided_by=caller,
                )
    except Exception:
        store.discard(stored)
        raise

    logger.info("policy deactivated id=%s by user=%s claim=%s", policy["id"], caller, claim_id)
    outbox.enqueue(policy["holder_phone"], policy_deactivated_message(policy["policy_number"], reason))
    return {
        "policy_id": policy["id"],
        "policy_number": policy["policy_number"],
        "status": DEACTIVATED,
        "claim_id": claim_id,
    }


# ───────────────────────────────────────────────────────────────────────────────
# Reminders
# ───────────────────────────────────────────────────────────────────────────────
def send_payment_reminders(outbox: NotificationOutbox, policy_id: Optional[int] = None) -> int:
    """Queue one reminder per active policy (or for one policy). No state changes."""
    pred = Predicate().eq("p.`status`", ACTIVE)
    if policy_id is not None:
        with connection() as conn:
            with conn.cursor() as cur:
                policy = _fetch_policy(cur, policy_id)
        if not policy:
            raise NotFound("Policy not found")
        if policy["status"] != ACTIVE:
            raise Conflict(f"Policy {policy['policy_number']} is {policy['status']}, not active")
        pred.eq("p.`id`", int(policy_id))

    where, params = pred.where()
    with connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT p.`id`, p.`policy_number`, p.`premium_amount`,
                       COALESCE(p.`holder_name`, u.`name`) AS `holder_name`,
                       COALESCE(p.`holder_phone`, u.`phone`) AS `phone`
                FROM `policies` p
                LEFT JOIN `users` u ON u.`id` = p.`user_id`
                {where}
                ORDER BY p.`id`
                """,
                params,
            )
            rows = list(cur.fetchall() or [])

    before = len(outbox.pending)
    for r in rows:
        outbox.enqueue(r["phone"], payment_reminder_message(r["holder_name"], r["policy_number"], r["premium_amount"]))
    queued = len(outbox.pending) - before
    logger.info("payment reminders queued=%d of %d active policies", queued, len(rows))
    return queued
