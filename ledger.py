"""
Request Ledger

Donation requests and their status machine:

    pending --accept (atomic, first caller wins)--> inprogress
    any     --set_status (staff, unguarded)-------> done / canceled / ...

`accept` is the only guarded transition. It is a single conditional
update against the store, so concurrent accepts on the same request resolve
to exactly one winner. `set_status` is a plain overwrite and is
last-writer-wins. Field patches never touch status or the assigned donor.
"""

import logging
from typing import Optional, List

from database import Repository, now, oid
from errors import NotFound, ValidationError
from schemas import DonationRequest, REQUEST_STATUSES

logger = logging.getLogger(__name__)

# Assigned by the server, never taken from a client payload or patch.
SERVER_FIELDS = ("_id", "status", "createdAt", "donorName", "donorEmail")

NEWEST_FIRST = [("createdAt", -1)]


class RequestLedger:

    def __init__(self, database):
        self.requests = Repository(database["requests"])

    def create(self, request: DonationRequest, requester_email: Optional[str] = None) -> str:
        doc = {k: v for k, v in request.model_dump(exclude_none=True).items() if k not in SERVER_FIELDS}
        email = doc.get("requesterEmail") or doc.get("requestedBy") or requester_email
        if not email:
            raise ValidationError("Requester email is required")
        doc["requesterEmail"] = doc.get("requesterEmail") or email
        doc["status"] = "pending"
        doc["createdAt"] = now()
        return self.requests.insert(doc)

    def list_mine(self, email: str, limit: Optional[int] = None) -> List[dict]:
        query = {"$or": [{"requestedBy": email}, {"requesterEmail": email}]}
        return self.requests.find(query, sort=NEWEST_FIRST, limit=limit)

    def get(self, request_id: str) -> dict:
        doc = self.requests.find_one({"_id": oid(request_id)})
        if not doc:
            raise NotFound("Request not found")
        return doc

    def update_patch(self, request_id: str, patch: dict) -> bool:
        fields = {k: v for k, v in patch.items() if k not in SERVER_FIELDS}
        return self.requests.update({"_id": oid(request_id)}, fields)

    def accept(self, request_id: str, donor_email: str, donor_name: Optional[str]) -> bool:
        """Move a pending request to inprogress and stamp the donor on it.

        Returns False when the request does not exist or is no longer pending.
        """
        accepted = self.requests.update(
            {"_id": oid(request_id), "status": "pending"},
            {"status": "inprogress", "donorEmail": donor_email, "donorName": donor_name},
        )
        if accepted:
            logger.info(f"Request {request_id} accepted by {donor_email}")
        return accepted

    def set_status(self, request_id: str, status: str) -> bool:
        if not status:
            raise ValidationError("Status is required")
        if status not in REQUEST_STATUSES:
            logger.warning(f"Request {request_id} set to non-standard status {status}")
        return self.requests.update({"_id": oid(request_id)}, {"status": status})

    def delete(self, request_id: str) -> bool:
        return self.requests.delete({"_id": oid(request_id)})

    def list_all(self) -> List[dict]:
        return self.requests.find(sort=NEWEST_FIRST)

    def list_by_status(self, status: str) -> List[dict]:
        return self.requests.find({"status": status}, sort=NEWEST_FIRST)

    def list_pending(self) -> List[dict]:
        return self.list_by_status("pending")

    def volunteer_queue(self) -> List[dict]:
        return self.requests.find({"status": {"$in": ["pending", "approved"]}}, sort=NEWEST_FIRST)

