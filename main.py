import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Body, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.errors import PyMongoError

import database
from auth import Caller, guard, issue_token, require_self_or_admin, require_owner_or_admin
from config import Config
from content import FundLedger, BlogStore
from database import get_db
from directory import UserDirectory
from errors import ApiError, Forbidden
from ledger import RequestLedger
from schemas import User, ProfileUpdate, DonationRequest, Fund, Blog

logging.basicConfig(level=Config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            UserDirectory.ensure_indexes(database.db)
        except PyMongoError as e:
            logger.error(f"Could not create indexes: {e}")
    yield


app = FastAPI(title="Blood Donation API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --------------------------
# Error handling
# --------------------------

@app.exception_handler(ApiError)
def api_error_handler(request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(PyMongoError)
def storage_error_handler(request, exc: PyMongoError):
    logger.error(f"Storage error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"message": "Storage unavailable"})

# --------------------------
# Helper functions
# --------------------------

def soft_result(changed: bool, done: str, missed: str) -> dict:
    if changed:
        return {"success": True, "message": done}
    return {"success": False, "message": missed}

# --------------------------
# Models
# --------------------------

class StatusUpdate(BaseModel):
    status: str

# --------------------------
# Base endpoints
# --------------------------

@app.get("/")
def read_root():
    return {"message": "Blood Donation Server is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if Config.DATABASE_URL else "❌ Not Set",
        "database_name": Config.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


@app.post("/jwt")
def renew_jwt(caller: Caller = Depends(guard("issue_token"))):
    return {"token": issue_token(caller.email, caller.role)}

# --------------------------
# Users
# --------------------------

@app.post("/users")
def register_user(payload: User, caller: Optional[Caller] = Depends(guard("register_user")), db=Depends(get_db)):
    allow_overrides = caller is not None and caller.is_admin
    user_id = UserDirectory(db).register(payload, allow_overrides=allow_overrides)
    return {"id": user_id, "message": "User registered"}


@app.get("/users")
def search_donors(bloodGroup: Optional[str] = None, district: Optional[str] = None, upazila: Optional[str] = None,
                  caller=Depends(guard("search_donors")), db=Depends(get_db)):
    return UserDirectory(db).search_donors(bloodGroup, district, upazila)


@app.get("/admin/users")
def search_users(bloodGroup: Optional[str] = None, district: Optional[str] = None, upazila: Optional[str] = None,
                 status: Optional[str] = None, caller=Depends(guard("search_users")), db=Depends(get_db)):
    return UserDirectory(db).search(bloodGroup, district, upazila, status)


@app.get("/users/role/{email}")
def get_user_role(email: str, caller=Depends(guard("get_user_role")), db=Depends(get_db)):
    user = UserDirectory(db).lookup(email)
    return {"role": user.get("role") if user else None}


@app.get("/users/{email}")
def get_user(email: str, caller=Depends(guard("get_user")), db=Depends(get_db)):
    return UserDirectory(db).find(email)


@app.patch("/users/{email}")
def update_profile(email: str, payload: ProfileUpdate, caller: Caller = Depends(guard("update_profile")),
                   db=Depends(get_db)):
    require_self_or_admin(caller, email)
    changed = UserDirectory(db).update_profile(email, payload)
    return soft_result(changed, "User updated successfully", "No changes detected or user not found")


def _set_user_status(user_id: str, status: str, db) -> dict:
    changed = UserDirectory(db).set_status(user_id, status)
    return soft_result(changed, f"User status set to {status}", "No changes detected or user not found")


def _set_user_role(user_id: str, role: str, db) -> dict:
    changed = UserDirectory(db).set_role(user_id, role)
    return soft_result(changed, f"User role set to {role}", "No changes detected or user not found")


@app.patch("/users/block/{user_id}")
def block_user(user_id: str, caller=Depends(guard("set_user_status")), db=Depends(get_db)):
    return _set_user_status(user_id, "blocked", db)


@app.patch("/users/unblock/{user_id}")
def unblock_user(user_id: str, caller=Depends(guard("set_user_status")), db=Depends(get_db)):
    return _set_user_status(user_id, "active", db)


@app.patch("/users/make-volunteer/{user_id}")
def make_volunteer(user_id: str, caller=Depends(guard("set_user_role")), db=Depends(get_db)):
    return _set_user_role(user_id, "volunteer", db)


@app.patch("/users/make-admin/{user_id}")
def make_admin(user_id: str, caller=Depends(guard("set_user_role")), db=Depends(get_db)):
    return _set_user_role(user_id, "admin", db)

# --------------------------
# Donation requests
# --------------------------

@app.post("/requests")
def create_request(payload: DonationRequest, caller: Optional[Caller] = Depends(guard("create_request")),
                   db=Depends(get_db)):
    request_id = RequestLedger(db).create(payload, requester_email=caller.email if caller else None)
    return {"id": request_id, "message": "Request created"}


@app.get("/requests")
def list_my_requests(email: Optional[str] = None, limit: Optional[int] = Query(None, ge=1),
                     caller: Caller = Depends(guard("list_my_requests")), db=Depends(get_db)):
    email = email or caller.email
    if email != caller.email and not caller.is_staff:
        raise Forbidden()
    return RequestLedger(db).list_mine(email, limit=limit)


@app.get("/requests/status/{status}")
def list_requests_by_status(status: str, caller=Depends(guard("list_requests_by_status")), db=Depends(get_db)):
    return RequestLedger(db).list_by_status(status)


@app.get("/requests/{request_id}")
def get_request(request_id: str, caller=Depends(guard("get_request")), db=Depends(get_db)):
    return RequestLedger(db).get(request_id)


@app.patch("/requests/{request_id}")
def update_request(request_id: str, patch: dict = Body(...), caller: Caller = Depends(guard("update_request")),
                   db=Depends(get_db)):
    ledger = RequestLedger(db)
    require_owner_or_admin(caller, ledger.get(request_id))
    changed = ledger.update_patch(request_id, patch)
    return soft_result(changed, "Request updated successfully", "No changes detected or request not found")


@app.delete("/requests/{request_id}")
def delete_request(request_id: str, caller: Caller = Depends(guard("delete_request")), db=Depends(get_db)):
    ledger = RequestLedger(db)
    require_owner_or_admin(caller, ledger.get(request_id))
    deleted = ledger.delete(request_id)
    return soft_result(deleted, "Request deleted", "Request not found")


@app.get("/all-requests")
def list_all_requests(caller=Depends(guard("list_all_requests")), db=Depends(get_db)):
    return RequestLedger(db).list_all()


@app.get("/pending-requests")
def list_pending_requests(caller=Depends(guard("list_pending_requests")), db=Depends(get_db)):
    return RequestLedger(db).list_pending()


@app.get("/volunteer-requests")
def volunteer_requests(caller=Depends(guard("volunteer_requests")), db=Depends(get_db)):
    return RequestLedger(db).volunteer_queue()


@app.patch("/donations/start/{request_id}")
def accept_request(request_id: str, caller: Caller = Depends(guard("accept_request")), db=Depends(get_db)):
    accepted = RequestLedger(db).accept(request_id, caller.email, caller.name)
    return soft_result(accepted, "Donation started", "Request not found or already updated")


@app.patch("/donations/update-status/{request_id}")
def set_request_status(request_id: str, payload: StatusUpdate, caller=Depends(guard("set_request_status")),
                       db=Depends(get_db)):
    changed = RequestLedger(db).set_status(request_id, payload.status)
    return soft_result(changed, f"Request status set to {payload.status}", "No changes detected or request not found")

# --------------------------
# Funds
# --------------------------

@app.post("/funds")
def record_fund(payload: Fund, caller: Caller = Depends(guard("record_fund")), db=Depends(get_db)):
    fund_id = FundLedger(db).record(payload, caller.name, caller.email)
    return {"id": fund_id, "message": "Fund recorded"}


@app.get("/funds")
def list_funds(limit: Optional[int] = None, caller=Depends(guard("list_funds")), db=Depends(get_db)):
    return FundLedger(db).list(limit=limit)


@app.get("/funds/total")
def fund_total(caller=Depends(guard("fund_total")), db=Depends(get_db)):
    return {"total": FundLedger(db).total()}

# --------------------------
# Blogs
# --------------------------

@app.post("/blogs")
def create_blog(payload: Blog, caller: Caller = Depends(guard("create_blog")), db=Depends(get_db)):
    blog_id = BlogStore(db).create(payload, caller.email)
    return {"id": blog_id, "message": "Blog created"}


@app.get("/blogs")
def list_blogs(status: str = "published", caller: Optional[Caller] = Depends(guard("list_blogs")),
               db=Depends(get_db)):
    # drafts are visible to staff only
    if status != "published" and (caller is None or not caller.is_staff):
        raise Forbidden()
    return BlogStore(db).list(None if status == "all" else status)


@app.get("/blogs/{blog_id}")
def get_blog(blog_id: str, caller=Depends(guard("get_blog")), db=Depends(get_db)):
    return BlogStore(db).get(blog_id)


@app.patch("/blogs/publish/{blog_id}")
def publish_blog(blog_id: str, caller=Depends(guard("set_blog_status")), db=Depends(get_db)):
    changed = BlogStore(db).set_status(blog_id, "published")
    return soft_result(changed, "Blog published", "Blog not found")


@app.patch("/blogs/unpublish/{blog_id}")
def unpublish_blog(blog_id: str, caller=Depends(guard("set_blog_status")), db=Depends(get_db)):
    changed = BlogStore(db).set_status(blog_id, "draft")
    return soft_result(changed, "Blog moved to draft", "Blog not found")


@app.delete("/blogs/{blog_id}")
def delete_blog(blog_id: str, caller=Depends(guard("delete_blog")), db=Depends(get_db)):
    deleted = BlogStore(db).delete(blog_id)
    return soft_result(deleted, "Blog deleted", "Blog not found")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
