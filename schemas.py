"""
Database Schemas

Pydantic models for the MongoDB collections used by the API.
Collection names:
- User -> "users"
- DonationRequest -> "requests"
- Fund -> "funds"
- Blog -> "blogs"
"""

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from typing import Annotated, Optional, Literal

from email_validator import EmailNotValidError, validate_email


def _check_email(value: str) -> str:
    # validated but stored exactly as sent; emails are case-sensitive keys
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(str(e))
    return value


Email = Annotated[str, AfterValidator(_check_email)]

Role = Literal["donor", "volunteer", "admin"]
UserStatus = Literal["active", "blocked"]

ROLES = ("donor", "volunteer", "admin")
USER_STATUSES = ("active", "blocked")
BLOG_STATUSES = ("draft", "published")

# Observed request statuses. Unguarded status writes still accept any text.
REQUEST_STATUSES = ("pending", "inprogress", "done", "canceled", "approved")


class User(BaseModel):
    """
    Users collection schema
    Collection name: "users"
    Roles: donor, volunteer, admin
    """
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Full name")
    email: Email = Field(..., description="Email address, unique")
    avatar: Optional[str] = None
    blood: Optional[str] = Field(None, description="Blood group, e.g. A+")
    district: Optional[str] = None
    upazila: Optional[str] = None
    role: Role = Field("donor", description="User role for authorization")
    status: UserStatus = Field("active", description="Blocked users cannot act")


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    avatar: Optional[str] = None
    blood: Optional[str] = None
    district: Optional[str] = None
    upazila: Optional[str] = None


class DonationRequest(BaseModel):
    """
    Donation requests collection schema
    Collection name: "requests"
    Descriptive fields are stored as sent; status and createdAt are
    assigned by the server.
    """
    model_config = ConfigDict(extra="allow")

    requesterName: Optional[str] = None
    requesterEmail: Optional[Email] = None
    requestedBy: Optional[Email] = None
    recipientName: Optional[str] = None
    bloodGroup: Optional[str] = None
    district: Optional[str] = None
    upazila: Optional[str] = None
    hospital: Optional[str] = None
    address: Optional[str] = None
    donationDate: Optional[str] = None
    donationTime: Optional[str] = None
    message: Optional[str] = None


class Fund(BaseModel):
    """
    Funds collection schema
    Collection name: "funds"
    """
    name: Optional[str] = None
    email: Optional[Email] = None
    amount: float = Field(..., gt=0)
    date: Optional[str] = Field(None, description="YYYY-MM-DD")


class Blog(BaseModel):
    """
    Blogs collection schema
    Collection name: "blogs"
    """
    title: str
    content: str
    thumbnail: Optional[str] = None
