"""
Funds and blog posts.

Both are plain record stores: an authenticated user writes, others read.
The fund ledger is append-only and lives only in the "funds" collection.
"""

from typing import Optional, List

from database import Repository, create_document, get_documents, now, oid
from errors import NotFound, ValidationError
from schemas import Fund, Blog, BLOG_STATUSES


class FundLedger:

    def __init__(self, database):
        self.database = database

    def record(self, fund: Fund, name: Optional[str], email: str) -> str:
        doc = fund.model_dump()
        doc["name"] = doc.get("name") or name
        doc["email"] = doc.get("email") or email
        doc["date"] = doc.get("date") or now().date().isoformat()
        return create_document(self.database, "funds", doc)

    def list(self, limit: Optional[int] = None) -> List[dict]:
        return get_documents(self.database, "funds", limit=limit)

    def total(self) -> float:
        return sum(f.get("amount", 0) for f in self.list())


class BlogStore:

    def __init__(self, database):
        self.blogs = Repository(database["blogs"])

    def create(self, blog: Blog, author_email: str) -> str:
        doc = blog.model_dump()
        doc["authorEmail"] = author_email
        doc["status"] = "draft"
        doc["createdAt"] = doc["updatedAt"] = now()
        return self.blogs.insert(doc)

    def list(self, status: Optional[str] = None) -> List[dict]:
        query = {"status": status} if status else {}
        return self.blogs.find(query, sort=[("createdAt", -1)])

    def get(self, blog_id: str) -> dict:
        doc = self.blogs.find_one({"_id": oid(blog_id)})
        if not doc:
            raise NotFound("Blog not found")
        return doc

    def set_status(self, blog_id: str, status: str) -> bool:
        if status not in BLOG_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        return self.blogs.update({"_id": oid(blog_id)}, {"status": status, "updatedAt": now()})

    def delete(self, blog_id: str) -> bool:
        return self.blogs.delete({"_id": oid(blog_id)})
