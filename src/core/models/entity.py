"""
Canonical participant models produced by the transformer and persisted by the loader.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

SocialPlatform = Literal[
    "instagram",
    "facebook",
    "twitter",
    "tiktok",
    "youtube",
    "linkedin",
    "other",
]

SOCIAL_PLATFORMS: tuple[str, ...] = (
    "instagram",
    "facebook",
    "twitter",
    "tiktok",
    "youtube",
    "linkedin",
    "other",
)


class SocialHandle(BaseModel):
    """A normalized (platform, handle) pair."""

    platform: SocialPlatform
    handle: str = Field(..., min_length=1)

    @property
    def key(self) -> tuple[str, str]:
        return (self.platform, self.handle)


class Program(BaseModel):
    """Membership of a user in an advocacy program."""

    program_id: str = Field(..., min_length=1)
    program_name: str = Field(..., min_length=1)


class SocialPost(BaseModel):
    """
    A completed advocacy task (social post).

    Attributes:
        post_id: Task identifier (synthesized when the source has none)
        platform: Platform the post was published on
        url: Post URL, if any
        likes, comments, shares, reach: Non-negative counters
        engagement: likes + comments + shares, recomputed on construction
    """

    post_id: str = Field(..., min_length=1)
    platform: SocialPlatform = "other"
    url: str | None = None
    likes: int = Field(0, ge=0)
    comments: int = Field(0, ge=0)
    shares: int = Field(0, ge=0)
    reach: int = Field(0, ge=0)
    engagement: int = Field(0, ge=0)

    @model_validator(mode="after")
    def compute_engagement(self) -> "SocialPost":
        # reach is deliberately not part of engagement
        self.engagement = self.likes + self.comments + self.shares
        return self


class SalesAttribution(BaseModel):
    """Sales amount attributed to a user through one program."""

    program_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)


class User(BaseModel):
    """
    Canonical advocacy participant.

    Totals are never taken from input: they are recomputed from ``posts`` and
    ``sales_attributions`` every time a User is constructed, and again by
    ``recalculate_totals`` after in-place changes.

    Attributes:
        user_id: Unique identifier (business key)
        name: Display name
        email: Lower-cased email address
        social_handles: Normalized handles, unique by (platform, handle)
        programs: Programs the user belongs to, unique by program_id
        posts: Completed tasks
        sales_attributions: Positive sales amounts per program
        join_date: When the user joined, if known
        total_engagement: Sum of posts[].engagement
        total_sales: Sum of sales_attributions[].amount
    """

    user_id: str = Field(..., min_length=1)
    name: str | None = None
    email: str | None = None
    social_handles: list[SocialHandle] = Field(default_factory=list)
    programs: list[Program] = Field(default_factory=list)
    posts: list[SocialPost] = Field(default_factory=list)
    sales_attributions: list[SalesAttribution] = Field(default_factory=list)
    join_date: datetime | None = None
    total_engagement: float = 0
    total_sales: float = 0

    @model_validator(mode="after")
    def compute_totals(self) -> "User":
        return self.recalculate_totals()

    def recalculate_totals(self) -> "User":
        """Recompute total_engagement and total_sales from the collections."""
        self.total_engagement = sum(post.engagement for post in self.posts)
        self.total_sales = sum(sale.amount for sale in self.sales_attributions)
        return self

    def to_document(self) -> dict:
        """JSON-compatible representation used as the persisted document."""
        return self.model_dump(mode="json")

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "u1",
                "name": "Jane Doe",
                "email": "jane@example.com",
                "social_handles": [{"platform": "instagram", "handle": "janedoe"}],
                "programs": [{"program_id": "p1", "program_name": "Acme"}],
                "posts": [
                    {
                        "post_id": "t1",
                        "platform": "instagram",
                        "url": "https://instagram.com/p/abc",
                        "likes": 10,
                        "comments": 2,
                        "shares": 1,
                        "reach": 400,
                        "engagement": 13,
                    }
                ],
                "sales_attributions": [{"program_id": "p1", "amount": 50.0}],
                "join_date": "2024-01-01T00:00:00Z",
                "total_engagement": 13,
                "total_sales": 50.0,
            }
        }
