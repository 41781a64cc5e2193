"""
In-batch deduplication of users by identifier.

When several transformed users share a user_id, each is scored for data
completeness. A strictly higher score replaces the current candidate, an
equal score merges the two, a lower score is discarded. The weights are a
tunable policy, not a contract; only their relative ordering matters.
"""

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from src.core.models import Program, SalesAttribution, SocialHandle, SocialPost, User
from src.observability.logger import get_logger

logger = get_logger(__name__)


class CompletenessWeights(BaseModel):
    """Points awarded per populated field or collection entry."""

    model_config = ConfigDict(frozen=True)

    name: float = Field(1, ge=0)
    email: float = Field(1, ge=0)
    join_date: float = Field(1, ge=0)
    social_handle: float = Field(2, ge=0)
    program: float = Field(3, ge=0)
    post: float = Field(1, ge=0)
    sales_attribution: float = Field(5, ge=0)


DEFAULT_WEIGHTS = CompletenessWeights()


def completeness_score(user: User, weights: CompletenessWeights = DEFAULT_WEIGHTS) -> float:
    """
    Score how much structured data a user carries.

    Raw total_engagement and total_sales are added on top, so higher-volume
    accounts outrank structurally equal ones.
    """
    score = 0.0
    if user.name:
        score += weights.name
    if user.email:
        score += weights.email
    if user.join_date:
        score += weights.join_date
    score += len(user.social_handles) * weights.social_handle
    score += len(user.programs) * weights.program
    score += len(user.posts) * weights.post
    score += len(user.sales_attributions) * weights.sales_attribution
    score += user.total_engagement
    score += user.total_sales
    return score


def merge_social_handles(handles: Iterable[SocialHandle]) -> list[SocialHandle]:
    seen: dict[tuple[str, str], SocialHandle] = {}
    for handle in handles:
        seen.setdefault(handle.key, handle)
    return list(seen.values())


def merge_programs(programs: Iterable[Program]) -> list[Program]:
    seen: dict[str, Program] = {}
    for program in programs:
        seen.setdefault(program.program_id, program)
    return list(seen.values())


def merge_posts(posts: Iterable[SocialPost]) -> list[SocialPost]:
    """Union posts by post_id; on collision keep the higher engagement (first on ties)."""
    seen: dict[str, SocialPost] = {}
    for post in posts:
        existing = seen.get(post.post_id)
        if existing is None or post.engagement > existing.engagement:
            seen[post.post_id] = post
    return list(seen.values())


def merge_sales_attributions(attributions: Iterable[SalesAttribution]) -> list[SalesAttribution]:
    """Sum amounts per program_id, keeping first-seen program order."""
    totals: dict[str, float] = {}
    for attribution in attributions:
        totals[attribution.program_id] = totals.get(attribution.program_id, 0) + attribution.amount
    return [SalesAttribution(program_id=program_id, amount=amount) for program_id, amount in totals.items()]


def merge_users(first: User, second: User) -> User:
    """
    Merge two users with the same identifier, preferring ``first``'s scalars.

    An exact copy of ``first`` contributes nothing, so merging a user with
    itself returns an equal user instead of doubling its sales.

    Returns:
        A new User with totals recomputed from the merged collections
    """
    if first == second:
        return first.model_copy(deep=True).recalculate_totals()

    return User(
        user_id=first.user_id,
        name=first.name or second.name,
        email=first.email or second.email,
        join_date=first.join_date or second.join_date,
        social_handles=merge_social_handles([*first.social_handles, *second.social_handles]),
        programs=merge_programs([*first.programs, *second.programs]),
        posts=merge_posts([*first.posts, *second.posts]),
        sales_attributions=merge_sales_attributions(
            [*first.sales_attributions, *second.sales_attributions]
        ),
    )


class Deduplicator:
    """
    Resolves duplicate user ids within one batch.

    Counters accumulate across calls so one instance can serve a whole run.

    Args:
        weights: Completeness scoring weights
    """

    def __init__(self, weights: CompletenessWeights = DEFAULT_WEIGHTS):
        self.weights = weights
        self.merged = 0
        self.replaced = 0
        self.discarded = 0

    def deduplicate(self, users: Iterable[User]) -> list[User]:
        """
        Collapse users sharing a user_id into one, preserving first-seen order.

        Args:
            users: Transformed users in arrival order

        Returns:
            One user per distinct user_id
        """
        resolved: dict[str, User] = {}

        for user in users:
            existing = resolved.get(user.user_id)
            if existing is None:
                resolved[user.user_id] = user
                continue

            existing_score = completeness_score(existing, self.weights)
            new_score = completeness_score(user, self.weights)

            if new_score > existing_score:
                resolved[user.user_id] = user
                self.replaced += 1
            elif new_score == existing_score:
                resolved[user.user_id] = merge_users(existing, user)
                self.merged += 1
            else:
                self.discarded += 1

        return list(resolved.values())


def deduplicate_users(users: Iterable[User], weights: CompletenessWeights = DEFAULT_WEIGHTS) -> list[User]:
    """Deduplicate one batch with a throwaway Deduplicator."""
    return Deduplicator(weights).deduplicate(users)
