from typing import Any, Literal, Optional
from pydantic import BaseModel

from timeline.persistence.database import PostResult, UserResult


class LoginRequest(BaseModel):
    """Body of POST /api/login"""

    # Left loose so that missing or odd values become a 400 with our own message
    username: Optional[Any] = None


class CreatePostRequest(BaseModel):
    """Body of POST /api/posts"""

    content: Optional[Any] = None


class UserSummary(BaseModel):
    id: int
    username: str

    @classmethod
    def from_result(cls, user: UserResult) -> "UserSummary":
        return cls(id=user.id, username=user.username)


class TimelinePost(BaseModel):
    """A post as listed on the timeline"""

    id: int
    username: str
    content: str
    created_at: str

    @classmethod
    def from_result(cls, post: PostResult) -> "TimelinePost":
        return cls(
            id=post.id,
            username=post.username,
            content=post.content,
            created_at=post.created_at,
        )


class CreatedPost(TimelinePost):
    """A freshly stored post, including the author's user id"""

    user_id: int

    @classmethod
    def from_result(cls, post: PostResult) -> "CreatedPost":
        return cls(
            id=post.id,
            user_id=post.user_id,
            username=post.username,
            content=post.content,
            created_at=post.created_at,
        )


class LoginResponse(BaseModel):
    success: Literal[True] = True
    user: UserSummary


class AuthCheckResponse(BaseModel):
    authenticated: bool
    username: Optional[str] = None


class TimelineResponse(BaseModel):
    posts: list[TimelinePost]
    count: int

    @classmethod
    def from_results(cls, posts: list[PostResult]) -> "TimelineResponse":
        return cls(posts=[TimelinePost.from_result(p) for p in posts], count=len(posts))


class CreatePostResponse(BaseModel):
    success: Literal[True] = True
    post: CreatedPost


class SuccessResponse(BaseModel):
    success: Literal[True] = True


class HealthResponse(BaseModel):
    status: Literal["healthy"] = "healthy"
    service: str = "Timeline Backend"
    post_count: int
