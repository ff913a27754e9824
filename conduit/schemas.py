from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- User ---

class UserRegister(CamelModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class UserLogin(CamelModel):
    email: str = Field(max_length=255)
    password: str = Field(min_length=1, max_length=128)


class UserUpdate(CamelModel):
    email: EmailStr | None = None
    username: str | None = Field(None, min_length=3, max_length=100)
    password: str | None = Field(None, min_length=8, max_length=128)
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class RegisterRequest(BaseModel):
    user: UserRegister


class LoginRequest(BaseModel):
    user: UserLogin


class UserUpdateRequest(BaseModel):
    user: UserUpdate


class UserView(CamelModel):
    email: str
    username: str
    token: str
    bio: str | None = None
    image: str | None = None


class UserResponse(BaseModel):
    user: UserView


# --- Profile ---

class ProfileView(CamelModel):
    username: str
    bio: str | None = None
    image: str | None = None
    following: bool = False


class ProfileResponse(BaseModel):
    profile: ProfileView


# --- Article ---

class ArticleCreate(CamelModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field(max_length=1000)
    body: str
    tag_list: list[str] = Field(default_factory=list, max_length=20)


class ArticleUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=1000)
    body: str | None = None
    tag_list: list[str] | None = Field(None, max_length=20)


class ArticleCreateRequest(BaseModel):
    article: ArticleCreate


class ArticleUpdateRequest(BaseModel):
    article: ArticleUpdate


class ArticleListItem(CamelModel):
    slug: str
    title: str
    description: str
    tag_list: list[str] = []
    created_at: datetime
    updated_at: datetime
    favorited: bool = False
    favorites_count: int = 0
    author: ProfileView


class ArticleView(ArticleListItem):
    body: str


class ArticleResponse(BaseModel):
    article: ArticleView


class MultipleArticlesResponse(CamelModel):
    articles: list[ArticleListItem]
    articles_count: int


# --- Comment ---

class CommentCreate(CamelModel):
    body: str = Field(min_length=1)


class CommentCreateRequest(BaseModel):
    comment: CommentCreate


class CommentView(CamelModel):
    id: int
    body: str
    created_at: datetime
    updated_at: datetime
    author: ProfileView


class CommentResponse(BaseModel):
    comment: CommentView


class MultipleCommentsResponse(BaseModel):
    comments: list[CommentView]
