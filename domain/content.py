"""
Content records the admin manages through the web forms: posts, projects and
the about page, plus the visitor-submitted contact messages and newsletter
subscribers.
"""
from typing import List, Optional
import datetime

from pydantic import Field, field_validator

from domain.base import ApiModel

MAX_TEXT_FIELD_SIZE = 500 * 1024


class PostFields(ApiModel):
    title: str = Field(min_length=1, max_length=300)
    slug: Optional[str] = Field(default=None, max_length=200)
    content: str = Field(min_length=1, max_length=MAX_TEXT_FIELD_SIZE)
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    published_at: Optional[datetime.datetime] = None
    tags: List[str] = Field(default_factory=list)
    hugging_face_model_title: Optional[str] = None
    hugging_face_model_url: Optional[str] = None
    hugging_face_placeholder: Optional[str] = None


class PostUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, max_length=MAX_TEXT_FIELD_SIZE)
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    published_at: Optional[datetime.datetime] = None
    tags: Optional[List[str]] = None
    hugging_face_model_title: Optional[str] = None
    hugging_face_model_url: Optional[str] = None
    hugging_face_placeholder: Optional[str] = None


class Post(ApiModel):
    id: str
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    published_at: datetime.datetime
    author_id: str
    tags: List[str] = Field(default_factory=list)
    hugging_face_model_title: Optional[str] = None
    hugging_face_model_url: Optional[str] = None
    hugging_face_placeholder: Optional[str] = None


class ProjectFields(ApiModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field(min_length=1)
    image_url: Optional[str] = None
    hugging_face_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True


class ProjectUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = Field(default=None, min_length=1)
    image_url: Optional[str] = None
    hugging_face_url: Optional[str] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class Project(ProjectFields):
    id: str


class MessageCreate(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    message: str = Field(min_length=1, max_length=10000)


class Message(MessageCreate):
    id: str
    created_at: datetime.datetime


class SubscriberCreate(ApiModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")


class Subscriber(SubscriberCreate):
    id: str
    created_at: datetime.datetime


class SocialLinks(ApiModel):
    github: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    huggingface: Optional[str] = None


class AboutPage(ApiModel):
    name: str = Field(min_length=1)
    title: str = Field(min_length=1)
    bio: str = Field(min_length=1)
    additional_bio: Optional[str] = None
    profile_image: Optional[str] = None
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    skills: List[str] = Field(default_factory=list)

    @field_validator("skills", mode="before")
    @classmethod
    def split_skills(cls, value):
        # The about form posts skills as one comma separated string
        if isinstance(value, str):
            return [skill.strip() for skill in value.split(",") if skill.strip()]
        return value
