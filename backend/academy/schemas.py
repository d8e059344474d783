# academy/schemas.py
from datetime import datetime, date
from typing import Any, Optional, Literal

from pydantic import BaseModel, EmailStr, Field

TicketType = Literal["bug", "suggestion", "question", "other"]
TicketStatus = Literal["open", "pending", "in_progress", "resolved", "closed"]
TicketPriority = Literal["low", "medium", "high"]
LessonType = Literal["video", "audio", "text"]


# -----------------------------
# AUTH
# -----------------------------
class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"

    user_id: Optional[int] = None
    is_admin: Optional[bool] = None


class SignupIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: Optional[str] = None


class PasswordResetRequestIn(BaseModel):
    email: EmailStr


class PasswordResetConfirmIn(BaseModel):
    token: str
    password: str = Field(min_length=6)


class AuthStateOut(BaseModel):
    state: str
    authenticated: bool
    membership_expired: bool = False
    access_end: Optional[datetime] = None
    redirect_to: Optional[str] = None
    notice: str = ""
    user: Optional[dict[str, Any]] = None


# -----------------------------
# PROFILE
# -----------------------------
class ProfileOut(BaseModel):
    id: int
    email: EmailStr
    name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None

    membership_type: Optional[str] = None
    subscription_date: Optional[date] = None
    renew_interval_days: Optional[int] = None

    disabled: bool
    is_admin: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileUpdateMe(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    # data URL or plain https URL
    avatar_url: Optional[str] = None


class AdminUserCreateIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: Optional[str] = None
    membership_type: str = "TOP G - Monthly"
    renew_interval_days: Optional[int] = Field(default=None, ge=0)
    subscription_date: Optional[date] = None
    is_admin: bool = False


class AdminUserUpdateIn(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    membership_type: Optional[str] = None
    renew_interval_days: Optional[int] = Field(default=None, ge=0)
    subscription_date: Optional[date] = None
    is_admin: Optional[bool] = None


class AdminRenewIn(BaseModel):
    membership_type: Optional[str] = None
    renew_interval_days: Optional[int] = Field(default=None, ge=0)


class AdminDisabledIn(BaseModel):
    disabled: bool


class AdminPasswordResetIn(BaseModel):
    password: str = Field(min_length=6)


# -----------------------------
# MEMBERSHIP
# -----------------------------
class SubscriptionOut(BaseModel):
    membership_type: str
    display_name: str
    subscription_date: Optional[date] = None
    renew_interval_days: Optional[int] = None
    access_end: Optional[datetime] = None
    days_until_renewal: Optional[int] = None
    expired: bool


class JailOut(BaseModel):
    name: str
    membership_type: str
    expired_since: Optional[datetime] = None
    notice: str
    contact_url: str


# -----------------------------
# COURSES
# -----------------------------
class LessonOut(BaseModel):
    id: int
    course_id: int
    module_id: int
    title: str
    description: Optional[str] = None
    lesson_type: Optional[str] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    duration: Optional[int] = None
    locked: bool
    transcript: Optional[str] = None
    text_content: Optional[str] = None
    resources: list[Any] = []
    notes: list[Any] = []
    order: int

    class Config:
        from_attributes = True


class LessonSummaryOut(BaseModel):
    id: int
    module_id: int
    title: str
    lesson_type: Optional[str] = None
    duration: Optional[int] = None
    locked: bool
    order: int

    class Config:
        from_attributes = True


class ModuleOut(BaseModel):
    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    icon_url: Optional[str] = None
    order: int
    locked: bool

    class Config:
        from_attributes = True


class CourseOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    instructor: Optional[str] = None
    order: int
    locked: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CourseIn(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    instructor: Optional[str] = None
    order: Optional[int] = None
    locked: bool = False


class CourseUpdateIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    instructor: Optional[str] = None
    order: Optional[int] = None
    locked: Optional[bool] = None


class ModuleIn(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    icon_url: Optional[str] = None
    order: Optional[int] = None
    locked: bool = False


class ModuleUpdateIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    icon_url: Optional[str] = None
    order: Optional[int] = None
    locked: Optional[bool] = None


class LessonIn(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    lesson_type: LessonType = "video"
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    locked: bool = False
    transcript: Optional[str] = None
    text_content: Optional[str] = None
    resources: list[Any] = []
    notes: list[Any] = []
    order: Optional[int] = None


class LessonUpdateIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    lesson_type: Optional[LessonType] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    locked: Optional[bool] = None
    transcript: Optional[str] = None
    text_content: Optional[str] = None
    resources: Optional[list[Any]] = None
    notes: Optional[list[Any]] = None
    order: Optional[int] = None


class LessonBulkIn(BaseModel):
    lessons: list[LessonIn] = Field(min_length=1)


class ReorderIn(BaseModel):
    ids: list[int] = Field(min_length=1)


class ContinueLearningOut(BaseModel):
    course_id: int
    course_title: str
    module_id: int
    lesson_id: int
    lesson_title: str
    lesson_order: int
    watched_at: datetime


# -----------------------------
# COMMENTS
# -----------------------------
class CommentIn(BaseModel):
    body: str = Field(min_length=1, max_length=5000)


class CommentOut(BaseModel):
    id: int
    course_id: int
    module_id: int
    lesson_id: int
    user_id: int
    body: str
    created_at: datetime
    author_name: Optional[str] = None
    author_avatar: Optional[str] = None


# -----------------------------
# DAILY DROPS
# -----------------------------
class DailyDropIn(BaseModel):
    text: str = Field(min_length=1)
    image: Optional[str] = None
    custom_date: Optional[datetime] = None


class DailyDropUpdateIn(BaseModel):
    text: Optional[str] = None
    image: Optional[str] = None
    custom_date: Optional[datetime] = None


class DailyDropOut(BaseModel):
    id: int
    text: str
    image: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# -----------------------------
# PROFIT
# -----------------------------
class ProfitIn(BaseModel):
    amount: float
    currency: str = "USD"
    description: str = ""
    metadata: Optional[dict[str, Any]] = None


class ProfitUpdateIn(BaseModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ProfitOut(BaseModel):
    id: int
    amount: float
    currency: str
    description: str
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="details")
    created_at: datetime

    class Config:
        from_attributes = True


class ProfitSummaryOut(BaseModel):
    totals: dict[str, float]
    count: int
    this_month: dict[str, float]


# -----------------------------
# ACTIVITY
# -----------------------------
class PageVisitIn(BaseModel):
    page: str = Field(min_length=1)
    title: Optional[str] = None


class ActivityOut(BaseModel):
    id: int
    user_id: int
    action: str
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    created_at: datetime

    class Config:
        from_attributes = True


class StudentOut(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    membership_type: Optional[str] = None
    disabled: bool
    membership_expired: bool
    last_action: Optional[str] = None
    last_active_at: Optional[datetime] = None


# -----------------------------
# SUPPORT
# -----------------------------
class TicketCreateIn(BaseModel):
    ticket_type: TicketType = "question"
    subject: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    priority: TicketPriority = "medium"
    context: dict[str, Any] = {}
    image: Optional[str] = None


class TicketStatusIn(BaseModel):
    status: TicketStatus


class TicketAssignIn(BaseModel):
    assigned_to: Optional[int] = None


class MessageIn(BaseModel):
    body: str = Field(min_length=1)
    image: Optional[str] = None


class MessageUpdateIn(BaseModel):
    body: str = Field(min_length=1)


class MessageOut(BaseModel):
    id: int
    ticket_id: int
    sender_id: int
    sender_name: str
    sender_email: str
    body: str
    image: Optional[str] = None
    is_admin: bool
    created_at: datetime
    edited_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TicketOut(BaseModel):
    id: int
    user_id: int
    user_name: str
    user_email: str
    ticket_type: str
    subject: str
    description: str
    status: str
    priority: str
    context: dict[str, Any] = {}
    assigned_to: Optional[int] = None
    assigned_to_name: Optional[str] = None
    message_count: int
    unread_count: int
    admin_unread_count: int
    last_message_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TicketDetailOut(TicketOut):
    messages: list[MessageOut] = []


class UserTicketCountOut(BaseModel):
    user_id: int
    user_name: str
    user_email: str
    open: int
    total: int
    unread: int


class SupportStatsOut(BaseModel):
    total: int
    by_status: dict[str, int]
    created_today: int
    messages_today: int
    unread: int
