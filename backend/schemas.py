from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Union
from enum import Enum
from datetime import datetime


class UserRoleEnum(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ClubEnum(str, Enum):
    FINE_ARTS = "FINE ARTS"
    LITERARY = "LITERARY"
    PHOTOGRAPHY = "PHOTOGRAPHY"
    BLUESKY = "BLUESKY"
    INNOVATIVE = "INNOVATIVE"
    NATURE = "NATURE"
    HEALTH = "HEALTH"
    SUSTAINABLE = "SUSTAINABLE"
    RIFLE = "RIFLE"
    CONSUMER = "CONSUMER"
    NCC = "NCC"
    READERS = "READERS"
    NSS = "NSS"
    HERITAGE = "HERITAGE"


class EventTypeEnum(str, Enum):
    SOLO = "solo"
    GROUP = "group"


class GenderEnum(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class LevelEnum(str, Enum):
    UG = "UG"
    PG = "PG"
    PHD = "PhD"


DEGREE_OPTIONS = {
    "BE", "BTech", "BA", "BSc", "BCom", "BBA_BMS", "BCA", "Other_Undergraduate",
    "Postgraduate_Common", "MA", "MSc", "MCom", "MBA", "MCA", "MSW", "PhD", "M.E.",
    "UG", "PG",
}


def _strip_or_none(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# User Schemas
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=30)
    year: Optional[str] = None
    dept: Optional[str] = None
    level: Optional[LevelEnum] = None
    degree: Optional[str] = None
    college: Optional[str] = None
    city: Optional[str] = None
    gender: Optional[GenderEnum] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return str(v).strip().lower()

    @field_validator("year", "dept", "degree", "college", "city", "phone", mode="before")
    @classmethod
    def normalize_text(cls, v):
        return _strip_or_none(v)

    @field_validator("degree")
    @classmethod
    def validate_degree(cls, v):
        if v is not None and v not in DEGREE_OPTIONS:
            raise ValueError("Invalid degree selected")
        return v


class SigninRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class OtpVerifyRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=4, max_length=10)


class EmailOnlyRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=6, max_length=30)
    confirm_password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class FindUserRequest(BaseModel):
    email: Optional[str] = None
    user_code: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    user_code: str
    name: str
    email: str
    role: UserRoleEnum
    is_superadmin: bool
    club: Optional[ClubEnum] = None
    assigned_event_id: Optional[int] = None
    year: Optional[str] = None
    dept: Optional[str] = None
    level: Optional[str] = None
    degree: Optional[str] = None
    college: Optional[str] = None
    city: Optional[str] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    is_verified: bool
    is_present: bool = False
    is_winner: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserBrief(BaseModel):
    id: int
    user_code: str
    name: str
    email: str
    dept: Optional[str] = None
    year: Optional[str] = None
    gender: Optional[str] = None

    class Config:
        from_attributes = True


# Event Schemas
class EventCreate(BaseModel):
    name: Optional[str] = None
    event_type: EventTypeEnum = EventTypeEnum.SOLO
    min_team_size: Optional[int] = Field(None, ge=1, le=50)
    max_team_size: Optional[int] = Field(None, ge=1, le=50)
    club_in_charge: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    venue: Optional[str] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=0)
    organizing_club: Optional[str] = None
    coordinator_name: Optional[str] = None
    coordinator_dept: Optional[str] = None
    rules: List[str] = Field(default_factory=list)
    is_active: bool = True
    max_applications: Optional[int] = Field(None, ge=0)
    application_deadline: Optional[datetime] = None
    has_gender_based_teams: bool = False
    max_boy_teams: Optional[int] = Field(None, ge=0)
    max_girl_teams: Optional[int] = Field(None, ge=0)
    registration_amount: Optional[float] = None

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, v):
        return _strip_or_none(v)


class EventUpdate(BaseModel):
    name: Optional[str] = None
    event_type: Optional[EventTypeEnum] = None
    min_team_size: Optional[int] = Field(None, ge=1, le=50)
    max_team_size: Optional[int] = Field(None, ge=1, le=50)
    club_in_charge: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    venue: Optional[str] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=0)
    organizing_club: Optional[str] = None
    coordinator_name: Optional[str] = None
    coordinator_dept: Optional[str] = None
    rules: Optional[List[str]] = None
    is_active: Optional[bool] = None
    max_applications: Optional[int] = Field(None, ge=0)
    application_deadline: Optional[datetime] = None
    has_gender_based_teams: Optional[bool] = None
    max_boy_teams: Optional[int] = Field(None, ge=0)
    max_girl_teams: Optional[int] = Field(None, ge=0)
    registration_amount: Optional[float] = None


class StaffInchargeResponse(BaseModel):
    admin_id: int
    name: str
    email: str
    club: Optional[str] = None

    class Config:
        from_attributes = True


class EventResponse(BaseModel):
    id: int
    event_id: str = Field(validation_alias=AliasChoices("event_id", "slug"))
    name: str
    event_type: EventTypeEnum
    min_team_size: int
    max_team_size: int
    club_in_charge: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    venue: Optional[str] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None
    organizing_club: Optional[str] = None
    coordinator_name: Optional[str] = None
    coordinator_dept: Optional[str] = None
    rules: Optional[List[str]] = None
    is_active: bool
    max_applications: Optional[int] = None
    application_deadline: Optional[datetime] = None
    created_by: Optional[int] = None
    has_gender_based_teams: bool
    max_boy_teams: Optional[int] = None
    max_girl_teams: Optional[int] = None
    registration_amount: int = 0
    staff_incharges: List[StaffInchargeResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EventListItem(EventResponse):
    registered_teams_count: int = 0
    total_teams_count: int = 0
    actual_seats_taken: int = 0
    available_seats: Optional[int] = None


class ApplicationResponse(BaseModel):
    user_id: int
    team_id: Optional[int] = None
    applied_at: Optional[datetime] = None
    status: str
    is_present: bool = False
    is_winner: bool = False
    winner_rank: Optional[int] = None

    class Config:
        from_attributes = True


class SoloRegistrationRequest(BaseModel):
    event_id: str = Field(..., min_length=1)


class GroupRegistrationRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    team_name: Optional[str] = None


class DirectParticipant(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    level: Optional[LevelEnum] = None
    degree: Optional[str] = None
    dept: Optional[str] = None
    custom_dept: Optional[str] = None
    year: Optional[str] = None
    gender: Optional[GenderEnum] = None

    @field_validator("name", "email", "mobile", "degree", "dept", "custom_dept", "year", mode="before")
    @classmethod
    def normalize_text(cls, v):
        return _strip_or_none(v)


class DirectRegistrationRequest(BaseModel):
    event_id: Optional[str] = None
    team_name: Optional[str] = None
    participants: Optional[List[DirectParticipant]] = None
    college_name: Optional[str] = None
    college_city: Optional[str] = None
    college_state: Optional[str] = None


# Team Schemas
class TeamMemberResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    dept: Optional[str] = None
    year: Optional[str] = None
    degree: Optional[str] = None
    gender: Optional[str] = None
    registration_type: str
    joined_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TeamResponse(BaseModel):
    id: int
    event_id: int
    event_name: Optional[str] = None
    event_code: Optional[str] = None
    team_name: str
    leader_id: int
    is_registered: bool
    registered_at: Optional[datetime] = None
    max_members: int
    team_gender: Optional[str] = None
    is_invalidated: bool = False
    invalidated_reason: Optional[str] = None
    members: List[TeamMemberResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class TeamCreateRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    team_name: str = Field(..., min_length=1, max_length=255)


class TeamCreateWithInvitesRequest(TeamCreateRequest):
    user_ids: List[Union[int, str]] = Field(default_factory=list)


class TeamInviteRequest(BaseModel):
    team_id: int
    user_ids: List[Union[int, str]] = Field(..., min_length=1)


class TeamAddMembersRequest(BaseModel):
    user_ids: List[Union[int, str]] = Field(..., min_length=1)


class TeamRegisterRequest(BaseModel):
    team_id: int


class InviteRespondRequest(BaseModel):
    response: str


class InviteResponse(BaseModel):
    id: int
    event_id: int
    team_id: int
    inviter_id: int
    invitee_id: int
    status: str
    message: str
    is_read: bool
    responded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    inviter_name: Optional[str] = None
    invitee_name: Optional[str] = None
    team_name: Optional[str] = None
    event_name: Optional[str] = None


# Admin Schemas
class AttendanceEntry(BaseModel):
    user_id: int
    is_present: bool


class AttendanceUpdateRequest(BaseModel):
    attendance: Optional[List[AttendanceEntry]] = None


class WinnerEntry(BaseModel):
    user_id: Optional[int] = None
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    winner_rank: Optional[int] = Field(None, ge=1)


class WinnersUpdateRequest(BaseModel):
    winners: Optional[List[WinnerEntry]] = None


class RegistrationAttendanceRequest(BaseModel):
    attended: Optional[bool] = None


class RoleUpdateRequest(BaseModel):
    role: str
    club: Optional[str] = None
    event_id: Optional[str] = None


class AdminLogResponse(BaseModel):
    id: int
    admin_id: Optional[int] = None
    admin_email: str
    admin_name: str
    action: str
    method: Optional[str] = None
    path: Optional[str] = None
    meta: Optional[dict] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AdminInviteCreate(BaseModel):
    email: Optional[str] = None
    club: Optional[str] = None
    event_id: Optional[str] = None


class AdminSignupRequest(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    gender: Optional[GenderEnum] = None


class AdminInviteResponse(BaseModel):
    id: int
    email: str
    event_id: int
    event_name: Optional[str] = None
    club_name: str
    is_used: bool
    used_at: Optional[datetime] = None
    invite_token_expires_at: datetime
    created_at: Optional[datetime] = None


# Payment Schemas
class CreateOrderRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    amount: Optional[int] = None
    currency: Optional[str] = "INR"
    user_data: SignupRequest


class TransactionResponse(BaseModel):
    id: int
    order_id: str
    payment_id: str
    amount: int
    currency: str
    status: bool
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
