from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class Club(str, enum.Enum):
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


class EventType(str, enum.Enum):
    SOLO = "solo"
    GROUP = "group"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TeamGender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    MIXED = "Mixed"


class MemberRegistrationType(str, enum.Enum):
    INVITE = "invite"
    DIRECT = "direct"


class InviteStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    user_code = Column(String(20), unique=True, index=True, nullable=False)  # FUID0001
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    is_superadmin = Column(Boolean, default=False, nullable=False)
    club = Column(SQLEnum(Club), nullable=True)
    assigned_event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL", use_alter=True, name="fk_users_assigned_event"), nullable=True)
    year = Column(String(20), nullable=True)
    dept = Column(String(150), nullable=True)
    level = Column(String(50), nullable=True)
    degree = Column(String(50), nullable=True)
    college = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    gender = Column(String(10), nullable=True)
    phone = Column(String(20), nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    is_present = Column(Boolean, default=False, nullable=False)
    is_winner = Column(Boolean, default=False, nullable=False)

    email_verification_token_hash = Column(String(64), nullable=True, index=True)
    email_verification_expires_at = Column(DateTime(timezone=True), nullable=True)
    email_verification_sent_at = Column(DateTime(timezone=True), nullable=True)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    password_reset_token_hash = Column(String(64), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime(timezone=True), nullable=True)
    password_reset_sent_at = Column(DateTime(timezone=True), nullable=True)
    otp_hash = Column(String(64), nullable=True)
    otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    otp_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    assigned_event = relationship("Event", foreign_keys=[assigned_event_id])

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Counter(Base):
    __tablename__ = "counters"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(50), unique=True, nullable=False)
    seq = Column(Integer, default=0, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(150), unique=True, index=True, nullable=False)
    name = Column(String(255), unique=True, nullable=False)
    event_type = Column(SQLEnum(EventType), default=EventType.SOLO, nullable=False)
    min_team_size = Column(Integer, default=1, nullable=False)
    max_team_size = Column(Integer, default=1, nullable=False)
    club_in_charge = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    event_date = Column(DateTime(timezone=True), nullable=True)
    venue = Column(String(255), nullable=True)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    max_participants = Column(Integer, nullable=True)
    organizing_club = Column(String(100), nullable=True)
    coordinator_name = Column(String(255), nullable=True)
    coordinator_dept = Column(String(150), nullable=True)
    rules = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    max_applications = Column(Integer, nullable=True)
    application_deadline = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    has_gender_based_teams = Column(Boolean, default=False, nullable=False)
    max_boy_teams = Column(Integer, nullable=True)
    max_girl_teams = Column(Integer, nullable=True)
    registration_amount = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    applications = relationship(
        "EventApplication",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventApplication.id",
    )
    staff_incharges = relationship(
        "EventStaffIncharge",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventStaffIncharge.id",
    )


class EventApplication(Base):
    __tablename__ = "event_applications"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_application_user"),)

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    applied_at = Column(DateTime(timezone=True), server_default=func.now())
    status = Column(SQLEnum(ApplicationStatus), default=ApplicationStatus.PENDING, nullable=False)
    is_present = Column(Boolean, default=False, nullable=False)
    is_winner = Column(Boolean, default=False, nullable=False)
    winner_rank = Column(Integer, nullable=True)

    event = relationship("Event", back_populates="applications")
    user = relationship("User")


class EventStaffIncharge(Base):
    __tablename__ = "event_staff_incharges"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    admin_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    club = Column(String(100), nullable=True)

    event = relationship("Event", back_populates="staff_incharges")


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    team_name = Column(String(255), nullable=False)
    leader_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_registered = Column(Boolean, default=False, nullable=False)
    registered_at = Column(DateTime(timezone=True), nullable=True)
    registered_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    max_members = Column(Integer, default=6, nullable=False)
    team_gender = Column(SQLEnum(TeamGender), nullable=True)
    is_invalidated = Column(Boolean, default=False, nullable=False)
    invalidated_at = Column(DateTime(timezone=True), nullable=True)
    invalidated_reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    event = relationship("Event")
    leader = relationship("User", foreign_keys=[leader_id])
    members = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamMember.id",
    )


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    mobile = Column(String(20), nullable=True)
    dept = Column(String(150), nullable=True)
    year = Column(String(20), nullable=True)
    degree = Column(String(50), nullable=True)
    gender = Column(String(10), nullable=True)
    registration_type = Column(SQLEnum(MemberRegistrationType), default=MemberRegistrationType.INVITE, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")
    user = relationship("User")


class Invite(Base):
    __tablename__ = "invites"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    inviter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    invitee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(InviteStatus), default=InviteStatus.PENDING, nullable=False)
    message = Column(String(255), default="wants to invite you to join their team", nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event")
    team = relationship("Team")
    inviter = relationship("User", foreign_keys=[inviter_id])
    invitee = relationship("User", foreign_keys=[invitee_id])


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    event_name = Column(String(255), nullable=False)
    event_type = Column(SQLEnum(EventType), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    team_name = Column(String(255), nullable=True)
    registrant_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    registrant_email = Column(String(255), nullable=False)
    participant_name = Column(String(255), nullable=False)
    participant_email = Column(String(255), nullable=True)
    participant_mobile = Column(String(20), nullable=True)
    level = Column(String(10), nullable=False)
    degree = Column(String(50), nullable=False)
    department = Column(String(150), nullable=False)
    custom_department = Column(String(150), nullable=True)
    year = Column(String(20), nullable=False)
    gender = Column(String(10), nullable=False)
    college_name = Column(String(255), nullable=False)
    college_city = Column(String(120), nullable=False)
    college_state = Column(String(120), default="Not Specified", nullable=False)
    registration_type = Column(SQLEnum(MemberRegistrationType), default=MemberRegistrationType.DIRECT, nullable=False)
    registration_date = Column(DateTime(timezone=True), server_default=func.now())
    is_active = Column(Boolean, default=True, nullable=False)

    @property
    def full_department(self) -> str:
        if self.department == "Other" and self.custom_department:
            return self.custom_department
        return self.department


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(100), nullable=False, index=True)
    payment_id = Column(String(100), nullable=False)
    signature = Column(String(255), nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String(10), default="INR", nullable=False)
    status = Column(Boolean, default=False, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AdminInvite(Base):
    __tablename__ = "admin_invites"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    club_name = Column(SQLEnum(Club), nullable=False)
    invite_token_hash = Column(String(64), unique=True, nullable=False)
    invite_token_expires_at = Column(DateTime(timezone=True), nullable=False)
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event")


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, nullable=True)
    admin_email = Column(String(255), nullable=False)
    admin_name = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(255), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
