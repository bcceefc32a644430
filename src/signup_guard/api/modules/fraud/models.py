import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from signup_guard.database.base import Base, DateTimeMixin, utcnow


class DeviceFingerprint(Base, DateTimeMixin):
    __tablename__ = "device_fingerprints"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    basic_hash: Mapped[str] = mapped_column(String(64), index=True)
    advanced_hash: Mapped[str] = mapped_column(String(64))

    ip_address: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    user_agent: Mapped[str] = mapped_column(String(2048), default="")
    platform: Mapped[str] = mapped_column(String(64), default="")
    language: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_mobile: Mapped[bool] = mapped_column(Boolean, default=False)

    first_seen: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    last_seen: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    seen_count: Mapped[int] = mapped_column(Integer, default=1)

    risk_score: Mapped[int] = mapped_column(Integer, default=0, index=True)
    risk_severity: Mapped[str] = mapped_column(String(16), default="LOW")
    risk_flags: Mapped[list] = mapped_column(JSON, default=list)

    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    flag_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    flagged_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    flagged_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    blocked_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    blocked_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    blocked_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    notes: Mapped[list] = mapped_column(JSON, default=list)

    accounts: Mapped[list["DeviceAccountLink"]] = relationship(
        lazy="selectin",
        order_by="DeviceAccountLink.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def account_ids(self) -> list[str]:
        return [link.account_id for link in self.accounts]


class DeviceAccountLink(Base, DateTimeMixin):
    """One row per (device, account) pair.

    ``slot`` is 0 for every link when a single account per device is
    enforced, which makes a second distinct account violate the
    (fingerprint, slot) constraint. It is NULL otherwise, and NULLs never
    collide.
    """

    __tablename__ = "device_account_links"
    __table_args__ = (
        UniqueConstraint("account_id", "fingerprint"),
        UniqueConstraint("fingerprint", "slot"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    fingerprint: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("device_fingerprints.fingerprint", ondelete="CASCADE"),
    )
    account_id: Mapped[str] = mapped_column(String(128), index=True)
    slot: Mapped[int | None] = mapped_column(Integer, nullable=True)
    linked_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


class NetworkRecord(Base, DateTimeMixin):
    __tablename__ = "network_records"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    ip_address: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    ip_version: Mapped[int] = mapped_column(Integer, default=4)

    is_vpn: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_proxy: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_tor: Mapped[bool] = mapped_column(Boolean, default=False)
    is_hosting: Mapped[bool] = mapped_column(Boolean, default=False)
    is_malicious: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    threat_score: Mapped[int] = mapped_column(Integer, default=0, index=True)
    threat_sources: Mapped[list] = mapped_column(JSON, default=list)

    country_iso: Mapped[str | None] = mapped_column(
        String(2), nullable=True, index=True
    )
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    organisation: Mapped[str | None] = mapped_column(String(256), nullable=True)
    hostname: Mapped[str | None] = mapped_column(String(255), nullable=True)

    total_requests: Mapped[int] = mapped_column(Integer, default=1)
    unique_accounts: Mapped[int] = mapped_column(Integer, default=0)
    first_seen: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    last_seen: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )

    reputation_score: Mapped[int] = mapped_column(Integer, default=50)
    risk_score: Mapped[int] = mapped_column(Integer, default=0, index=True)
    risk_severity: Mapped[str] = mapped_column(String(16), default="LOW")

    is_whitelisted: Mapped[bool] = mapped_column(
        Boolean, default=False, index=True
    )
    is_blacklisted: Mapped[bool] = mapped_column(
        Boolean, default=False, index=True
    )
    is_monitored: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    actions: Mapped[list["NetworkAction"]] = relationship(
        lazy="selectin",
        order_by="NetworkAction.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class NetworkAction(Base):
    """Append-only history of manual and automatic list changes."""

    __tablename__ = "network_actions"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    ip_address: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("network_records.ip_address", ondelete="CASCADE"),
        index=True,
    )
    action_type: Mapped[str] = mapped_column(String(16))
    reason: Mapped[str] = mapped_column(String(512))
    performed_by: Mapped[str] = mapped_column(String(128))
    performed_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


class NetworkAccountLink(Base, DateTimeMixin):
    __tablename__ = "network_account_links"
    __table_args__ = (UniqueConstraint("account_id", "ip_address"),)

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    ip_address: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("network_records.ip_address", ondelete="CASCADE"),
        index=True,
    )
    account_id: Mapped[str] = mapped_column(String(128))


class FraudAttempt(Base, DateTimeMixin):
    __tablename__ = "fraud_attempts"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    attempt_type: Mapped[str] = mapped_column(String(32), index=True)
    reason: Mapped[str] = mapped_column(Text)
    risk_score: Mapped[int] = mapped_column(Integer, index=True)
    flags: Mapped[list] = mapped_column(JSON, default=list)

    fingerprint: Mapped[str] = mapped_column(String(64), index=True)
    ip_address: Mapped[str] = mapped_column(String(64), index=True)
    user_agent: Mapped[str] = mapped_column(String(2048), default="")

    attempted_email: Mapped[str | None] = mapped_column(
        String(320), nullable=True, index=True
    )
    attempted_username: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    attempted_full_name: Mapped[str | None] = mapped_column(
        String(256), nullable=True
    )
    channel: Mapped[str] = mapped_column(String(32), index=True)
    referral_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    existing_accounts: Mapped[int] = mapped_column(Integer, default=0, index=True)
    existing_device_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    existing_network_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )

    country_iso: Mapped[str | None] = mapped_column(String(2), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_vpn: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_proxy: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    occurred_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )

    status: Mapped[str] = mapped_column(String(16), default="PENDING", index=True)
    reviewed: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reviewed_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class SignupEvent(Base, DateTimeMixin):
    """Ledger of confirmed account linkages, used for velocity checks."""

    __tablename__ = "signup_events"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    account_id: Mapped[str] = mapped_column(String(128), index=True)
    email: Mapped[str | None] = mapped_column(
        String(320), nullable=True, index=True
    )
    referral_code: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    ip_address: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    fingerprint: Mapped[str] = mapped_column(String(64), index=True)
    occurred_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
