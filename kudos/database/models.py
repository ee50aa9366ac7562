"""
kudos.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- students                 — Student profile + cached point aggregates
- ledger                   — Append-only signed point transactions
- catalog_items            — Avatars, effects, corner borders, card plates
- student_loadouts         — Currently equipped item per slot
- student_custom_unlocks   — Permanent purchase/grant records
- level_thresholds         — Optional explicit level → min lifetime points
- unlock_criteria          — Named eligibility flags
- item_criterion_requirements — Catalog item → criterion links
- student_criterion_fulfillments — Per-student criterion state
- challenges / challenge_tier_defaults / student_challenges /
  challenge_completions    — Repeatable challenge awards
- roulette_spins           — Prize-wheel results awaiting confirmation
- gift_items / student_gifts / gift_open_events — Gift inventory
- settings                 — Admin-configurable key-value store
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from kudos.constants import utcnow


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Kudos ORM models."""


# ---------------------------------------------------------------------------
# Students — aggregates are a cache written only by recompute
# ---------------------------------------------------------------------------
class Student(Base):
    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    points_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_competition_team: Mapped[bool] = mapped_column(Boolean, default=False)
    aggregates_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    ledger_entries: Mapped[list[LedgerEntry]] = relationship(
        back_populates="student", cascade="all, delete-orphan"
    )
    loadout: Mapped[StudentLoadout | None] = relationship(
        back_populates="student", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Student id={self.id} name={self.name!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# LedgerEntry — append-only point journal with idempotent insert
# ---------------------------------------------------------------------------
class LedgerEntry(Base):
    __tablename__ = "ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    points_base: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="manual")
    source_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    student: Mapped[Student] = relationship(back_populates="ledger_entries")

    __table_args__ = (
        # Backstop for externally-retriable grants
        Index(
            "ix_ledger_source_idempotent",
            "source_type",
            "source_id",
            unique=True,
            postgresql_where=(source_type.isnot(None) & source_id.isnot(None)),
            sqlite_where=(source_type.isnot(None) & source_id.isnot(None)),
        ),
        Index("ix_ledger_student_time", "student_id", "created_at"),
        Index("ix_ledger_category_time", "category", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} student={self.student_id} "
            f"points={self.points} category={self.category!r}>"
        )


# ---------------------------------------------------------------------------
# CatalogItem — cosmetic items with unlock gates and modifier fields
# ---------------------------------------------------------------------------
class CatalogItem(Base):
    """One cosmetic item.  ``item_type`` selects the loadout slot.

    Modifier columns are nullable: NULL means the item does not define that
    modifier and contributes nothing to the student's stack.
    """
    __tablename__ = "catalog_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(150), nullable=False, default="")
    unlock_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unlock_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    limited_event_only: Mapped[bool] = mapped_column(Boolean, default=False)
    competition_only: Mapped[bool] = mapped_column(Boolean, default=False)
    is_secondary: Mapped[bool] = mapped_column(Boolean, default=False)

    # Multiplicative modifiers (1.0 = no effect)
    rule_keeper_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)
    rule_breaker_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)
    skill_pulse_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)
    spotlight_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Additive modifiers
    daily_free_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    challenge_completion_bonus_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    mvp_bonus_pct: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("item_type", "key", name="uq_catalog_items_type_key"),
        Index("ix_catalog_items_type_level", "item_type", "unlock_level"),
    )

    def __repr__(self) -> str:
        return f"<CatalogItem {self.item_type}:{self.key} lvl={self.unlock_level}>"


# ---------------------------------------------------------------------------
# StudentLoadout — equipped key per slot
# ---------------------------------------------------------------------------
class StudentLoadout(Base):
    __tablename__ = "student_loadouts"

    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), primary_key=True
    )
    avatar_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    effect_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    corner_border_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    card_plate_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    avatar_set_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    avatar_daily_granted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Bumped by each daily claim; claims are conditional on the value read
    daily_claim_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow,
        server_default=func.now(),
    )

    student: Mapped[Student] = relationship(back_populates="loadout")

    def slot_key(self, item_type: str) -> str | None:
        return getattr(self, f"{item_type}_key")

    def __repr__(self) -> str:
        return f"<StudentLoadout student={self.student_id} avatar={self.avatar_key!r}>"


# ---------------------------------------------------------------------------
# StudentCustomUnlock — permanent, idempotent unlock record
# ---------------------------------------------------------------------------
class StudentCustomUnlock(Base):
    __tablename__ = "student_custom_unlocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    item_key: Mapped[str] = mapped_column(String(100), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="purchase")
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "student_id", "item_type", "item_key",
            name="uq_custom_unlocks_student_item",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<StudentCustomUnlock student={self.student_id} "
            f"item={self.item_type}:{self.item_key}>"
        )


# ---------------------------------------------------------------------------
# LevelThreshold — explicit override table (replaces the generated curve)
# ---------------------------------------------------------------------------
class LevelThreshold(Base):
    __tablename__ = "level_thresholds"

    level: Mapped[int] = mapped_column(Integer, primary_key=True)
    min_lifetime_points: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<LevelThreshold level={self.level} min={self.min_lifetime_points}>"


# ---------------------------------------------------------------------------
# Unlock criteria — named flags linked to catalog items
# ---------------------------------------------------------------------------
class UnlockCriterion(Base):
    __tablename__ = "unlock_criteria"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    label: Mapped[str] = mapped_column(String(150), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<UnlockCriterion key={self.key!r}>"


class ItemCriterionRequirement(Base):
    __tablename__ = "item_criterion_requirements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    item_key: Mapped[str] = mapped_column(String(100), nullable=False)
    criteria_key: Mapped[str] = mapped_column(
        String(100), ForeignKey("unlock_criteria.key", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "item_type", "item_key", "criteria_key",
            name="uq_item_criterion_requirement",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ItemCriterionRequirement {self.item_type}:{self.item_key} "
            f"needs={self.criteria_key!r}>"
        )


class StudentCriterionFulfillment(Base):
    __tablename__ = "student_criterion_fulfillments"

    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), primary_key=True
    )
    criteria_key: Mapped[str] = mapped_column(
        String(100), ForeignKey("unlock_criteria.key", ondelete="CASCADE"),
        primary_key=True,
    )
    fulfilled: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<StudentCriterionFulfillment student={self.student_id} "
            f"key={self.criteria_key!r} fulfilled={self.fulfilled}>"
        )


# ---------------------------------------------------------------------------
# Challenges — repeatable awards with windowed limits
# ---------------------------------------------------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    tier: Mapped[str | None] = mapped_column(String(30), nullable=True)
    points_awarded: Mapped[int | None] = mapped_column(Integer, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    limit_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="once")
    limit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    limit_window_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    daily_limit_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Challenge id={self.id} name={self.name!r} mode={self.limit_mode}>"


class ChallengeTierDefault(Base):
    __tablename__ = "challenge_tier_defaults"

    tier: Mapped[str] = mapped_column(String(30), primary_key=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ChallengeTierDefault tier={self.tier!r} points={self.points}>"


class StudentChallenge(Base):
    __tablename__ = "student_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    tier: Mapped[str | None] = mapped_column(String(30), nullable=True)
    points_awarded: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("student_id", "challenge_id", name="uq_student_challenges"),
    )

    def __repr__(self) -> str:
        return (
            f"<StudentChallenge student={self.student_id} "
            f"challenge={self.challenge_id} completed={self.completed}>"
        )


class ChallengeCompletion(Base):
    __tablename__ = "challenge_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    tier: Mapped[str | None] = mapped_column(String(30), nullable=True)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ledger_entry_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ledger.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        Index(
            "ix_challenge_completions_lookup",
            "student_id", "challenge_id", "completed_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ChallengeCompletion student={self.student_id} "
            f"challenge={self.challenge_id} at={self.completed_at}>"
        )


# ---------------------------------------------------------------------------
# RouletteSpin — prize-wheel outcome, granted once on confirmation
# ---------------------------------------------------------------------------
class RouletteSpin(Base):
    __tablename__ = "roulette_spins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    wheel_name: Mapped[str] = mapped_column(String(100), nullable=False, default="Prize Wheel")
    segment_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    points_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prize_text: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    confirmed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<RouletteSpin id={self.id} student={self.student_id} delta={self.points_delta}>"


# ---------------------------------------------------------------------------
# Gifts — per-student quantities consumed by conditional update
# ---------------------------------------------------------------------------
class GiftItem(Base):
    __tablename__ = "gift_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False, default="item")
    points_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<GiftItem id={self.id} name={self.name!r} points={self.points_value}>"


class StudentGift(Base):
    __tablename__ = "student_gifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    gift_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("gift_items.id", ondelete="CASCADE"), nullable=False
    )
    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    opened_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    granted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow,
        server_default=func.now(),
    )

    gift_item: Mapped[GiftItem] = relationship()

    __table_args__ = (
        Index("ix_student_gifts_student", "student_id"),
    )

    def __repr__(self) -> str:
        return f"<StudentGift id={self.id} opened={self.opened_qty}/{self.qty}>"


class GiftOpenEvent(Base):
    __tablename__ = "gift_open_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    student_gift_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("student_gifts.id", ondelete="CASCADE"), nullable=False
    )
    gift_item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_before_open: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_after_open: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ledger_entry_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<GiftOpenEvent id={self.id} gift={self.student_gift_id}>"


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Gameplay tuning knobs (level curve base jump and difficulty) live here so
    staff can adjust values without redeploying.  Values are stored as JSON
    strings; typed accessors live in :mod:`kudos.services.settings_service`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
