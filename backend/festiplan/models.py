from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Date, DateTime, Integer, Numeric, String, Text


class Base(DeclarativeBase):
    pass


class ContactState(StrEnum):
    NOT_CONTACTED = "pas_contacte"
    CONTACTED = "contacte"
    IN_DISCUSSION = "en_discussion"
    RESERVED = "reserve"
    GAME_LIST_REQUESTED = "liste_jeux_demandee"
    GAME_LIST_RECEIVED = "liste_jeux_obtenue"
    GAMES_RECEIVED = "jeux_recus"


class PresenceState(StrEnum):
    UNDEFINED = "non_defini"
    PRESENT = "present"
    CONSIDERED_ABSENT = "considere_absent"
    ABSENT = "absent"


class PaymentStatus(StrEnum):
    UNPAID = "non_paye"
    PARTIAL = "partiel"
    PAID = "paye"


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


def _money() -> Numeric:
    return Numeric(10, 2, asdecimal=True)


class Festival(Base):
    __tablename__ = "festivals"
    __table_args__ = (
        UniqueConstraint("name", name="uq_festivals_name"),
        CheckConstraint("total_tables >= 1", name="chk_festivals_total_tables"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_tables: Mapped[int] = mapped_column(Integer, nullable=False)
    outlet_unit_price: Mapped[Optional[Decimal]] = mapped_column(_money(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    tariff_zones: Mapped[list["TariffZone"]] = relationship(back_populates="festival")
    plan_zones: Mapped[list["PlanZone"]] = relationship(back_populates="festival")


class FestivalRegistry(Base):
    """Single row holding the pointer to the current festival."""

    __tablename__ = "festival_registry"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    current_festival_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("festivals.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class TariffZone(Base):
    __tablename__ = "tariff_zones"
    __table_args__ = (
        CheckConstraint("table_quota >= 0", name="chk_tariff_zones_quota"),
        CheckConstraint("price_per_table >= 0", name="chk_tariff_zones_price"),
        UniqueConstraint("festival_id", "name", name="uq_tariff_zones_name"),
        Index("idx_tariff_zones_festival", "festival_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    festival_id: Mapped[int] = mapped_column(ForeignKey("festivals.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    table_quota: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_table: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    price_per_area: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    festival: Mapped["Festival"] = relationship(back_populates="tariff_zones")


class PlanZone(Base):
    __tablename__ = "plan_zones"
    __table_args__ = (
        CheckConstraint("table_quota >= 0", name="chk_plan_zones_quota"),
        UniqueConstraint("festival_id", "name", name="uq_plan_zones_name"),
        Index("idx_plan_zones_festival", "festival_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    festival_id: Mapped[int] = mapped_column(ForeignKey("festivals.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    table_quota: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    festival: Mapped["Festival"] = relationship(back_populates="plan_zones")
    games: Mapped[list["GameInstance"]] = relationship(back_populates="plan_zone")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("outlet_count >= 0", name="chk_res_outlet_count"),
        UniqueConstraint("festival_id", "reservant_id", name="uq_res_festival_reservant"),
        Index("idx_res_festival", "festival_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    festival_id: Mapped[int] = mapped_column(ForeignKey("festivals.id", ondelete="CASCADE"), nullable=False)
    reservant_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contact_state: Mapped[ContactState] = mapped_column(
        _str_enum(ContactState), nullable=False, default=ContactState.NOT_CONTACTED
    )
    presence_state: Mapped[PresenceState] = mapped_column(
        _str_enum(PresenceState), nullable=False, default=PresenceState.UNDEFINED
    )
    outlet_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # discount expressed in table-equivalents, may be fractional
    table_discount: Mapped[Decimal] = mapped_column(_money(), nullable=False, default=Decimal("0"))
    amount_discount: Mapped[Decimal] = mapped_column(_money(), nullable=False, default=Decimal("0"))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    will_animate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    commitments: Mapped[list["ReservationZone"]] = relationship(
        back_populates="reservation", cascade="all, delete-orphan", passive_deletes=True
    )
    games: Mapped[list["GameInstance"]] = relationship(
        back_populates="reservation", cascade="all, delete-orphan", passive_deletes=True
    )
    contacts: Mapped[list["ReservationContact"]] = relationship(
        back_populates="reservation", cascade="all, delete-orphan", passive_deletes=True
    )


class ReservationZone(Base):
    """Tables committed by a reservation in a tariff zone, with the price captured at commit time."""

    __tablename__ = "reservation_zones"
    __table_args__ = (
        CheckConstraint("table_count >= 1", name="chk_res_zones_table_count"),
        Index("idx_res_zones_reservation", "reservation_id"),
        Index("idx_res_zones_zone", "tariff_zone_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    tariff_zone_id: Mapped[int] = mapped_column(ForeignKey("tariff_zones.id", ondelete="RESTRICT"), nullable=False)
    table_count: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservation: Mapped["Reservation"] = relationship(back_populates="commitments")
    tariff_zone: Mapped["TariffZone"] = relationship()


class ReservationContact(Base):
    """One logged exchange (call, mail, reminder) with the reservant of a reservation."""

    __tablename__ = "reservation_contacts"
    __table_args__ = (Index("idx_res_contacts_reservation", "reservation_id", "contacted_at"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    contacted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    contact_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservation: Mapped["Reservation"] = relationship(back_populates="contacts")


class GameInstance(Base):
    __tablename__ = "festival_games"
    __table_args__ = (
        CheckConstraint("copies >= 1", name="chk_games_copies"),
        CheckConstraint(
            "standard_tables >= 0 AND large_tables >= 0 AND municipal_tables >= 0",
            name="chk_games_table_counts",
        ),
        Index("idx_games_reservation", "reservation_id"),
        Index("idx_games_plan_zone", "plan_zone_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    game_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    estimated_tables: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    plan_zone_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("plan_zones.id", ondelete="RESTRICT"), nullable=True
    )
    standard_tables: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    large_tables: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    municipal_tables: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    received: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservation: Mapped["Reservation"] = relationship(back_populates="games")
    plan_zone: Mapped[Optional["PlanZone"]] = relationship(back_populates="games")

    @property
    def is_placed(self) -> bool:
        return self.plan_zone_id is not None

    @property
    def placed_tables(self) -> int:
        if self.plan_zone_id is None:
            return 0
        return self.standard_tables + self.large_tables + self.municipal_tables


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("reservation_id", name="uq_invoices_reservation"),
        UniqueConstraint("number", name="uq_invoices_number"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    number: Mapped[str] = mapped_column(String(64), nullable=False)
    issued_on: Mapped[date] = mapped_column(Date, nullable=False)
    table_amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    outlet_amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _str_enum(PaymentStatus), nullable=False, default=PaymentStatus.UNPAID
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceLine.id",
        lazy="selectin",
    )


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"
    __table_args__ = (Index("idx_invoice_lines_invoice", "invoice_id"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="lines")
