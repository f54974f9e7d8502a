from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.regdesk.models import Base, User


class Applicant(Base):
    __tablename__ = "applicants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    nic: Mapped[str | None] = mapped_column(String(32), nullable=True)  # national identity card number
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_nic_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_phone_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    businesses: Mapped[list["Business"]] = relationship("Business", back_populates="owner", lazy="selectin")


class BusinessType(Base):
    __tablename__ = "business_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    required_documents: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON list
    estimated_processing_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    base_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)


class Business(Base):
    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("applicants.id", ondelete="RESTRICT"), nullable=False, index=True)

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Free text as submitted; business_type_id links the curated catalogue when known.
    business_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    business_type_id: Mapped[int | None] = mapped_column(
        ForeignKey("business_types.id", ondelete="SET NULL"), nullable=True
    )
    proposed_trade_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nature_of_business: Mapped[str | None] = mapped_column(String(512), nullable=True)
    business_address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    business_details: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON metadata

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    owner: Mapped[Applicant] = relationship("Applicant", back_populates="businesses", lazy="selectin")
    type_info: Mapped[BusinessType | None] = relationship("BusinessType", lazy="selectin")


class Application(Base):
    __tablename__ = "business_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    # Stored as submitted by the intake app; read through status.normalize_status().
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft", index=True)
    current_step: Mapped[str | None] = mapped_column(String(64), nullable=True)

    applicant_id: Mapped[int] = mapped_column(ForeignKey("applicants.id", ondelete="RESTRICT"), nullable=False, index=True)
    business_id: Mapped[int | None] = mapped_column(ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    applicant: Mapped[Applicant] = relationship("Applicant", lazy="selectin")
    business: Mapped[Business | None] = relationship("Business", lazy="selectin")
    steps: Mapped[list["ApplicationStep"]] = relationship(
        "ApplicationStep",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationStep.step_order",
        lazy="selectin",
    )
    documents: Mapped[list["BusinessDocument"]] = relationship(  # noqa: F821
        "BusinessDocument",
        back_populates="application",
        lazy="select",
    )
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="application", lazy="select")
    appointments: Mapped[list["Appointment"]] = relationship("Appointment", back_populates="application", lazy="select")

    @property
    def business_type(self) -> str | None:
        return self.business.business_type if self.business else None


class ApplicationStep(Base):
    __tablename__ = "application_steps"
    __table_args__ = (
        UniqueConstraint("application_id", "step_order", name="uq_application_step_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("business_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_name: Mapped[str] = mapped_column(String(128), nullable=False)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    required_documents: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON list
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    application: Mapped[Application] = relationship("Application", back_populates="steps")
    assignee: Mapped[User | None] = relationship("User", lazy="selectin")


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("business_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="LKR")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    application: Mapped[Application] = relationship("Application", back_populates="payments")


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("business_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    appointment_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="scheduled")
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meeting_link: Mapped[str | None] = mapped_column(String(512), nullable=True)

    application: Mapped[Application] = relationship("Application", back_populates="appointments")
