"""
LexLedger Practice Billing
SQLAlchemy Database Models
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, ForeignKey,
    Text, Boolean, JSON, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from lexledger.db.database import Base
from lexledger.services.invoice_service import InvoiceStatus, DiscountType
import enum

# Amounts keep four decimals; display rounding happens in the money module
Amount = Numeric(18, 4, asdecimal=True)


# ============================================================
# ENUMS
# ============================================================

class LeadStatus(str, enum.Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    LOST = "lost"


class OpportunityStage(str, enum.Enum):
    PROSPECTING = "prospecting"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"


class InteractionType(str, enum.Enum):
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    NOTE = "note"


class TimesheetStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ============================================================
# PEOPLE
# ============================================================

class User(Base):
    """Firm member who logs time and may hold partner shares"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True)
    role = Column(String(50), default="associate")
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================================
# CRM
# ============================================================

class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    company = Column(String(255))
    email = Column(String(255))
    phone = Column(String(50))
    source = Column(String(100))
    status = Column(SQLEnum(LeadStatus), default=LeadStatus.NEW)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Client(Base):
    """Billed organisation or individual"""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    client_code = Column(String(20), unique=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    industry = Column(String(100))
    email = Column(String(255))
    phone = Column(String(50))
    address = Column(Text)
    billing_location = Column(String(100))
    notes = Column(Text)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    contacts = relationship("Contact", back_populates="client", cascade="all, delete-orphan", lazy="selectin")
    matters = relationship("Matter", back_populates="client", lazy="selectin")


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    designation = Column(String(100))
    is_primary = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    client = relationship("Client", back_populates="contacts")


class Opportunity(Base):
    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"))
    lead_id = Column(Integer, ForeignKey("leads.id"))
    title = Column(String(255), nullable=False)
    stage = Column(SQLEnum(OpportunityStage), default=OpportunityStage.PROSPECTING)
    expected_value = Column(Amount)
    currency = Column(String(3), default="INR")
    probability = Column(Integer, default=0)
    expected_close_date = Column(Date)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Interaction(Base):
    __tablename__ = "interactions"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"))
    lead_id = Column(Integer, ForeignKey("leads.id"))
    interaction_type = Column(SQLEnum(InteractionType), default=InteractionType.NOTE)
    subject = Column(String(255), nullable=False)
    notes = Column(Text)
    occurred_at = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================================
# MATTERS, RATE CARDS & TIME
# ============================================================

class Matter(Base):
    """Client engagement; its currency is the billing currency for time"""
    __tablename__ = "matters"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    title = Column(String(500), nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    status = Column(String(50), default="open")
    start_date = Column(Date)

    created_at = Column(DateTime, default=datetime.utcnow)

    client = relationship("Client", back_populates="matters", lazy="selectin")


class RateCard(Base):
    """Hourly rate range (INR) for a user and service type"""
    __tablename__ = "rate_cards"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_type = Column(String(100), nullable=False, index=True)
    min_rate = Column(Amount)
    max_rate = Column(Amount)
    effective_date = Column(Date, nullable=False)
    end_date = Column(Date)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", lazy="selectin")


class Timesheet(Base):
    __tablename__ = "timesheets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    matter_id = Column(Integer, ForeignKey("matters.id"), index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), index=True)
    date = Column(Date, nullable=False)
    billable_minutes = Column(Integer, default=0)
    non_billable_minutes = Column(Integer, default=0)
    activity_type = Column(String(100), nullable=False)
    description = Column(Text)
    hourly_rate = Column(Amount)
    calculated_amount = Column(Amount)
    # Overrides set while the linked invoice is a draft
    billed_minutes = Column(Integer)
    billed_hourly_rate = Column(Amount)
    status = Column(SQLEnum(TimesheetStatus), default=TimesheetStatus.PENDING)
    approved_by = Column(String(50))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", lazy="selectin")
    matter = relationship("Matter", lazy="selectin")
    expenses = relationship("Expense", back_populates="timesheet", cascade="all, delete-orphan",
                            lazy="selectin", order_by="Expense.id")


class Expense(Base):
    """Out-of-pocket cost recorded in INR against a timesheet"""
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id"), nullable=False)
    category = Column(String(100), nullable=False)
    sub_category = Column(String(100))
    description = Column(Text)
    amount = Column(Amount, nullable=False)
    vendor = Column(String(255))
    expense_included = Column(Boolean, default=True)
    status = Column(String(50), default="pending")

    created_at = Column(DateTime, default=datetime.utcnow)

    timesheet = relationship("Timesheet", back_populates="expenses")


# ============================================================
# INVOICING
# ============================================================

class Invoice(Base):
    """Client invoice; split invoices point at their parent"""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(50), unique=True, index=True, nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    matter_id = Column(Integer, ForeignKey("matters.id"))
    parent_invoice_id = Column(Integer, ForeignKey("invoices.id"), index=True)

    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    period_from = Column(Date)
    period_to = Column(Date)

    currency = Column(String(3), default="INR", nullable=False)
    subtotal = Column(Amount, default=0)
    discount_type = Column(SQLEnum(DiscountType))
    discount_value = Column(Amount, default=0)
    discount_amount = Column(Amount, default=0)
    final_amount = Column(Amount, default=0)
    amount_paid = Column(Amount, default=0)
    split_percentage = Column(Amount)
    exchange_rates = Column(JSON)  # {currency: rate to invoice currency}

    status = Column(SQLEnum(InvoiceStatus), default=InvoiceStatus.NEW)
    billing_location = Column(String(100))
    description = Column(Text)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    client = relationship("Client", lazy="selectin")
    matter = relationship("Matter", lazy="selectin")
    splits = relationship("Invoice", lazy="selectin", join_depth=1, order_by="Invoice.id", viewonly=True)
    timesheets = relationship("Timesheet", lazy="selectin", order_by="Timesheet.date", viewonly=True)
    partner_shares = relationship("PartnerShare", back_populates="invoice", cascade="all, delete-orphan",
                                  lazy="selectin", order_by="PartnerShare.id")
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan",
                            lazy="selectin", order_by="Payment.payment_date")


class PartnerShare(Base):
    __tablename__ = "partner_shares"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    percentage = Column(Amount, nullable=False)

    invoice = relationship("Invoice", back_populates="partner_shares")
    user = relationship("User", lazy="selectin")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    payment_date = Column(Date, nullable=False)
    amount = Column(Amount, nullable=False)
    payment_method = Column(String(50), nullable=False)
    transaction_ref = Column(String(255))
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payments")
