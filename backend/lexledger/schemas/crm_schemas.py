"""
LexLedger Practice Billing
Pydantic Schemas for CRM Records (users, leads, clients, contacts, matters,
opportunities, interactions)
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict

from lexledger.db.models import LeadStatus, OpportunityStage, InteractionType


# ============================================================
# USER SCHEMAS
# ============================================================

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    role: str = "associate"


class UserResponse(UserCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    is_active: bool


# ============================================================
# LEAD SCHEMAS
# ============================================================

class LeadBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    notes: Optional[str] = None


class LeadCreate(LeadBase):
    pass


class LeadUpdate(BaseModel):
    name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    status: Optional[LeadStatus] = None
    notes: Optional[str] = None


class LeadResponse(LeadBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime


# ============================================================
# CLIENT & CONTACT SCHEMAS
# ============================================================

class ContactBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    designation: Optional[str] = None
    is_primary: bool = False


class ContactCreate(ContactBase):
    client_id: int


class ContactUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    designation: Optional[str] = None
    is_primary: Optional[bool] = None


class ContactResponse(ContactBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    client_code: Optional[str] = Field(None, max_length=20)
    industry: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    billing_location: Optional[str] = None
    notes: Optional[str] = None


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    client_code: Optional[str] = None
    industry: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    billing_location: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class ClientResponse(ClientBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    is_active: bool
    contacts: List[ContactResponse] = []


class ClientWithContactsCreate(BaseModel):
    """Client plus contacts saved as separate best-effort steps"""
    client: ClientCreate
    contacts: List[ContactBase] = []


class StepResultResponse(BaseModel):
    name: str
    status: str
    error: Optional[str] = None


class ClientWithContactsResponse(BaseModel):
    client: Optional[ClientResponse] = None
    steps: List[StepResultResponse]
    succeeded: bool


class ImportPreviewResponse(BaseModel):
    """Spreadsheet import is accepted but not parsed"""
    filename: str
    size_bytes: int
    groups: List[dict] = []
    clients: List[dict] = []
    contacts: List[dict] = []
    errors: List[str] = []
    warnings: List[str] = []


# ============================================================
# MATTER SCHEMAS
# ============================================================

class MatterCreate(BaseModel):
    client_id: int
    title: str = Field(..., min_length=1, max_length=500)
    currency: str = "INR"
    status: str = "open"
    start_date: Optional[date] = None


class MatterResponse(MatterCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    matter_code: Optional[str] = None


# ============================================================
# OPPORTUNITY & INTERACTION SCHEMAS
# ============================================================

class OpportunityBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    stage: OpportunityStage = OpportunityStage.PROSPECTING
    expected_value: Optional[Decimal] = None
    currency: str = "INR"
    probability: int = Field(default=0, ge=0, le=100)
    expected_close_date: Optional[date] = None
    notes: Optional[str] = None


class OpportunityCreate(OpportunityBase):
    pass


class OpportunityUpdate(BaseModel):
    title: Optional[str] = None
    stage: Optional[OpportunityStage] = None
    expected_value: Optional[Decimal] = None
    currency: Optional[str] = None
    probability: Optional[int] = Field(None, ge=0, le=100)
    expected_close_date: Optional[date] = None
    notes: Optional[str] = None


class OpportunityResponse(OpportunityBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class InteractionCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    interaction_type: InteractionType = InteractionType.NOTE
    notes: Optional[str] = None
    occurred_at: Optional[datetime] = None


class InteractionResponse(InteractionCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
