"""
LexLedger Practice Billing
CRM API Router - Users, leads, clients, contacts, matters, opportunities,
interactions
"""
import logging
from pathlib import Path
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from sqlalchemy import select, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger.core.config import settings
from lexledger.db.database import get_db
from lexledger.db.models import (
    Client, Contact, Interaction, Lead, LeadStatus, Matter, Opportunity, User
)
from lexledger.generators.invoice_document import format_matter_id
from lexledger.schemas.crm_schemas import (
    UserCreate, UserResponse,
    LeadCreate, LeadUpdate, LeadResponse,
    ClientCreate, ClientUpdate, ClientResponse, ClientWithContactsCreate, ClientWithContactsResponse,
    ContactCreate, ContactUpdate, ContactResponse, StepResultResponse, ImportPreviewResponse,
    MatterCreate, MatterResponse,
    OpportunityCreate, OpportunityUpdate, OpportunityResponse,
    InteractionCreate, InteractionResponse
)
from lexledger.services.errors import ValidationError
from lexledger.services.money import parse_currency
from lexledger.services.workflow import StepRunner

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_or_404(db: AsyncSession, model, record_id: int, label: str):
    record = await db.get(model, record_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return record


async def _save(db: AsyncSession, record):
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


def _apply(record, changes: dict):
    for field, value in changes.items():
        setattr(record, field, value)


async def _next_client_code(db: AsyncSession) -> str:
    highest = (await db.execute(select(func.max(Client.id)))).scalar() or 0
    return f"{highest + 1:04d}"


async def _load_client(db: AsyncSession, client_id: int) -> Client:
    result = await db.execute(
        select(Client).where(Client.id == client_id).execution_options(populate_existing=True)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


# ============================================================
# USERS
# ============================================================

@router.get("/users", response_model=List[UserResponse], tags=["Users"])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).order_by(User.name))
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


@router.post("/users", response_model=UserResponse, status_code=201, tags=["Users"])
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    user = await _save(db, User(**data.model_dump()))
    return UserResponse.model_validate(user)


# ============================================================
# LEADS
# ============================================================

@router.get("/leads", response_model=List[LeadResponse], tags=["Leads"])
async def list_leads(
    status: Optional[LeadStatus] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    query = select(Lead)
    if status:
        query = query.where(Lead.status == status)
    if search:
        query = query.where(or_(Lead.name.ilike(f"%{search}%"), Lead.company.ilike(f"%{search}%")))
    result = await db.execute(query.order_by(Lead.created_at.desc(), Lead.id.desc()))
    return [LeadResponse.model_validate(lead) for lead in result.scalars().all()]


@router.post("/leads", response_model=LeadResponse, status_code=201, tags=["Leads"])
async def create_lead(data: LeadCreate, db: AsyncSession = Depends(get_db)):
    return LeadResponse.model_validate(await _save(db, Lead(**data.model_dump())))


@router.get("/leads/{lead_id}", response_model=LeadResponse, tags=["Leads"])
async def get_lead(lead_id: int, db: AsyncSession = Depends(get_db)):
    return LeadResponse.model_validate(await _get_or_404(db, Lead, lead_id, "Lead"))


@router.put("/leads/{lead_id}", response_model=LeadResponse, tags=["Leads"])
async def update_lead(lead_id: int, data: LeadUpdate, db: AsyncSession = Depends(get_db)):
    lead = await _get_or_404(db, Lead, lead_id, "Lead")
    _apply(lead, data.model_dump(exclude_unset=True))
    return LeadResponse.model_validate(await _save(db, lead))


@router.delete("/leads/{lead_id}", tags=["Leads"])
async def delete_lead(lead_id: int, db: AsyncSession = Depends(get_db)):
    lead = await _get_or_404(db, Lead, lead_id, "Lead")
    await db.delete(lead)
    await db.commit()
    return {"status": "deleted", "lead_id": lead_id}


# ============================================================
# CLIENTS & CONTACTS
# ============================================================

@router.get("/clients", response_model=List[ClientResponse], tags=["Clients"])
async def list_clients(
    search: Optional[str] = None,
    is_active: bool = True,
    db: AsyncSession = Depends(get_db)
):
    query = select(Client).where(Client.is_active == is_active)
    if search:
        query = query.where(or_(Client.name.ilike(f"%{search}%"), Client.client_code.ilike(f"%{search}%")))
    result = await db.execute(query.order_by(Client.name))
    return [ClientResponse.model_validate(c) for c in result.scalars().all()]


@router.post("/clients", response_model=ClientResponse, status_code=201, tags=["Clients"])
async def create_client(data: ClientCreate, db: AsyncSession = Depends(get_db)):
    values = data.model_dump()
    values["client_code"] = values["client_code"] or await _next_client_code(db)
    client = await _save(db, Client(**values))
    return ClientResponse.model_validate(await _load_client(db, client.id))


@router.post("/clients/with-contacts", response_model=ClientWithContactsResponse, tags=["Clients"])
async def create_client_with_contacts(data: ClientWithContactsCreate, db: AsyncSession = Depends(get_db)):
    """
    Save a client and then each contact as separate steps.

    A failed contact does not undo the client; contacts are skipped when the
    client itself could not be saved.
    """
    async def commit(record):
        try:
            return await _save(db, record)
        except SQLAlchemyError:
            await db.rollback()
            raise

    async def save_client(outputs):
        values = data.client.model_dump()
        values["client_code"] = values["client_code"] or await _next_client_code(db)
        return await commit(Client(**values))

    runner = StepRunner().add("client", save_client)
    for index, contact in enumerate(data.contacts, start=1):
        async def save_contact(outputs, contact=contact):
            return await commit(Contact(client_id=outputs["client"].id, **contact.model_dump()))
        runner.add(f"contact_{index}", save_contact, depends_on=("client",))

    report = await runner.run()
    saved = report.result_of("client")
    return ClientWithContactsResponse(
        client=ClientResponse.model_validate(await _load_client(db, saved.id)) if saved else None,
        steps=[StepResultResponse(name=r.name, status=r.status.value, error=r.error) for r in report.results],
        succeeded=report.succeeded,
    )


@router.post("/clients/import", response_model=ImportPreviewResponse, tags=["Clients"])
async def import_clients(file: UploadFile = File(...)):
    """
    Accept a client spreadsheet.

    Only the extension and size are checked; the preview is always empty.
    """
    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in settings.ALLOWED_IMPORT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{suffix or file.filename}'. Allowed: {', '.join(settings.ALLOWED_IMPORT_TYPES)}"
        )

    content = await file.read()
    limit = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > limit:
        raise HTTPException(status_code=413, detail=f"File exceeds {settings.MAX_UPLOAD_SIZE_MB} MB limit")

    logger.info("Accepted import file %s (%d bytes)", file.filename, len(content))
    return ImportPreviewResponse(filename=file.filename, size_bytes=len(content))


@router.get("/clients/{client_id}", response_model=ClientResponse, tags=["Clients"])
async def get_client(client_id: int, db: AsyncSession = Depends(get_db)):
    return ClientResponse.model_validate(await _load_client(db, client_id))


@router.put("/clients/{client_id}", response_model=ClientResponse, tags=["Clients"])
async def update_client(client_id: int, data: ClientUpdate, db: AsyncSession = Depends(get_db)):
    client = await _load_client(db, client_id)
    _apply(client, data.model_dump(exclude_unset=True))
    await db.commit()
    return ClientResponse.model_validate(await _load_client(db, client_id))


@router.delete("/clients/{client_id}", tags=["Clients"])
async def deactivate_client(client_id: int, db: AsyncSession = Depends(get_db)):
    """Clients are archived, not deleted, so invoices keep their bill-to"""
    client = await _load_client(db, client_id)
    client.is_active = False
    await db.commit()
    return {"status": "archived", "client_id": client_id}


@router.get("/contacts", response_model=List[ContactResponse], tags=["Contacts"])
async def list_contacts(client_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    query = select(Contact)
    if client_id is not None:
        query = query.where(Contact.client_id == client_id)
    result = await db.execute(query.order_by(Contact.id))
    return [ContactResponse.model_validate(c) for c in result.scalars().all()]


@router.post("/contacts", response_model=ContactResponse, status_code=201, tags=["Contacts"])
async def create_contact(data: ContactCreate, db: AsyncSession = Depends(get_db)):
    await _get_or_404(db, Client, data.client_id, "Client")
    return ContactResponse.model_validate(await _save(db, Contact(**data.model_dump())))


@router.put("/contacts/{contact_id}", response_model=ContactResponse, tags=["Contacts"])
async def update_contact(contact_id: int, data: ContactUpdate, db: AsyncSession = Depends(get_db)):
    contact = await _get_or_404(db, Contact, contact_id, "Contact")
    _apply(contact, data.model_dump(exclude_unset=True))
    return ContactResponse.model_validate(await _save(db, contact))


@router.delete("/contacts/{contact_id}", tags=["Contacts"])
async def delete_contact(contact_id: int, db: AsyncSession = Depends(get_db)):
    contact = await _get_or_404(db, Contact, contact_id, "Contact")
    await db.delete(contact)
    await db.commit()
    return {"status": "deleted", "contact_id": contact_id}


# ============================================================
# MATTERS
# ============================================================

def _matter_response(matter: Matter, client: Optional[Client]) -> MatterResponse:
    response = MatterResponse.model_validate(matter)
    response.matter_code = format_matter_id(client.client_code if client else None, matter.id)
    return response


@router.get("/matters", response_model=List[MatterResponse], tags=["Matters"])
async def list_matters(client_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    query = select(Matter)
    if client_id is not None:
        query = query.where(Matter.client_id == client_id)
    result = await db.execute(query.order_by(Matter.id))
    return [_matter_response(m, m.client) for m in result.scalars().all()]


@router.post("/matters", response_model=MatterResponse, status_code=201, tags=["Matters"])
async def create_matter(data: MatterCreate, db: AsyncSession = Depends(get_db)):
    """A matter's currency is the billing currency for time logged against it"""
    client = await _get_or_404(db, Client, data.client_id, "Client")
    try:
        currency = parse_currency(data.currency)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"message": e.message, "field": e.field})

    values = data.model_dump()
    values["currency"] = currency.value
    matter = await _save(db, Matter(**values))
    return _matter_response(matter, client)


@router.get("/matters/{matter_id}", response_model=MatterResponse, tags=["Matters"])
async def get_matter(matter_id: int, db: AsyncSession = Depends(get_db)):
    matter = await _get_or_404(db, Matter, matter_id, "Matter")
    return _matter_response(matter, await db.get(Client, matter.client_id))


# ============================================================
# OPPORTUNITIES & INTERACTIONS
# ============================================================

@router.get("/opportunities", response_model=List[OpportunityResponse], tags=["Opportunities"])
async def list_opportunities(client_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    query = select(Opportunity)
    if client_id is not None:
        query = query.where(Opportunity.client_id == client_id)
    result = await db.execute(query.order_by(Opportunity.id))
    return [OpportunityResponse.model_validate(o) for o in result.scalars().all()]


@router.post("/opportunities", response_model=OpportunityResponse, status_code=201, tags=["Opportunities"])
async def create_opportunity(data: OpportunityCreate, db: AsyncSession = Depends(get_db)):
    return OpportunityResponse.model_validate(await _save(db, Opportunity(**data.model_dump())))


@router.put("/opportunities/{opportunity_id}", response_model=OpportunityResponse, tags=["Opportunities"])
async def update_opportunity(opportunity_id: int, data: OpportunityUpdate, db: AsyncSession = Depends(get_db)):
    opportunity = await _get_or_404(db, Opportunity, opportunity_id, "Opportunity")
    _apply(opportunity, data.model_dump(exclude_unset=True))
    return OpportunityResponse.model_validate(await _save(db, opportunity))


@router.delete("/opportunities/{opportunity_id}", tags=["Opportunities"])
async def delete_opportunity(opportunity_id: int, db: AsyncSession = Depends(get_db)):
    opportunity = await _get_or_404(db, Opportunity, opportunity_id, "Opportunity")
    await db.delete(opportunity)
    await db.commit()
    return {"status": "deleted", "opportunity_id": opportunity_id}


@router.get("/interactions", response_model=List[InteractionResponse], tags=["Interactions"])
async def list_interactions(
    client_id: Optional[int] = None,
    lead_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db)
):
    query = select(Interaction)
    if client_id is not None:
        query = query.where(Interaction.client_id == client_id)
    if lead_id is not None:
        query = query.where(Interaction.lead_id == lead_id)
    result = await db.execute(query.order_by(Interaction.occurred_at.desc()))
    return [InteractionResponse.model_validate(i) for i in result.scalars().all()]


@router.post("/interactions", response_model=InteractionResponse, status_code=201, tags=["Interactions"])
async def create_interaction(data: InteractionCreate, db: AsyncSession = Depends(get_db)):
    values = data.model_dump(exclude_none=True)
    return InteractionResponse.model_validate(await _save(db, Interaction(**values)))
