from fastapi import APIRouter, File, Query, Response, UploadFile, status
from typing import List, Optional

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.ownerDependencies import ArtifactStoreDep, ClientId, OwnerId, RendererDep
from app.modules.files.schemas import DownloadedArtifact
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceOut, InvoiceList, InvoiceUpdate,
    PaymentCreate, PaymentOut, InvoiceEmailRequest, InvoiceEmailResponse
)

router = APIRouter(prefix="/invoices", tags=["Invoices"])
client_router = APIRouter(prefix="/client/invoices", tags=["Client Portal"])


def file_response(artifact: DownloadedArtifact, disposition: str = "attachment") -> Response:
    return Response(
        content=artifact.content,
        media_type=artifact.content_type,
        headers={
            "Content-Disposition": f'{disposition}; filename="{artifact.file_name}"',
            "Content-Length": str(artifact.content_length),
        },
    )


@router.post("/", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    renderer: RendererDep,
    generate_pdf: bool = Query(True, description="Render and store the PDF right after creating the record"),
):
    """
    Create an invoice.

    With generate_pdf the PDF is rendered and stored in the same call; if that
    step fails the invoice still exists and POST /{id}/pdf/generate retries it.
    """
    service = InvoiceService(db, store, renderer)
    return InvoiceOut.from_record(service.create_invoice(owner_id, invoice_data, generate_pdf=generate_pdf))


@router.get("/", response_model=InvoiceList)
def list_invoices(
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    project_id: Optional[int] = Query(None, description="Only invoices of this project"),
    client_id: Optional[int] = Query(None, description="Only invoices of this client"),
):
    service = InvoiceService(db, store)
    invoices = [InvoiceOut.from_record(invoice) for invoice in service.list_invoices(owner_id, project_id, client_id)]
    return InvoiceList(invoices=invoices, total=len(invoices))


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = InvoiceService(db, store)
    return InvoiceOut.from_record(service.get_invoice(invoice_id, owner_id))


@router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: int,
    invoice_data: InvoiceUpdate,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
):
    """
    Update an invoice.

    Reverting a paid invoice to pending/overdue deletes its payments.
    """
    service = InvoiceService(db, store)
    return InvoiceOut.from_record(service.update_invoice(invoice_id, owner_id, invoice_data))


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = InvoiceService(db, store)
    service.delete_invoice(invoice_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def add_payment(
    invoice_id: int,
    payment_data: PaymentCreate,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
):
    service = InvoiceService(db, store)
    return service.add_payment(invoice_id, owner_id, payment_data)


@router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def list_payments(invoice_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = InvoiceService(db, store)
    return service.list_payments(invoice_id, owner_id)


@router.post("/{invoice_id}/pdf/generate", response_model=InvoiceOut)
def generate_invoice_pdf(
    invoice_id: int,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    renderer: RendererDep,
):
    service = InvoiceService(db, store, renderer)
    return InvoiceOut.from_record(service.generate_pdf(invoice_id, owner_id))


@router.post("/{invoice_id}/pdf", response_model=InvoiceOut)
def upload_invoice_pdf(
    invoice_id: int,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    invoicePdf: UploadFile = File(...),
):
    service = InvoiceService(db, store)
    content = invoicePdf.file.read()
    invoice = service.upload_pdf(
        invoice_id, owner_id, content, invoicePdf.filename or "invoice.pdf",
        invoicePdf.content_type or "application/octet-stream"
    )
    return InvoiceOut.from_record(invoice)


@router.get("/{invoice_id}/pdf")
def download_invoice_pdf(invoice_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = InvoiceService(db, store)
    return file_response(service.download_pdf(invoice_id, owner_id))


@router.post("/{invoice_id}/send-email", response_model=InvoiceEmailResponse, status_code=status.HTTP_202_ACCEPTED)
def send_invoice_email(
    invoice_id: int,
    email_request: InvoiceEmailRequest,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
):
    """
    Queue the invoice, reminder or update email with the stored PDF attached.

    Reminders are only allowed for overdue invoices.
    """
    service = InvoiceService(db, store)
    return service.send_invoice_email(invoice_id, owner_id, email_request.type)


# ===== Client portal =====

@client_router.get("/", response_model=InvoiceList)
def list_client_invoices(client_id: ClientId, db: db_dependency, store: ArtifactStoreDep):
    service = InvoiceService(db, store)
    invoices = [InvoiceOut.from_record(invoice) for invoice in service.list_client_invoices(client_id)]
    return InvoiceList(invoices=invoices, total=len(invoices))


@client_router.get("/{invoice_id}", response_model=InvoiceOut)
def get_client_invoice(invoice_id: int, client_id: ClientId, db: db_dependency, store: ArtifactStoreDep):
    service = InvoiceService(db, store)
    return InvoiceOut.from_record(service.get_client_invoice(invoice_id, client_id))


@client_router.get("/{invoice_id}/pdf")
def download_client_invoice_pdf(invoice_id: int, client_id: ClientId, db: db_dependency, store: ArtifactStoreDep):
    service = InvoiceService(db, store)
    return file_response(service.download_client_invoice_pdf(invoice_id, client_id), disposition="inline")
