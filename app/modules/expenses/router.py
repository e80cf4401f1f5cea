from fastapi import APIRouter, File, Query, Response, UploadFile, status
from typing import Optional

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.ownerDependencies import ArtifactStoreDep, OwnerId, RendererDep
from app.modules.expenses.service import ExpenseService
from app.modules.expenses.schemas import ExpenseCreate, ExpenseList, ExpenseOut, ExpenseUpdate
from app.modules.invoices.router import file_response

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("/", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def create_expense(
    expense_data: ExpenseCreate,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    renderer: RendererDep,
    generate_pdf: bool = Query(False, description="Render and store the expense PDF after creating the record"),
):
    service = ExpenseService(db, store, renderer)
    return ExpenseOut.from_record(service.create_expense(owner_id, expense_data, generate_pdf=generate_pdf))


@router.get("/", response_model=ExpenseList)
def list_expenses(
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    project_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
):
    service = ExpenseService(db, store)
    expenses = [ExpenseOut.from_record(expense) for expense in service.list_expenses(owner_id, project_id, client_id)]
    return ExpenseList(expenses=expenses, total=len(expenses))


@router.get("/{expense_id}", response_model=ExpenseOut)
def get_expense(expense_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = ExpenseService(db, store)
    return ExpenseOut.from_record(service.get_expense(expense_id, owner_id))


@router.patch("/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    expense_data: ExpenseUpdate,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
):
    service = ExpenseService(db, store)
    return ExpenseOut.from_record(service.update_expense(expense_id, owner_id, expense_data))


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(expense_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = ExpenseService(db, store)
    service.delete_expense(expense_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{expense_id}/attachment", response_model=ExpenseOut)
def upload_expense_attachment(
    expense_id: int,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    attachment: UploadFile = File(...),
):
    """Upload the vendor's bill: JPEG, PNG, GIF, WebP or PDF up to 10MB"""
    service = ExpenseService(db, store)
    expense = service.upload_attachment(
        expense_id, owner_id, attachment.file.read(), attachment.filename or "",
        attachment.content_type or "application/octet-stream"
    )
    return ExpenseOut.from_record(expense)


@router.get("/{expense_id}/attachment")
def download_expense_attachment(expense_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = ExpenseService(db, store)
    return file_response(service.download_attachment(expense_id, owner_id))


@router.post("/{expense_id}/pdf", response_model=ExpenseOut)
def upload_expense_pdf(
    expense_id: int,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    expensePdf: UploadFile = File(...),
):
    service = ExpenseService(db, store)
    expense = service.upload_pdf(
        expense_id, owner_id, expensePdf.file.read(), expensePdf.filename or "expense.pdf",
        expensePdf.content_type or "application/octet-stream"
    )
    return ExpenseOut.from_record(expense)


@router.post("/{expense_id}/pdf/generate", response_model=ExpenseOut)
def generate_expense_pdf(
    expense_id: int,
    owner_id: OwnerId,
    db: db_dependency,
    store: ArtifactStoreDep,
    renderer: RendererDep,
):
    service = ExpenseService(db, store, renderer)
    return ExpenseOut.from_record(service.generate_pdf(expense_id, owner_id))


@router.get("/{expense_id}/pdf")
def download_expense_pdf(expense_id: int, owner_id: OwnerId, db: db_dependency, store: ArtifactStoreDep):
    service = ExpenseService(db, store)
    return file_response(service.download_pdf(expense_id, owner_id))
