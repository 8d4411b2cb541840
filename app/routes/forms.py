"""Form administration endpoints.

All routes require the admin bearer token. Reads and writes run the
auto-close evaluation so operators always see the current publication
state.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.middleware.admin_auth import verify_admin_token
from app.models.database import get_db
from app.models.form import FormRecord, is_valid_form_id
from app.models.response import FormResponse
from app.schemas.form import Form, FormDefinition, FormUpdate, ResponseRead
from app.services.auto_close import sync_publication_state
from app.services.form_loader import check_receipt_templates
from app.services.notifications import ReceiptMailer, get_receipt_mailer
from app.services.submission import FormNotFoundError, InvalidFormIdError, load_form
from app.services.template_renderer import TemplateRenderError
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/forms", dependencies=[Depends(verify_admin_token)])


def get_form_record(form_id: str, db: Session = Depends(get_db)) -> FormRecord:
    """Load a form for an admin route, mapping lookup errors to HTTP."""
    try:
        return load_form(db, form_id)
    except InvalidFormIdError:
        raise HTTPException(status_code=400, detail="Invalid form id")
    except FormNotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")


def _check_templates(definition: FormDefinition) -> None:
    try:
        check_receipt_templates(definition)
    except TemplateRenderError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/mail/status")
async def get_mail_status(mailer: ReceiptMailer = Depends(get_receipt_mailer)) -> dict:
    """Report whether submission receipts can be sent."""
    return mailer.mail_status()


@router.get("", response_model=list[Form])
async def list_forms(db: Session = Depends(get_db)):
    """List all forms, newest first.

    Stored response counters are reconciled with the actual number of
    stored responses before the auto-close evaluation runs.
    """
    records = FormRecord.list_all(db)
    counts = FormResponse.count_by_form(db, [record.id for record in records])

    drifted = 0
    for record in records:
        actual = counts.get(record.id, 0)
        if record.response_count != actual:
            record.response_count = actual
            drifted += 1
    if drifted:
        db.commit()
        logger.info(f"Reconciled response counts for {drifted} forms")

    return [sync_publication_state(db, record) for record in records]


@router.post("", response_model=Form, status_code=201)
async def create_form(definition: FormDefinition, db: Session = Depends(get_db)):
    """Create a form; an explicit id must not be taken yet."""
    _check_templates(definition)

    if definition.id is not None:
        if not is_valid_form_id(definition.id):
            raise HTTPException(status_code=400, detail="Invalid form id")
        if FormRecord.get(db, definition.id) is not None:
            raise HTTPException(status_code=409, detail="A form with this id already exists")

    record = FormRecord.create(db, definition)
    db.commit()
    db.refresh(record)

    logger.info(f"Created form {record.id}", extra={"form_id": record.id})
    return sync_publication_state(db, record)


@router.get("/{form_id}", response_model=Form)
async def get_form(
    record: FormRecord = Depends(get_form_record),
    db: Session = Depends(get_db),
):
    """Get one form with its current publication state."""
    return sync_publication_state(db, record)


@router.put("/{form_id}", response_model=Form)
async def update_form(
    changes: FormUpdate,
    record: FormRecord = Depends(get_form_record),
    db: Session = Depends(get_db),
):
    """Update a form; omitted fields are left untouched.

    Publishing a form whose deadline has passed or whose capacity is
    reached is immediately undone by the auto-close evaluation.
    """
    if changes.settings is not None:
        _check_templates(FormDefinition(settings=changes.settings))

    record.apply(changes)
    db.commit()
    db.refresh(record)

    logger.info(f"Updated form {record.id}", extra={"form_id": record.id})
    return sync_publication_state(db, record)


@router.delete("/{form_id}")
async def delete_form(
    record: FormRecord = Depends(get_form_record),
    db: Session = Depends(get_db),
) -> dict:
    """Delete a form together with all of its responses."""
    form_id = record.id
    db.delete(record)
    db.commit()

    logger.info(f"Deleted form {form_id}", extra={"form_id": form_id})
    return {"message": "Form deleted successfully"}


@router.get("/{form_id}/responses", response_model=list[ResponseRead])
async def list_responses(
    record: FormRecord = Depends(get_form_record),
    db: Session = Depends(get_db),
):
    """List a form's responses, newest first."""
    return FormResponse.list_for_form(db, record.id)
