"""Form loader service for YAML form definitions.

Forms can be authored as YAML files in ``forms_dir`` and imported into the
database at startup. A file is imported once, when no form with its id
exists yet; later edits go through the admin API.
"""

from pathlib import Path
from typing import Optional
import yaml
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.form import FormRecord, is_valid_form_id
from app.schemas.form import FormDefinition
from app.services.template_renderer import TemplateRenderError, get_template_renderer
from app.logging_config import get_logger

logger = get_logger(__name__)

FORM_FILE_PATTERNS = ("*.yaml", "*.yml")


class FormLoadError(Exception):
    """Raised when a form file cannot be read or fails validation."""
    pass


def check_receipt_templates(definition: FormDefinition) -> None:
    """Reject receipt templates that would fail to render.

    Raises:
        TemplateRenderError: If the subject or message template is invalid
    """
    renderer = get_template_renderer()
    notification = definition.settings.email_notification
    renderer.validate(notification.subject)
    renderer.validate(notification.message)


class FormLoader:
    """Service for loading form definitions from YAML files."""

    def __init__(self, forms_dir: Optional[str] = None):
        """Initialize form loader.

        Args:
            forms_dir: Path to forms directory (defaults to settings.forms_dir)
        """
        self.forms_dir = Path(forms_dir or get_settings().forms_dir)

    def list_forms(self) -> list[str]:
        """List form ids (file stems) available in the forms directory.

        Example:
            >>> FormLoader("forms").list_forms()
            ['event_signup', 'feedback']
        """
        if not self.forms_dir.exists():
            return []
        paths = {p for pattern in FORM_FILE_PATTERNS for p in self.forms_dir.glob(pattern)}
        return sorted(p.stem for p in paths)

    def load_form(self, path: Path) -> FormDefinition:
        """Load and validate one form definition.

        The form id defaults to the file name without extension.

        Args:
            path: Path to a YAML file

        Returns:
            Validated FormDefinition

        Raises:
            FormLoadError: If the file is unreadable, not YAML, or invalid
        """
        try:
            with open(path, 'r') as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error for {path}: {e}")
            raise FormLoadError(f"Invalid YAML in form file '{path.name}': {e}")
        except OSError as e:
            logger.error(f"Error reading form file {path}: {e}")
            raise FormLoadError(f"Error reading form file '{path.name}': {e}")

        if not isinstance(raw_data, dict):
            raise FormLoadError(f"Form file '{path.name}' must contain a mapping")

        raw_data.setdefault("id", path.stem)

        try:
            definition = FormDefinition(**raw_data)
            check_receipt_templates(definition)
        except (ValidationError, TemplateRenderError) as e:
            logger.error(f"Validation error for form file {path}: {e}")
            raise FormLoadError(f"Validation failed for form '{path.name}': {e}")

        if not is_valid_form_id(definition.id):
            raise FormLoadError(f"Invalid form id '{definition.id}' in '{path.name}'")

        return definition

    def import_forms(self, db: Session) -> list[str]:
        """Import forms whose ids are not in the database yet.

        Invalid files are logged and skipped so one bad file does not
        prevent the service from starting.

        Args:
            db: Database session

        Returns:
            Ids of the newly created forms
        """
        if not self.forms_dir.exists():
            logger.debug(f"Forms directory not found: {self.forms_dir}")
            return []

        paths = sorted(
            {p for pattern in FORM_FILE_PATTERNS for p in self.forms_dir.glob(pattern)}
        )
        created = []
        for path in paths:
            try:
                definition = self.load_form(path)
            except FormLoadError as e:
                logger.error(f"Skipping form file {path.name}: {e}")
                continue

            if FormRecord.get(db, definition.id) is not None:
                logger.debug(f"Form {definition.id} already exists, not importing")
                continue

            FormRecord.create(db, definition)
            created.append(definition.id)

        if created:
            db.commit()
            logger.info(f"Imported {len(created)} forms: {created}")
        return created
