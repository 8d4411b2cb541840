"""Template rendering service using Jinja2.

Renders the subject and body of submission receipts from the templates an
operator configures on a form. Templates are rendered with StrictUndefined
so a reference to an unknown variable fails loudly instead of sending a
receipt with a blank in it.
"""

from typing import Optional
from jinja2 import Environment, BaseLoader, StrictUndefined, TemplateError, meta

from app.logging_config import get_logger

logger = get_logger(__name__)

# Variables available to receipt templates
RECEIPT_VARIABLES = ("name", "email", "formTitle", "submittedAt")


class TemplateRenderError(Exception):
    """Raised when template rendering fails."""
    pass


class TemplateRenderer:
    """Service for rendering Jinja2 receipt templates."""

    def __init__(self):
        """Initialize Jinja2 environment with strict settings."""
        self.env = Environment(
            loader=BaseLoader(),
            autoescape=False,  # Receipts are sent as plain text
            undefined=StrictUndefined,  # Raise error on undefined variables
            keep_trailing_newline=True,
        )

    def render(self, template_text: str, context: dict) -> str:
        """Render template with context variables.

        Args:
            template_text: Template string with Jinja2 syntax
            context: Dictionary of variables for template

        Returns:
            Rendered text

        Raises:
            TemplateRenderError: If template is invalid or variables are missing

        Example:
            >>> renderer = TemplateRenderer()
            >>> renderer.render("Thanks for completing {{ formTitle }}", {"formTitle": "Survey"})
            'Thanks for completing Survey'
        """
        try:
            template = self.env.from_string(template_text)
            return template.render(context)
        except TemplateError as e:
            logger.error(f"Template rendering error: {e}")
            raise TemplateRenderError(f"Failed to render template: {e}")

    def validate(self, template_text: str) -> None:
        """Check that a template parses and only uses receipt variables.

        Args:
            template_text: Template string to check

        Raises:
            TemplateRenderError: On syntax errors or unknown variables
        """
        try:
            ast = self.env.parse(template_text)
        except TemplateError as e:
            raise TemplateRenderError(f"Invalid template: {e}")

        unknown = meta.find_undeclared_variables(ast) - set(RECEIPT_VARIABLES)
        if unknown:
            raise TemplateRenderError(
                f"Unknown template variables: {sorted(unknown)}. "
                f"Available: {list(RECEIPT_VARIABLES)}"
            )


# Global singleton instance
_renderer_instance: Optional[TemplateRenderer] = None


def get_template_renderer() -> TemplateRenderer:
    """Get global TemplateRenderer instance.

    Returns:
        Global TemplateRenderer instance
    """
    global _renderer_instance
    if _renderer_instance is None:
        _renderer_instance = TemplateRenderer()
    return _renderer_instance
