"""Pagination of a form's question list at section breaks.

Pages are derived on demand from the ordered question list and never
stored. Section breaks end the current page and title the next one; they
never appear in a page's question list.
"""

from typing import Iterable

from app.schemas.form import FormPage, Question, QuestionType


def _is_navigable(page: FormPage) -> bool:
    return bool(page.questions or page.title or page.description)


def build_pages(questions: Iterable[Question]) -> list[FormPage]:
    """Split an ordered question sequence into pages.

    A page is flushed at each section break (and at the end) if it holds at
    least one question, or if no page has been flushed yet. Pages without
    questions, title and description are then dropped, unless that would
    leave no page at all.

    Args:
        questions: Ordered questions, including section breaks

    Returns:
        Ordered list of pages; never empty

    Example:
        >>> pages = build_pages(form.questions)
        >>> [len(page.questions) for page in pages]
        [2, 1]
    """
    pages: list[FormPage] = []
    current = FormPage(id="page-1")
    index = 1

    for question in questions:
        if question.type == QuestionType.SECTION_BREAK:
            if current.questions or not pages:
                pages.append(current)
            index += 1
            current = FormPage(
                id=f"page-{index}",
                title=question.title or None,
                description=question.description or None,
            )
            continue
        current.questions.append(question)

    if current.questions or not pages:
        pages.append(current)

    navigable = [page for page in pages if _is_navigable(page)]
    return navigable or pages[:1]
