"""
Centralized object storage key construction.

Cached PDFs are namespaced by project and project-scoped work id, never by the
global work id: the same work can appear in several projects and each project
owns its own copy.
"""


def get_project_pdf_prefix(project_id: int) -> str:
    """
    Get the storage prefix holding every cached PDF of a project.

    Pattern: pdfs/{project_id}/
    """
    return f"pdfs/{project_id}"


def get_project_work_pdf_path(project_id: int, project_work_id: int) -> str:
    """
    Get the storage key of the cached PDF for a project work.

    Pattern: pdfs/{project_id}/{project_work_id}.pdf

    Args:
        project_id: Project ID
        project_work_id: Project-scoped work ID

    Returns:
        Storage key for the cached PDF
    """
    return f"{get_project_pdf_prefix(project_id)}/{project_work_id}.pdf"
