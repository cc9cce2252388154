from pydantic import BaseModel


class RagIngestionMessage(BaseModel):
    """Message model for (re)ingesting one project work into the chunk store.

    Identity is project-work-first: the worker resolves the cached PDF through
    the project work, and work_id is only cross-checked against it.
    `pdf_version` is the project work's PDF timestamp (epoch ms, 0 when none)
    at publish time; a message older than the current PDF is dropped.
    `attempt` counts whole-job attempts, starting at 1.
    """

    project_work_id: int
    work_id: int
    source: str = "manual_trigger"
    attempt: int = 1
    pdf_version: int = 0
