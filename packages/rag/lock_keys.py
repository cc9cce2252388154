"""Lock key generators for the rag package."""


def ingestion_lock_key(work_id: int) -> str:
    """Generate the lock key for ingesting one work.

    Chunks are keyed by work, so two runs for the same work (from any
    project) must not interleave their delete and insert steps.
    """
    return f"rag_ingestion:work:{work_id}"
