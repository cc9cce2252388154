from common.workers.launcher import WorkerLauncher
from packages.rag.workers.rag_ingestion_worker import RagIngestionWorker

if __name__ == "__main__":
    WorkerLauncher().run(
        worker_factory=RagIngestionWorker, worker_name="RAG Ingestion Worker"
    )
