"""Run the background worker: python -m app.worker"""

from arq import run_worker

from app.worker.arq_config import WorkerSettings

if __name__ == "__main__":
    # ARQ type stubs expect WorkerSettingsBase but accept any settings class
    run_worker(WorkerSettings)  # type: ignore[arg-type]
