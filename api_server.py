# ========================
# api_server.py
# ========================

"""
FastAPI Server for the Trip Pipeline

Local job runner: start a pipeline run over the configured input directory,
over uploaded trip files or over generated sample data, then fetch the
resulting summary tables. Runs execute one at a time.
"""

import asyncio
import copy
import logging
import shutil
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import sys

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
import uvicorn

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from tripstats.pipeline import TripPipeline, load_table
from tripstats.pipeline.storage import table_file_name
from tripstats.pipeline.transformation import TABLE_COLUMNS
from tripstats.utils import Config, JobMetadataManager, TripDataGenerator, setup_logging

config = Config()
setup_logging(log_level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Bike-Share Trip Pipeline API",
    description="Run the trip pipeline and fetch its summary tables",
    version="1.0.0"
)

JOBS_DIR = Path(config.JOBS_DIR)
JOB_NOT_FOUND_MSG = "Job not found"
JOB_NOT_COMPLETED_MSG = "Job not completed yet"

job_metadata_manager = JobMetadataManager(
    metadata_file=str(JOBS_DIR.parent / "job_metadata.json"),
    jobs_dir=str(JOBS_DIR)
)


def initialize_job_status() -> Dict[str, Dict[str, Any]]:
    """Load saved job records and add finished jobs found on disk."""
    jobs = job_metadata_manager.load_job_metadata()
    for job_id, job in job_metadata_manager.discover_existing_jobs().items():
        jobs.setdefault(job_id, job)
    return jobs


job_status: Dict[str, Dict[str, Any]] = initialize_job_status()
# Guards job_status; the pipeline worker and the event loop both touch it
job_lock = threading.Lock()
executor = ThreadPoolExecutor(max_workers=1)


def persist_job_status() -> None:
    with job_lock:
        snapshot = copy.deepcopy(job_status)
        job_metadata_manager.save_job_metadata(snapshot)


def get_job_snapshot(job_id: str) -> Optional[Dict[str, Any]]:
    with job_lock:
        job = job_status.get(job_id)
        return copy.deepcopy(job) if job is not None else None


def update_job(job_id: str, **fields) -> bool:
    """Apply fields to a job and persist; False if the job no longer exists."""
    with job_lock:
        if job_id not in job_status:
            return False
        job_status[job_id].update(fields)
    persist_job_status()
    return True


class PipelineJobManager:
    """Runs pipeline jobs on the background executor."""

    @staticmethod
    def create_job(job_type: str, **extra) -> Dict[str, Any]:
        job_id = str(uuid.uuid4())
        job_dir = JOBS_DIR / job_id
        job = {
            'job_id': job_id,
            'type': job_type,
            'status': 'queued',
            'created_at': datetime.now().isoformat(),
            'input_dir': str(job_dir / "input"),
            'output_dir': str(job_dir / "output"),
            **extra,
        }
        with job_lock:
            job_status[job_id] = job
        persist_job_status()
        return copy.deepcopy(job)

    @staticmethod
    def run_pipeline(job_id: str, num_rows: Optional[int] = None) -> None:
        """Run one job; failures are recorded on the job, never raised."""
        job = get_job_snapshot(job_id)
        if job is None:
            logger.warning(f"Pipeline job {job_id} was deleted before it started")
            return

        try:
            logger.info(f"Starting pipeline job {job_id}")
            update_job(job_id, status='processing', started_at=datetime.now().isoformat())

            job_config = Config({'FILE_PATTERN': job.get('file_pattern', config.FILE_PATTERN)})
            if num_rows:
                generation_stats = TripDataGenerator(seed=42).generate_dataset(
                    output_dir=job['input_dir'],
                    num_rows=num_rows,
                    error_rate=config.SAMPLE_ERROR_RATE
                )
                update_job(job_id, generation_stats=generation_stats)

            pipeline = TripPipeline(
                input_dir=job['input_dir'],
                output_dir=job['output_dir'],
                config=job_config
            )
            results = pipeline.run()

            update_job(job_id, status='completed', completed_at=datetime.now().isoformat(),
                       results=results)
            logger.info(f"Pipeline job {job_id} completed successfully")

        except Exception as e:
            logger.error(f"Pipeline job {job_id} failed: {e}", exc_info=True)
            update_job(job_id, status='failed', error=str(e), failed_at=datetime.now().isoformat())


def _completed_job(job_id: str) -> Dict[str, Any]:
    job = get_job_snapshot(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)
    if job['status'] != 'completed':
        raise HTTPException(status_code=400, detail=JOB_NOT_COMPLETED_MSG)
    return job


def _table_path(job: Dict[str, Any], table: str) -> Path:
    if table not in TABLE_COLUMNS:
        raise HTTPException(status_code=404, detail=f"Unknown table '{table}'")
    file_path = Path(job['output_dir']) / table_file_name(table)
    if not file_path.exists():
        raise HTTPException(status_code=404, detail=f"Table {table} not found for job {job['job_id']}")
    return file_path


def _save_uploads(files: List[UploadFile], input_dir: Path) -> None:
    input_dir.mkdir(parents=True, exist_ok=True)
    for upload in files:
        with open(input_dir / Path(upload.filename).name, 'wb') as f:
            shutil.copyfileobj(upload.file, f)


@app.get("/")
async def root():
    return {
        "message": "Bike-Share Trip Pipeline API",
        "endpoints": {
            "health": "GET /health",
            "run_pipeline": "POST /run-pipeline?num_rows=N",
            "upload": "POST /upload",
            "status": "GET /status/{job_id}",
            "jobs": "GET /jobs",
            "table": "GET /tables/{job_id}/{table}",
            "download": "GET /download/{job_id}?table=...",
            "delete": "DELETE /jobs/{job_id}",
        },
        "tables": list(TABLE_COLUMNS),
    }


@app.get("/health")
async def health_check():
    with job_lock:
        active = sum(1 for job in job_status.values() if job['status'] in ('queued', 'processing'))
    return {"status": "healthy", "timestamp": datetime.now().isoformat(), "active_jobs": active}


@app.post("/run-pipeline")
async def run_pipeline(num_rows: Optional[int] = Query(None, gt=0, description="Generate N sample rides first")):
    """
    Run the pipeline over generated sample data, or over the configured
    input directory when num_rows is omitted.
    """
    if num_rows:
        job = PipelineJobManager.create_job('sample_data', parameters={'num_rows': num_rows})
    else:
        job = PipelineJobManager.create_job('input_dir', input_dir=config.INPUT_DIR)

    executor.submit(PipelineJobManager.run_pipeline, job['job_id'], num_rows)
    return {"job_id": job['job_id'], "status": job['status'], "type": job['type'],
            "parameters": job.get('parameters', {})}


@app.post("/upload")
async def upload_files(files: List[UploadFile] = File(...)):
    """Upload one or more trip CSV files and run the pipeline over them."""
    for upload in files:
        if not upload.filename or not upload.filename.lower().endswith('.csv'):
            raise HTTPException(status_code=400, detail="Only CSV files are supported")

    job = PipelineJobManager.create_job(
        'upload',
        filenames=[upload.filename for upload in files],
        file_pattern='*.csv'
    )

    # Disk writes go to a worker thread so the event loop keeps serving
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _save_uploads, files, Path(job['input_dir']))
    logger.info(f"Saved {len(files)} uploaded files for job {job['job_id']}")

    executor.submit(PipelineJobManager.run_pipeline, job['job_id'])
    return {"job_id": job['job_id'], "status": job['status'], "filenames": job['filenames']}


@app.get("/status/{job_id}")
async def get_job_status(job_id: str):
    job = get_job_snapshot(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)
    return job


@app.get("/jobs")
async def list_jobs(status: Optional[str] = Query(None, description="Filter by job status")):
    with job_lock:
        jobs = [
            {key: job.get(key) for key in ('job_id', 'type', 'status', 'created_at', 'completed_at')}
            for job in job_status.values()
        ]
    jobs.sort(key=lambda job: job.get('created_at') or '', reverse=True)
    filtered = [job for job in jobs if status is None or job['status'] == status]
    return {
        "jobs": filtered,
        "total_count": len(jobs),
        "filtered_count": len(filtered),
    }


@app.get("/tables/{job_id}/{table}")
async def get_table(job_id: str, table: str):
    """Rows of one summary table as JSON."""
    job = _completed_job(job_id)
    file_path = _table_path(job, table)
    return {"table": table, "columns": TABLE_COLUMNS[table], "rows": load_table(file_path)}


@app.get("/download/{job_id}")
async def download_table(job_id: str, table: str = Query(..., description="Summary table name")):
    job = _completed_job(job_id)
    file_path = _table_path(job, table)
    return FileResponse(path=file_path, media_type='text/csv', filename=file_path.name)


@app.delete("/jobs/{job_id}")
async def delete_job(job_id: str):
    with job_lock:
        if job_id not in job_status:
            raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)
        if job_status[job_id]['status'] in ('queued', 'processing'):
            raise HTTPException(status_code=409, detail="Job is queued or still running")
        del job_status[job_id]

    job_dir = JOBS_DIR / job_id
    if job_dir.exists():
        shutil.rmtree(job_dir)
    persist_job_status()
    return {"job_id": job_id, "deleted": True}


def start_server(host: str = "0.0.0.0", port: int = config.API_PORT, reload: bool = False):
    """Start the API server."""
    logger.info(f"Starting Trip Pipeline API server on {host}:{port}")
    uvicorn.run("api_server:app", host=host, port=port, reload=reload, log_level="info")


if __name__ == "__main__":
    start_server()
