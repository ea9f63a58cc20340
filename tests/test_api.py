# ========================
# tests/test_api.py
# ========================

import unittest
import tempfile
import importlib
import threading
import time
import io
import os
import sys
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

# Add project root and src to Python path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(PROJECT_ROOT, 'src'))
sys.path.insert(0, PROJECT_ROOT)

from tripstats.pipeline.ingestion import EXPECTED_COLUMNS
from tripstats.utils import JobMetadataManager

HEADER = ','.join(EXPECTED_COLUMNS)
TRIPS_CSV = HEADER + """
R1,classic_bike,2024-06-03 08:00:00,2024-06-03 08:12:00,Shedd Aquarium,SA1,Wells St & Elm St,KA1,41.86,-87.61,41.90,-87.63,casual
R2,electric_bike,2024-06-03 17:00:00,2024-06-03 17:09:30,Clark St & Elm St,TA1,Wells St & Elm St,KA1,41.90,-87.63,41.90,-87.63,member
R3,classic_bike,2024-06-04 09:00:00,2024-06-04 09:00:00,Clark St & Elm St,TA1,Wells St & Elm St,KA1,41.90,-87.63,41.90,-87.63,member
"""


class TestAPIServer(unittest.TestCase):
    """Exercise the job API in-process against a temporary jobs directory."""

    @classmethod
    def setUpClass(cls):
        cls.tmp = tempfile.TemporaryDirectory()
        root = Path(cls.tmp.name)
        env = {
            'PIPELINE_JOBS_DIR': str(root / 'jobs'),
            'PIPELINE_INPUT_DIR': str(root / 'raw'),
        }
        with mock.patch.dict(os.environ, env):
            sys.modules.pop('api_server', None)
            cls.api = importlib.import_module('api_server')
        cls.client = TestClient(cls.api.app)

    @classmethod
    def tearDownClass(cls):
        cls.api.executor.shutdown(wait=True)
        sys.modules.pop('api_server', None)
        cls.tmp.cleanup()

    def _upload(self, name, content):
        files = [('files', (name, io.BytesIO(content.encode('utf-8')), 'text/csv'))]
        return self.client.post("/upload", files=files)

    def _wait_for_job_completion(self, job_id, timeout=60):
        start_time = time.time()
        while time.time() - start_time < timeout:
            data = self.client.get(f"/status/{job_id}").json()
            if data["status"] in ["completed", "failed"]:
                return data
            time.sleep(0.1)
        raise TimeoutError(f"Job {job_id} did not complete within {timeout} seconds")

    def test_upload_and_read_tables(self):
        response = self._upload('202406-divvy-tripdata.csv', TRIPS_CSV)
        self.assertEqual(response.status_code, 200)
        job_id = response.json()["job_id"]

        job = self._wait_for_job_completion(job_id)
        self.assertEqual(job["status"], "completed")
        self.assertEqual(job["results"]["processing_stats"]["records_processed"], 2)

        table = self.client.get(f"/tables/{job_id}/rides_by_weekday").json()
        self.assertEqual(table["columns"], ['member_casual', 'day_of_week', 'total_rides', 'average_ride_length'])
        self.assertEqual(table["rows"], [
            {'member_casual': 'casual', 'day_of_week': 'Mon', 'total_rides': 1, 'average_ride_length': 12.0},
            {'member_casual': 'member', 'day_of_week': 'Mon', 'total_rides': 1, 'average_ride_length': 9.5},
        ])

        download = self.client.get(f"/download/{job_id}", params={'table': 'top_start_stations'})
        self.assertEqual(download.status_code, 200)
        self.assertTrue(download.text.startswith('member_casual,start_station_name,total_rides'))

        self.assertEqual(self.client.get(f"/tables/{job_id}/rides_by_date").status_code, 404)

    def test_non_csv_upload_is_rejected(self):
        files = [('files', ('notes.txt', io.BytesIO(b'hello'), 'text/plain'))]
        response = self.client.post("/upload", files=files)

        self.assertEqual(response.status_code, 400)
        self.assertIn("Only CSV files are supported", response.json()["detail"])

    def test_schema_mismatch_fails_job(self):
        response = self._upload('bad.csv', "ride_id,started_at\nR1,2024-06-03 08:00:00\n")
        job = self._wait_for_job_completion(response.json()["job_id"])

        self.assertEqual(job["status"], "failed")
        self.assertIn("member_casual", job["error"])
        self.assertEqual(self.client.get(f"/tables/{job['job_id']}/rides_by_hour").status_code, 400)

    def test_sample_data_job(self):
        response = self.client.post("/run-pipeline", params={'num_rows': 300})
        self.assertEqual(response.json()["type"], "sample_data")

        job = self._wait_for_job_completion(response.json()["job_id"])

        self.assertEqual(job["status"], "completed")
        self.assertEqual(self.client.post("/run-pipeline", params={'num_rows': 0}).status_code, 422)

    def test_queued_job_cannot_be_deleted(self):
        job = self.api.PipelineJobManager.create_job('upload')

        response = self.client.delete(f"/jobs/{job['job_id']}")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.client.get(f"/status/{job['job_id']}").json()["status"], "queued")

        # A job removed before its worker starts is skipped quietly
        with self.api.job_lock:
            del self.api.job_status[job['job_id']]
        self.api.PipelineJobManager.run_pipeline(job['job_id'])

    def test_finished_job_can_be_deleted(self):
        response = self._upload('202406-divvy-tripdata.csv', TRIPS_CSV)
        job_id = response.json()["job_id"]
        self._wait_for_job_completion(job_id)

        self.assertEqual(self.client.delete(f"/jobs/{job_id}").status_code, 200)
        self.assertEqual(self.client.get(f"/status/{job_id}").status_code, 404)
        self.assertFalse((self.api.JOBS_DIR / job_id).exists())

    def test_persistence_while_jobs_change(self):
        job = self.api.PipelineJobManager.create_job('upload')
        stop = threading.Event()

        def mutate():
            i = 0
            while not stop.is_set():
                self.api.update_job(job['job_id'], **{f'field_{i}': i})
                i += 1

        worker = threading.Thread(target=mutate)
        worker.start()
        try:
            for _ in range(100):
                self.api.persist_job_status()
        finally:
            stop.set()
            worker.join()

        saved = self.api.job_metadata_manager.load_job_metadata()
        self.assertIn(job['job_id'], saved)
        with self.api.job_lock:
            del self.api.job_status[job['job_id']]
        self.api.persist_job_status()


class TestJobMetadataManager(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.manager = JobMetadataManager(
            metadata_file=str(self.root / 'job_metadata.json'),
            jobs_dir=str(self.root / 'jobs')
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_save_replaces_file_atomically(self):
        self.manager.save_job_metadata({'a': {'status': 'completed'}})
        self.manager.save_job_metadata({'a': {'status': 'completed'}, 'b': {'status': 'failed'}})

        self.assertEqual(set(self.manager.load_job_metadata()), {'a', 'b'})
        self.assertEqual([p.name for p in self.root.iterdir() if p.suffix == '.tmp'], [])

    def test_failed_serialization_keeps_previous_file(self):
        self.manager.save_job_metadata({'a': {'status': 'completed'}})

        with mock.patch('json.dumps', side_effect=RuntimeError('dictionary changed size during iteration')):
            with self.assertRaises(RuntimeError):
                self.manager.save_job_metadata({'b': {}})

        self.assertEqual(self.manager.load_job_metadata(), {'a': {'status': 'completed'}})


if __name__ == '__main__':
    unittest.main()
