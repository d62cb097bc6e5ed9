import os
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

# use sqlite DB file inside the project root
os.environ.setdefault('DB_URL', f'sqlite+pysqlite:///{(ROOT / "data.sqlite").as_posix()}')

from fastapi.testclient import TestClient
from probewatch.db.init_db import main as init_db
from probewatch.db import repo
from probewatch.main import app


def run():
	init_db()
	client = TestClient(app)
	# health
	r = client.get('/health')
	assert r.status_code == 200 and r.json().get('status') == 'ok'
	# service to check (connection to a closed local port -> down)
	service = repo.create_service('Smoke TCP', '127.0.0.1:9', check_type='tcp', interval_s=60, timeout_s=2)
	# manual check
	r = client.post(f"/services/{service.id}/check")
	assert r.status_code == 200 and r.json().get('status') == 'down', r.text
	# alert opened
	r = client.get('/alerts', params={'service_id': service.id})
	assert r.status_code == 200 and len(r.json()) == 1
	alert = r.json()[0]
	# acknowledge
	r = client.put(f"/alerts/{alert['id']}", json={'status': 'acknowledged', 'user': 'smoke'})
	assert r.status_code == 200 and r.json().get('status') == 'acknowledged'
	# metrics
	r = client.get('/metrics')
	assert r.status_code == 200 and 'probewatch_checks_total' in r.text
	print('SMOKE OK')


if __name__ == '__main__':
	run()
