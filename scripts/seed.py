from __future__ import annotations

from probewatch.db.init_db import main as init_db
from probewatch.db import repo


def main() -> None:
	init_db()
	existing = {s.name for s in repo.list_services()}
	services = [
		("Example", "https://example.com", "http", {"rt_warning_ms": 1000, "rt_critical_ms": 3000, "availability_warning": 99.0, "availability_critical": 95.0}),
		("GitHub TLS", "https://github.com", "ssl", {}),
		("Cloudflare DNS", "one.one.one.one", "dns", {}),
		("Cloudflare ping", "1.1.1.1", "ping", {"rt_warning_ms": 100, "rt_critical_ms": 300}),
		("Postgres", "postgres", "port", {"port": 5432}),
	]
	for name, url, check_type, options in services:
		if name in existing:
			continue
		repo.create_service(name, url, check_type=check_type, interval_s=60, timeout_s=5, **options)
	print("Seeded demo services.")


if __name__ == "__main__":
	main()
