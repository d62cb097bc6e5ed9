from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
	op.create_table(
		'service',
		sa.Column('id', sa.Integer, primary_key=True),
		sa.Column('name', sa.String(200), nullable=False, unique=True),
		sa.Column('url', sa.String(2048), nullable=False),
		sa.Column('check_type', sa.String(16), nullable=False, server_default='http'),
		sa.Column('interval_s', sa.Integer, sa.CheckConstraint('interval_s >= 10'), nullable=False),
		sa.Column('timeout_s', sa.Integer, sa.CheckConstraint('timeout_s >= 1'), nullable=False),
		sa.Column('http_method', sa.String(8), nullable=False, server_default='GET'),
		sa.Column('request_headers', sa.JSON),
		sa.Column('request_body', sa.Text),
		sa.Column('expected_status_code', sa.Integer),
		sa.Column('expected_response_content', sa.String(1024)),
		sa.Column('follow_redirects', sa.Boolean, nullable=False, server_default=sa.true()),
		sa.Column('verify_ssl', sa.Boolean, nullable=False, server_default=sa.true()),
		sa.Column('port', sa.Integer, sa.CheckConstraint('port BETWEEN 1 AND 65535')),
		sa.Column('custom_config', sa.JSON),
		sa.Column('rt_warning_ms', sa.Integer),
		sa.Column('rt_critical_ms', sa.Integer),
		sa.Column('availability_warning', sa.Float),
		sa.Column('availability_critical', sa.Float),
		sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
		sa.Column('response_time_ms', sa.Integer),
		sa.Column('last_check', sa.DateTime(timezone=True)),
		sa.Column('paused', sa.Boolean, nullable=False, server_default=sa.false()),
		sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
	)
	op.create_table(
		'check_result',
		sa.Column('id', sa.Integer, primary_key=True),
		sa.Column('service_id', sa.Integer, sa.ForeignKey('service.id', ondelete='CASCADE'), nullable=False),
		sa.Column('ts', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
		sa.Column('status', sa.String(16), nullable=False),
		sa.Column('is_up', sa.Boolean, nullable=False),
		sa.Column('latency_ms', sa.Integer),
		sa.Column('status_code', sa.Integer),
		sa.Column('response_size', sa.Integer),
		sa.Column('error_text', sa.String(512)),
		sa.Column('metadata', sa.JSON),
		sa.Column('ssl_valid_from', sa.DateTime(timezone=True)),
		sa.Column('ssl_valid_to', sa.DateTime(timezone=True)),
		sa.Column('ssl_days_remaining', sa.Integer),
		sa.Column('ssl_issuer', sa.String(512)),
	)
	op.create_index('idx_check_results_service_ts', 'check_result', ['service_id','ts'])
	op.create_table(
		'incident',
		sa.Column('id', sa.Integer, primary_key=True),
		sa.Column('title', sa.String(100), nullable=False),
		sa.Column('description', sa.String(500)),
		sa.Column('severity', sa.String(16), nullable=False, server_default='minor'),
		sa.Column('status', sa.String(16), nullable=False, server_default='investigating'),
		sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
		sa.Column('resolved_at', sa.DateTime(timezone=True)),
		sa.Column('created_by', sa.String(200)),
	)
	op.create_index('idx_incident_status', 'incident', ['status'])
	op.create_index('idx_incident_started', 'incident', ['started_at'])
	op.create_table(
		'incident_service',
		sa.Column('incident_id', sa.Integer, sa.ForeignKey('incident.id', ondelete='CASCADE'), primary_key=True),
		sa.Column('service_id', sa.Integer, sa.ForeignKey('service.id', ondelete='CASCADE'), primary_key=True),
	)
	op.create_table(
		'alert',
		sa.Column('id', sa.Integer, primary_key=True),
		sa.Column('service_id', sa.Integer, sa.ForeignKey('service.id', ondelete='CASCADE'), nullable=False),
		sa.Column('check_id', sa.Integer, sa.ForeignKey('check_result.id', ondelete='SET NULL')),
		sa.Column('incident_id', sa.Integer, sa.ForeignKey('incident.id', ondelete='SET NULL')),
		sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
		sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
		sa.Column('severity', sa.String(16), nullable=False),
		sa.Column('metric', sa.String(32), nullable=False),
		sa.Column('value', sa.JSON),
		sa.Column('message', sa.Text, nullable=False),
		sa.Column('acknowledged_by', sa.String(200)),
		sa.Column('acknowledged_at', sa.DateTime(timezone=True)),
		sa.Column('resolved_by', sa.String(200)),
		sa.Column('resolved_at', sa.DateTime(timezone=True)),
		sa.Column('resolution_note', sa.String(512)),
	)
	op.create_index('idx_alert_service_status', 'alert', ['service_id','status'])
	op.create_index('idx_alert_ts', 'alert', ['timestamp'])
	op.create_index('idx_alert_incident', 'alert', ['incident_id'])
	op.create_table(
		'incident_update',
		sa.Column('id', sa.Integer, primary_key=True),
		sa.Column('incident_id', sa.Integer, sa.ForeignKey('incident.id', ondelete='CASCADE'), nullable=False),
		sa.Column('message', sa.Text, nullable=False),
		sa.Column('status', sa.String(16), nullable=False),
		sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
		sa.Column('author', sa.String(200)),
	)


def downgrade() -> None:
	op.drop_table('incident_update')
	op.drop_index('idx_alert_incident', table_name='alert')
	op.drop_index('idx_alert_ts', table_name='alert')
	op.drop_index('idx_alert_service_status', table_name='alert')
	op.drop_table('alert')
	op.drop_table('incident_service')
	op.drop_index('idx_incident_started', table_name='incident')
	op.drop_index('idx_incident_status', table_name='incident')
	op.drop_table('incident')
	op.drop_index('idx_check_results_service_ts', table_name='check_result')
	op.drop_table('check_result')
	op.drop_table('service')
