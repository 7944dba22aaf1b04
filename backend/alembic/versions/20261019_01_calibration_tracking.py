"""create calibration tracking tables"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261019_01_calibration_tracking'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return (
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )


def upgrade() -> None:
    op.create_table(
        'plants',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'departments',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('plant_id', sa.UUID(as_uuid=True), sa.ForeignKey('plants.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'locations',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('department_id', sa.UUID(as_uuid=True), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('employee_code', sa.String(), nullable=True, unique=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('pin_hash', sa.String(), nullable=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='employee'),
        sa.Column('department_id', sa.UUID(as_uuid=True), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('plant_id', sa.UUID(as_uuid=True), sa.ForeignKey('plants.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'equipment',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('recall_number', sa.String(), nullable=True, unique=True),
        sa.Column('serial_number', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('manufacturer', sa.String(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('process_range_start', sa.String(), nullable=True),
        sa.Column('process_range_end', sa.String(), nullable=True),
        sa.Column('last_calibration_date', sa.Date(), nullable=True),
        sa.Column('next_calibration_due', sa.Date(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('custodian_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('plant_id', sa.UUID(as_uuid=True), sa.ForeignKey('plants.id'), nullable=True),
        sa.Column('department_id', sa.UUID(as_uuid=True), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('location_id', sa.UUID(as_uuid=True), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    op.create_index('ix_equipment_serial_number', 'equipment', ['serial_number'])
    op.create_table(
        'incoming_records',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('recall_number', sa.String(), nullable=True),
        sa.Column('equipment_id', sa.UUID(as_uuid=True), sa.ForeignKey('equipment.id'), nullable=False),
        sa.Column('technician_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('received_by_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('employee_in_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('location_id', sa.UUID(as_uuid=True), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('serial_number', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('manufacturer', sa.String(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('calibration_date', sa.Date(), nullable=True),
        sa.Column('expected_due_date', sa.Date(), nullable=True),
        sa.Column('date_in', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='for_confirmation'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_incoming_records_recall_number', 'incoming_records', ['recall_number'])
    op.create_table(
        'outgoing_records',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('incoming_id', sa.UUID(as_uuid=True), sa.ForeignKey('incoming_records.id'), nullable=False),
        sa.Column('recall_number', sa.String(), nullable=True),
        sa.Column('calibration_date', sa.Date(), nullable=False),
        sa.Column('calibration_due_date', sa.Date(), nullable=False),
        sa.Column('date_out', sa.DateTime(), nullable=False),
        sa.Column('released_by_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('employee_out_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('technician_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('cycle_time', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('queuing_time', sa.Integer(), nullable=True),
        sa.Column('ct_reqd', sa.Integer(), nullable=True),
        sa.Column('commit_etc', sa.Integer(), nullable=True),
        sa.Column('actual_etc', sa.Integer(), nullable=True),
        sa.Column('overdue', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(), nullable=False, server_default='for_pickup'),
        sa.Column('picked_up_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('incoming_id', name='uq_outgoing_records_incoming_id'),
    )
    op.create_index('ix_outgoing_records_recall_number', 'outgoing_records', ['recall_number'])
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String(), nullable=True),
        sa.Column('target_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_index('ix_outgoing_records_recall_number', table_name='outgoing_records')
    op.drop_table('outgoing_records')
    op.drop_index('ix_incoming_records_recall_number', table_name='incoming_records')
    op.drop_table('incoming_records')
    op.drop_index('ix_equipment_serial_number', table_name='equipment')
    op.drop_table('equipment')
    op.drop_table('users')
    op.drop_table('locations')
    op.drop_table('departments')
    op.drop_table('plants')
