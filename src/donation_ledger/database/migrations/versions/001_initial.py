"""Initial migration - create donor, project, child, sponsorship, invoice and donation tables

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create donors table
    op.create_table(
        'donors',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('phone', sa.String(64), nullable=True),
        sa.Column('address_line1', sa.String(255), nullable=True),
        sa.Column('address_line2', sa.String(255), nullable=True),
        sa.Column('city', sa.String(128), nullable=True),
        sa.Column('state', sa.String(128), nullable=True),
        sa.Column('zip_code', sa.String(32), nullable=True),
        sa.Column('country', sa.String(64), nullable=True),
        sa.Column('gateway_customer_id', sa.String(255), nullable=True),
        sa.Column('last_updated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_donors_email', 'donors', ['email'])
    op.create_index('ix_donors_gateway_customer_id', 'donors', ['gateway_customer_id'])

    # Create projects table
    op.create_table(
        'projects',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('project_type', sa.String(32), nullable=False, server_default='general'),
        sa.Column('system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_projects_title', 'projects', ['title'])

    # Create children table
    op.create_table(
        'children',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_children_name', 'children', ['name'])

    # Create sponsorships table
    op.create_table(
        'sponsorships',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('donor_id', sa.String(36), sa.ForeignKey('donors.id'), nullable=False),
        sa.Column('child_id', sa.String(36), sa.ForeignKey('children.id'), nullable=False),
        sa.Column('monthly_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gateway_subscription_id', sa.String(255), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('donor_id', 'child_id', name='uq_sponsorships_donor_child'),
    )
    op.create_index('ix_sponsorships_donor_id', 'sponsorships', ['donor_id'])
    op.create_index('ix_sponsorships_child_id', 'sponsorships', ['child_id'])

    # Create invoices table
    op.create_table(
        'invoices',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('gateway_invoice_id', sa.String(255), nullable=False, unique=True),
        sa.Column('gateway_charge_id', sa.String(255), nullable=True),
        sa.Column('gateway_customer_id', sa.String(255), nullable=True),
        sa.Column('gateway_subscription_id', sa.String(255), nullable=True),
        sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('invoice_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_invoices_gateway_invoice_id', 'invoices', ['gateway_invoice_id'])
    op.create_index('ix_invoices_gateway_charge_id', 'invoices', ['gateway_charge_id'])

    # Create donations table
    op.create_table(
        'donations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('donor_id', sa.String(36), sa.ForeignKey('donors.id'), nullable=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('projects.id'), nullable=True),
        sa.Column('sponsorship_id', sa.String(36), sa.ForeignKey('sponsorships.id'), nullable=True),
        sa.Column('child_id', sa.String(36), sa.ForeignKey('children.id'), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('gateway_charge_id', sa.String(255), nullable=True),
        sa.Column('gateway_customer_id', sa.String(255), nullable=True),
        sa.Column('gateway_subscription_id', sa.String(255), nullable=True),
        sa.Column('gateway_invoice_id', sa.String(255), nullable=True),
        sa.Column('import_fingerprint', sa.String(64), nullable=True),
        sa.Column('duplicate_subscription_detected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('needs_attention_reason', sa.Text(), nullable=True),
        sa.Column('source', sa.String(64), nullable=False, server_default='import'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_donations_status', 'donations', ['status'])
    op.create_index('ix_donations_gateway_charge_id', 'donations', ['gateway_charge_id'])
    op.create_index('ix_donations_gateway_invoice_id', 'donations', ['gateway_invoice_id'])
    op.create_index('ix_donations_subscription_child', 'donations', ['gateway_subscription_id', 'child_id'])
    op.create_index('ix_donations_import_fingerprint', 'donations', ['import_fingerprint'])

    # Create donation_status_changes table
    op.create_table(
        'donation_status_changes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('donation_id', sa.String(36), sa.ForeignKey('donations.id'), nullable=False),
        sa.Column('previous_status', sa.String(32), nullable=True),
        sa.Column('new_status', sa.String(32), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_donation_status_changes_donation_id', 'donation_status_changes', ['donation_id'])


def downgrade() -> None:
    op.drop_index('ix_donation_status_changes_donation_id', table_name='donation_status_changes')

    op.drop_index('ix_donations_import_fingerprint', table_name='donations')
    op.drop_index('ix_donations_subscription_child', table_name='donations')
    op.drop_index('ix_donations_gateway_invoice_id', table_name='donations')
    op.drop_index('ix_donations_gateway_charge_id', table_name='donations')
    op.drop_index('ix_donations_status', table_name='donations')

    op.drop_index('ix_invoices_gateway_charge_id', table_name='invoices')
    op.drop_index('ix_invoices_gateway_invoice_id', table_name='invoices')
    op.drop_index('ix_sponsorships_child_id', table_name='sponsorships')
    op.drop_index('ix_sponsorships_donor_id', table_name='sponsorships')
    op.drop_index('ix_children_name', table_name='children')
    op.drop_index('ix_projects_title', table_name='projects')
    op.drop_index('ix_donors_gateway_customer_id', table_name='donors')
    op.drop_index('ix_donors_email', table_name='donors')

    # Drop tables, dependents first
    op.drop_table('donation_status_changes')
    op.drop_table('donations')
    op.drop_table('invoices')
    op.drop_table('sponsorships')
    op.drop_table('children')
    op.drop_table('projects')
    op.drop_table('donors')
