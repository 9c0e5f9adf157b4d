"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Tables:
  - organizations, app_groups: tenancy containers
  - deployment_configs: one immutable config per deployment
  - apps: deployable applications, pointing at their current config
  - deployments: deployment attempts and their status
  - queued_jobs: builds waiting for a free build slot
  - deployment_logs: build and runtime log lines
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    schema = 'shipyard'

    # =========================================================================
    # 1. organizations / app_groups
    # =========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('github_installation_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema=schema,
    )
    op.create_index(
        'ix_organizations_github_installation_id', 'organizations', ['github_installation_id'], schema=schema
    )

    op.create_table(
        'app_groups',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey(f'{schema}.organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_mono', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema=schema,
    )
    op.create_index('ix_app_groups_org_id', 'app_groups', ['org_id'], schema=schema)

    # =========================================================================
    # 2. deployment_configs
    # =========================================================================
    op.create_table(
        'deployment_configs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('app_type', sa.String(20), nullable=False),
        sa.Column('source', sa.String(10), nullable=False),
        sa.Column('env_ciphertext', sa.Text(), nullable=True),
        sa.Column('image_tag', sa.String(500), nullable=True),
        sa.Column('port', sa.Integer(), nullable=True),
        sa.Column('replicas', sa.Integer(), nullable=True),
        sa.Column('mounts', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('requests', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('limits', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('post_start', sa.Text(), nullable=True),
        sa.Column('pre_stop', sa.Text(), nullable=True),
        sa.Column('collect_logs', sa.Boolean(), nullable=True),
        sa.Column('create_ingress', sa.Boolean(), nullable=True),
        sa.Column('subdomain', sa.String(63), nullable=True),
        sa.Column('repository_id', sa.Integer(), nullable=True),
        sa.Column('branch', sa.String(255), nullable=True),
        sa.Column('event', sa.String(20), nullable=True),
        sa.Column('event_id', sa.Integer(), nullable=True),
        sa.Column('commit_hash', sa.String(64), nullable=True),
        sa.Column('builder', sa.String(20), nullable=True),
        sa.Column('root_dir', sa.String(500), nullable=True),
        sa.Column('dockerfile_path', sa.String(500), nullable=True),
        sa.Column('helm_url', sa.String(1000), nullable=True),
        sa.Column('helm_url_type', sa.String(10), nullable=True),
        sa.Column('helm_version', sa.String(100), nullable=True),
        sa.Column('helm_values', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(source = 'HELM' AND app_type = 'helm' AND helm_url IS NOT NULL AND image_tag IS NULL)"
            " OR (source = 'IMAGE' AND app_type = 'workload' AND image_tag IS NOT NULL AND helm_url IS NULL)"
            " OR (source = 'GIT' AND app_type = 'workload' AND repository_id IS NOT NULL AND helm_url IS NULL)",
            name='ck_deployment_configs_variant',
        ),
        schema=schema,
    )
    op.create_index('ix_deployment_configs_repository_id', 'deployment_configs', ['repository_id'], schema=schema)

    # =========================================================================
    # 3. apps
    # =========================================================================
    op.create_table(
        'apps',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey(f'{schema}.organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('app_group_id', sa.Integer(), sa.ForeignKey(f'{schema}.app_groups.id'), nullable=False),
        sa.Column('name', sa.String(60), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('namespace', sa.String(63), nullable=False, unique=True),
        sa.Column('image_repo', sa.String(255), nullable=False),
        sa.Column('log_ingest_secret', sa.String(128), nullable=False),
        sa.Column('config_id', sa.Integer(), sa.ForeignKey(f'{schema}.deployment_configs.id', name='fk_apps_config_id'), nullable=True),
        sa.Column('enable_cd', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema=schema,
    )
    op.create_index('ix_apps_org_id', 'apps', ['org_id'], schema=schema)
    op.create_index('ix_apps_app_group_id', 'apps', ['app_group_id'], schema=schema)

    # =========================================================================
    # 4. deployments
    # =========================================================================
    op.create_table(
        'deployments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('app_id', sa.Integer(), sa.ForeignKey(f'{schema}.apps.id', ondelete='CASCADE'), nullable=False),
        sa.Column('config_id', sa.Integer(), sa.ForeignKey(f'{schema}.deployment_configs.id'), nullable=False, unique=True),
        sa.Column('workflow_run_id', sa.Integer(), nullable=True),
        sa.Column('check_run_id', sa.Integer(), nullable=True),
        sa.Column('commit_message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('secret', sa.String(64), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('app_id', 'workflow_run_id', name='uq_deployments_app_workflow_run'),
        schema=schema,
    )
    op.create_index('ix_deployments_app_id', 'deployments', ['app_id'], schema=schema)
    op.create_index('ix_deployments_status', 'deployments', ['status'], schema=schema)
    op.create_index('ix_deployments_created_at', 'deployments', ['created_at'], schema=schema)

    # =========================================================================
    # 5. queued_jobs
    # =========================================================================
    op.create_table(
        'queued_jobs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('tag', sa.String(64), nullable=False),
        sa.Column('ref', sa.String(255), nullable=False),
        sa.Column('clone_url', sa.String(1000), nullable=False),
        sa.Column('image_tag', sa.String(500), nullable=False),
        sa.Column('image_cache_tag', sa.String(500), nullable=False),
        sa.Column('deployment_secret', sa.String(64), nullable=False),
        sa.Column(
            'deployment_id',
            sa.Integer(),
            sa.ForeignKey(f'{schema}.deployments.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema=schema,
    )
    op.create_index('ix_queued_jobs_created_at', 'queued_jobs', ['created_at'], schema=schema)

    # =========================================================================
    # 6. deployment_logs
    # =========================================================================
    op.create_table(
        'deployment_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'deployment_id',
            sa.Integer(),
            sa.ForeignKey(f'{schema}.deployments.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('type', sa.String(10), nullable=False, server_default='BUILD'),
        sa.Column('stream', sa.String(10), nullable=False, server_default='stdout'),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('pod_name', sa.String(255), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema=schema,
    )
    op.create_index('ix_deployment_logs_deployment_id', 'deployment_logs', ['deployment_id'], schema=schema)
    op.create_index('ix_deployment_logs_timestamp', 'deployment_logs', ['timestamp'], schema=schema)


def downgrade() -> None:
    schema = 'shipyard'

    op.drop_table('deployment_logs', schema=schema)
    op.drop_table('queued_jobs', schema=schema)
    op.drop_table('deployments', schema=schema)
    op.drop_table('apps', schema=schema)
    op.drop_table('deployment_configs', schema=schema)
    op.drop_table('app_groups', schema=schema)
    op.drop_table('organizations', schema=schema)
