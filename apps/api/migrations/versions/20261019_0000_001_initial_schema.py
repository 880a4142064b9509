"""Create schema for projects, memberships, invitations and protocols.

Revision ID: 001
Revises:
Create Date: 2026-10-19

This migration creates:
- Profiles (one row per auth provider user)
- Projects with roles, groups, memberships and invitations
- Protocols with attendees, agenda items, decisions, action items,
  attachments and links
- Protocol templates with agenda items, attendee roles and actions
- The four seeded project roles and a system Byggmöte template
"""

import uuid
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUM_TYPES = {
    "role_name": ("owner", "admin", "member", "viewer"),
    "project_status": ("active", "completed", "archived"),
    "member_status": ("pending", "active", "removed"),
    "meeting_type": (
        "byggmote", "projektmote", "samordningsmote", "startmote",
        "slutmote", "besiktning", "other",
    ),
    "protocol_status": ("draft", "finalized", "archived"),
    "attendee_role": ("organizer", "recorder", "attendee", "absent_notified"),
    "action_item_status": ("pending", "in_progress", "completed", "cancelled"),
    "action_item_priority": ("low", "medium", "high", "critical"),
    "protocol_link_type": ("issue", "deviation", "rfi", "checklist", "document"),
    "protocol_link_direction": ("referenced", "created_from"),
}

SEED_ROLES = [
    {
        "name": "owner",
        "display_name": "Projektägare",
        "description": "Full kontroll över projektet inklusive radering och överföring av ägandeskap",
        "permissions": {
            "project": ["read", "update", "delete", "transfer"],
            "members": ["read", "invite", "remove", "change_role"],
            "groups": ["read", "create", "update", "delete", "assign"],
            "protocols": ["read", "create", "update", "delete"],
        },
    },
    {
        "name": "admin",
        "display_name": "Administratör",
        "description": "Kan hantera medlemmar och har full tillgång till alla moduler",
        "permissions": {
            "project": ["read", "update"],
            "members": ["read", "invite", "remove"],
            "groups": ["read", "create", "update", "delete", "assign"],
            "protocols": ["read", "create", "update", "delete"],
        },
    },
    {
        "name": "member",
        "display_name": "Medlem",
        "description": "Kan skapa och redigera innehåll i projektet",
        "permissions": {
            "project": ["read"],
            "members": ["read"],
            "groups": ["read"],
            "protocols": ["read", "create", "update", "delete"],
        },
    },
    {
        "name": "viewer",
        "display_name": "Läsbehörighet",
        "description": "Kan endast visa projektinnehåll",
        "permissions": {
            "project": ["read"],
            "members": ["read"],
            "groups": ["read"],
            "protocols": ["read"],
        },
    },
]

SEED_TEMPLATE = {
    "name": "Byggmöte",
    "description": "Standarddagordning för ett återkommande byggmöte",
    "meeting_type": "byggmote",
    "agenda": [
        "Mötets öppnande",
        "Val av justerare",
        "Föregående protokoll",
        "Tidplan",
        "Ekonomi",
        "Arbetsmiljö",
        "Kvalitet och miljö",
        "Övriga frågor",
        "Nästa möte",
        "Mötets avslutande",
    ],
}


def enum_column(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def timestamp_column(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def upgrade() -> None:
    # Create enum types
    for name, values in ENUM_TYPES.items():
        labels = ", ".join(f"'{value}'" for value in values)
        op.execute(f"CREATE TYPE {name} AS ENUM ({labels})")

    # Profiles
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        timestamp_column("created_at"),
        timestamp_column("updated_at"),
    )

    # Roles
    roles = op.create_table(
        "project_roles",
        uuid_pk(),
        sa.Column("name", enum_column("role_name"), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("permissions", postgresql.JSONB(), nullable=False, server_default="{}"),
        timestamp_column("created_at"),
    )

    # Projects
    op.create_table(
        "projects",
        uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("project_number", sa.String(50), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column(
            "status", enum_column("project_status"), nullable=False, server_default="active"
        ),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        timestamp_column("created_at"),
        timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"]),
    )

    op.create_table(
        "project_groups",
        uuid_pk(),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(7), nullable=False, server_default="#6366f1"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        timestamp_column("created_at"),
        timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"]),
        sa.UniqueConstraint("project_id", "name", name="uq_project_group_name"),
    )

    op.create_table(
        "project_members",
        uuid_pk(),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "status", enum_column("member_status"), nullable=False, server_default="active"
        ),
        sa.Column("invited_by", postgresql.UUID(as_uuid=True), nullable=True),
        timestamp_column("invited_at"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"]),
        sa.ForeignKeyConstraint(["role_id"], ["project_roles.id"]),
        sa.ForeignKeyConstraint(["group_id"], ["project_groups.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["invited_by"], ["profiles.id"]),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    op.create_table(
        "invitations",
        uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("token", sa.String(128), nullable=False, unique=True, index=True),
        sa.Column("invited_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["project_roles.id"]),
        sa.ForeignKeyConstraint(["group_id"], ["project_groups.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["invited_by"], ["profiles.id"]),
    )

    # Protocols
    op.create_table(
        "protocols",
        uuid_pk(),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("protocol_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column(
            "meeting_type", enum_column("meeting_type"), nullable=False, server_default="byggmote"
        ),
        sa.Column(
            "status", enum_column("protocol_status"), nullable=False, server_default="draft"
        ),
        sa.Column("meeting_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("previous_protocol_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        timestamp_column("created_at"),
        timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["previous_protocol_id"], ["protocols.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"]),
        sa.UniqueConstraint("project_id", "protocol_number", name="uq_protocol_number"),
    )

    op.create_table(
        "protocol_attendees",
        uuid_pk(),
        sa.Column("protocol_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column(
            "role", enum_column("attendee_role"), nullable=False, server_default="attendee"
        ),
        sa.Column("attended", sa.Boolean(), nullable=False, server_default="true"),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["protocol_id"], ["protocols.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"]),
    )

    op.create_table(
        "protocol_agenda_items",
        uuid_pk(),
        sa.Column("protocol_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("presenter_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["protocol_id"], ["protocols.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["presenter_id"], ["profiles.id"]),
    )

    op.create_table(
        "protocol_decisions",
        uuid_pk(),
        sa.Column("protocol_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("decision_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("decided_by", sa.String(255), nullable=True),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["protocol_id"], ["protocols.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("protocol_id", "decision_number", name="uq_decision_number"),
    )

    op.create_table(
        "protocol_action_items",
        uuid_pk(),
        sa.Column("protocol_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("action_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("assigned_to_name", sa.String(255), nullable=True),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column(
            "priority", enum_column("action_item_priority"), nullable=False, server_default="medium"
        ),
        sa.Column(
            "status", enum_column("action_item_status"), nullable=False, server_default="pending"
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        timestamp_column("created_at"),
        timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["protocol_id"], ["protocols.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_to"], ["profiles.id"]),
        sa.UniqueConstraint("protocol_id", "action_number", name="uq_action_number"),
    )

    op.create_table(
        "protocol_attachments",
        uuid_pk(),
        sa.Column("protocol_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("file_name", sa.String(500), nullable=False),
        sa.Column("file_path", sa.String(1000), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("file_type", sa.String(255), nullable=True),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=True), nullable=True),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["protocol_id"], ["protocols.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by"], ["profiles.id"]),
    )

    op.create_table(
        "protocol_links",
        uuid_pk(),
        sa.Column("protocol_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("link_type", enum_column("protocol_link_type"), nullable=False),
        sa.Column("linked_item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "link_direction",
            enum_column("protocol_link_direction"),
            nullable=False,
            server_default="referenced",
        ),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["protocol_id"], ["protocols.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"]),
    )

    # Protocol templates
    templates = op.create_table(
        "protocol_templates",
        uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "meeting_type", enum_column("meeting_type"), nullable=False, server_default="byggmote"
        ),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("default_location", sa.String(500), nullable=True),
        sa.Column("default_start_time", sa.Time(), nullable=True),
        sa.Column("default_end_time", sa.Time(), nullable=True),
        sa.Column("default_notes", sa.Text(), nullable=True),
        timestamp_column("created_at"),
        timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
    )

    template_agenda = op.create_table(
        "protocol_template_agenda_items",
        uuid_pk(),
        sa.Column("template_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(
            ["template_id"], ["protocol_templates.id"], ondelete="CASCADE"
        ),
    )

    op.create_table(
        "protocol_template_attendee_roles",
        uuid_pk(),
        sa.Column("template_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("role_name", sa.String(255), nullable=False),
        sa.Column("company_placeholder", sa.String(255), nullable=True),
        sa.Column(
            "role", enum_column("attendee_role"), nullable=False, server_default="attendee"
        ),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(
            ["template_id"], ["protocol_templates.id"], ondelete="CASCADE"
        ),
    )

    op.create_table(
        "protocol_template_actions",
        uuid_pk(),
        sa.Column("template_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "priority", enum_column("action_item_priority"), nullable=False, server_default="medium"
        ),
        sa.Column("default_role", sa.String(255), nullable=True),
        sa.Column("default_days_until_deadline", sa.Integer(), nullable=True),
        timestamp_column("created_at"),
        sa.ForeignKeyConstraint(
            ["template_id"], ["protocol_templates.id"], ondelete="CASCADE"
        ),
    )

    # Indexes for common queries
    op.create_index("ix_protocols_project_date", "protocols", ["project_id", "meeting_date"])
    op.create_index(
        "ix_protocol_action_items_assignee_status",
        "protocol_action_items",
        ["assigned_to", "status"],
    )

    # Seed roles
    op.bulk_insert(
        roles,
        [
            {
                "id": uuid.uuid4(),
                "name": role["name"],
                "display_name": role["display_name"],
                "description": role["description"],
                "permissions": role["permissions"],
            }
            for role in SEED_ROLES
        ],
    )

    # Seed system template
    template_id = uuid.uuid4()
    op.bulk_insert(
        templates,
        [
            {
                "id": template_id,
                "name": SEED_TEMPLATE["name"],
                "description": SEED_TEMPLATE["description"],
                "meeting_type": SEED_TEMPLATE["meeting_type"],
                "is_system": True,
            }
        ],
    )
    op.bulk_insert(
        template_agenda,
        [
            {
                "id": uuid.uuid4(),
                "template_id": template_id,
                "order_index": index + 1,
                "title": title,
            }
            for index, title in enumerate(SEED_TEMPLATE["agenda"])
        ],
    )


def downgrade() -> None:
    # Drop indexes
    op.drop_index("ix_protocol_action_items_assignee_status", "protocol_action_items")
    op.drop_index("ix_protocols_project_date", "protocols")

    # Drop tables in reverse order (respecting foreign keys)
    op.drop_table("protocol_template_actions")
    op.drop_table("protocol_template_attendee_roles")
    op.drop_table("protocol_template_agenda_items")
    op.drop_table("protocol_templates")
    op.drop_table("protocol_links")
    op.drop_table("protocol_attachments")
    op.drop_table("protocol_action_items")
    op.drop_table("protocol_decisions")
    op.drop_table("protocol_agenda_items")
    op.drop_table("protocol_attendees")
    op.drop_table("protocols")
    op.drop_table("invitations")
    op.drop_table("project_members")
    op.drop_table("project_groups")
    op.drop_table("projects")
    op.drop_table("project_roles")
    op.drop_table("profiles")

    # Drop enum types
    for name in reversed(list(ENUM_TYPES)):
        op.execute(f"DROP TYPE {name}")
