"""
Tests for the protocol lifecycle and protocol content.
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from byggportal.core.errors import (
    ExternalServiceError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    ProtocolLockedError,
)
from byggportal.projects.models import MemberStatus, RoleName
from byggportal.projects.schemas import ProjectCreate
from byggportal.projects.services import ProjectService
from byggportal.protocols.models import ActionItemStatus, ProtocolStatus
from byggportal.protocols.schemas import (
    ActionItemCreate,
    ActionItemUpdate,
    AgendaItemCreate,
    AgendaReorderItem,
    AttendeeCreate,
    DecisionCreate,
    ProtocolCreate,
    ProtocolUpdate,
)
from byggportal.protocols.services import (
    AttachmentService,
    ProtocolContentService,
    ProtocolService,
    protocol_completion,
)


def new_protocol(title: str = "Byggmöte", **kwargs) -> ProtocolCreate:
    return ProtocolCreate(title=title, meeting_date=date(2026, 3, 12), **kwargs)


@pytest.fixture
async def protocol(db, project, owner):
    return await ProtocolService(db).create_protocol(project.id, new_protocol(), owner.id)


class TestProtocolNumbering:
    """Tests for per-project protocol numbers."""

    async def test_numbers_increase(self, db, project, owner) -> None:
        """Test that protocols are numbered 1, 2, 3 within a project."""
        service = ProtocolService(db)
        numbers = [
            (await service.create_protocol(project.id, new_protocol(f"Möte {i}"), owner.id)).protocol_number
            for i in range(3)
        ]
        assert numbers == [1, 2, 3]

    async def test_numbers_are_per_project(self, db, project, owner, make_user) -> None:
        """Test that each project starts at 1."""
        other_owner = await make_user()
        other = await ProjectService(db).create_project(ProjectCreate(name="Annat"), other_owner.id)
        service = ProtocolService(db)

        await service.create_protocol(project.id, new_protocol(), owner.id)
        first_other = await service.create_protocol(other.id, new_protocol(), other_owner.id)
        assert first_other.protocol_number == 1

    async def test_new_protocol_is_draft(self, protocol) -> None:
        """Test that protocols start as drafts."""
        assert protocol.status == ProtocolStatus.DRAFT
        assert protocol.is_draft

    async def test_previous_protocol_must_be_in_project(
        self, db, project, owner, make_user
    ) -> None:
        """Test that chaining across projects is rejected."""
        other_owner = await make_user()
        other = await ProjectService(db).create_project(ProjectCreate(name="Annat"), other_owner.id)
        foreign = await ProtocolService(db).create_protocol(
            other.id, new_protocol(), other_owner.id
        )

        with pytest.raises(NotFoundError):
            await ProtocolService(db).create_protocol(
                project.id, new_protocol(previous_protocol_id=foreign.id), owner.id
            )


class TestProtocolAccess:
    """Tests for who may read and write protocols."""

    async def test_viewer_cannot_create(self, db, project, make_user, add_member) -> None:
        """Test that viewers are read-only."""
        viewer = await make_user()
        await add_member(project, viewer, RoleName.VIEWER)
        with pytest.raises(PermissionDeniedError):
            await ProtocolService(db).create_protocol(project.id, new_protocol(), viewer.id)

    async def test_viewer_can_read(self, db, project, protocol, make_user, add_member) -> None:
        """Test that viewers can read protocols."""
        viewer = await make_user()
        await add_member(project, viewer, RoleName.VIEWER)
        loaded = await ProtocolService(db).get_protocol(protocol.id, viewer.id)
        assert loaded.id == protocol.id

    async def test_member_can_write(self, db, project, protocol, make_user, add_member) -> None:
        """Test that plain members can edit drafts."""
        member = await make_user()
        await add_member(project, member, RoleName.MEMBER)
        updated = await ProtocolService(db).update_protocol(
            protocol.id, ProtocolUpdate(notes="Anteckningar"), member.id
        )
        assert updated.notes == "Anteckningar"

    async def test_outsider_cannot_read(self, db, protocol, make_user) -> None:
        """Test that non-members see nothing."""
        outsider = await make_user()
        with pytest.raises(PermissionDeniedError):
            await ProtocolService(db).get_protocol(protocol.id, outsider.id)


class TestProtocolLifecycle:
    """Tests for draft, finalized and archived protocols."""

    async def test_finalize_locks_content(self, db, protocol, owner) -> None:
        """Test that a finalized protocol rejects edits."""
        service = ProtocolService(db)
        content = ProtocolContentService(db)
        finalized = await service.finalize_protocol(protocol.id, owner.id)
        assert finalized.status == ProtocolStatus.FINALIZED

        with pytest.raises(ProtocolLockedError):
            await service.update_protocol(protocol.id, ProtocolUpdate(title="Nytt"), owner.id)
        with pytest.raises(ProtocolLockedError):
            await content.add_attendee(protocol.id, AttendeeCreate(name="Per"), owner.id)
        with pytest.raises(ProtocolLockedError):
            await content.add_decision(protocol.id, DecisionCreate(description="Beslut"), owner.id)

    async def test_finalize_is_irreversible(self, db, protocol, owner) -> None:
        """Test that finalizing twice fails."""
        service = ProtocolService(db)
        await service.finalize_protocol(protocol.id, owner.id)
        with pytest.raises(ProtocolLockedError):
            await service.finalize_protocol(protocol.id, owner.id)

    async def test_archive_requires_finalized(self, db, protocol, owner) -> None:
        """Test that drafts cannot be archived."""
        with pytest.raises(InvalidOperationError):
            await ProtocolService(db).archive_protocol(protocol.id, owner.id)

    async def test_archive(self, db, protocol, owner) -> None:
        """Test archiving a finalized protocol."""
        service = ProtocolService(db)
        await service.finalize_protocol(protocol.id, owner.id)
        archived = await service.archive_protocol(protocol.id, owner.id)
        assert archived.status == ProtocolStatus.ARCHIVED

        with pytest.raises(ProtocolLockedError):
            await service.update_protocol(protocol.id, ProtocolUpdate(notes="x"), owner.id)

    async def test_delete_only_drafts(self, db, protocol, owner) -> None:
        """Test that finalized protocols cannot be deleted."""
        service = ProtocolService(db)
        await service.finalize_protocol(protocol.id, owner.id)
        with pytest.raises(ProtocolLockedError):
            await service.delete_protocol(protocol.id, owner.id)

    async def test_delete_draft_returns_stored_files(self, db, protocol, owner) -> None:
        """Test that deleting a draft leaves stored objects until they are removed explicitly."""
        storage = AsyncMock()
        storage.upload.side_effect = lambda bucket, path, content, content_type: path
        attachments = AttachmentService(db, storage=storage)
        attachment = await attachments.add_attachment(
            protocol.id, "ritning.pdf", b"%PDF", "application/pdf", owner.id
        )

        protocol_id = protocol.id
        file_paths = await ProtocolService(db).delete_protocol(protocol_id, owner.id)

        assert file_paths == [attachment.file_path]
        storage.delete.assert_not_awaited()
        with pytest.raises(NotFoundError):
            await ProtocolService(db).get_protocol_or_404(protocol_id)

        await attachments.remove_files(file_paths)
        storage.delete.assert_awaited_once_with("protocol-attachments", attachment.file_path)

    async def test_remove_files_is_best_effort(self, db) -> None:
        """Test that a storage failure does not stop removal of the other files."""
        storage = AsyncMock()
        storage.delete.side_effect = [ExternalServiceError("nere"), None]

        await AttachmentService(db, storage=storage).remove_files(["a.pdf", "b.pdf"])

        assert storage.delete.await_count == 2

    async def test_update_ignores_null_required_fields(self, db, protocol, owner) -> None:
        """Test that explicit nulls do not blank the title."""
        updated = await ProtocolService(db).update_protocol(
            protocol.id, ProtocolUpdate(title=None, location="Byggboden"), owner.id
        )
        assert updated.title == "Byggmöte"
        assert updated.location == "Byggboden"


class TestProtocolContent:
    """Tests for attendees, agenda, decisions and completion."""

    async def test_agenda_order(self, db, protocol, owner) -> None:
        """Test that agenda items are appended and can be reordered."""
        content = ProtocolContentService(db)
        first = await content.add_agenda_item(protocol.id, AgendaItemCreate(title="Tidplan"), owner.id)
        second = await content.add_agenda_item(protocol.id, AgendaItemCreate(title="Ekonomi"), owner.id)
        assert (first.order_index, second.order_index) == (0, 1)

        reordered = await content.reorder_agenda_items(
            protocol.id,
            [
                AgendaReorderItem(id=first.id, order_index=1),
                AgendaReorderItem(id=second.id, order_index=0),
            ],
            owner.id,
        )
        assert [item.title for item in reordered] == ["Ekonomi", "Tidplan"]

    async def test_decisions_are_numbered(self, db, protocol, owner) -> None:
        """Test consecutive decision numbers."""
        content = ProtocolContentService(db)
        first = await content.add_decision(protocol.id, DecisionCreate(description="A"), owner.id)
        second = await content.add_decision(protocol.id, DecisionCreate(description="B"), owner.id)
        assert (first.decision_number, second.decision_number) == (1, 2)

    async def test_completion(self, db, protocol, owner) -> None:
        """Test that a fully filled protocol is 100% complete."""
        service = ProtocolService(db)
        content = ProtocolContentService(db)

        loaded = await service.get_protocol(protocol.id, owner.id)
        assert protocol_completion(loaded) == 0

        await content.add_attendees(
            protocol.id, [AttendeeCreate(name="Per"), AttendeeCreate(name="Eva")], owner.id
        )
        await content.add_agenda_item(protocol.id, AgendaItemCreate(title="Tidplan"), owner.id)
        loaded = await service.get_protocol(protocol.id, owner.id)
        assert protocol_completion(loaded) == 50

        await service.update_protocol(protocol.id, ProtocolUpdate(notes="Allt enligt plan"), owner.id)
        await content.add_action_item(protocol.id, ActionItemCreate(description="Beställ"), owner.id)
        loaded = await service.get_protocol(protocol.id, owner.id)
        assert len(loaded.attendees) == 2
        assert protocol_completion(loaded) == 100


class TestActionItems:
    """Tests for action items and their follow-up."""

    async def test_bulk_numbers(self, db, protocol, owner) -> None:
        """Test that bulk-added items get consecutive numbers."""
        content = ProtocolContentService(db)
        await content.add_action_item(protocol.id, ActionItemCreate(description="Först"), owner.id)
        items = await content.add_action_items(
            protocol.id,
            [ActionItemCreate(description="A"), ActionItemCreate(description="B")],
            owner.id,
        )
        assert [i.action_number for i in items] == [2, 3]
        assert all(i.status == ActionItemStatus.PENDING for i in items)

    async def test_completed_at_follows_status(self, db, protocol, owner) -> None:
        """Test that completed_at is set on completion and cleared on reopen."""
        content = ProtocolContentService(db)
        action = await content.add_action_item(protocol.id, ActionItemCreate(description="A"), owner.id)

        done = await content.update_action_item(
            action.id, ActionItemUpdate(status=ActionItemStatus.COMPLETED), owner.id
        )
        assert done.completed_at is not None

        reopened = await content.update_action_item(
            action.id, ActionItemUpdate(status=ActionItemStatus.IN_PROGRESS), owner.id
        )
        assert reopened.completed_at is None

    async def test_follow_up_after_finalize(self, db, protocol, owner) -> None:
        """Test that status stays editable on a finalized protocol, content does not."""
        content = ProtocolContentService(db)
        action = await content.add_action_item(protocol.id, ActionItemCreate(description="A"), owner.id)
        await ProtocolService(db).finalize_protocol(protocol.id, owner.id)

        updated = await content.update_action_item(
            action.id,
            ActionItemUpdate(status=ActionItemStatus.COMPLETED, notes="Klart"),
            owner.id,
        )
        assert updated.status == ActionItemStatus.COMPLETED

        with pytest.raises(ProtocolLockedError):
            await content.update_action_item(
                action.id, ActionItemUpdate(description="Ändrad"), owner.id
            )
        with pytest.raises(ProtocolLockedError):
            await content.delete_action_item(action.id, owner.id)

    async def test_archived_actions_are_locked(self, db, protocol, owner) -> None:
        """Test that archived protocols reject even follow-up edits."""
        content = ProtocolContentService(db)
        action = await content.add_action_item(protocol.id, ActionItemCreate(description="A"), owner.id)
        service = ProtocolService(db)
        await service.finalize_protocol(protocol.id, owner.id)
        await service.archive_protocol(protocol.id, owner.id)

        with pytest.raises(ProtocolLockedError):
            await content.update_action_item(
                action.id, ActionItemUpdate(status=ActionItemStatus.COMPLETED), owner.id
            )

    async def test_my_pending_actions(self, db, project, protocol, owner, make_user, add_member) -> None:
        """Test open items for a user, earliest deadline first, undated last."""
        user = await make_user()
        membership = await add_member(project, user, RoleName.MEMBER)
        content = ProtocolContentService(db)
        today = date.today()

        await content.add_action_items(
            protocol.id,
            [
                ActionItemCreate(description="Utan datum", assigned_to=user.id),
                ActionItemCreate(description="Senare", assigned_to=user.id, deadline=today + timedelta(days=10)),
                ActionItemCreate(description="Snart", assigned_to=user.id, deadline=today + timedelta(days=1)),
                ActionItemCreate(description="Annans", assigned_to=owner.id),
            ],
            owner.id,
        )
        done = await content.add_action_item(
            protocol.id, ActionItemCreate(description="Klar", assigned_to=user.id), owner.id
        )
        await content.update_action_item(
            done.id, ActionItemUpdate(status=ActionItemStatus.COMPLETED), owner.id
        )

        service = ProtocolService(db)
        pending = await service.get_user_pending_action_items(user.id)
        assert [a.description for a in pending] == ["Snart", "Senare", "Utan datum"]
        assert pending[0].protocol.protocol_number == 1

        membership.status = MemberStatus.REMOVED
        await db.flush()
        assert await service.get_user_pending_action_items(user.id) == []


class TestProtocolQueries:
    """Tests for listing and statistics."""

    async def test_list_with_filters(self, db, project, owner) -> None:
        """Test status filtering and ordering by meeting date."""
        service = ProtocolService(db)
        older = await service.create_protocol(
            project.id, ProtocolCreate(title="Start", meeting_date=date(2026, 1, 10)), owner.id
        )
        newer = await service.create_protocol(
            project.id, ProtocolCreate(title="Möte 2", meeting_date=date(2026, 2, 10)), owner.id
        )
        await service.finalize_protocol(older.id, owner.id)

        all_protocols = await service.list_protocols(project.id, owner.id)
        assert [p.id for p in all_protocols] == [newer.id, older.id]

        finalized = await service.list_protocols(project.id, owner.id, status=ProtocolStatus.FINALIZED)
        assert [p.id for p in finalized] == [older.id]

    async def test_stats(self, db, project, owner) -> None:
        """Test counts per status and open action items."""
        service = ProtocolService(db)
        content = ProtocolContentService(db)
        first = await service.create_protocol(project.id, new_protocol(), owner.id)
        await service.create_protocol(project.id, new_protocol(), owner.id)
        await content.add_action_items(
            first.id,
            [ActionItemCreate(description="A"), ActionItemCreate(description="B")],
            owner.id,
        )
        await service.finalize_protocol(first.id, owner.id)

        stats = await service.get_stats(project.id, owner.id)
        assert stats.total == 2
        assert stats.draft == 1
        assert stats.finalized == 1
        assert stats.archived == 0
        assert stats.pending_actions == 2


class TestAttachments:
    """Tests for attachments backed by object storage."""

    async def test_upload_and_sign(self, db, project, protocol, owner) -> None:
        """Test that uploads land under the project folder and can be signed."""
        storage = AsyncMock()
        storage.create_signed_url.return_value = "https://storage.example/signed"
        service = AttachmentService(db, storage=storage)

        attachment = await service.add_attachment(
            protocol.id, "foto från bygget.jpg", b"jpegdata", "image/jpeg", owner.id
        )

        assert attachment.file_path.startswith(f"{project.id}/protocols/{protocol.id}/")
        assert attachment.file_path.endswith("foto_fr_n_bygget.jpg")
        assert attachment.file_size == 8
        storage.upload.assert_awaited_once()

        url = await service.get_attachment_url(attachment.id, owner.id)
        assert url == "https://storage.example/signed"

    async def test_no_upload_on_locked_protocol(self, db, protocol, owner) -> None:
        """Test that finalized protocols take no new files."""
        await ProtocolService(db).finalize_protocol(protocol.id, owner.id)
        storage = AsyncMock()
        with pytest.raises(ProtocolLockedError):
            await AttachmentService(db, storage=storage).add_attachment(
                protocol.id, "a.pdf", b"x", None, owner.id
            )
        storage.upload.assert_not_called()
