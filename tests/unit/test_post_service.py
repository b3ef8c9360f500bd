"""Tests for PostService: CRUD, status transitions and bulk operations."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from api.exceptions import InvalidStateError, NotFoundError, ValidationError
from api.services.post_service import PostService, to_utc_naive
from crosspost.db.models import (
    MediaItem,
    Post,
    PostCreate,
    PostStatus,
    PostUpdate,
    SocialAccountStatus,
    SocialPlatform,
    utcnow,
)


@pytest.fixture
def service():
    return PostService()


@pytest.fixture
def account(factory, workspace):
    return factory.account(workspace, SocialPlatform.facebook)


class TestCreateAndEdit:
    """Drafting posts and their targets."""

    def test_create_adds_one_target_per_account(self, service, session, factory, workspace, owner):
        facebook = factory.account(workspace, SocialPlatform.facebook)
        linkedin = factory.account(workspace, SocialPlatform.linkedin)

        post = service.create(
            session,
            workspace.id,
            PostCreate(content_text="Hello", social_account_ids=[facebook.id, linkedin.id, facebook.id]),
            user_id=owner.id,
        )

        assert post.status == PostStatus.draft
        assert post.created_by_user_id == owner.id
        targets = service.get_targets(session, workspace.id, post.id)
        assert sorted(t.platform.value for t in targets) == ["facebook", "linkedin"]

    def test_create_rejects_account_of_other_workspace(self, service, session, factory, tenant, workspace):
        other = factory.workspace(tenant, name="Other")
        foreign = factory.account(other)

        with pytest.raises(ValidationError) as exc_info:
            service.create(
                session, workspace.id, PostCreate(content_text="Hi", social_account_ids=[foreign.id])
            )

        assert exc_info.value.details["social_account_ids"] == [str(foreign.id)]

    def test_create_stores_media(self, service, session, workspace):
        post = service.create(
            session,
            workspace.id,
            PostCreate(media=[MediaItem(type="image", url="https://cdn/a.jpg")]),
        )
        assert post.media == [{"type": "image", "url": "https://cdn/a.jpg"}]
        assert post.media_items[0].url == "https://cdn/a.jpg"

    def test_editing_rejected_post_returns_it_to_draft(self, service, session, factory, workspace):
        post = factory.post(workspace, status=PostStatus.rejected)

        updated = service.update(session, workspace.id, post.id, PostUpdate(content_text="Fixed"))

        assert updated.status == PostStatus.draft
        assert updated.content_text == "Fixed"
        assert updated.rejection_reason is None

    def test_cannot_edit_scheduled_post(self, service, session, factory, workspace):
        post = factory.post(workspace, status=PostStatus.scheduled)

        with pytest.raises(InvalidStateError):
            service.update(session, workspace.id, post.id, PostUpdate(content_text="Late edit"))

    def test_delete_is_soft(self, service, session, factory, workspace):
        post = factory.post(workspace)

        service.delete(session, workspace.id, post.id)

        assert session.get(Post, post.id).deleted_at is not None
        with pytest.raises(NotFoundError):
            service.get(session, workspace.id, post.id)

    def test_cannot_delete_approved_post(self, service, session, factory, workspace):
        post = factory.post(workspace, status=PostStatus.approved)

        with pytest.raises(InvalidStateError):
            service.delete(session, workspace.id, post.id)

    def test_duplicate_skips_disconnected_accounts(self, service, session, factory, workspace):
        live = factory.account(workspace, SocialPlatform.facebook)
        gone = factory.account(workspace, SocialPlatform.twitter, status=SocialAccountStatus.revoked)
        source = factory.post(workspace, accounts=(live, gone), status=PostStatus.published)

        copy = service.duplicate(session, workspace.id, source.id)

        assert copy.id != source.id
        assert copy.status == PostStatus.draft
        assert copy.content_text == source.content_text
        targets = service.get_targets(session, workspace.id, copy.id)
        assert [t.social_account_id for t in targets] == [live.id]

    def test_add_and_remove_targets(self, service, session, factory, workspace, account):
        post = factory.post(workspace)
        other = factory.account(workspace, SocialPlatform.linkedin)

        targets = service.add_targets(session, workspace.id, post.id, [account.id, other.id])
        assert len(targets) == 2

        service.remove_target(session, workspace.id, post.id, targets[0].id)
        assert len(service.get_targets(session, workspace.id, post.id)) == 1

    def test_remove_unknown_target(self, service, session, factory, workspace):
        post = factory.post(workspace)
        with pytest.raises(NotFoundError):
            service.remove_target(session, workspace.id, post.id, uuid4())


class TestTransitions:
    """Submit, approve, reject, schedule, cancel."""

    def test_full_happy_path(self, service, session, factory, workspace, owner, account):
        post = factory.post(workspace, accounts=(account,))
        when = utcnow() + timedelta(hours=2)

        post = service.submit(session, workspace.id, post.id)
        assert post.status == PostStatus.submitted
        assert post.submitted_at is not None

        post = service.approve(session, workspace.id, post.id, user_id=owner.id)
        assert post.status == PostStatus.approved
        assert post.approved_by_user_id == owner.id

        post = service.schedule(session, workspace.id, post.id, when, timezone="Europe/Berlin")
        assert post.status == PostStatus.scheduled
        assert post.scheduled_at == when
        assert post.timezone == "Europe/Berlin"

        later = when + timedelta(days=1)
        post = service.reschedule(session, workspace.id, post.id, later)
        assert post.scheduled_at == later

        post = service.unschedule(session, workspace.id, post.id)
        assert post.status == PostStatus.approved
        assert post.scheduled_at is None

        post = service.cancel(session, workspace.id, post.id)
        assert post.status == PostStatus.cancelled

    def test_reject_records_reason(self, service, session, factory, workspace, account):
        post = factory.post(workspace, accounts=(account,), status=PostStatus.submitted)

        post = service.reject(session, workspace.id, post.id, reason="Off brand")

        assert post.status == PostStatus.rejected
        assert post.rejection_reason == "Off brand"

    def test_illegal_transition(self, service, session, factory, workspace):
        post = factory.post(workspace, status=PostStatus.draft)

        with pytest.raises(InvalidStateError) as exc_info:
            service.approve(session, workspace.id, post.id)

        assert exc_info.value.details == {"from": "draft", "to": "approved"}

    def test_submit_requires_targets(self, service, session, factory, workspace):
        post = factory.post(workspace)
        with pytest.raises(ValidationError):
            service.submit(session, workspace.id, post.id)

    def test_submit_requires_content(self, service, session, factory, workspace, account):
        post = factory.post(workspace, accounts=(account,), text="   ")
        with pytest.raises(ValidationError):
            service.submit(session, workspace.id, post.id)

    def test_submit_checks_every_platform(self, service, session, factory, workspace):
        """Text limits and media requirements are checked per target."""
        twitter = factory.account(workspace, SocialPlatform.twitter)
        instagram = factory.account(workspace, SocialPlatform.instagram)
        post = factory.post(workspace, accounts=(twitter, instagram), text="x" * 300)

        with pytest.raises(ValidationError) as exc_info:
            service.submit(session, workspace.id, post.id)

        platforms = sorted(p["platform"] for p in exc_info.value.details["targets"])
        assert platforms == ["instagram", "twitter"]

    def test_schedule_in_past_rejected(self, service, session, factory, workspace, account):
        post = factory.post(workspace, accounts=(account,), status=PostStatus.approved)

        with pytest.raises(ValidationError):
            service.schedule(session, workspace.id, post.id, utcnow() - timedelta(minutes=1))

    def test_schedule_converts_aware_datetimes_to_utc(self, service, session, factory, workspace, account):
        post = factory.post(workspace, accounts=(account,), status=PostStatus.approved)
        berlin = timezone(timedelta(hours=2))
        local = (datetime.now(berlin) + timedelta(days=1)).replace(microsecond=0)

        post = service.schedule(session, workspace.id, post.id, local)

        assert post.scheduled_at == local.astimezone(timezone.utc).replace(tzinfo=None)

    def test_reschedule_requires_scheduled(self, service, session, factory, workspace, account):
        post = factory.post(workspace, accounts=(account,), status=PostStatus.approved)
        with pytest.raises(InvalidStateError):
            service.reschedule(session, workspace.id, post.id, utcnow() + timedelta(hours=1))

    def test_to_utc_naive_leaves_naive_values(self):
        value = datetime(2026, 10, 17, 9, 30)
        assert to_utc_naive(value) is value


class TestBulkOperations:
    """Bulk results count rows actually changed."""

    def test_bulk_delete_empty(self, service, session, workspace):
        result = service.bulk_delete(session, workspace.id, [])
        assert (result.requested, result.succeeded, result.failed) == (0, 0, 0)

    def test_bulk_delete_counts_exact_rows(self, service, session, factory, tenant, workspace):
        drafts = [factory.post(workspace) for _ in range(3)]
        approved = factory.post(workspace, status=PostStatus.approved)
        foreign = factory.post(factory.workspace(tenant, name="Other"))
        missing = uuid4()
        ids = [p.id for p in drafts] + [approved.id, foreign.id, missing, drafts[0].id]

        result = service.bulk_delete(session, workspace.id, ids)

        assert result.requested == 6
        assert result.succeeded == 3
        assert result.failed == 3
        assert sorted(e["post_id"] for e in result.errors) == sorted(
            str(i) for i in (approved.id, foreign.id, missing)
        )
        assert session.get(Post, foreign.id).deleted_at is None
        assert session.get(Post, approved.id).deleted_at is None

    def test_bulk_delete_twice_deletes_nothing_second_time(self, service, session, factory, workspace):
        posts = [factory.post(workspace) for _ in range(2)]
        ids = [p.id for p in posts]

        assert service.bulk_delete(session, workspace.id, ids).succeeded == 2
        second = service.bulk_delete(session, workspace.id, ids)
        assert second.succeeded == 0
        assert second.failed == 2

    def test_bulk_submit_reports_failures(self, service, session, factory, workspace, account):
        ready = factory.post(workspace, accounts=(account,))
        no_targets = factory.post(workspace)

        result = service.bulk_submit(session, workspace.id, [ready.id, no_targets.id])

        assert result.succeeded == 1
        assert result.failed == 1
        assert result.errors[0]["post_id"] == str(no_targets.id)
        assert result.errors[0]["code"] == "VALIDATION_ERROR"

    def test_bulk_schedule(self, service, session, factory, workspace, account):
        posts = [factory.post(workspace, accounts=(account,), status=PostStatus.approved) for _ in range(2)]
        when = utcnow() + timedelta(hours=3)

        result = service.bulk_schedule(session, workspace.id, [p.id for p in posts], when)

        assert result.succeeded == 2
        for post in posts:
            session.refresh(post)
            assert post.status == PostStatus.scheduled
