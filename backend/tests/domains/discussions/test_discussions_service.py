"""Tests for the discussion board."""
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from schoolcrm.core.exceptions import Forbidden, NotFound, ValidationFailed
from schoolcrm.domains.discussions.models import DiscussionComment, DiscussionPost, DiscussionReaction
from schoolcrm.domains.discussions.service import MAX_POST_LENGTH, DiscussionsService, clean_text


@pytest.fixture
def board(db, permissions):
    return DiscussionsService(db, permissions)


@pytest.fixture
def teacher(make_user):
    return make_user(role="teacher", name="Teacher")


@pytest.fixture
def director(make_user):
    return make_user(role="director", name="Director")


class TestPosts:
    def test_text_is_normalized(self):
        assert clean_text(" a\r\nb ", "Text", 10) == "a\nb"
        with pytest.raises(ValidationFailed):
            clean_text("  ", "Text", 10)
        with pytest.raises(ValidationFailed):
            clean_text("x" * (MAX_POST_LENGTH + 1), "Text", MAX_POST_LENGTH)

    def test_only_full_access_pins(self, board, teacher, director):
        assert board.create_post(teacher.id, "Hello", pinned=True).pinned is False
        assert board.create_post(director.id, "Rules", pinned=True).pinned is True

    def test_pinned_posts_come_first(self, board, teacher, director):
        board.create_post(director.id, "Rules", pinned=True)
        board.create_post(teacher.id, "First")
        board.create_post(teacher.id, "Second")

        posts = board.list_posts()
        assert [p["text"] for p in posts] == ["Rules", "Second", "First"]
        assert posts[0]["author_name"] == "Director"
        assert [p["text"] for p in board.list_posts(limit=1)] == ["Rules", "Second"]

    def test_author_edits_but_cannot_pin(self, board, teacher, director, make_user):
        post = board.create_post(teacher.id, "Draft")
        edited = board.update_post(teacher.id, post.id, "Final", pinned=True)
        assert edited.text == "Final"
        assert edited.pinned is False

        assert board.update_post(director.id, post.id, "Final", pinned=True).pinned is True
        with pytest.raises(Forbidden):
            board.update_post(make_user(role="deputy").id, post.id, "Mine")

    def test_delete_removes_comments_and_likes(self, db, board, teacher, director, make_user):
        post = board.create_post(teacher.id, "Bye")
        post_id = post.id
        board.add_comment(director.id, post_id, "ok")
        board.toggle_like(director.id, post_id)

        with pytest.raises(Forbidden):
            board.delete_post(make_user(role="teacher").id, post_id)
        board.delete_post(director.id, post_id)

        assert db.get(DiscussionPost, post_id) is None
        for model in (DiscussionComment, DiscussionReaction):
            assert db.execute(select(func.count()).select_from(model)).scalar_one() == 0


class TestCommentsAndLikes:
    def test_detail_counts(self, board, teacher, director):
        post = board.create_post(teacher.id, "Question")
        board.add_comment(director.id, post.id, "Answer")
        board.add_comment(teacher.id, post.id, "Thanks")

        assert board.toggle_like(director.id, post.id) == (True, 1)
        detail = board.get_detail(director.id, post.id)
        assert detail["author_name"] == "Teacher"
        assert [c["text"] for c in detail["comments"]] == ["Thanks", "Answer"]
        assert detail["like_count"] == 1
        assert detail["liked_by_me"] is True
        assert board.get_detail(teacher.id, post.id)["liked_by_me"] is False
        assert [liker["name"] for liker in board.list_likers(post.id)] == ["Director"]

        assert board.toggle_like(director.id, post.id) == (False, 0)
        assert board.list_posts()[0]["comment_count"] == 2

    def test_comment_deletion_rights(self, board, teacher, director, make_user):
        post = board.create_post(teacher.id, "Topic")
        comment_id = board.add_comment(make_user().id, post.id, "spam").id

        with pytest.raises(Forbidden):
            board.delete_comment(teacher.id, comment_id)
        board.delete_comment(director.id, comment_id)
        with pytest.raises(NotFound):
            board.delete_comment(director.id, comment_id)

    def test_comment_on_missing_post(self, board, teacher):
        with pytest.raises(NotFound):
            board.add_comment(teacher.id, uuid4(), "hello")


class TestMentions:
    def test_prefix_search(self, board, make_user, db):
        make_user(name="Olga Petrova")
        make_user(name="Oleg Sidorov")
        archived = make_user(name="Olesya Old")
        archived.is_archived = True
        db.commit()

        names = [c["name"] for c in board.mention_candidates("ol")]
        assert names == ["Oleg Sidorov", "Olga Petrova"]
        assert board.mention_candidates("  ") == []
        assert board.mention_candidates("%") == []
