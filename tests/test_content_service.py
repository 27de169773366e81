import pytest

from conftest import AUTHOR, OTHER_USER
from shared.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_create_and_get_question(forum):
    tag = await forum.tag_service.create_tag(AUTHOR, "Python")
    created = await forum.content_service.create_question(
        AUTHOR, "  How? ", " Like this ", tag_ids=[tag.id, tag.id], image_ids=["a", "", "b"]
    )

    assert created.title == "How?"
    assert created.content == "Like this"
    assert [t.id for t in created.tags] == [tag.id]
    assert created.images == ["/images/a", "/images/b"]
    assert created.votes.upvotes == 0
    assert created.author is not None and created.author.name == "alice"

    fetched = await forum.content_service.get_question(created.id)
    assert fetched == created


@pytest.mark.asyncio
async def test_question_validation(forum):
    with pytest.raises(AuthenticationError):
        await forum.content_service.create_question(None, "t", "c")
    with pytest.raises(ValidationError):
        await forum.content_service.create_question(AUTHOR, " ", "c")
    with pytest.raises(ValidationError):
        await forum.content_service.create_question(AUTHOR, "t", "")
    with pytest.raises(NotFoundError):
        await forum.content_service.create_question(AUTHOR, "t", "c", tag_ids=[42])
    with pytest.raises(NotFoundError):
        await forum.content_service.get_question(42)


@pytest.mark.asyncio
async def test_only_author_can_modify_question(forum):
    question = await forum.content_service.create_question(AUTHOR, "t", "c")

    with pytest.raises(AuthorizationError):
        await forum.content_service.update_question(OTHER_USER, question.id, title="x")
    with pytest.raises(AuthorizationError):
        await forum.content_service.delete_question(OTHER_USER, question.id)

    updated = await forum.content_service.update_question(
        AUTHOR, question.id, content="new content", image_ids=["c"]
    )
    assert updated.title == "t"
    assert updated.content == "new content"
    assert updated.images == ["/images/c"]
    assert updated.author_id == AUTHOR["id"]

    assert await forum.content_service.delete_question(AUTHOR, question.id) is True
    with pytest.raises(NotFoundError):
        await forum.content_service.get_question(question.id)


@pytest.mark.asyncio
async def test_retagging_replaces_tag_set(forum):
    a = await forum.tag_service.create_tag(AUTHOR, "A")
    b = await forum.tag_service.create_tag(AUTHOR, "B")
    question = await forum.content_service.create_question(AUTHOR, "t", "c", tag_ids=[a.id])

    retagged = await forum.content_service.update_question(AUTHOR, question.id, tag_ids=[b.id])
    assert [t.id for t in retagged.tags] == [b.id]

    cleared = await forum.content_service.update_question(AUTHOR, question.id, tag_ids=[])
    assert cleared.tags == []
    assert (await forum.tag_service.get_tag(b.id)).question_count == 0


@pytest.mark.asyncio
async def test_answer_lifecycle(forum):
    question = await forum.content_service.create_question(AUTHOR, "t", "c")

    with pytest.raises(NotFoundError):
        await forum.content_service.create_answer(OTHER_USER, 999, "answer")
    with pytest.raises(ValidationError):
        await forum.content_service.create_answer(OTHER_USER, question.id, "  ")

    answer = await forum.content_service.create_answer(OTHER_USER, question.id, "answer")
    assert answer.question_id == question.id
    assert answer.author is not None and answer.author.name == "bob"

    with pytest.raises(AuthorizationError):
        await forum.content_service.update_answer(AUTHOR, answer.id, content="hijack")

    updated = await forum.content_service.update_answer(OTHER_USER, answer.id, content="better")
    assert updated.content == "better"

    with pytest.raises(AuthorizationError):
        await forum.content_service.delete_answer(AUTHOR, answer.id)
    assert await forum.content_service.delete_answer(OTHER_USER, answer.id) is True
    with pytest.raises(NotFoundError):
        await forum.content_service.get_answer(answer.id)


@pytest.mark.asyncio
async def test_author_projection_is_optional(forum):
    stranger = {"id": 777}
    question = await forum.content_service.create_question(stranger, "t", "c")
    assert question.author is None
    assert question.author_id == 777
