from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from conftest import AUTHOR, OTHER_USER
from shared.errors import NotFoundError, ValidationError
from shared.models import Question


async def _seed_tagged_questions(forum):
    a = await forum.tag_service.create_tag(AUTHOR, "A")
    b = await forum.tag_service.create_tag(AUTHOR, "B")
    create = forum.content_service.create_question
    q1 = await create(AUTHOR, "only a", "c", tag_ids=[a.id])
    q2 = await create(OTHER_USER, "only b", "c", tag_ids=[b.id])
    q3 = await create(AUTHOR, "a and b", "c", tag_ids=[a.id, b.id])
    q4 = await create(OTHER_USER, "untagged", "c")
    return (a, b), (q1, q2, q3, q4)


@pytest.mark.asyncio
async def test_tag_match_any_and_all(forum):
    (a, b), (q1, q2, q3, q4) = await _seed_tagged_questions(forum)
    search = forum.search_service

    any_page = await search.get_questions(tag_ids=[a.id, b.id], tag_match="ANY")
    assert {q.id for q in any_page.items} == {q1.id, q2.id, q3.id}

    all_page = await search.get_questions(tag_ids=[a.id, b.id], tag_match="all")
    assert [q.id for q in all_page.items] == [q3.id]

    unfiltered = await search.get_questions(tag_ids=[])
    assert unfiltered.total_items == 4

    by_author = await search.get_questions(author_id=OTHER_USER["id"])
    assert {q.id for q in by_author.items} == {q2.id, q4.id}

    by_author_and_tag = await search.get_questions(tag_ids=[a.id], author_id=AUTHOR["id"])
    assert {q.id for q in by_author_and_tag.items} == {q1.id, q3.id}


@pytest.mark.asyncio
async def test_items_carry_current_tags_votes_and_authors(forum):
    (a, _), (q1, *_rest) = await _seed_tagged_questions(forum)
    await forum.tag_service.update_tag(AUTHOR, a.id, name="Renamed")
    await forum.vote_ledger_service.vote(OTHER_USER, q1.id, "Question", "upvote")

    page = await forum.search_service.get_questions(tag_ids=[a.id], sort_order="asc")
    first = page.items[0]
    assert first.id == q1.id
    assert [t.name for t in first.tags] == ["Renamed"]
    assert first.votes.upvotes == 1
    assert first.author is not None and first.author.display_name == "Alice"

    payload = page.to_api()
    assert set(payload) == {"items", "totalItems", "totalPages", "currentPage"}
    assert payload["items"][0]["createdAt"].endswith(("Z", "+00:00"))


@pytest.mark.asyncio
async def test_pagination_is_stable_and_complete(forum):
    ids = []
    for i in range(5):
        question = await forum.content_service.create_question(AUTHOR, f"q{i}", "c")
        ids.append(question.id)
    search = forum.search_service

    pages = [await search.get_questions(page=p, limit=2) for p in (1, 2, 3)]
    assert [p.total_pages for p in pages] == [3, 3, 3]
    collected = [q.id for p in pages for q in p.items]
    assert collected == sorted(ids, reverse=True)
    assert len(set(collected)) == pages[0].total_items == 5

    again = await search.get_questions(page=2, limit=2)
    assert again == pages[1]

    beyond = await search.get_questions(page=10, limit=2)
    assert beyond.current_page == 3
    assert [q.id for q in beyond.items] == [q.id for q in pages[2].items]

    below = await search.get_questions(page=0, limit=2)
    assert below.current_page == 1

    ascending = await search.get_questions(limit=5, sort_order="ASC")
    assert [q.id for q in ascending.items] == sorted(ids)


@pytest.mark.asyncio
async def test_listing_parameters_are_validated(forum):
    search = forum.search_service
    with pytest.raises(ValidationError):
        await search.get_questions(limit=0)
    with pytest.raises(ValidationError):
        await search.get_questions(sort_order="sideways")
    with pytest.raises(ValidationError):
        await search.get_questions(tag_match="SOME")
    with pytest.raises(ValidationError):
        await search.get_questions(tag_ids=["a"])

    clamped = await search.get_questions(limit=1000)
    assert clamped.total_items == 0
    assert clamped.total_pages == 0
    assert clamped.current_page == 1
    assert clamped.items == []


@pytest.mark.asyncio
async def test_get_answers_requires_a_filter(forum):
    with pytest.raises(ValidationError):
        await forum.search_service.get_answers()
    with pytest.raises(NotFoundError):
        await forum.search_service.get_answers(question_id=999)


@pytest.mark.asyncio
async def test_get_answers_by_question_and_user(forum):
    q1 = await forum.content_service.create_question(AUTHOR, "q1", "c")
    q2 = await forum.content_service.create_question(AUTHOR, "q2", "c")
    a1 = await forum.content_service.create_answer(OTHER_USER, q1.id, "first", ["x.png"])
    a2 = await forum.content_service.create_answer(AUTHOR, q1.id, "second")
    a3 = await forum.content_service.create_answer(OTHER_USER, q2.id, "third")

    by_question = await forum.search_service.get_answers(question_id=q1.id, sort_order="asc")
    assert [a.id for a in by_question.items] == [a1.id, a2.id]
    assert by_question.items[0].images == ["/images/x.png"]

    by_user = await forum.search_service.get_answers(user_id=OTHER_USER["id"])
    assert [a.id for a in by_user.items] == [a3.id, a1.id]

    both = await forum.search_service.get_answers(question_id=q1.id, user_id=AUTHOR["id"])
    assert [a.id for a in both.items] == [a2.id]


@pytest.mark.asyncio
async def test_answers_of_deleted_question_are_tolerated(forum):
    q1 = await forum.content_service.create_question(AUTHOR, "q1", "c")
    q2 = await forum.content_service.create_question(AUTHOR, "q2", "c")
    orphan = await forum.content_service.create_answer(OTHER_USER, q1.id, "orphan")
    kept = await forum.content_service.create_answer(OTHER_USER, q2.id, "kept")
    await forum.vote_ledger_service.vote(AUTHOR, orphan.id, "Answer", "downvote")

    await forum.content_service.delete_question(AUTHOR, q1.id)

    page = await forum.search_service.get_answers(user_id=OTHER_USER["id"])
    assert [a.id for a in page.items] == [kept.id]
    assert page.total_items == 1

    with pytest.raises(NotFoundError):
        await forum.search_service.get_answers(question_id=q1.id)

    with pytest.raises(NotFoundError):
        await forum.content_service.get_answer(orphan.id)
    with pytest.raises(NotFoundError):
        await forum.content_service.update_answer(OTHER_USER, orphan.id, content="edit")

    # 残留的投票计数仍可读取，作者仍可清理残留回答
    count = await forum.vote_tally_service.get_vote_count(orphan.id, "Answer")
    assert count.downvotes == 1
    assert await forum.content_service.delete_answer(OTHER_USER, orphan.id) is True


@pytest.mark.asyncio
@pytest.mark.parametrize("sort_order", ["asc", "desc"])
async def test_shared_timestamps_are_ordered_by_id(forum, sort_order):
    ids = []
    for i in range(7):
        question = await forum.content_service.create_question(AUTHOR, f"q{i}", "c")
        ids.append(question.id)

    async with forum.session_factory() as session:
        await session.execute(
            update(Question).values(created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        )
        await session.commit()

    first = await forum.search_service.get_questions(page=1, limit=3, sort_order=sort_order)
    assert first.total_items == 7
    assert first.total_pages == 3

    collected = [q.id for q in first.items]
    for page in range(2, first.total_pages + 1):
        result = await forum.search_service.get_questions(
            page=page, limit=3, sort_order=sort_order
        )
        collected.extend(q.id for q in result.items)

    assert len(collected) == len(set(collected)) == first.total_items
    assert collected == sorted(ids, reverse=(sort_order == "desc"))
