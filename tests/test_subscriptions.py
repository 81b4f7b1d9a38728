"""
Integration tests for the subscription ledger.

Tests cover:
- Subscribe / unsubscribe and the vacancy counter
- Rejections: self subscription, duplicates, full and unavailable events
- Two concurrent subscribers racing for the last seat
- Presence confirmation
- Subscriber listings and who may see them
"""

import asyncio

import pytest
from sqlmodel import select

from assistance.core.errors import (
    AlreadySubscribed,
    AuthorizationError,
    EventNotFound,
    EventUnavailable,
    NoVacancies,
    NotFoundError,
    NotSubscribed,
    SelfSubscription,
    Unauthorized,
    ValidationError,
)
from assistance.models import Subscription, User
from assistance.services import events as event_service
from assistance.services import subscriptions as subscription_service


async def _subscribe(database, codec, event_token, user_token):
    async with database.session() as session:
        await subscription_service.subscribe(session, codec, event_token, user_token)


async def _unsubscribe(database, codec, event_token, user_token):
    async with database.session() as session:
        await subscription_service.unsubscribe(session, codec, event_token, user_token)


async def _subscription_count(database, event_id: int) -> int:
    async with database.session() as session:
        result = await session.execute(select(Subscription).where(Subscription.event_id == event_id))
        return len(result.scalars().all())


# ---------------------------------------------------------------------------
# Subscribe / unsubscribe
# ---------------------------------------------------------------------------


class TestSubscribe:
    async def test_subscribe_takes_a_seat(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        await _subscribe(database, codec, token, seed.student)

        event = await load_event(token)
        assert event.available_vacancies == 1
        assert await _subscription_count(database, event.id) == 1

    async def test_owner_can_not_subscribe(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        with pytest.raises(SelfSubscription):
            await _subscribe(database, codec, token, seed.owner)
        assert (await load_event(token)).available_vacancies == 2

    async def test_duplicate_is_rejected_without_side_effects(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=3)
        await _subscribe(database, codec, token, seed.student)
        with pytest.raises(AlreadySubscribed):
            await _subscribe(database, codec, token, seed.student)

        event = await load_event(token)
        assert event.available_vacancies == 2
        assert await _subscription_count(database, event.id) == 1

    async def test_full_event(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=1)
        await _subscribe(database, codec, token, seed.student)
        with pytest.raises(NoVacancies):
            await _subscribe(database, codec, token, seed.other)

        event = await load_event(token)
        assert event.available_vacancies == 0
        assert await _subscription_count(database, event.id) == 1

    async def test_repeat_subscriber_on_full_event(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=1)
        await _subscribe(database, codec, token, seed.student)
        with pytest.raises(AlreadySubscribed):
            await _subscribe(database, codec, token, seed.student)
        assert (await load_event(token)).available_vacancies == 0

    async def test_event_without_seats(self, database, codec, seed, make_event):
        token = await make_event(total=0)
        with pytest.raises(NoVacancies):
            await _subscribe(database, codec, token, seed.student)

    async def test_disabled_event(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        async with database.session() as session:
            await event_service.disable_event(session, codec, token)
        with pytest.raises(EventUnavailable):
            await _subscribe(database, codec, token, seed.student)
        assert (await load_event(token)).available_vacancies == 2

    async def test_unknown_event(self, database, codec, seed):
        with pytest.raises(EventNotFound):
            await _subscribe(database, codec, codec.encode(777), seed.student)

    async def test_unknown_user(self, database, codec, make_event, load_event):
        token = await make_event(total=2)
        with pytest.raises(NotFoundError):
            await _subscribe(database, codec, token, codec.encode(999))
        assert (await load_event(token)).available_vacancies == 2


class TestUnsubscribe:
    async def test_unsubscribe_releases_the_seat(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=1)
        await _subscribe(database, codec, token, seed.student)
        await _unsubscribe(database, codec, token, seed.student)

        event = await load_event(token)
        assert event.available_vacancies == 1
        assert await _subscription_count(database, event.id) == 0

        # The freed seat can be taken again.
        await _subscribe(database, codec, token, seed.other)
        assert (await load_event(token)).available_vacancies == 0

    async def test_not_subscribed(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        with pytest.raises(NotSubscribed):
            await _unsubscribe(database, codec, token, seed.student)
        assert (await load_event(token)).available_vacancies == 2

    async def test_twice(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        await _subscribe(database, codec, token, seed.student)
        await _unsubscribe(database, codec, token, seed.student)
        with pytest.raises(NotSubscribed):
            await _unsubscribe(database, codec, token, seed.student)
        assert (await load_event(token)).available_vacancies == 2

    async def test_counter_never_exceeds_total(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        await _subscribe(database, codec, token, seed.student)
        # Seat count drifted back to total out of band; releasing must not overshoot.
        async with database.session() as session:
            await event_service.update_event(session, codec, token, {"available_vacancies": 2})

        await _unsubscribe(database, codec, token, seed.student)
        event = await load_event(token)
        assert event.available_vacancies == 2
        assert await _subscription_count(database, event.id) == 0


class TestVacancyBound:
    async def test_bound_holds_across_a_sequence(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        users = [seed.student, seed.other]
        steps = [
            (_subscribe, users[0]),
            (_subscribe, users[1]),
            (_unsubscribe, users[0]),
            (_subscribe, users[0]),
            (_unsubscribe, users[1]),
            (_unsubscribe, users[0]),
        ]
        for step, user in steps:
            await step(database, codec, token, user)
            event = await load_event(token)
            subscribed = await _subscription_count(database, event.id)
            assert 0 <= event.available_vacancies <= event.total_vacancies
            assert event.available_vacancies == event.total_vacancies - subscribed


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestLastSeatRace:
    async def test_exactly_one_winner(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=1)

        async def attempt(user_token):
            try:
                await _subscribe(database, codec, token, user_token)
                return "subscribed"
            except NoVacancies:
                return "full"

        results = await asyncio.gather(attempt(seed.student), attempt(seed.other))

        assert sorted(results) == ["full", "subscribed"]
        event = await load_event(token)
        assert event.available_vacancies == 0
        assert await _subscription_count(database, event.id) == 1

    async def test_many_contenders(self, database, codec, seed, make_event, load_event):
        token = await make_event(total=2)
        async with database.session() as session:
            extra = [User(full_name=f"Student {i}", email=f"s{i}@example.com") for i in range(4)]
            session.add_all(extra)
            await session.flush()
            tokens = [codec.encode(u.id) for u in extra]

        async def attempt(user_token):
            try:
                await _subscribe(database, codec, token, user_token)
                return True
            except NoVacancies:
                return False

        results = await asyncio.gather(*(attempt(t) for t in tokens))
        assert results.count(True) == 2
        event = await load_event(token)
        assert event.available_vacancies == 0
        assert await _subscription_count(database, event.id) == 2


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------


class TestPresence:
    async def test_confirm_presence(self, database, codec, seed, make_event):
        token = await make_event()
        await _subscribe(database, codec, token, seed.student)

        async with database.session() as session:
            await subscription_service.give_presence(session, codec, token, seed.student)
            # Confirming twice is not an error.
            await subscription_service.give_presence(session, codec, token, seed.student)

        async with database.session() as session:
            row = await subscription_service.get_subscription(session, codec, token, seed.student)
        assert row["subscription"]["student_presence"] is True

    async def test_missing_code(self, database, codec, make_event):
        token = await make_event()
        async with database.session() as session:
            with pytest.raises(ValidationError):
                await subscription_service.give_presence(session, codec, token, None)
            with pytest.raises(ValidationError):
                await subscription_service.give_presence(session, codec, token, "")

    async def test_not_subscribed(self, database, codec, seed, make_event):
        token = await make_event()
        async with database.session() as session:
            with pytest.raises(NotSubscribed):
                await subscription_service.give_presence(session, codec, token, seed.student)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class TestListSubscribers:
    async def test_owner_sees_subscribers(self, database, codec, seed, make_event):
        token = await make_event()
        await _subscribe(database, codec, token, seed.student)
        await _subscribe(database, codec, token, seed.other)

        async with database.session() as session:
            rows = await subscription_service.list_subscribers(
                session,
                codec,
                token,
                seed.owner,
                ["subscriber.id", "subscriber.full_name", "subscriberCourse.name"],
            )

        assert [r["subscriber"]["full_name"] for r in rows] == ["Sam Student", "Olive Other"]
        assert rows[0]["subscriber"]["id"] == seed.student
        assert rows[0]["subscriberCourse"]["name"] == "Computer Science"
        assert "subscriberCourse" not in rows[1]

    async def test_subscriber_may_list(self, database, codec, seed, make_event):
        token = await make_event()
        await _subscribe(database, codec, token, seed.student)
        async with database.session() as session:
            rows = await subscription_service.list_subscribers(
                session, codec, token, seed.student, ["subscriber.full_name"]
            )
        assert rows == [{"subscriber": {"full_name": "Sam Student"}}]

    async def test_stranger_is_refused(self, database, codec, seed, make_event):
        token = await make_event()
        await _subscribe(database, codec, token, seed.student)
        async with database.session() as session:
            with pytest.raises(Unauthorized):
                await subscription_service.list_subscribers(
                    session, codec, token, seed.other, ["subscriber.full_name"]
                )

    async def test_fields_required(self, database, codec, seed, make_event):
        token = await make_event()
        async with database.session() as session:
            with pytest.raises(ValidationError):
                await subscription_service.list_subscribers(session, codec, token, seed.owner, [])

    async def test_restricted_field_is_unauthorized(self, database, codec, seed, make_event):
        token = await make_event()
        async with database.session() as session:
            with pytest.raises(AuthorizationError):
                await subscription_service.list_subscribers(
                    session, codec, token, seed.owner, ["subscriber.password_hash"]
                )

    async def test_allowed_fields(self, database, codec, seed, make_event):
        token = await make_event()
        allowed = {"subscriber.full_name"}
        async with database.session() as session:
            await subscription_service.list_subscribers(
                session, codec, token, seed.owner, ["subscriber.full_name"], allowed_fields=allowed
            )
            with pytest.raises(AuthorizationError):
                await subscription_service.list_subscribers(
                    session, codec, token, seed.owner, ["subscriber.email"], allowed_fields=allowed
                )

    async def test_unknown_event(self, database, codec, seed):
        async with database.session() as session:
            with pytest.raises(EventNotFound):
                await subscription_service.list_subscribers(
                    session, codec, codec.encode(999), seed.owner, ["subscriber.full_name"]
                )


class TestSubscribedEvents:
    async def test_lists_only_subscribed_events(self, database, codec, seed, make_event):
        first = await make_event("First")
        await make_event("Second")
        third = await make_event("Third")
        await _subscribe(database, codec, first, seed.student)
        await _subscribe(database, codec, third, seed.student)

        async with database.session() as session:
            rows = await subscription_service.list_subscribed_events(
                session, codec, seed.student, ["event.title"]
            )
        assert sorted(r["event"]["title"] for r in rows) == ["First", "Third"]

    async def test_get_subscription_absent(self, database, codec, seed, make_event):
        token = await make_event()
        async with database.session() as session:
            assert await subscription_service.get_subscription(session, codec, token, seed.student) is None

    async def test_get_subscription_encodes_ids(self, database, codec, seed, make_event):
        token = await make_event()
        await _subscribe(database, codec, token, seed.student)
        async with database.session() as session:
            row = await subscription_service.get_subscription(session, codec, token, seed.student)
        assert row["subscription"]["event_id"] == token
        assert row["subscription"]["user_id"] == seed.student
        assert row["subscriber"]["full_name"] == "Sam Student"
