"""
Tests for join inference and projection validation over the relation catalogs.
"""

import pytest

from assistance.core.errors import InvalidProjection
from assistance.query import EVENT_CATALOG, SUBSCRIBER_CATALOG, resolve_joins

EAGER_EVENT_JOINS = ("assistant", "assistanceCourse", "assistantCourse", "address", "subject")


# ---------------------------------------------------------------------------
# Join inference
# ---------------------------------------------------------------------------


class TestJoinInference:
    def test_no_projection_uses_every_eager_join(self):
        plan = resolve_joins(EVENT_CATALOG, None)
        assert plan.join_names == EAGER_EVENT_JOINS
        assert resolve_joins(EVENT_CATALOG, []).join_names == EAGER_EVENT_JOINS

    def test_default_projection_columns(self):
        plan = resolve_joins(EVENT_CATALOG)
        assert "event.id" in plan.columns
        assert "event.available_vacancies" in plan.columns
        assert "address.event_id" in plan.columns
        assert "assistant.full_name" in plan.columns
        assert not any(c.endswith(".password_hash") for c in plan.columns)

    def test_base_fields_need_no_join(self):
        plan = resolve_joins(EVENT_CATALOG, ["event.title", "event.id"])
        assert plan.join_names == ()
        assert plan.columns == ("event.title", "event.id")

    def test_bare_field_belongs_to_base(self):
        plan = resolve_joins(EVENT_CATALOG, ["title"])
        assert plan.columns == ("event.title",)
        assert plan.join_names == ()

    def test_single_relation(self):
        plan = resolve_joins(EVENT_CATALOG, ["event.title", "address.street"])
        assert plan.join_names == ("address",)

    def test_dependencies_are_pulled_in(self):
        assert resolve_joins(EVENT_CATALOG, ["subject.name"]).join_names == (
            "assistanceCourse",
            "subject",
        )
        assert resolve_joins(EVENT_CATALOG, ["assistantCourse.name"]).join_names == (
            "assistant",
            "assistantCourse",
        )

    def test_name_prefix_is_not_a_match(self):
        # "assistanceCourse" starts with "assistan" but is not in the
        # "assistant." namespace.
        plan = resolve_joins(EVENT_CATALOG, ["assistanceCourse.name"])
        assert plan.join_names == ("assistanceCourse",)

    def test_wildcard_expands_to_columns(self):
        plan = resolve_joins(EVENT_CATALOG, ["address.*"])
        assert "address.street" in plan.columns
        assert "address.event_id" in plan.columns
        assert plan.join_names == ("address",)

    def test_duplicates_collapse(self):
        plan = resolve_joins(EVENT_CATALOG, ["event.title", "title"])
        assert plan.columns == ("event.title",)

    def test_subscriber_catalog(self):
        plan = resolve_joins(SUBSCRIBER_CATALOG, ["subscriber.full_name", "subscriberCourse.name"])
        assert plan.join_names == ("subscriber", "subscriberCourse")
        assert resolve_joins(SUBSCRIBER_CATALOG).join_names == ("subscriber", "subscriberCourse")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestProjectionValidation:
    @pytest.mark.parametrize(
        "field",
        [
            "nowhere.id",
            "event.nope",
            "event.title; DROP TABLE events",
            "event.title.extra",
            "event.",
            "",
            "   ",
        ],
    )
    def test_invalid_fields(self, field):
        with pytest.raises(InvalidProjection):
            resolve_joins(EVENT_CATALOG, [field])

    def test_restricted_column(self):
        with pytest.raises(InvalidProjection):
            resolve_joins(EVENT_CATALOG, ["assistant.password_hash"])

    def test_wildcard_never_exposes_restricted_column(self):
        plan = resolve_joins(SUBSCRIBER_CATALOG, ["subscriber.*"])
        assert "subscriber.full_name" in plan.columns
        assert "subscriber.password_hash" not in plan.columns

    @pytest.mark.parametrize("field", ["tag.name", "eventTag.tag_id", "subscription.user_id"])
    def test_internal_relations_are_not_projectable(self, field):
        with pytest.raises(InvalidProjection):
            resolve_joins(EVENT_CATALOG, [field])

    def test_internal_lookup_allowed_for_services(self):
        assert EVENT_CATALOG.parse_field("tag.name", internal=True) == ("tag", "name")
