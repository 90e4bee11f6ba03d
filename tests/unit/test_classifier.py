import pytest
from conftest import TENANT, make_meeting, make_message

from app.features.time_inference.domain.models import Category
from app.features.time_inference.pipeline.classification.service import ActivityClassifier


@pytest.fixture
def classifier():
    return ActivityClassifier(tenant_domain=TENANT)


def test_mixed_participants_are_external(classifier):
    activity = make_meeting(
        originator=f"me@{TENANT}", participants=(f"me@{TENANT}", "bob@external.com")
    )

    assert classifier.classify(activity).category == Category.EXTERNAL


def test_all_tenant_participants_are_internal_with_internal_client(classifier):
    activity = make_message(
        title="Sprint sync",
        originator=f"lead@{TENANT}",
        participants=(f"me@{TENANT}", f"ops@{TENANT.upper()}"),
    )

    classification = classifier.classify(activity)

    assert classification.category == Category.INTERNAL
    assert classification.client == "Internal"
    assert classification.project == "General Work"


def test_activity_without_parties_counts_as_internal(classifier):
    activity = make_message(originator=None, participants=())

    assert classifier.classify(activity).category == Category.INTERNAL


@pytest.mark.parametrize(
    ("title", "project"),
    [
        ("Mobile API review", "Mobile App"),
        ("Website beta launch", "Project Beta"),
        ("Project Alpha design sync", "Project Alpha"),
        ("Planning notes", "Project Planning"),
    ],
)
def test_project_rules_first_match_wins_in_rule_order(classifier, title, project):
    assert classifier.classify(make_message(title=title)).project == project


def test_client_keyword_beats_domain_table(classifier):
    activity = make_message(title="Acme renewal", originator="owner@zendesk.com")

    assert classifier.classify(activity).client == "Acme Corp"


def test_domain_table_used_when_no_keyword_matches(classifier):
    activity = make_message(
        title="Quarterly review",
        originator=f"me@{TENANT}",
        participants=("agent@zendesk.com",),
    )

    classification = classifier.classify(activity)

    assert classification.client == "Zendesk"
    assert classification.project == "General Work"
    assert classification.category == Category.EXTERNAL


def test_unknown_external_falls_back_to_default_client(classifier):
    activity = make_message(title="Quarterly review", originator="someone@unknown.org")

    classification = classifier.classify(activity)

    assert classification.client == "Unassigned Client"
    assert classification.category == Category.EXTERNAL


def test_classification_is_deterministic(classifier):
    activity = make_message(title="Design planning")

    assert classifier.classify(activity) == classifier.classify(activity)
