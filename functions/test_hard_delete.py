from hard_delete import (
    HardDeleteStep,
    ReferralsDeleteStep,
    SingleDocumentDeleteStep,
    UserSubcollectionsDeleteStep,
    redeemed_rewards_step,
    risk_score_step,
)


def test_deletes_all_owned_documents(store):
    store.add("pointsTransactions/t1", {"userId": "u1", "points": 10})
    store.add("pointsTransactions/t2", {"userId": "u1", "points": -5})
    store.add("pointsTransactions/t3", {"userId": "u2", "points": 1})

    result = HardDeleteStep(store, "pointsTransactions").run("u1")

    assert not result.failed
    assert result.processed == 2
    assert store.query("pointsTransactions", "userId", "u1") == []
    assert store.paths_in("pointsTransactions") == ["pointsTransactions/t3"]


def test_default_step_name():
    assert redeemed_rewards_step(None).name == "delete_redeemedRewards"
    assert HardDeleteStep(None, "notifications", name=None).name == "delete_notifications"
    assert SingleDocumentDeleteStep(None, "userRiskScores").name == "delete_userRiskScores_document"
    assert SingleDocumentDeleteStep(None, "userRiskScores", name="custom").name == "custom"


def test_query_failure(store):
    store.fail_queries.add("notifications")
    result = HardDeleteStep(store, "notifications").run("u1")
    assert result.failed


def test_referrals_both_directions(store):
    store.add("referrals/a", {"referrerUserId": "u2", "referredUserId": "x"})
    store.add("referrals/b", {"referrerUserId": "u2", "referredUserId": "y"})
    store.add("referrals/c", {"referrerUserId": "z", "referredUserId": "u2"})
    store.add("referrals/d", {"referrerUserId": "z", "referredUserId": "w"})

    result = ReferralsDeleteStep(store).run("u2")

    assert not result.failed
    assert result.processed == 3
    assert store.paths_in("referrals") == ["referrals/d"]


def test_referrals_one_side_failing_still_deletes_other(store):
    store.add("referrals/a", {"referrerUserId": "u2"})
    original = store.query

    def query(collection, field=None, value=None, op="=="):
        if field == "referredUserId":
            raise RuntimeError("index missing")
        return original(collection, field, value, op)

    store.query = query

    result = ReferralsDeleteStep(store).run("u2")

    assert result.failed
    assert store.paths_in("referrals") == []


def test_user_subcollections(store):
    store.add("users/u1", {"name": "Ann"})
    store.add("users/u1/clientState/prefs", {"theme": "dark"})
    store.add("users/u1/activity/a1", {"kind": "login"})
    store.add("users/u1/activity/a2", {"kind": "order"})
    store.add("users/u2/activity/a1", {"kind": "login"})

    result = UserSubcollectionsDeleteStep(store).run("u1")

    assert not result.failed
    assert result.processed == 3
    assert store.paths_in("users/u1/activity") == []
    assert store.paths_in("users/u1/clientState") == []
    assert "users/u2/activity/a1" in store.docs
    # Parent document is handled by the orchestrator
    assert "users/u1" in store.docs


def test_risk_score_single_delete(store):
    store.add("userRiskScores/u1", {"score": 0.9})
    result = risk_score_step(store).run("u1")
    assert not result.failed
    assert "userRiskScores/u1" not in store.docs


def test_missing_single_document_is_success(store):
    result = SingleDocumentDeleteStep(store, "userRiskScores").run("ghost")
    assert not result.failed


def test_single_document_delete_error(store):
    store.fail_deletes.add("userRiskScores/u1")
    result = SingleDocumentDeleteStep(store, "userRiskScores").run("u1")
    assert result.failed
