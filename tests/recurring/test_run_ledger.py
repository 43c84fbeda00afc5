"""
Tests for RunLedger: exactly-once claims over (rule_id, scheduled_at).
"""

from uuid import uuid4

from ledger_recurring.models.recurring_rule import RecurringRuleModel
from ledger_recurring.services.run_ledger import RunLedger


def _rule_model(session, make_rule) -> RecurringRuleModel:
    return session.get(RecurringRuleModel, make_rule().id)


class TestClaim:
    def test_first_claim_wins(self, session, make_rule, run_ledger):
        rule = _rule_model(session, make_rule)

        entry = run_ledger.claim(rule, rule.next_run_at)
        session.commit()

        assert entry is not None
        assert entry.rule_id == rule.id
        assert entry.owner_id == rule.owner_id
        assert entry.generated_posting_ids == []
        assert run_ledger.is_claimed(rule.id, rule.next_run_at)

    def test_second_claim_returns_none(self, session, make_rule, run_ledger, captured_logs):
        rule = _rule_model(session, make_rule)
        run_ledger.claim(rule, rule.next_run_at)
        session.commit()

        assert run_ledger.claim(rule, rule.next_run_at) is None
        assert any(r["message"] == "recurring_claim_conflict" for r in captured_logs())

    def test_conflict_keeps_outer_transaction_usable(self, session, make_rule, run_ledger):
        rule = _rule_model(session, make_rule)
        run_ledger.claim(rule, rule.next_run_at)

        # Same transaction: the conflict rolls back only its savepoint.
        assert run_ledger.claim(rule, rule.next_run_at) is None
        session.commit()

        assert len(run_ledger.history(rule.owner_id, rule.id)) == 1

    def test_conflict_across_sessions(self, session_factory, session, make_rule):
        rule = _rule_model(session, make_rule)
        RunLedger(session).claim(rule, rule.next_run_at)
        session.commit()

        other = session_factory()
        try:
            other_rule = other.get(RecurringRuleModel, rule.id)
            assert RunLedger(other).claim(other_rule, rule.next_run_at) is None
            other.commit()
        finally:
            other.close()


class TestAttachAndRelease:
    def test_attach_postings(self, session, make_rule, run_ledger):
        rule = _rule_model(session, make_rule)
        entry = run_ledger.claim(rule, rule.next_run_at)
        ids = [uuid4(), uuid4()]

        run_ledger.attach_postings(entry, ids)
        session.commit()

        [dto] = [e.to_dto() for e in run_ledger.history(rule.owner_id, rule.id)]
        assert dto.generated_posting_ids == tuple(ids)
        assert dto.scheduled_at == rule.next_run_at

    def test_release_frees_the_occurrence(self, session, make_rule, run_ledger, captured_logs):
        rule = _rule_model(session, make_rule)
        entry = run_ledger.claim(rule, rule.next_run_at)
        run_ledger.release(entry)
        session.commit()

        assert not run_ledger.is_claimed(rule.id, rule.next_run_at)
        assert run_ledger.claim(rule, rule.next_run_at) is not None
        assert any(r["message"] == "recurring_claim_released" for r in captured_logs())


def test_history_is_owner_scoped_and_ordered(session, make_rule, run_ledger):
    rule = _rule_model(session, make_rule)
    later = rule.next_run_at.replace(month=2)
    run_ledger.claim(rule, later)
    run_ledger.claim(rule, rule.next_run_at)
    session.commit()

    history = run_ledger.history(rule.owner_id, rule.id)
    assert [e.scheduled_at for e in history] == [rule.next_run_at, later]
    assert run_ledger.history(uuid4(), rule.id) == []
