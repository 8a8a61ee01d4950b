"""
Tests for exchange/queue topology and topic matching.
"""
import pytest

from tokenops.message_queue.topology import (
    BLOCKCHAIN_TRANSACTIONS,
    DEFAULT_TOPOLOGY,
    LEDGER_RECONCILIATION,
    NOTIFICATIONS_WEBHOOK,
    RECONCILIATION_FAILED,
    topic_matches,
)


class TestTopicMatches:
    """AMQP-style topic pattern matching."""

    @pytest.mark.parametrize("pattern,key,expected", [
        ("transaction.*", "transaction.mint", True),
        ("transaction.*", "transaction", False),
        ("transaction.*", "transaction.mint.retry", False),
        ("stake.*", "transaction.mint", False),
        ("webhook.#", "webhook", True),
        ("webhook.#", "webhook.transaction_confirmed", True),
        ("#", "anything.at.all", True),
        ("*.pix", "deposit.pix", True),
        ("ledger.reconcile", "ledger.reconcile", True),
    ])
    def test_patterns(self, pattern, key, expected):
        assert topic_matches(pattern, key) is expected


class TestDefaultTopology:

    def test_every_consumed_queue_has_a_dead_letter_queue(self):
        dead_letters = set(DEFAULT_TOPOLOGY.dead_letter_queues)
        consumed = set(DEFAULT_TOPOLOGY.work_queues) | {LEDGER_RECONCILIATION}
        for spec in DEFAULT_TOPOLOGY.queues:
            if spec.name in consumed:
                assert spec.dead_letter_queue in dead_letters

    def test_reconciliation_queue_is_not_a_work_queue(self):
        assert LEDGER_RECONCILIATION not in DEFAULT_TOPOLOGY.work_queues
        assert LEDGER_RECONCILIATION not in DEFAULT_TOPOLOGY.dead_letter_queues
        assert RECONCILIATION_FAILED in DEFAULT_TOPOLOGY.dead_letter_queues

    def test_expected_work_queues(self):
        assert BLOCKCHAIN_TRANSACTIONS in DEFAULT_TOPOLOGY.work_queues
        assert NOTIFICATIONS_WEBHOOK in DEFAULT_TOPOLOGY.work_queues
        assert len(DEFAULT_TOPOLOGY.work_queues) == 8
