"""SequenceService tests: named, monotonic, transactional counters."""

import pytest

from worksheet_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_first_value_is_one(self, session):
        seq = SequenceService(session)
        assert seq.next_value("test.first") == 1

    def test_values_strictly_increase(self, session):
        seq = SequenceService(session)
        values = [seq.next_value("test.monotonic") for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_series_are_independent(self, session):
        seq = SequenceService(session)
        seq.next_value("test.a")
        seq.next_value("test.a")
        assert seq.next_value("test.b") == 1
        assert seq.current_value("test.a") == 2

    def test_current_value_of_unused_series(self, session):
        assert SequenceService(session).current_value("test.unused") is None

    def test_empty_name_rejected(self, session):
        with pytest.raises(ValueError):
            SequenceService(session).next_value("")

    def test_reset(self, session):
        seq = SequenceService(session)
        seq.next_value("test.reset")
        seq.reset("test.reset", 41)
        assert seq.next_value("test.reset") == 42

    def test_rolled_back_allocation_is_returned(self, session):
        seq = SequenceService(session)
        seq.next_value("test.rollback")
        nested = session.begin_nested()
        seq.next_value("test.rollback")
        nested.rollback()
        assert seq.next_value("test.rollback") == 2

    def test_initialize_sequences_is_idempotent(self, session):
        seq = SequenceService(session)
        seq.initialize_sequences()
        seq.initialize_sequences()
        assert seq.current_value(SequenceService.WORKSHEET_NUMBER) == 0
