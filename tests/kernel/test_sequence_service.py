"""
Tests for SequenceService: monotonic, per-name counters.
"""

from supply_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    """Counter rows are the only source of the next value."""

    def test_first_value_is_one(self, sequence):
        assert sequence.next_value("RIS-2024") == 1

    def test_strictly_monotonic(self, sequence):
        values = [sequence.next_value("RIS-2024") for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_names_are_independent(self, sequence):
        sequence.next_value("RIS-2024")
        sequence.next_value("RIS-2024")

        assert sequence.next_value("RIS-2025") == 1
        assert sequence.current_value("RIS-2024") == 2

    def test_current_value_of_unknown_sequence(self, sequence):
        assert sequence.current_value("RIS-1999") is None

    def test_reset(self, sequence):
        sequence.next_value("RIS-2024")
        sequence.reset("RIS-2024", 41)
        assert sequence.next_value("RIS-2024") == 42

    def test_committed_values_survive_new_session(self, session_factory):
        with session_factory() as first:
            SequenceService(first).next_value("RIS-2024")
            first.commit()

        with session_factory() as second:
            assert SequenceService(second).next_value("RIS-2024") == 2
            second.rollback()

        with session_factory() as third:
            assert SequenceService(third).current_value("RIS-2024") == 1
