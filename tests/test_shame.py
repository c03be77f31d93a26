from types import SimpleNamespace

from services.shame import count_consecutive_failures, determine_escalation

def logs(*scores):
    """Newest first."""
    return [SimpleNamespace(total_score=s) for s in scores]

def excuse(content, frequency):
    return SimpleNamespace(pattern_type="miss_reason", content=content, frequency=frequency)

class TestDetermineEscalation:
    def test_disabled(self):
        assert determine_escalation(0, logs(0, 0, 0, 0, 0), [excuse("tired", 5)]) is None

    def test_tier_three(self):
        escalation = determine_escalation(3, logs(0, 1, 2, 3, 9), [])
        assert escalation.level == 3
        assert escalation.show_baseline and escalation.show_recent

    def test_tier_two_on_repeat_excuse(self):
        escalation = determine_escalation(2, logs(6, 1), [excuse("work ran late", 3)])
        assert escalation.level == 2
        assert "work ran late" in escalation.message
        assert "3 times" in escalation.message

    def test_tier_two_on_consecutive_failures(self):
        escalation = determine_escalation(2, logs(1, 2, 8), [])
        assert escalation.level == 2

    def test_level_three_falls_back_to_tier_two(self):
        escalation = determine_escalation(3, logs(1, 2, 8, 8), [])
        assert escalation.level == 2

    def test_tier_one(self):
        escalation = determine_escalation(1, logs(8, 2, 8), [])
        assert escalation.level == 1
        assert escalation.show_baseline and not escalation.show_recent

    def test_single_excuse_is_not_a_pattern(self):
        assert determine_escalation(2, logs(8, 8), [excuse("tired", 1)]) is None

    def test_no_failures(self):
        assert determine_escalation(3, logs(6, 7, 8), []) is None

    def test_three_failures_at_level_one(self):
        assert determine_escalation(1, logs(1, 8, 2, 8, 3), []) is None

class TestConsecutiveFailures:
    def test_counts_from_newest(self):
        assert count_consecutive_failures(logs(1, 2, 9, 0)) == 2
        assert count_consecutive_failures(logs(9, 0, 0)) == 0
