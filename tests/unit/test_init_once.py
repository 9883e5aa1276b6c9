"""Tests for process-wide init-once guards."""

import pytest

from boring_harness.errors import ReentryError
from boring_harness.init_once import InitOnceRegistry


class TestInitOnceRegistry:
    def test_first_claim_is_recorded(self):
        guards = InitOnceRegistry()
        guards.claim('browser-fixtures', origin='conftest.py:3')

        assert 'browser-fixtures' in guards
        assert guards.initiator('browser-fixtures') == 'conftest.py:3'

    def test_second_claim_names_both_sites(self):
        guards = InitOnceRegistry()
        guards.claim('browser-fixtures', origin='site A')

        with pytest.raises(ReentryError) as exc:
            guards.claim('browser-fixtures', origin='site B')

        assert str(exc.value) == (
            '"browser-fixtures" was initialized a second time.\n'
            'First:\nsite A\n\nSecond:\nsite B'
        )
        assert guards.initiator('browser-fixtures') == 'site A'

    def test_default_origin_is_caller_stack(self):
        guards = InitOnceRegistry()
        guards.claim('reporter')
        assert 'test_default_origin_is_caller_stack' in guards.initiator('reporter')

    def test_keys_are_independent_and_releasable(self):
        guards = InitOnceRegistry()
        guards.claim('a', origin='x')
        guards.claim('b', origin='y')

        guards.release('a')
        guards.claim('a', origin='z')

        assert guards.initiator('a') == 'z'
        assert 'c' not in guards
