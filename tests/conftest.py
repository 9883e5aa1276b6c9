"""Pytest configuration for boring_harness tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_SRC = Path(__file__).parent.parent / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from boring_harness.models import ProjectInfo, TestInfo


@pytest.fixture
def project(tmp_path):
    """A project whose output directory lives under tmp_path."""
    test_dir = tmp_path / 'tests'
    test_dir.mkdir()
    return ProjectInfo(name='', test_dir=test_dir, output_dir=tmp_path / 'test-results')


@pytest.fixture
def make_info(project):
    """Factory for TestInfo objects bound to the temporary project."""

    def factory(title='renders dashboard', *, retry=0, **kwargs):
        file = str(project.test_dir / 'test_dashboard.py')
        return TestInfo(
            title_path=('test_dashboard.py', title),
            file=file,
            line=12,
            column=5,
            project=project,
            retry=retry,
            **kwargs,
        )

    return factory
