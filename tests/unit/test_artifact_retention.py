"""Tests for retention policies, trace sessions, scratch files and naming.

Tests cover:
  - should_record / should_capture / should_screenshot truth tables
  - Mode normalization, legacy aliases and trace options
  - TraceSession transitions and illegal transitions
  - TraceSessionRegistry identity and pruning
  - ScratchDirectory lazy creation; promote renames, discard deletes
  - AttachmentNamer sequential names
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from boring_harness.artifacts import (
    AttachmentNamer,
    RetentionMode,
    ScratchArtifact,
    ScratchDirectory,
    ScreenshotMode,
    TraceSession,
    TraceSessionRegistry,
    TraceState,
    normalize_screenshot_mode,
    normalize_trace_mode,
    should_capture,
    should_record,
    should_screenshot,
    trace_options,
)
from boring_harness.errors import HarnessError, TraceStateError
from boring_harness.testing import StubTracing


# ── Retention policy ──────────────────────────────────────────────


class TestShouldRecord:
    @pytest.mark.parametrize('mode, retry, expected', [
        ('off', 0, False),
        ('off', 1, False),
        ('on', 0, True),
        ('on', 3, True),
        ('retain-on-failure', 0, True),
        ('on-first-retry', 0, False),
        ('on-first-retry', 1, True),
        ('on-first-retry', 2, False),
    ])
    def test_truth_table(self, mode, retry, expected):
        assert should_record(mode, retry) is expected


class TestShouldCapture:
    def test_retain_on_failure(self):
        assert should_capture('retain-on-failure', True, 0) is True
        assert should_capture('retain-on-failure', False, 0) is False

    def test_on_first_retry_only_on_retry_one(self):
        assert should_capture('on-first-retry', False, 1) is True
        assert should_capture('on-first-retry', True, 0) is False
        assert should_capture('on-first-retry', True, 2) is False

    def test_on_and_off(self):
        assert should_capture(RetentionMode.ON, False, 0) is True
        assert should_capture(RetentionMode.OFF, True, 1) is False


class TestScreenshotPolicy:
    def test_only_on_failure(self):
        assert should_screenshot('only-on-failure', True) is True
        assert should_screenshot('only-on-failure', False) is False

    def test_on_and_off(self):
        assert should_screenshot(ScreenshotMode.ON, False) is True
        assert should_screenshot(ScreenshotMode.OFF, True) is False


class TestNormalization:
    def test_falsy_is_off(self):
        assert normalize_trace_mode(None) == RetentionMode.OFF
        assert normalize_trace_mode('') == RetentionMode.OFF

    def test_mapping_and_alias(self):
        assert normalize_trace_mode({'mode': 'on'}) == RetentionMode.ON
        assert normalize_trace_mode('retry-with-trace') == RetentionMode.ON_FIRST_RETRY

    def test_unknown_mode_rejected(self):
        with pytest.raises(HarnessError, match='Invalid retention mode'):
            normalize_trace_mode('sometimes')
        with pytest.raises(HarnessError, match='Invalid screenshot mode'):
            normalize_screenshot_mode('always')

    def test_trace_options_merge_without_mode(self):
        options = trace_options({'mode': 'on', 'snapshots': False})
        assert options == {'screenshots': True, 'snapshots': False, 'sources': True}
        assert trace_options('on') == {'screenshots': True, 'snapshots': True, 'sources': True}


# ── Trace sessions ────────────────────────────────────────────────


class TestTraceSession:
    @pytest.mark.asyncio
    async def test_lifecycle(self):
        tracing = StubTracing()
        session = TraceSession(tracing)

        await session.start(title='t1', options={'sources': True})
        assert session.state == TraceState.CHUNK_ACTIVE
        await session.stop_chunk()
        assert session.state == TraceState.STARTED
        await session.start_chunk(title='t2')
        await session.stop_chunk()
        await session.stop()

        assert session.state == TraceState.NO_SESSION
        assert tracing.call_names == ['start', 'stop_chunk', 'start_chunk', 'stop_chunk', 'stop']
        assert tracing.calls[0][1] == {'sources': True, 'title': 't1'}

    @pytest.mark.asyncio
    async def test_illegal_transitions(self):
        session = TraceSession(StubTracing())
        with pytest.raises(TraceStateError):
            await session.stop_chunk()
        with pytest.raises(TraceStateError):
            await session.start_chunk(title='t')
        await session.start(title='t', options={})
        with pytest.raises(TraceStateError):
            await session.start(title='t', options={})
        with pytest.raises(TraceStateError, match='chunk-active'):
            await session.stop()

    def test_registry_keys_by_identity(self):
        registry = TraceSessionRegistry()
        a, b = StubTracing(), StubTracing()
        assert registry.session_for(a) is registry.session_for(a)
        assert registry.session_for(a) is not registry.session_for(b)

        registry.retain([b])
        assert len(registry) == 1
        registry.forget(b)
        assert len(registry) == 0


# ── Scratch files ─────────────────────────────────────────────────


class TestScratch:
    def test_directory_created_lazily(self, tmp_path: Path):
        scratch = ScratchDirectory(tmp_path, worker_index=3)
        assert not scratch.created
        assert not (tmp_path / '.harness-artifacts-3').exists()

        path = scratch.new_path('.zip')

        assert path.parent == tmp_path / '.harness-artifacts-3'
        assert path.parent.is_dir()
        scratch.remove()
        assert not path.parent.exists()

    def test_promote_is_a_rename(self, tmp_path: Path):
        source = tmp_path / 'scratch.png'
        source.write_bytes(b'png')
        inode = os.stat(source).st_ino
        destination = tmp_path / 'out' / 'test-failed-1.png'

        assert ScratchArtifact(source, 'screenshot').promote(destination) is True

        assert not source.exists()
        assert destination.read_bytes() == b'png'
        assert os.stat(destination).st_ino == inode

    def test_failures_are_swallowed(self, tmp_path: Path):
        missing = ScratchArtifact(tmp_path / 'missing.zip', 'trace')
        assert missing.promote(tmp_path / 'trace.zip') is False
        assert missing.discard() is False

    def test_discard_deletes(self, tmp_path: Path):
        source = tmp_path / 'video.webm'
        source.write_bytes(b'webm')
        assert ScratchArtifact(source, 'video').discard() is True
        assert not source.exists()


# ── Naming ────────────────────────────────────────────────────────


class TestAttachmentNamer:
    def test_sequential_names(self, make_info):
        info = make_info()
        namer = AttachmentNamer(info)

        names = [
            namer.reserve('trace').name,
            namer.reserve('trace').name,
            namer.reserve('video').name,
            namer.reserve('video').name,
            namer.reserve('screenshot', failed=True).name,
            namer.reserve('screenshot', failed=True).name,
        ]

        assert names == [
            'trace.zip', 'trace-1.zip', 'video.webm', 'video-1.webm',
            'test-failed-1.png', 'test-failed-2.png',
        ]

    def test_finished_screenshot_and_attach(self, make_info):
        info = make_info(retry=1)
        namer = AttachmentNamer(info)
        path = namer.reserve('screenshot')

        attachment = namer.attach('screenshot', path)

        assert path.name == 'test-finished-1.png'
        assert path.parent.name.endswith('-retry1')
        assert info.attachments == [attachment]
        assert attachment.content_type == 'image/png'
