"""Tests for the local replica: atomic replace, sidecar, lock file."""

from __future__ import annotations

import os
import time

import pytest

from manifestsync.client import lock as lock_module
from manifestsync.client.lock import ReplicaLock
from manifestsync.client.replica import LocalReplica
from manifestsync.core.atomic_file import atomic_write_bytes
from manifestsync.core.hasher import sha256_hex
from manifestsync.errors import CorruptDownloadError, ReplicaLockedError


class TestAtomicWrite:
    def test_creates_parent_and_file(self, tmp_dir):
        target = tmp_dir / "nested" / "dir" / "file.md"
        atomic_write_bytes(target, b"hello")
        assert target.read_bytes() == b"hello"

    def test_replaces_existing(self, tmp_dir):
        target = tmp_dir / "file.md"
        target.write_bytes(b"old")
        atomic_write_bytes(target, b"new", expected_hash=sha256_hex(b"new"))
        assert target.read_bytes() == b"new"

    def test_hash_mismatch_leaves_target_untouched(self, tmp_dir):
        target = tmp_dir / "file.md"
        target.write_bytes(b"old")
        with pytest.raises(CorruptDownloadError):
            atomic_write_bytes(target, b"evil", expected_hash=sha256_hex(b"good"))
        assert target.read_bytes() == b"old"
        assert sorted(p.name for p in tmp_dir.iterdir()) == ["file.md"]


class TestLocalReplica:
    def test_paths(self, replica: LocalReplica):
        assert replica.sidecar_path.name == ".AGENTS.md.manifestsync.json"
        assert replica.lock_path.name == ".AGENTS.md.manifestsync.lock"
        assert replica.sidecar_path.parent == replica.path.parent

    def test_fresh_replica_has_no_state(self, replica: LocalReplica):
        assert replica.load_state() is None
        assert replica.cached_content_hash == ""
        assert replica.read_content() is None
        assert replica.matches("0" * 64) is False

    def test_replace_writes_file_and_sidecar(self, replica: LocalReplica):
        digest = sha256_hex(b"v1")
        replica.replace(b"v1", digest, 1)
        assert replica.path.read_bytes() == b"v1"
        state = replica.load_state()
        assert state is not None
        assert state.content_hash == digest
        assert state.sequence_number == 1
        assert state.source_url == "local"
        assert replica.matches(digest)

    def test_corrupt_replace_keeps_previous_state(self, replica: LocalReplica):
        replica.replace(b"v1", sha256_hex(b"v1"), 1)
        with pytest.raises(CorruptDownloadError):
            replica.replace(b"tampered", sha256_hex(b"v2"), 2)
        assert replica.path.read_bytes() == b"v1"
        assert replica.load_state().sequence_number == 1

    def test_unreadable_sidecar_is_ignored(self, replica: LocalReplica):
        replica.path.parent.mkdir(parents=True, exist_ok=True)
        replica.sidecar_path.write_text("{not json", encoding="utf-8")
        assert replica.load_state() is None

    def test_local_edit_detected(self, replica: LocalReplica):
        digest = sha256_hex(b"v1")
        replica.replace(b"v1", digest, 1)
        replica.path.write_bytes(b"edited by hand")
        assert replica.matches(digest) is False


class TestReplicaLock:
    def test_acquire_and_release(self, tmp_dir):
        lock = ReplicaLock(tmp_dir / "x.lock")
        with lock:
            assert lock.held
            assert lock.path.exists()
        assert not lock.held
        assert not lock.path.exists()

    def test_second_holder_times_out(self, tmp_dir):
        path = tmp_dir / "x.lock"
        with ReplicaLock(path):
            contender = ReplicaLock(path, timeout=0.0)
            with pytest.raises(ReplicaLockedError):
                contender.acquire()
        assert not path.exists()

    def test_stale_lock_is_broken(self, tmp_dir):
        path = tmp_dir / "x.lock"
        path.write_text("{}", encoding="utf-8")
        old = time.time() - 3600
        os.utime(path, (old, old))

        lock = ReplicaLock(path, timeout=0.0, stale_after=60.0)
        lock.acquire()
        assert lock.held
        lock.release()

    def test_release_without_acquire_is_noop(self, tmp_dir):
        path = tmp_dir / "x.lock"
        path.write_text("{}", encoding="utf-8")
        ReplicaLock(path).release()
        assert path.exists()

    def test_lock_released_on_error(self, tmp_dir):
        path = tmp_dir / "x.lock"
        with pytest.raises(RuntimeError):
            with ReplicaLock(path):
                raise RuntimeError("boom")
        assert not path.exists()

    def test_fresh_lock_swapped_in_while_breaking_is_kept(
        self, tmp_dir, monkeypatch: pytest.MonkeyPatch
    ):
        path = tmp_dir / "x.lock"
        path.write_text("{}", encoding="utf-8")
        old = time.time() - 3600
        os.utime(path, (old, old))

        real_rename = os.rename
        swapped = []

        def rename_after_new_holder(src, dst):
            # Another process breaks the stale lock and takes a fresh one
            # between our stat() and rename().
            if not swapped:
                os.unlink(src)
                with open(src, "w", encoding="utf-8") as fh:
                    fh.write('{"pid": 4242}')
                swapped.append(src)
            real_rename(src, dst)

        monkeypatch.setattr(lock_module.os, "rename", rename_after_new_holder)

        lock = ReplicaLock(path, timeout=0.0, stale_after=60.0)
        with pytest.raises(ReplicaLockedError):
            lock.acquire()
        assert not lock.held
        assert path.read_text(encoding="utf-8") == '{"pid": 4242}'
        assert [p.name for p in tmp_dir.iterdir() if p.suffix == ".stale"] == []

    def test_stale_lock_broken_once_leaves_no_tombstone(self, tmp_dir):
        path = tmp_dir / "x.lock"
        path.write_text("{}", encoding="utf-8")
        old = time.time() - 3600
        os.utime(path, (old, old))

        with ReplicaLock(path, timeout=0.0, stale_after=60.0):
            assert sorted(p.name for p in tmp_dir.iterdir()) == ["x.lock"]
        assert list(tmp_dir.iterdir()) == []
