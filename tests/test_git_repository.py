"""
Tests for the GitRepository adapter against real git repositories.

Tests cover:
- Inspection (is_repository, status, branch, remote)
- init / clone / prepare_repository
- Identity configuration
- commit_all
- pull: skip cases, already-up-to-date, ahead, fast-forward, rebase, conflict
- push: skip, success, rejection
"""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import commit_file, git

from threadsync.core.config import IdentityConfig
from threadsync.core.errors import CommandTimeoutError, RepositoryError
from threadsync.core.git import (
    GitRepository,
    RepositoryStatus,
    TransportResult,
    prepare_repository,
)
from threadsync.core.process import CommandCategory, CommandEventType, CommandRunner

pytestmark = pytest.mark.integration


def _repo(path: Path, sink=None) -> GitRepository:
    return GitRepository(path, runner=CommandRunner(sink=sink, timeout=30))


def _started(events) -> list[str]:
    return [e.command for e in events if e.type == CommandEventType.START]


class TestRepositoryStatus:
    def test_changed_paths_from_trimmed_output(self):
        # The runner strips output, which eats the first line's leading blank.
        status = RepositoryStatus(
            clean=False,
            output="M feeds.json\n M folders.json\n?? new.json\nR  old.json -> renamed.json",
        )
        assert status.changed_paths == ["feeds.json", "folders.json", "new.json", "renamed.json"]

    def test_changed_paths_empty_when_clean(self):
        assert RepositoryStatus(clean=True).changed_paths == []


class TestInspection:
    @pytest.mark.asyncio
    async def test_is_repository(self, git_repo: Path, tmp_path: Path):
        assert await _repo(git_repo).is_repository() is True
        assert await _repo(tmp_path / "missing").is_repository() is False

        plain = tmp_path / "plain"
        plain.mkdir()
        assert await _repo(plain).is_repository() is False

    @pytest.mark.asyncio
    async def test_status_clean_and_dirty(self, git_repo: Path):
        repo = _repo(git_repo)
        assert (await repo.status()).clean is True

        (git_repo / "feeds.json").write_text('["https://example.com/feed"]\n')
        (git_repo / "new.json").write_text("{}\n")
        status = await repo.status()

        assert status.clean is False
        assert sorted(status.changed_paths) == ["feeds.json", "new.json"]

    @pytest.mark.asyncio
    async def test_branch_and_remote(self, git_repo: Path, bare_remote: Path):
        repo = _repo(git_repo)
        assert await repo.get_branch() == git(git_repo, "rev-parse", "--abbrev-ref", "HEAD")
        assert await repo.get_remote_url() is None
        assert await repo.has_remote() is False

        git(git_repo, "remote", "add", "origin", str(bare_remote))
        assert await repo.get_remote_url() == str(bare_remote)
        assert await repo.has_remote() is True

    @pytest.mark.asyncio
    async def test_lookups_are_probes(self, git_repo: Path, events, recording_sink):
        repo = _repo(git_repo, recording_sink)

        assert await repo.has_remote() is False
        assert await repo.get_remote_url() is None
        assert await repo.get_branch() is not None

        assert events
        assert {e.category for e in events} == {CommandCategory.PROBE}

    @pytest.mark.asyncio
    async def test_check_installed(self, tmp_path: Path):
        assert await _repo(tmp_path).check_installed() is True

        missing = GitRepository(
            tmp_path, runner=CommandRunner(executable="definitely-not-git-xyz")
        )
        assert await missing.check_installed() is False


class TestSetup:
    @pytest.mark.asyncio
    async def test_init_creates_initial_commit(self, tmp_path: Path):
        data_dir = tmp_path / "Threadline"
        repo = _repo(data_dir)

        await repo.init()

        assert await repo.is_repository() is True
        assert git(data_dir, "rev-list", "--count", "HEAD") == "1"
        assert git(data_dir, "log", "-1", "--format=%s") == "Initial commit"
        assert git(data_dir, "config", "user.name") == "Threadline"
        assert git(data_dir, "config", "user.email") == "threadline@localhost"

    @pytest.mark.asyncio
    async def test_init_with_remote(self, tmp_path: Path, bare_remote: Path):
        data_dir = tmp_path / "Threadline"
        repo = _repo(data_dir)

        await repo.init(str(bare_remote))

        assert await repo.get_remote_url() == str(bare_remote)

    @pytest.mark.asyncio
    async def test_identity_not_overwritten(self, git_repo: Path):
        repo = GitRepository(git_repo, identity=IdentityConfig(name="Other", email="o@x"))
        await repo.configure_identity()

        assert git(git_repo, "config", "user.name") == "Test User"
        assert git(git_repo, "config", "user.email") == "test@example.com"

    @pytest.mark.asyncio
    async def test_identity_commands_are_categorized(self, git_repo: Path, events, recording_sink):
        await _repo(git_repo, recording_sink).configure_identity()

        assert events
        assert {e.category for e in events} == {CommandCategory.IDENTITY}

    @pytest.mark.asyncio
    async def test_clone_into_absent_directory(self, tmp_path: Path, seeded_remote: Path):
        target = tmp_path / "nested" / "Threadline"
        repo = _repo(target)

        await repo.clone(str(seeded_remote))

        assert (target / "feeds.json").read_text() == "[]\n"
        assert git(target, "config", "user.name") == "Threadline"

    @pytest.mark.asyncio
    async def test_clone_refuses_non_empty_directory(self, tmp_path: Path, seeded_remote: Path):
        target = tmp_path / "occupied"
        target.mkdir()
        (target / "notes.txt").write_text("keep me")

        with pytest.raises(RepositoryError):
            await _repo(target).clone(str(seeded_remote))

        assert (target / "notes.txt").read_text() == "keep me"

    @pytest.mark.asyncio
    async def test_prepare_clones_when_empty(self, tmp_path: Path, seeded_remote: Path):
        target = tmp_path / "fresh"
        repo = await prepare_repository(target, remote_url=str(seeded_remote))

        assert repo.path == target.resolve()
        assert (target / "feeds.json").exists()

    @pytest.mark.asyncio
    async def test_prepare_inits_when_not_empty(self, tmp_path: Path, bare_remote: Path):
        target = tmp_path / "existing"
        target.mkdir()
        (target / "feeds.json").write_text("[]\n")

        repo = await prepare_repository(target, remote_url=str(bare_remote))

        assert await repo.is_repository()
        assert await repo.get_remote_url() == str(bare_remote)
        # Existing files are left for the first sync to commit.
        assert "feeds.json" in (await repo.status()).changed_paths

    @pytest.mark.asyncio
    async def test_prepare_leaves_existing_repository(self, git_repo: Path):
        before = git(git_repo, "rev-parse", "HEAD")

        await prepare_repository(git_repo)

        assert git(git_repo, "rev-parse", "HEAD") == before


class TestCommitAll:
    @pytest.mark.asyncio
    async def test_commits_then_reports_nothing_to_commit(self, git_repo: Path):
        repo = _repo(git_repo)
        (git_repo / "feeds.json").write_text('["a"]\n')
        (git_repo / "folders.json").write_text("{}\n")

        assert await repo.commit_all("Add feed: Example") is True
        assert git(git_repo, "log", "-1", "--format=%s") == "Add feed: Example"
        assert (await repo.status()).clean is True

        assert await repo.commit_all("Nothing here") is False
        assert git(git_repo, "log", "-1", "--format=%s") == "Add feed: Example"

    @pytest.mark.asyncio
    async def test_stages_deletions(self, git_repo: Path):
        (git_repo / "feeds.json").unlink()

        assert await _repo(git_repo).commit_all("Remove feeds") is True
        assert git(git_repo, "ls-files") == ""

    @pytest.mark.asyncio
    async def test_staged_check_is_a_probe(self, git_repo: Path, events, recording_sink):
        (git_repo / "feeds.json").write_text('["a"]\n')

        assert await _repo(git_repo, recording_sink).commit_all("Add feed") is True

        checks = [e for e in events if e.args[:2] == ["diff", "--cached"]]
        assert checks
        assert {e.category for e in checks} == {CommandCategory.PROBE}
        assert [e.type for e in checks] == [CommandEventType.START, CommandEventType.ERROR]


class TestPull:
    @pytest.mark.asyncio
    async def test_skips_without_remote(self, git_repo: Path, events, recording_sink):
        result = await _repo(git_repo, recording_sink).pull()

        assert result == TransportResult(success=True, skipped=True)
        assert not any("fetch" in c for c in _started(events))

    @pytest.mark.asyncio
    async def test_skips_when_remote_has_no_branch(self, git_repo: Path, bare_remote: Path):
        git(git_repo, "remote", "add", "origin", str(bare_remote))

        result = await _repo(git_repo).pull()

        assert result.success is True
        assert result.skipped is True

    @pytest.mark.asyncio
    async def test_up_to_date(self, make_clone):
        clone = make_clone("alice")
        before = git(clone, "rev-parse", "HEAD")

        result = await _repo(clone).pull()

        assert result == TransportResult.ok()
        assert git(clone, "rev-parse", "HEAD") == before

    @pytest.mark.asyncio
    async def test_local_ahead_does_not_rebase(self, make_clone, events, recording_sink):
        clone = make_clone("alice")
        commit_file(clone, "folders.json", "{}\n")
        before = git(clone, "rev-parse", "HEAD")

        result = await _repo(clone, recording_sink).pull()

        assert result.success is True
        assert git(clone, "rev-parse", "HEAD") == before
        assert not any(" rebase" in c for c in _started(events))

    @pytest.mark.asyncio
    async def test_brings_in_remote_commits(self, make_clone):
        alice = make_clone("alice")
        bob = make_clone("bob")
        commit_file(alice, "folders.json", '{"News": []}\n')
        git(alice, "push")

        result = await _repo(bob).pull()

        assert result.success is True
        assert (bob / "folders.json").read_text() == '{"News": []}\n'

    @pytest.mark.asyncio
    async def test_rebases_diverged_history(self, make_clone):
        alice = make_clone("alice")
        bob = make_clone("bob")
        commit_file(alice, "folders.json", "{}\n", "Alice folders")
        git(alice, "push")
        commit_file(bob, "settings.json", "{}\n", "Bob settings")

        result = await _repo(bob).pull()

        assert result.success is True
        assert git(bob, "log", "-1", "--format=%s") == "Bob settings"
        assert git(bob, "log", "-2", "--format=%s").splitlines()[1] == "Alice folders"

    @pytest.mark.asyncio
    async def test_conflict_is_aborted(self, make_clone):
        alice = make_clone("alice")
        bob = make_clone("bob")
        commit_file(alice, "feeds.json", '["alice"]\n', "Alice feeds")
        git(alice, "push")
        commit_file(bob, "feeds.json", '["bob"]\n', "Bob feeds")
        bob_head = git(bob, "rev-parse", "HEAD")

        result = await _repo(bob).pull()

        assert result.success is False
        assert result.conflict is True
        assert result.error
        git_dir = bob / ".git"
        assert not (git_dir / "rebase-merge").exists()
        assert not (git_dir / "rebase-apply").exists()
        assert git(bob, "status", "--porcelain") == ""
        assert git(bob, "rev-parse", "HEAD") == bob_head
        assert (bob / "feeds.json").read_text() == '["bob"]\n'

    @pytest.mark.asyncio
    async def test_branch_probes_are_categorized(self, make_clone, events, recording_sink):
        await _repo(make_clone("alice"), recording_sink).pull()

        probes = [e for e in events if "--verify" in e.args]
        assert probes
        assert all(e.category == CommandCategory.PROBE for e in probes)

    @pytest.mark.asyncio
    async def test_timeout_is_reported(self, git_repo: Path, bare_remote: Path):
        git(git_repo, "remote", "add", "origin", str(bare_remote))

        class StallingRunner(CommandRunner):
            async def run(self, args, *, cwd, category=CommandCategory.TRANSPORT):
                if args[0] == "fetch":
                    raise CommandTimeoutError(
                        "Process killed (timeout after 60s)", command=["git", *args], timeout=60
                    )
                return await super().run(args, cwd=cwd, category=category)

        result = await GitRepository(git_repo, runner=StallingRunner()).pull()

        assert result.success is False
        assert result.timed_out is True
        assert "timeout" in result.error


class TestPush:
    @pytest.mark.asyncio
    async def test_skips_without_remote(self, git_repo: Path):
        result = await _repo(git_repo).push()
        assert result.skipped is True
        assert result.success is True

    @pytest.mark.asyncio
    async def test_pushes_to_empty_remote(self, git_repo: Path, bare_remote: Path):
        git(git_repo, "remote", "add", "origin", str(bare_remote))
        branch = git(git_repo, "rev-parse", "--abbrev-ref", "HEAD")

        result = await _repo(git_repo).push()

        assert result.success is True
        assert git(bare_remote, "rev-parse", branch) == git(git_repo, "rev-parse", "HEAD")
        assert git(git_repo, "rev-parse", "--abbrev-ref", "@{upstream}") == f"origin/{branch}"

    @pytest.mark.asyncio
    async def test_rejected_when_behind(self, make_clone):
        alice = make_clone("alice")
        bob = make_clone("bob")
        commit_file(alice, "feeds.json", '["alice"]\n')
        git(alice, "push")
        commit_file(bob, "folders.json", "{}\n")

        result = await _repo(bob).push()

        assert result.success is False
        assert result.conflict is False
        assert result.error

    @pytest.mark.asyncio
    async def test_pull_then_push_round_trip(self, make_clone):
        alice = make_clone("alice")
        bob = make_clone("bob")
        commit_file(alice, "feeds.json", '["alice"]\n')
        git(alice, "push")
        commit_file(bob, "folders.json", "{}\n")
        repo = _repo(bob)

        assert (await repo.pull()).success
        assert (await repo.push()).success

        git(alice, "pull")
        assert (alice / "folders.json").read_text() == "{}\n"
