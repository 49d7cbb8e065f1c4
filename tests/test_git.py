import json
import os
import sys

import pytest

from kratt.git import (
    FakeLocalGit,
    GitError,
    GitRunner,
    parse_github_path,
    parse_remote_url,
)

_SCRIPT = """\
import json
import sys

args = sys.argv[1:]
with open({log!r}, "a", encoding="utf-8") as fh:
    fh.write(json.dumps(args) + "\\n")
with open({responses!r}, encoding="utf-8") as fh:
    responses = json.load(fh)
out, code = responses.get(" ".join(args), ["", 0])
sys.stdout.write(out)
sys.exit(code)
"""


def _scripted_command(tmp_path, responses=None):
    """Write a stand-in git script and return the command that starts it."""
    log = tmp_path / "calls.log"
    responses_file = tmp_path / "responses.json"
    responses_file.write_text(json.dumps(responses or {}), encoding="utf-8")
    script = tmp_path / "fake_git.py"
    script.write_text(
        _SCRIPT.format(log=str(log), responses=str(responses_file)),
        encoding="utf-8",
    )
    return (sys.executable, str(script))


def _calls(tmp_path):
    log = tmp_path / "calls.log"
    if not log.exists():
        return []
    return [json.loads(line) for line in log.read_text().splitlines()]


def _ssh(path):
    return "@".join(["git", "github.com:" + path])


# --- FakeLocalGit ---------------------------------------------------------


def test_fake_worktree_operations():
    fake = FakeLocalGit()
    assert fake.check_worktree_exists("test-branch") is False
    fake.create_worktree("test-branch", "/fake/path")
    assert fake.check_worktree_exists("test-branch") is True
    assert fake.worktree_path("test-branch") == "/fake/path"


def test_fake_worktree_path_default():
    assert FakeLocalGit().worktree_path("feature") == "/fake/repo-feature"


def test_fake_change_directory():
    fake = FakeLocalGit()
    assert fake.current_dir == "/fake/repo"
    fake.change_directory("/new/path")
    assert fake.current_dir == "/new/path"


def test_fake_commit_recorded():
    fake = FakeLocalGit()
    fake.commit_and_push("test commit")
    assert fake.commits == ["test commit"]


def test_fake_repository_detection():
    fake = FakeLocalGit()
    assert fake.is_git_repository() is True
    assert fake.github_repository() == ("owner", "repo")
    fake.is_git_repo = False
    assert fake.is_git_repository() is False
    fake.github_owner, fake.github_repo = "testowner", "testrepo"
    assert fake.github_repository() == ("testowner", "testrepo")


def test_fake_branch_already_exists():
    fake = FakeLocalGit(github_owner="testowner", github_repo="testrepo")
    fake.create_branch("existing-branch")
    assert fake.is_git_repository() is True
    assert fake.branch_exists("existing-branch") is True
    assert fake.branch_exists("other") is False


def test_fake_github_repository_error():
    fake = FakeLocalGit(fail_github_repository=True)
    assert fake.is_git_repository() is True
    with pytest.raises(GitError, match="fake get github repository failure"):
        fake.github_repository()


def test_fake_write_and_push():
    fake = FakeLocalGit()
    fake.write_file("docs/a.md", "content")
    fake.push_branch_upstream("a")
    assert fake.written_files == {"docs/a.md": "content"}
    assert fake.pushed_branches == ["a"]


@pytest.mark.parametrize(
    "flag, action, message",
    [
        ("fail_create_branch", lambda g: g.create_branch("b"), "create branch"),
        ("fail_write_file", lambda g: g.write_file("p", "c"), "write file"),
        ("fail_commit_and_push", lambda g: g.commit_and_push("m"), "commit and push"),
        (
            "fail_push_branch_upstream",
            lambda g: g.push_branch_upstream("b"),
            "push branch upstream",
        ),
    ],
)
def test_fake_failure_switches(flag, action, message):
    fake = FakeLocalGit(**{flag: True})
    with pytest.raises(GitError, match=message):
        action(fake)
    assert fake.created_branches == []
    assert fake.written_files == {}
    assert fake.commits == []
    assert fake.pushed_branches == []


# --- remote parsing -------------------------------------------------------


@pytest.mark.parametrize(
    "path, expected",
    [
        ("owner/repo.git", ("owner", "repo")),
        ("/owner/repo.git", ("owner", "repo")),
        ("owner/repo", ("owner", "repo")),
        ("owner/repo/extra", ("owner", "repo")),
    ],
)
def test_parse_github_path(path, expected):
    assert parse_github_path(path) == expected


@pytest.mark.parametrize("path", ["", "owner", "/owner.git"])
def test_parse_github_path_invalid(path):
    with pytest.raises(GitError, match="invalid GitHub path format"):
        parse_github_path(path)


def test_parse_remote_url_https():
    assert parse_remote_url("https://github.com/owner/repo.git") == ("owner", "repo")


def test_parse_remote_url_ssh():
    assert parse_remote_url(_ssh("owner/repo.git")) == ("owner", "repo")


@pytest.mark.parametrize(
    "url", ["https://gitlab.example.com/owner/repo.git", "/local/path", ""]
)
def test_parse_remote_url_not_github(url):
    with pytest.raises(GitError, match="not a GitHub repository"):
        parse_remote_url(url)


# --- GitRunner ------------------------------------------------------------


def test_runner_is_git_repository_true(tmp_path):
    runner = GitRunner(command=_scripted_command(tmp_path))
    assert runner.is_git_repository() is True
    assert _calls(tmp_path) == [["rev-parse", "--is-inside-work-tree"]]


def test_runner_is_git_repository_false(tmp_path):
    runner = GitRunner(
        command=_scripted_command(
            tmp_path, {"rev-parse --is-inside-work-tree": ["", 128]}
        )
    )
    assert runner.is_git_repository() is False


def test_runner_missing_binary_is_not_repository(tmp_path):
    runner = GitRunner(command=(str(tmp_path / "no-such-git"),))
    assert runner.is_git_repository() is False


def test_runner_github_repository(tmp_path):
    runner = GitRunner(
        command=_scripted_command(
            tmp_path,
            {"remote get-url origin": ["https://github.com/acme/tool.git\n", 0]},
        )
    )
    assert runner.github_repository() == ("acme", "tool")


def test_runner_github_repository_failure(tmp_path):
    runner = GitRunner(
        command=_scripted_command(tmp_path, {"remote get-url origin": ["", 2]})
    )
    with pytest.raises(GitError, match="failed to get remote origin URL"):
        runner.github_repository()


def test_runner_branch_exists(tmp_path):
    runner = GitRunner(
        command=_scripted_command(
            tmp_path, {"branch --list feature": ["  feature\n", 0]}
        )
    )
    assert runner.branch_exists("feature") is True
    assert runner.branch_exists("other") is False


def test_runner_check_worktree_exists(tmp_path):
    listing = (
        "worktree /repo\nHEAD abc\nbranch refs/heads/main\n\n"
        "worktree /repo-feature\nHEAD def\nbranch refs/heads/feature\n"
    )
    runner = GitRunner(
        command=_scripted_command(
            tmp_path, {"worktree list --porcelain": [listing, 0]}
        )
    )
    assert runner.check_worktree_exists("feature") is True
    assert runner.check_worktree_exists("missing") is False


def test_runner_worktree_path(tmp_path):
    root = os.path.join(str(tmp_path), "projects", "proj")
    runner = GitRunner(
        command=_scripted_command(
            tmp_path, {"rev-parse --show-toplevel": [root + "\n", 0]}
        )
    )
    assert runner.worktree_path("feature") == os.path.join(
        str(tmp_path), "projects", "proj-feature"
    )


def test_runner_create_worktree_failure(tmp_path):
    runner = GitRunner(
        command=_scripted_command(tmp_path, {"worktree add /x feature": ["", 1]})
    )
    with pytest.raises(GitError, match="failed to create worktree for branch feature"):
        runner.create_worktree("feature", "/x")


def test_runner_create_branch_and_push(tmp_path):
    runner = GitRunner(command=_scripted_command(tmp_path))
    runner.create_branch("topic")
    runner.push_branch_upstream("topic")
    assert _calls(tmp_path) == [
        ["checkout", "-b", "topic"],
        ["push", "-u", "origin", "topic"],
    ]


def test_runner_push_failure(tmp_path):
    runner = GitRunner(
        command=_scripted_command(tmp_path, {"push -u origin topic": ["", 1]})
    )
    with pytest.raises(GitError, match="failed to push branch topic upstream"):
        runner.push_branch_upstream("topic")


def test_runner_commit_and_push_skips_clean_tree(tmp_path):
    runner = GitRunner(
        command=_scripted_command(tmp_path, {"status --porcelain": ["  \n", 0]})
    )
    runner.commit_and_push("msg")
    assert _calls(tmp_path) == [["add", "."], ["status", "--porcelain"]]


def test_runner_commit_and_push_full_sequence(tmp_path):
    runner = GitRunner(
        command=_scripted_command(
            tmp_path,
            {
                "status --porcelain": [" M file.go\n", 0],
                "branch --show-current": ["topic\n", 0],
            },
        )
    )
    runner.commit_and_push("Automated changes")
    assert _calls(tmp_path) == [
        ["add", "."],
        ["status", "--porcelain"],
        ["commit", "-m", "Automated changes"],
        ["branch", "--show-current"],
        ["push", "-u", "origin", "topic"],
    ]


def test_runner_commit_failure(tmp_path):
    runner = GitRunner(
        command=_scripted_command(
            tmp_path,
            {"status --porcelain": [" M f\n", 0], "commit -m msg": ["", 1]},
        )
    )
    with pytest.raises(GitError, match="failed to commit changes"):
        runner.commit_and_push("msg")


def test_runner_write_file_creates_directories(tmp_path):
    target = tmp_path / "docs" / "feature" / "auth-instructions.md"
    GitRunner().write_file(str(target), "do the thing")
    assert target.read_text(encoding="utf-8") == "do the thing"


def test_runner_change_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    sub = tmp_path / "sub"
    sub.mkdir()
    GitRunner().change_directory(str(sub))
    assert os.getcwd() == str(sub)


def test_runner_change_directory_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(GitError, match="failed to change directory"):
        GitRunner().change_directory(str(tmp_path / "missing"))