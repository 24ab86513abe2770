"""Tests for git integration, run against a real temporary repository."""

from smartaudit.adapters.base import FixResult
from smartaudit.core.issues import Issue
from smartaudit.fixers.git_manager import GitManager, build_commit_message, modified_files


def fix_for(tool, file, description):
    issue = Issue(tool=tool, message=description, file=file, line=1)
    return FixResult.ok(issue, [file], description)


class TestCommitMessage:
    """Commit message layout and trailers."""

    def test_layout(self):
        fixes = [
            fix_for("ruff", "app/utils.py", "Fixed W291 in app/utils.py"),
            fix_for("ruff", "app/views.py", "Fixed I001 in app/views.py"),
            fix_for("pip_audit", "requirements.txt", "Upgraded requests"),
        ]
        message = build_commit_message("Apply 3 safe fixes", fixes)

        assert message.splitlines() == [
            "Apply 3 safe fixes",
            "",
            "Applied 3 automatic fixes:",
            "- ruff: 2 fixes",
            "- pip_audit: 1 fixes",
            "",
            "1. Fixed W291 in app/utils.py",
            "2. Fixed I001 in app/views.py",
            "3. Upgraded requests",
            "",
            "Smartaudit-Fixes: 3",
            "Smartaudit-Tools: pip_audit,ruff",
        ]

    def test_modified_files_unique_and_successful_only(self):
        fixes = [
            fix_for("ruff", "a.py", "one"),
            fix_for("ruff", "a.py", "two"),
            FixResult.failure("nope"),
            fix_for("ruff", "b.py", "three"),
        ]
        assert modified_files(fixes) == ["a.py", "b.py"]


class TestGitManagerOutsideRepository:
    """Every operation degrades gracefully without a repository."""

    def test_non_repo(self, sample_project):
        git = GitManager(sample_project)
        assert not git.is_available()
        assert git.current_branch_name() is None
        assert git.current_commit_hash() is None
        assert not git.create_fix_branch("smartaudit/fix")
        assert not git.commit_fixes([fix_for("ruff", "a.py", "x")], "msg")
        assert git.stash_create("x") is None
        assert git.generate_changelog() == ""
        assert git.get_file_history("app/models.py") == []


class TestGitManager:
    """Branches, commits and stashes in a real repository."""

    def test_branch_on_clean_tree(self, git_project):
        git = GitManager(git_project)
        assert git.is_available()
        assert git.current_branch_name() == "main"
        assert git.working_directory_clean()

        assert git.create_fix_branch("smartaudit/batch-1")
        assert git.current_branch_name() == "smartaudit/batch-1"
        assert git.branch_exists("smartaudit/batch-1")

    def test_branch_refused_on_dirty_tree(self, git_project):
        (git_project / "app" / "models.py").write_text("changed\n", encoding="utf-8")
        git = GitManager(git_project)
        assert not git.working_directory_clean()
        assert not git.create_fix_branch("smartaudit/batch-1")
        assert git.current_branch_name() == "main"

    def test_existing_branch_refused(self, git_project, git_cmd):
        git_cmd(git_project, "branch", "smartaudit/batch-1")
        assert not GitManager(git_project).create_fix_branch("smartaudit/batch-1")

    def test_commit_stages_only_modified_files(self, git_project, git_cmd):
        git = GitManager(git_project)
        (git_project / "app" / "utils.py").write_text("X = [1, 2]\n", encoding="utf-8")
        (git_project / "notes.txt").write_text("unrelated edit\n", encoding="utf-8")

        fixes = [fix_for("ruff", "app/utils.py", "Fixed E231 in app/utils.py")]
        assert git.commit_fixes(fixes, "Apply 1 safe fixes")

        committed = git_cmd(git_project, "show", "--name-only", "--format=", "HEAD")
        assert committed.splitlines() == ["app/utils.py"]
        body = git_cmd(git_project, "log", "-1", "--format=%B")
        assert "Smartaudit-Fixes: 1" in body
        assert "Smartaudit-Tools: ruff" in body
        assert git_cmd(git_project, "status", "--porcelain") == "M notes.txt"

        history = git.get_file_history("app/utils.py")
        assert history[0]["message"] == "Apply 1 safe fixes"
        assert "Apply 1 safe fixes" in git.generate_changelog()

    def test_commit_without_files_is_refused(self, git_project):
        assert not GitManager(git_project).commit_fixes([FixResult.failure("nope")], "msg")

    def test_failed_staging_unstages_everything(self, git_project, git_cmd):
        git = GitManager(git_project)
        (git_project / "app" / "utils.py").write_text("X = [1, 2]\n", encoding="utf-8")
        head = git_cmd(git_project, "rev-parse", "HEAD")

        fixes = [fix_for("ruff", "app/utils.py", "ok"), fix_for("ruff", "app/missing.py", "phantom")]
        assert not git.commit_fixes(fixes, "Apply fixes")

        assert git_cmd(git_project, "rev-parse", "HEAD") == head
        assert git_cmd(git_project, "diff", "--cached", "--name-only") == ""

    def test_delete_branch(self, git_project):
        git = GitManager(git_project)
        git.create_fix_branch("smartaudit/fix-1")
        assert not git.delete_branch("smartaudit/fix-1")

        assert git.switch_to_branch("main")
        assert git.delete_branch("smartaudit/fix-1")
        assert not git.branch_exists("smartaudit/fix-1")

    def test_pull_request_branch_needs_remote(self, git_project):
        git = GitManager(git_project)
        git.create_fix_branch("smartaudit/fix-1")
        assert git.get_remote_url() is None
        assert git.create_pull_request_branch() is False

    def test_stash_create_and_checkout(self, git_project):
        git = GitManager(git_project)
        target = git_project / "app" / "views.py"
        target.write_text("import sys\n", encoding="utf-8")

        ref = git.stash_create("checkpoint")
        assert ref
        assert target.read_text(encoding="utf-8") == "import sys\n"

        target.write_text("oops\n", encoding="utf-8")
        assert git.checkout_ref_paths(ref)
        assert target.read_text(encoding="utf-8") == "import sys\n"

    def test_revert_and_patch(self, git_project, tmp_path):
        git = GitManager(git_project)
        (git_project / "app" / "utils.py").write_text("X = [1, 2]\n", encoding="utf-8")
        fixes = [fix_for("ruff", "app/utils.py", "Fixed E231")]
        git.commit_fixes(fixes, "Apply fixes")

        patch = git.create_patch(fixes, tmp_path / "fix.patch")
        assert "X = [1, 2]" in patch["content"]
        assert (tmp_path / "fix.patch").is_file()

        assert git.revert_last_commit()
        assert (git_project / "app" / "utils.py").read_text(encoding="utf-8") == "X = [1,2]\n"
