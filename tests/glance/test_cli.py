"""Tests for the glance command line."""

import io
from unittest.mock import patch

import pytest
from conftest import FakeClient
from rich.console import Console

from glance.cli.formatting.progress import ProgressBar, RichProgressReporter
from glance.cli.main import EXIT_CONFIG_ERROR, build_parser, main
from glance.errors import FatalBackendError
from glance.progress import ProgressEvent, Status


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Empty working directory and an environment with only a Gemini key."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    for name in (
        "OPENROUTER_API_KEY",
        "GLANCE_PROVIDER",
        "GLANCE_MODEL",
        "GLANCE_FORCE",
        "GLANCE_STREAM",
        "GLANCE_CONCURRENCY",
        "GLANCE_MAX_RETRIES",
        "GLANCE_SUMMARY_FILENAME",
        "GLANCE_IGNORE_FILENAME",
        "GLANCE_TOKEN_LIMIT_POLICY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("GLANCE_RETRY_BASE_DELAY", "0")
    monkeypatch.setenv("GLANCE_RETRY_MAX_DELAY", "0")
    return monkeypatch


@pytest.fixture
def target(tmp_path):
    root = tmp_path / "proj"
    (root / "sub").mkdir(parents=True)
    (root / "a.py").write_text("print('a')\n")
    (root / "sub" / "b.py").write_text("print('b')\n")
    return root


def run_with(client, argv):
    built = []

    def fake_build_client(config):
        built.append(config)
        return client

    with patch("glance.cli.main.build_client", side_effect=fake_build_client):
        code = main(argv)
    return code, built


class TestParser:
    """Tests for build_parser."""

    def test_unset_flags_are_none(self):
        args = build_parser().parse_args(["some/dir"])

        assert args.directory == "some/dir"
        assert args.force is None
        assert args.stream is None
        assert args.concurrency is None

    def test_rejects_unknown_provider(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["d", "--provider", "llama"])

        assert exc_info.value.code == 2


class TestMain:
    """Tests for main exit codes."""

    def test_success_writes_summaries(self, cli_env, target):
        client = FakeClient(lambda p: "A summary.")

        code, built = run_with(client, [str(target)])

        assert code == 0
        assert (target / ".glance.md").read_text() == "A summary."
        assert (target / "sub" / ".glance.md").read_text() == "A summary."
        assert client.closed

    def test_flags_reach_config(self, cli_env, target):
        code, built = run_with(
            FakeClient(),
            [
                str(target),
                "--force",
                "--stream",
                "--concurrency",
                "2",
                "--max-retries",
                "0",
                "--timeout",
                "9",
                "--token-policy",
                "truncate",
                "--model",
                "custom-model",
            ],
        )

        assert code == 0
        [config] = built
        assert config.force is True
        assert config.stream is True
        assert config.concurrency == 2
        assert config.max_retries == 0
        assert config.request_timeout == 9.0
        assert config.token_limit_policy.value == "truncate"
        assert config.model == "custom-model"

    def test_root_failure_exits_one(self, cli_env, target):
        def responder(prompt):
            raise FatalBackendError("bad key", status_code=401)

        client = FakeClient(responder)

        code, _ = run_with(client, [str(target)])

        assert code == 1
        assert client.closed

    def test_missing_directory_is_config_error(self, cli_env, tmp_path):
        code, built = run_with(FakeClient(), [str(tmp_path / "missing")])

        assert code == EXIT_CONFIG_ERROR
        assert built == []

    def test_missing_api_key_is_config_error(self, cli_env, target):
        cli_env.delenv("GEMINI_API_KEY")

        code, built = run_with(FakeClient(), [str(target)])

        assert code == EXIT_CONFIG_ERROR
        assert built == []

    def test_missing_prompt_file_is_config_error(self, cli_env, target, tmp_path):
        code, _ = run_with(FakeClient(), [str(target), "--prompt-file", str(tmp_path / "nope.txt")])

        assert code == EXIT_CONFIG_ERROR

    def test_prompt_file_in_working_directory_is_used(self, cli_env, target):
        with open("prompt.txt", "w", encoding="utf-8") as f:
            f.write("CUSTOM {directory}\n{subdirectory_summaries}\n{file_contents}")
        client = FakeClient()

        code, _ = run_with(client, [str(target)])

        assert code == 0
        assert all(p.startswith("CUSTOM ") for p in client.prompts)


class TestRichProgressReporter:
    """Tests for the event-driven progress bar."""

    def test_bar_follows_resolutions_and_hides_retries(self):
        console = Console(file=io.StringIO(), force_terminal=False)
        with ProgressBar(console) as bar:
            reporter = RichProgressReporter(bar)
            reporter.emit(ProgressEvent(status=Status.PENDING, message="start", details={"total": 2}))
            reporter.emit(ProgressEvent(status=Status.RUNNING, message="started", task_id="/proj/sub"))
            reporter.emit(
                ProgressEvent(status=Status.RETRY, message="Retry attempt 2/4", task_id="/proj/sub")
            )
            [task] = bar.progress.tasks
            description = task.description
            reporter.emit(
                ProgressEvent(
                    status=Status.SUCCESS,
                    message="summarized",
                    task_id="/proj/sub",
                    details={"resolved": True},
                )
            )
            completed = task.completed

        assert description == "Summarizing sub"
        assert completed == 1
