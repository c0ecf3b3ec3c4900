"""Unit tests for the commitdock CLI."""

import pytest
from unittest.mock import patch
from typer.testing import CliRunner

from commitdock.build.pipeline import PipelineResult
from commitdock.cli.main import app
from commitdock.exceptions import PushError


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host COMMITDOCK_* variables out of the tests."""
    for name in (
        "COMMITDOCK_GIT_TRANSPORT",
        "COMMITDOCK_GIT_SSH_KEY",
        "COMMITDOCK_DOCKER_REGISTRY",
        "COMMITDOCK_DOCKER_USERNAME",
        "COMMITDOCK_DOCKER_PASSWORD",
        "COMMITDOCK_NO_CACHE",
        "COMMITDOCK_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


def pushed(request, settings=None, observer=None):
    return PipelineResult(
        image=request.image,
        commit=request.commit,
        references=request.references(),
        elapsed=1.5,
    )


class TestBuildCommand:
    """Test the build command."""

    def test_build_success(self, runner):
        with patch(
            "commitdock.build.build_and_publish", side_effect=pushed
        ) as mock_build:
            result = runner.invoke(
                app,
                [
                    "build",
                    "--git-repo",
                    "github.com/example/app",
                    "--commit",
                    "abc123",
                    "--tags",
                    "v1,v2",
                ],
            )

        assert result.exit_code == 0, result.output
        request = mock_build.call_args.args[0]
        assert request.repository == "github.com/example/app"
        assert request.image == "app"
        assert request.tags == ("v1", "v2", "latest", "abc123")
        assert "Pushed 4 tag(s)" in result.stdout
        assert "app:abc123" in result.stdout

    def test_options_override_environment(self, runner, monkeypatch):
        monkeypatch.setenv("COMMITDOCK_DOCKER_USERNAME", "from-env")
        monkeypatch.setenv("COMMITDOCK_TIMEOUT", "10m")

        with patch(
            "commitdock.build.build_and_publish", side_effect=pushed
        ) as mock_build:
            result = runner.invoke(
                app,
                [
                    "build",
                    "--git-repo",
                    "github.com/example/app",
                    "--commit",
                    "abc123",
                    "--docker-registry",
                    "registry.example.com/team",
                    "-u",
                    "ci",
                    "-p",
                    "secret",
                    "--timeout",
                    "90s",
                    "--cache",
                ],
            )

        assert result.exit_code == 0, result.output
        request = mock_build.call_args.args[0]
        settings = mock_build.call_args.kwargs["settings"]
        assert request.image == "registry.example.com/team/app"
        assert request.timeout == 90.0
        assert settings.docker_username == "ci"
        assert settings.docker_password == "secret"
        assert settings.no_cache is False

    def test_explicit_image(self, runner):
        with patch(
            "commitdock.build.build_and_publish", side_effect=pushed
        ) as mock_build:
            result = runner.invoke(
                app,
                [
                    "build",
                    "--git-repo",
                    "github.com/example/app",
                    "--commit",
                    "abc123",
                    "--image",
                    "docker.io/acme/web",
                ],
            )

        assert result.exit_code == 0, result.output
        assert mock_build.call_args.args[0].references() == (
            "docker.io/acme/web:latest",
            "docker.io/acme/web:abc123",
        )

    def test_pipeline_failure_exits_nonzero(self, runner):
        error = PushError("denied", repository="github.com/example/app", reference="app:v2")

        with patch("commitdock.build.build_and_publish", side_effect=error):
            result = runner.invoke(
                app,
                ["build", "--git-repo", "github.com/example/app", "--commit", "abc123"],
            )

        assert result.exit_code == 1
        assert "push failed: denied" in result.stdout

    @pytest.mark.parametrize(
        "extra",
        [["--timeout", "soon"], ["--transport", "ftp"]],
    )
    def test_invalid_configuration(self, runner, extra):
        with patch("commitdock.build.build_and_publish") as mock_build:
            result = runner.invoke(
                app,
                ["build", "--git-repo", "github.com/example/app", "--commit", "abc123"]
                + extra,
            )

        assert result.exit_code == 2
        mock_build.assert_not_called()

    def test_missing_commit(self, runner):
        result = runner.invoke(app, ["build", "--git-repo", "github.com/example/app"])

        assert result.exit_code != 0


class TestVersionCommand:
    def test_version(self, runner):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "commitdock" in result.stdout
