#!/usr/bin/env python3
"""
Tests for the docker compose command policy.
"""

import os
import sys

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from orchestrator.modules.policy import CommandPolicy, CommandRejectedError, PolicySettings
from orchestrator.modules.policy.command_policy import (
    DEFAULT_ALLOWED_VERBS,
    IMMUTABLE_FORBIDDEN_FLAGS,
)


@pytest.fixture
def policy(workspace):
    return CommandPolicy(workspace=workspace, default_project_dir="compose")


def rejection(policy, text):
    with pytest.raises(CommandRejectedError) as exc_info:
        policy.build(text)
    return exc_info.value.reason


class TestBuild:
    """Accepted commands and their normalization."""

    def test_up_injects_default_project_directory(self, policy, workspace):
        spec = policy.build("docker compose up -d grafana")

        assert spec.program == "docker"
        assert spec.argv == [
            "docker", "compose", "--project-directory", "compose", "up", "-d", "grafana",
        ]
        assert spec.working_directory == workspace

    def test_explicit_project_directory_is_kept(self, policy):
        spec = policy.build("docker compose --project-directory stacks/app ps")
        assert spec.argv == ["docker", "compose", "--project-directory", "stacks/app", "ps"]

    def test_project_directory_equals_form(self, policy):
        spec = policy.build("docker compose --project-directory=compose logs --tail 50")
        assert spec.argv.count("--project-directory=compose") == 1
        assert "--project-directory" not in spec.argv

    def test_build_gets_plain_progress(self, policy):
        spec = policy.build("docker compose build api")
        assert spec.argv[-2:] == ["--progress", "plain"]

    def test_build_keeps_explicit_progress(self, policy):
        spec = policy.build("docker compose --progress tty build api")
        assert spec.argv.count("--progress") == 1
        assert "plain" not in spec.argv

    def test_non_build_verbs_are_not_touched(self, policy):
        spec = policy.build("docker compose down")
        assert "--progress" not in spec.argv

    def test_global_value_flags_are_skipped_when_finding_verb(self, policy):
        spec = policy.build("docker compose -p demo -f compose/docker-compose.yml up -d")
        assert "up" in spec.argv

    def test_logs_follow_short_flag_is_not_a_path(self, policy):
        spec = policy.build("docker compose logs -f grafana")
        assert spec.argv[-2:] == ["-f", "grafana"]

    def test_quoted_arguments(self, policy):
        spec = policy.build("docker compose --env-file 'compose/my env' config")
        assert "compose/my env" in spec.argv

    @pytest.mark.parametrize("verb", sorted(DEFAULT_ALLOWED_VERBS))
    def test_every_default_verb_is_accepted(self, policy, verb):
        spec = policy.build(f"docker compose {verb}")
        assert verb in spec.argv

    def test_build_is_pure(self, policy):
        first = policy.build("docker compose up -d")
        second = policy.build("docker compose up -d")
        assert first == second

    def test_validate_returns_tuple(self, policy):
        assert policy.validate("docker compose ps") == (True, None)
        ok, reason = policy.validate("docker compose exec api sh")
        assert ok is False
        assert "not allowed" in reason


class TestRejections:
    """Commands the policy must refuse."""

    def test_rm_rf_is_not_a_permitted_prefix(self, policy):
        reason = rejection(policy, "rm -rf /")
        assert "not a permitted command prefix" in reason
        assert "'rm'" in reason

    def test_docker_without_compose(self, policy):
        reason = rejection(policy, "docker run alpine")
        assert "not a permitted command prefix" in reason
        assert "'docker run'" in reason

    def test_too_short(self, policy):
        reason = rejection(policy, "docker")
        assert "too short" in reason

    def test_empty(self, policy):
        assert "empty" in rejection(policy, "   ")

    @pytest.mark.parametrize("ch", [";", "&", "|", "`", "$", "(", ")", "<", ">"])
    def test_metacharacters_anywhere(self, policy, ch):
        reason = rejection(policy, f"docker compose up {ch} echo")
        assert f"'{ch}'" in reason

    def test_quoted_metacharacter_still_rejected(self, policy):
        reason = rejection(policy, "docker compose up 'a;b'")
        assert "forbidden character" in reason

    def test_chained_command(self, policy):
        assert "forbidden character" in rejection(policy, "docker compose ps && rm -rf /")

    def test_unparseable(self, policy):
        assert "Could not parse" in rejection(policy, "docker compose up 'grafana")

    @pytest.mark.parametrize("verb", ["exec", "run", "cp", "rm", "kill"])
    def test_disallowed_verbs(self, policy, verb):
        reason = rejection(policy, f"docker compose {verb} api")
        assert "not allowed" in reason
        assert "Allowed:" in reason

    def test_missing_verb(self, policy):
        assert "none given" in rejection(policy, "docker compose -p demo")

    @pytest.mark.parametrize(
        "command",
        [
            "docker compose -H tcp://evil:2375 ps",
            "docker compose --host tcp://evil:2375 ps",
            "docker compose --host=tcp://evil:2375 ps",
            "docker compose --context remote ps",
            "docker compose ps --context=remote",
            "docker compose -Hunix:///tmp/other.sock ps",
        ],
    )
    def test_forbidden_flags(self, policy, command):
        assert "Forbidden flag" in rejection(policy, command)

    @pytest.mark.parametrize(
        "command",
        [
            "docker compose --project-directory ../outside up",
            "docker compose --project-directory=/etc up",
            "docker compose -f ../../etc/compose.yml up",
            "docker compose -f/etc/evil.yml up -d",
            "docker compose -f=../../etc/evil.yml up -d",
            "docker compose --file /tmp/x.yml up",
            "docker compose --env-file compose/../../secret.env up",
        ],
    )
    def test_workspace_escape(self, policy, command):
        assert "escapes workspace" in rejection(policy, command)

    def test_dotdot_that_stays_inside_is_allowed(self, policy):
        spec = policy.build("docker compose --project-directory compose/../compose ps")
        assert "compose/../compose" in spec.argv

    def test_attached_short_file_flag_inside_workspace(self, policy):
        spec = policy.build("docker compose -fcompose/docker-compose.yml up -d")
        assert "-fcompose/docker-compose.yml" in spec.argv

        spec = policy.build("docker compose -f=compose/docker-compose.yml ps")
        assert "-f=compose/docker-compose.yml" in spec.argv

    def test_attached_short_flags_after_verb_are_not_paths(self, policy):
        spec = policy.build("docker compose logs -ft grafana")
        assert spec.argv[-2:] == ["-ft", "grafana"]

    def test_attached_short_file_flag_without_value(self, policy):
        assert "requires a value" in rejection(policy, "docker compose -f= up")

    def test_path_flag_without_value(self, policy):
        assert "requires a value" in rejection(policy, "docker compose ps --env-file")

    def test_too_many_arguments(self, workspace):
        policy = CommandPolicy(workspace, settings=PolicySettings(max_arguments=5))
        assert "Too many arguments" in rejection(policy, "docker compose up a b c d")

    def test_rejection_is_value_error(self):
        assert issubclass(CommandRejectedError, ValueError)

    def test_default_project_dir_outside_workspace(self, workspace):
        with pytest.raises(CommandRejectedError):
            CommandPolicy(workspace, default_project_dir="../elsewhere")


class TestPolicySettings:
    """YAML policy overrides."""

    def _write(self, tmp_path, data):
        path = tmp_path / "policy.yaml"
        path.write_text(yaml.safe_dump(data))
        return str(path)

    def test_defaults_without_path(self):
        settings = PolicySettings.load(None)
        assert settings.allowed_verbs == DEFAULT_ALLOWED_VERBS

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = PolicySettings.load(str(tmp_path / "nope.yaml"))
        assert settings.allowed_verbs == DEFAULT_ALLOWED_VERBS

    def test_custom_verbs(self, tmp_path, workspace):
        path = self._write(tmp_path, {"allowedVerbs": ["ps", "logs"], "maxArguments": 10})
        settings = PolicySettings.load(path)

        assert settings.allowed_verbs == frozenset({"ps", "logs"})
        assert settings.max_arguments == 10
        assert settings.source == path

        policy = CommandPolicy(workspace, settings=settings)
        assert "not allowed" in rejection(policy, "docker compose up")
        policy.build("docker compose ps")

    def test_forbidden_flags_can_only_be_extended(self, tmp_path):
        path = self._write(tmp_path, {"forbiddenFlags": ["--remove-orphans"]})
        settings = PolicySettings.load(path)

        assert "--remove-orphans" in settings.forbidden_flags
        assert IMMUTABLE_FORBIDDEN_FLAGS <= settings.forbidden_flags

    def test_extra_progress_verbs(self, tmp_path, workspace):
        path = self._write(tmp_path, {"progressVerbs": ["pull"]})
        policy = CommandPolicy(workspace, settings=PolicySettings.load(path))

        assert policy.build("docker compose pull").argv[-2:] == ["--progress", "plain"]
        assert policy.build("docker compose build").argv[-2:] == ["--progress", "plain"]

    @pytest.mark.parametrize(
        "data",
        [
            {"allowedVerbs": ["exec"]},
            {"allowedVerbs": ["frobnicate"]},
            {"allowedVerbs": []},
            {"forbiddenFlags": ["host"]},
            {"maxArguments": 0},
            {"maxArguments": "many"},
            ["not", "a", "mapping"],
        ],
    )
    def test_invalid_documents_fall_back_to_defaults(self, tmp_path, data):
        settings = PolicySettings.load(self._write(tmp_path, data))
        assert settings == PolicySettings()

    def test_from_dict_raises_on_dangerous_verbs(self):
        with pytest.raises(ValueError, match="Forbidden verbs"):
            PolicySettings.from_dict({"allowedVerbs": ["up", "exec"]})
