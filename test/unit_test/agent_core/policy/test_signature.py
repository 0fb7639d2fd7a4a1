from __future__ import annotations

from typing import Any, Mapping, Optional

from codeloop_ai.agent_core.capabilities.builtin import EditAction
from codeloop_ai.agent_core.capabilities.shell import BashAction
from codeloop_ai.agent_core.policy.signature import abstract_rule, build_signature, parse_signature


class _CustomSignatureAction:
    name = "Deploy"

    def extract_signature_content(self, params: Mapping[str, Any]) -> Optional[str]:
        return f"{params['env']}:{params['service']}"

    def abstract_permission_rule(self, params: Mapping[str, Any]) -> Optional[str]:
        return f"Deploy({params['env']}:*)"


def test_builtin_table_picks_salient_parameter() -> None:
    assert build_signature("Bash", {"command": "git status", "timeout": 5}) == "Bash(git status)"
    assert build_signature("Edit", {"file_path": "a.py", "old_string": "x"}) == "Edit(a.py)"
    assert build_signature("Grep", {"pattern": "TODO", "path": "src"}) == "Grep(TODO)"


def test_unknown_action_falls_back_to_path_then_name() -> None:
    assert build_signature("Lint", {"path": "src/"}) == "Lint(src/)"
    assert build_signature("Lint", {"fix": True}) == "Lint"
    assert build_signature("Bash", {"command": ""}) == "Bash"


def test_custom_derivation_wins() -> None:
    action = _CustomSignatureAction()
    params = {"env": "prod", "service": "api"}
    assert build_signature("Deploy", params, action) == "Deploy(prod:api)"
    assert abstract_rule("Deploy", params, action) == "Deploy(prod:*)"


def test_parse_signature() -> None:
    assert parse_signature("Bash(git status)") == ("Bash", "git status")
    assert parse_signature("Glob") == ("Glob", None)
    assert parse_signature("Bash(echo (nested))") == ("Bash", "echo (nested)")
    assert parse_signature("not a signature!") == ("not a signature!", None)


def test_abstract_rule_widens_files_and_commands() -> None:
    assert abstract_rule("Write", {"file_path": "/src/app/main.py"}) == "Write(/src/app/*)"
    assert abstract_rule("Edit", {"file_path": "main.py"}, EditAction()) == "Edit(./*)"
    assert abstract_rule("Bash", {"command": "npm run build"}, BashAction()) == "Bash(npm:*)"
    assert abstract_rule("Glob", {"pattern": "*.py"}) == "Glob(*.py)"
    assert abstract_rule("Lint", {}) == "Lint"
