"""Tests for the run command core."""

import httpx
import pytest


def _cmd(action: str | None = None, *categories: str):
    from castengine.commands.command import RunCommand

    cmd = RunCommand()
    if action is not None:
        cmd.with_action(action)
    for category in categories:
        cmd.with_category(category)
    return cmd


class TestPreRun:
    """Commands refused before any runner is picked."""

    def test_missing_categories(self) -> None:
        from castengine.commands.command import ERR_EMPTY_CATEGORY, SKIP_EXECUTION_MESSAGE

        result = _cmd("get").run()
        assert result.result is None
        assert str(result.error) == ERR_EMPTY_CATEGORY
        assert result.debug["skip"] == [SKIP_EXECUTION_MESSAGE]

    def test_jiva_and_cstor_conflict(self) -> None:
        from castengine.commands.command import ERR_INVALID_CATEGORY

        result = _cmd("delete", "jiva", "cstor", "volume").run()
        assert str(result.error) == ERR_INVALID_CATEGORY

    def test_disabled_command_is_skipped(self) -> None:
        result = _cmd("get", "http").with_data("url", "http://10.0.0.5").enable(False).run()
        assert result.error is None
        assert result.result is None
        assert "skip" in result.debug

    def test_info_describes_command(self) -> None:
        result = _cmd("get", "http").enable(False).with_data("url", "http://x").run()
        assert result.debug["info"] == ["run command: action 'get' categories 'http' data 'url=http://x'"]

    def test_cancelled_run_raises(self) -> None:
        from castengine.commands.command import CommandRuntime, RunCommand
        from castengine.contracts.errors import CancelledError

        runtime = CommandRuntime()
        runtime.cancel.cancel()
        cmd = RunCommand(runtime).with_action("get").with_category("http")
        with pytest.raises(CancelledError):
            cmd.run()


class TestRunnerSelection:
    def test_unknown_category_combination(self) -> None:
        from castengine.commands.command import ERR_NOT_SUPPORTED_CATEGORY

        result = _cmd("get", "volume").run()
        assert str(result.error) == ERR_NOT_SUPPORTED_CATEGORY

    def test_unsupported_action(self) -> None:
        from castengine.commands.command import ERR_NOT_SUPPORTED_ACTION

        result = _cmd("list", "jiva", "volume").run()
        assert str(result.error) == ERR_NOT_SUPPORTED_ACTION

    def test_missing_action(self) -> None:
        from castengine.commands.command import ERR_NOT_SUPPORTED_ACTION

        result = _cmd(None, "http").run()
        assert str(result.error) == ERR_NOT_SUPPORTED_ACTION

    @pytest.mark.parametrize(
        ("categories", "runner"),
        [
            (("jiva", "volume"), "JivaVolumeCommand"),
            (("http",), "HttpCommand"),
            (("cstor", "snapshot"), "CstorSnapshotCommand"),
            (("cstor", "volume"), "CstorVolumeCommand"),
        ],
    )
    def test_registered_runners(self, categories: tuple[str, ...], runner: str) -> None:
        assert type(_cmd("get", *categories).instance()).__name__ == runner

    def test_category_added_once(self) -> None:
        from castengine.contracts.enums import CommandCategory

        assert _cmd("get", "http", "http").categories == [CommandCategory.HTTP]

    def test_invalid_category_value(self) -> None:
        with pytest.raises(ValueError):
            _cmd("get", "nfs")


class TestFlags:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, True), ("false", False), ("0", False), ("off", False), ("true", True), (False, False), (1, True)],
    )
    def test_flag(self, value: object, expected: bool) -> None:
        cmd = _cmd("get", "http")
        if value is not None:
            cmd.with_data("unmarshal", value)
        assert cmd.flag("unmarshal", True) is expected


class TestQuerySelects:
    """Projection of command results through select paths."""

    RESULT = {"status": {"phase": "Running"}, "items": [{"name": "a"}, {"name": "b"}]}

    def _select(self, paths: list[str], value: object = RESULT):
        from castengine.commands.command import query_selects
        from castengine.contracts.results import Msgs, RunCommandResult

        msgs = Msgs()
        return query_selects(paths, RunCommandResult(result=value), msgs), msgs

    def test_aliases(self) -> None:
        result, _ = self._select([".status.phase as phase", "{.items[*].name} as names"])
        assert result.result == {"phase": "Running", "names": ["a", "b"]}

    def test_unaliased_paths_are_numbered(self) -> None:
        result, _ = self._select([".status.phase", ".items[0].name"])
        assert result.result == {"s0": "Running", "s1": "a"}

    def test_all_keeps_result(self) -> None:
        result, _ = self._select(["all"])
        assert result.result == self.RESULT

    def test_all_with_alias(self) -> None:
        result, _ = self._select(["all as everything", ".status.phase as phase"])
        assert result.result == {"everything": self.RESULT, "phase": "Running"}

    def test_missing_value_warns(self) -> None:
        result, msgs = self._select([".status.reason as reason"])
        assert result.result == {"reason": None}
        assert msgs.warn == ["no value found for select '.status.reason'"]

    def test_nil_result_warns(self) -> None:
        result, msgs = self._select([".a"], value=None)
        assert result.result is None
        assert msgs.warn[0].startswith("nil command result")

    def test_json_text_result_decoded(self) -> None:
        result, _ = self._select([".status.phase as phase"], value='{"status": {"phase": "Bound"}}')
        assert result.result == {"phase": "Bound"}

    def test_selects_applied_after_run(self) -> None:
        from castengine.commands.command import CommandRuntime, RunCommand

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=self.RESULT)

        runtime = CommandRuntime(http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        cmd = RunCommand(runtime).with_action("get").with_category("http").with_data("url", "http://10.0.0.5:9501")
        result = cmd.with_select([".status.phase as phase"]).run()
        assert result.result == {"phase": "Running"}
