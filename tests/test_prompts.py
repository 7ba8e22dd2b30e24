"""Tests for operator decision providers."""

import io

import pytest

from provision import prompts
from provision.aliases import AliasEntry
from provision.errors import OperatorAbort
from provision.prompts import FixedDecider, ScriptedDecider, TtyDecider, parse_keep_answer

FOO = AliasEntry(name="foo", definition="bar", line='alias foo="bar"')


class FakeTty:
    """Stands in for /dev/tty."""

    def __init__(self, typed: str):
        self.input = io.StringIO(typed)
        self.output = io.StringIO()
        self.closed = False

    def readline(self):
        return self.input.readline()

    def write(self, text):
        self.output.write(text)

    def flush(self):
        pass

    def close(self):
        self.closed = True


@pytest.mark.parametrize(
    "answer, expected",
    [("", True), ("y", True), ("YES", True), (" n ", False), ("no", False), ("maybe", None)],
)
def test_parse_keep_answer(answer, expected):
    assert parse_keep_answer(answer) is expected


def test_parse_keep_answer_abort():
    with pytest.raises(OperatorAbort):
        parse_keep_answer("q")


class TestTtyDecider:
    """Test cases for terminal prompting."""

    def test_shows_alias_and_keeps_on_enter(self):
        tty = FakeTty("\n")

        assert TtyDecider(tty)(FOO) is True
        assert "foo" in tty.output.getvalue()
        assert 'alias foo="bar"' in tty.output.getvalue()

    def test_discard(self):
        assert TtyDecider(FakeTty("n\n"))(FOO) is False

    def test_reprompts_on_unknown_answer(self):
        tty = FakeTty("perhaps\nn\n")

        assert TtyDecider(tty)(FOO) is False
        assert tty.output.getvalue().count("Keep this alias?") == 2

    def test_closed_terminal_aborts(self):
        with pytest.raises(OperatorAbort):
            TtyDecider(FakeTty(""))(FOO)

    def test_quit_aborts(self):
        with pytest.raises(OperatorAbort):
            TtyDecider(FakeTty("q\n"))(FOO)

    def test_missing_terminal_aborts(self, monkeypatch):
        def no_tty(*args, **kwargs):
            raise OSError("No such device or address")

        monkeypatch.setattr("builtins.open", no_tty)

        with pytest.raises(OperatorAbort, match="--keep-unknown"):
            TtyDecider()(FOO)

    def test_close(self):
        tty = FakeTty("")
        decider = TtyDecider(tty)

        decider.close()

        assert tty.closed


class TestScriptedDecider:
    """Test cases for scripted answers."""

    def test_answers_in_order(self):
        decider = ScriptedDecider(["y", "n"])
        bar = AliasEntry(name="bar", definition="x", line='alias bar="x"')

        assert decider(FOO) is True
        assert decider(bar) is False
        assert decider.asked == ["foo", "bar"]

    def test_running_out_of_answers_aborts(self):
        with pytest.raises(OperatorAbort):
            ScriptedDecider([])(FOO)

    def test_bad_scripted_answer(self):
        with pytest.raises(ValueError):
            ScriptedDecider(["perhaps"])(FOO)


def test_fixed_decider():
    assert FixedDecider(True)(FOO) is True
    assert FixedDecider(False)(FOO) is False


class TestPromptNewPassphrase:
    """Test cases for reading a new key passphrase."""

    def _typed(self, monkeypatch, entries):
        entries = iter(entries)

        def getpass(prompt):
            value = next(entries, None)
            if value is None:
                raise EOFError
            return value

        monkeypatch.setattr(prompts.getpass, "getpass", getpass)

    def test_matching_entries(self, monkeypatch):
        self._typed(monkeypatch, ["s3cret", "s3cret"])

        assert prompts.prompt_new_passphrase() == "s3cret"

    def test_mismatch_asks_again(self, monkeypatch, capsys):
        self._typed(monkeypatch, ["s3cret", "typo", "s3cret", "s3cret"])

        assert prompts.prompt_new_passphrase() == "s3cret"
        assert "do not match" in capsys.readouterr().out

    def test_empty_means_no_passphrase(self, monkeypatch):
        self._typed(monkeypatch, ["", ""])

        assert prompts.prompt_new_passphrase() == ""

    def test_end_of_input_aborts(self, monkeypatch):
        self._typed(monkeypatch, ["s3cret"])

        with pytest.raises(OperatorAbort):
            prompts.prompt_new_passphrase()
