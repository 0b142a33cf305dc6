import json

import pytest

from shared.errors import (
    EmptyInputError,
    LocalValidationError,
    MessageTooLongError,
    MissingArgumentError,
    UnknownCommandError,
)
from shared.protocol import (
    AiRequest,
    ChatMessage,
    ListUsersRequest,
    Ping,
    SetName,
    StatusRequest,
    encode,
    split_command,
)


@pytest.mark.parametrize("text, expected", [
    ("hello", "hello"),
    ("  hello world  ", "hello world"),
    ("\thi there\n", "hi there"),
    ("not /a command", "not /a command"),
])
def test_plain_text_becomes_trimmed_chat(text, expected):
    assert encode(text) == ChatMessage(expected)


@pytest.mark.parametrize("text", ["", " ", "   \t\n  "])
def test_whitespace_only_input_is_rejected(text):
    with pytest.raises(EmptyInputError):
        encode(text)


def test_name_without_argument_reports_missing_name():
    with pytest.raises(MissingArgumentError) as exc:
        encode("/name ")
    assert str(exc.value) == "missing name"
    assert exc.value.usage == "/name <new_name>"


def test_name_argument_is_trimmed():
    assert encode("/name   Bob Smith  ") == SetName("Bob Smith")


def test_status_and_users_ignore_trailing_content():
    assert encode("/status") == StatusRequest()
    assert encode("/status please now") == StatusRequest()
    assert encode("/users") == ListUsersRequest()
    assert encode("/users all of them") == ListUsersRequest()


def test_ping_token_is_optional():
    assert encode("/ping tok1") == Ping(token="tok1")
    bare = encode("/ping")
    assert bare == Ping(token=None)
    assert bare.to_dict() == {"type": "ping"}


def test_ai_requires_question():
    with pytest.raises(MissingArgumentError) as exc:
        encode("/ai")
    assert "question" in str(exc.value)
    assert encode("/ai what is a websocket?") == AiRequest("what is a websocket?")


def test_unknown_command_names_the_word():
    with pytest.raises(UnknownCommandError) as exc:
        encode("/dance now")
    assert exc.value.word == "/dance"


def test_commands_are_case_sensitive():
    with pytest.raises(UnknownCommandError):
        encode("/NAME bob")


def test_length_limits():
    assert encode("a" * 500) == ChatMessage("a" * 500)
    with pytest.raises(MessageTooLongError):
        encode("a" * 501)
    with pytest.raises(MessageTooLongError):
        encode("/ai " + "q" * 1001)


def test_validation_errors_share_a_base_class():
    for text in ["", "/name", "/nope"]:
        with pytest.raises(LocalValidationError):
            encode(text)


def test_wire_shapes_match_the_contract():
    assert ChatMessage("hi").to_dict() == {"type": "chat", "text": "hi"}
    assert SetName("bob").to_dict() == {"type": "setName", "name": "bob"}
    assert StatusRequest().to_dict() == {"type": "status"}
    assert ListUsersRequest().to_dict() == {"type": "listUsers"}
    assert Ping("t").to_dict() == {"type": "ping", "token": "t"}
    assert AiRequest("why?").to_dict() == {"type": "ai", "prompt": "why?"}


def test_to_json_is_compact_and_sorted():
    frame = SetName("bob").to_json()
    assert frame == '{"name":"bob","type":"setName"}'
    assert json.loads(frame) == {"type": "setName", "name": "bob"}


def test_split_command():
    assert split_command("/ping   abc def ") == ("/ping", "abc def")
    assert split_command("/status") == ("/status", "")
    assert split_command("   ") == ("", "")
