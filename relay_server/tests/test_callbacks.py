from app.core.normalizer import MAX_CALLBACK_DATA_BYTES
from app.core.types import ReplyOption
from app.runtime_state import CallbackValues

LONG = "Quero falar com um atendente humano sobre a fatura do cartão de crédito"


def test_short_values_pass_through() -> None:
    values = CallbackValues()
    assert values.encode("1", "Saldo") == "Saldo"
    assert values.decode("1", "Saldo") == "Saldo"
    assert values.count() == 0


def test_long_value_gets_a_key_that_maps_back() -> None:
    values = CallbackValues()
    key = values.encode("1", LONG)

    assert key != LONG
    assert len(key.encode("utf-8")) <= MAX_CALLBACK_DATA_BYTES
    assert values.decode("1", key) == LONG
    # Same value, same key.
    assert values.encode("1", LONG) == key
    assert values.count() == 1


def test_keys_are_scoped_per_conversation() -> None:
    values = CallbackValues()
    key = values.encode("1", LONG)
    assert values.decode("2", key) is None


def test_oldest_values_are_evicted() -> None:
    values = CallbackValues(max_per_conversation=2, max_conversations=1)
    first = values.encode("1", LONG + " 1")
    values.encode("1", LONG + " 2")
    values.encode("1", LONG + " 3")
    assert values.decode("1", first) is None
    assert values.count() == 2

    third = values.encode("1", LONG + " 3")
    values.encode("2", LONG)
    assert values.decode("1", third) is None
    assert values.decode("2", values.encode("2", LONG)) == LONG
    assert values.count() == 1


def test_encode_options_keeps_labels() -> None:
    values = CallbackValues()
    encoded = values.encode_options(
        "1", [ReplyOption(label="Curto", value="curto"), ReplyOption(label="Longo", value=LONG)]
    )
    assert [o.label for o in encoded] == ["Curto", "Longo"]
    assert encoded[0].value == "curto"
    assert values.decode("1", encoded[1].value) == LONG
