# tests/models/test_wheel_and_errors.py
import pytest
from pydantic import TypeAdapter

from pasiva.models.errors import (
    InvalidInput,
    InvalidRoomId,
    NetworkError,
    PermissionDenied,
    RoomErrorKind,
    RoomIdGenerationFailed,
    RoomNotFound,
    RoomResult,
)
from pasiva.models.wheel import ALL_SLICES, SLICE_COUNT, BankruptSlice, ExtraTurnSlice, PointsSlice, WheelSlice, slice_at


def test_wheel_has_fixed_eight_slices_in_order():
    assert SLICE_COUNT == 8
    assert [s.display_text for s in ALL_SLICES] == [
        "100", "200", "300", "BANKRUPT", "100", "200", "300", "EXTRA TURN",
    ]

def test_slice_at_wraps_modulo_eight():
    assert slice_at(3) == BankruptSlice()
    assert slice_at(15) == ExtraTurnSlice()
    assert slice_at(8) == PointsSlice(value=100)

def test_wheel_slice_union_is_tagged_by_kind():
    adapter = TypeAdapter(WheelSlice)
    assert adapter.validate_python({"kind": "points", "value": 300}) == PointsSlice(value=300)
    assert isinstance(adapter.validate_python({"kind": "bankrupt"}), BankruptSlice)
    with pytest.raises(Exception):
        adapter.validate_python({"kind": "jackpot"})

def test_error_kinds_and_messages():
    assert RoomNotFound("123456").kind is RoomErrorKind.ROOM_NOT_FOUND
    assert "123456" in str(RoomNotFound("123456"))
    assert str(RoomIdGenerationFailed(5)) == "Failed to generate unique room ID after 5 attempts"
    assert InvalidRoomId("12345").kind is RoomErrorKind.INVALID_ROOM_ID
    assert str(InvalidInput("Nickname cannot be empty")) == "Nickname cannot be empty"
    assert PermissionDenied().kind is RoomErrorKind.PERMISSION_DENIED
    cause = ConnectionError("offline")
    assert NetworkError(cause).cause is cause

def test_errors_compare_by_type_and_arguments():
    assert RoomNotFound("123456") == RoomNotFound("123456")
    assert RoomNotFound("123456") != RoomNotFound("654321")
    assert RoomNotFound("123456") != InvalidRoomId("123456")

def test_room_result_success_and_failure():
    ok = RoomResult.ok(42)
    assert ok.is_success and ok.get_or_raise() == 42

    failed = RoomResult.fail(RoomNotFound("123456"))
    assert not failed.is_success
    with pytest.raises(RoomNotFound):
        failed.get_or_raise()
