"""Tests for CLI module - value decoding and command structure."""

import json
import struct
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from pyplc_ladder.cli import app, decode_values, to_signed, words_to_float, words_to_int32
from pyplc_ladder.types import BatchReadResult, DeviceDataType, DeviceReadResult

runner = CliRunner()


def row(*cols: str) -> str:
    return "\t".join(f'"{c}"' for c in cols)


@pytest.fixture
def exports(tmp_path: Path) -> dict[str, str]:
    comments = tmp_path / "comments.csv"
    comments.write_text(
        "device,comment\nD100,メインモータ回転数\nD200,予備コメント\nL100,過負荷異常\nM10,運転中\n",
        encoding="utf-8",
    )
    program = tmp_path / "MAIN.csv"
    program.write_text(
        "\n".join(
            [
                row("0", "", "LD", "X0", "AND", "M10", "OUT", "L100"),
                row("1", "", "DMOV", "D100", "D102"),
                row("2", "", "EMOV", "D300", "D302"),
                row("3", "", "MOV", "K10", "D400"),
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    fb_dir = tmp_path / "fb"
    fb_dir.mkdir()
    (fb_dir / "Motor_Label.csv").write_text("Name,Type,Description\nStart,Bit,start input\n", encoding="utf-8")
    (fb_dir / "Motor_Program.csv").write_text("Line,Instruction\n0,LD Start\n", encoding="utf-8")
    return {"comments": str(comments), "program": str(program), "fb_dir": str(fb_dir)}


# ============================================================================
# Value Decoding Tests
# ============================================================================


class TestSignedConversion:
    def test_to_signed(self) -> None:
        assert to_signed(0) == 0
        assert to_signed(32767) == 32767
        assert to_signed(32768) == -32768
        assert to_signed(65535) == -1

    def test_words_to_int32(self) -> None:
        assert words_to_int32(0xE240, 0x0001) == 123456
        assert words_to_int32(0xFFFF, 0xFFFF) == -1
        assert words_to_int32(0, 0x8000) == -(2**31)

    def test_words_to_float(self) -> None:
        low, high = struct.unpack("<HH", struct.pack("<f", 1.5))
        assert words_to_float(low, high) == 1.5
        assert words_to_float(0, 0x3FC0) == 1.5


class TestDecodeValues:
    def test_word(self) -> None:
        assert decode_values([1, 65535], DeviceDataType.WORD) == [1, 65535]
        assert decode_values([1, 65535], DeviceDataType.WORD, signed=True) == [1, -1]

    def test_double_word_pairs(self) -> None:
        assert decode_values([0xE240, 1, 5, 0], DeviceDataType.DOUBLE_WORD) == [123456, 5]

    def test_odd_trailing_word_dropped(self) -> None:
        assert decode_values([0, 0x3FC0, 7], DeviceDataType.FLOAT) == [1.5]


# ============================================================================
# Analysis Commands
# ============================================================================


def test_info_command_json(exports: dict[str, str]) -> None:
    result = runner.invoke(
        app, ["info", "--json", "-c", exports["comments"], "-P", exports["program"], "--fb-dir", exports["fb_dir"]]
    )

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["comments"] == 4
    assert data["programs"] == [{"name": "MAIN.csv", "lines": 4}]
    assert data["functionBlocks"] == 1
    assert "version" in data


def test_info_command_local() -> None:
    result = runner.invoke(app, ["info"])

    assert result.exit_code == 0
    assert "version:" in result.stdout.lower()
    assert "gateway:" in result.stdout.lower()


def test_missing_export_file_is_invalid_input(tmp_path: Path) -> None:
    result = runner.invoke(app, ["info", "-c", str(tmp_path / "nope.csv")])
    assert result.exit_code == 2


def test_parse_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["parse", exports["program"], "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data[0] == ["0", "", "LD", "X0", "AND", "M10", "OUT", "L100"]


def test_comment_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["comment", "d100", "-c", exports["comments"]])

    assert result.exit_code == 0
    assert "メインモータ回転数" in result.stdout


def test_comment_command_invalid_device(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["comment", "Q10", "-c", exports["comments"]])
    assert result.exit_code == 2


def test_blocks_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["blocks", "D100", "-P", exports["program"], "--context", "0", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["blocks"] == ["[MAIN.csv]\n" + row("1", "", "DMOV", "D100", "D102")]


def test_related_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["related", "M10", "-P", exports["program"], "-c", exports["comments"], "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["related"] == [{"device": "L100", "comment": "過負荷異常"}, {"device": "X0", "comment": ""}]


def test_datatype_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["datatype", "D300", "-P", exports["program"], "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"device": "D300", "dataType": "float", "readLength": 2}


def test_search_command_explicit_device(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["search", "D100 のモータが止まった", "-c", exports["comments"], "--json"])

    assert result.exit_code == 0
    assert [h["device"] for h in json.loads(result.stdout)] == ["D100"]


def test_infer_command_multiple(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["infer", "MAIN の D400", "--multiple", "-P", exports["program"], "--json"])

    assert result.exit_code == 0
    devices = [d["device"] for d in json.loads(result.stdout)["devices"]]
    assert devices[0] == "D400"
    assert "X0" in devices


def test_infer_command_no_device() -> None:
    result = runner.invoke(app, ["infer", "ポンプ"])

    assert result.exit_code == 0
    assert "D100" in result.stdout


def test_trace_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["trace", "-c", exports["comments"], "-P", exports["program"], "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["status"] == "success"
    assert data["candidates"][0]["relatedDevices"] == ["X0", "M10"]


def test_trace_command_custom_keyword(exports: dict[str, str]) -> None:
    result = runner.invoke(
        app, ["trace", "-c", exports["comments"], "-P", exports["program"], "-k", "停止", "--json"]
    )

    assert result.exit_code == 0
    assert json.loads(result.stdout)["status"] == "not_found"


# ============================================================================
# Function Block Commands
# ============================================================================


def test_fb_list_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["fb-list", "--fb-dir", exports["fb_dir"], "--json"])

    assert result.exit_code == 0
    assert [b["name"] for b in json.loads(result.stdout)] == ["Motor"]


def test_fb_show_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["fb-show", "motor", "--fb-dir", exports["fb_dir"]])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["labels"] == [{"name": "Start", "type": "Bit", "description": "start input"}]


def test_fb_show_unknown(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["fb-show", "Pump", "--fb-dir", exports["fb_dir"]])
    assert result.exit_code == 2


def test_fb_search_command(exports: dict[str, str]) -> None:
    result = runner.invoke(app, ["fb-search", "start", "--fb-dir", exports["fb_dir"]])

    assert result.exit_code == 0
    assert result.stdout.strip() == "Motor"


# ============================================================================
# Gateway Commands (with mocked client)
# ============================================================================


def mock_gateway(mock_client_class: MagicMock) -> MagicMock:
    mock_client = MagicMock()
    mock_client_class.return_value = mock_client
    mock_client.__aenter__.return_value = mock_client
    return mock_client


@patch("pyplc_ladder.cli.GatewayClient")
def test_read_command_double_word(mock_client_class: MagicMock, exports: dict[str, str]) -> None:
    mock_client = mock_gateway(mock_client_class)
    mock_client.read = AsyncMock(
        return_value=DeviceReadResult(device="D100:2", values=(0xE240, 0x0001), success=True)
    )

    result = runner.invoke(app, ["read", "D100", "-P", exports["program"], "-g", "http://gw:8000"])

    assert result.exit_code == 0
    assert result.stdout.strip() == "123456"
    assert mock_client.read.call_args[0][0].spec == "D100:2"
    assert mock_client_class.call_args[0][0] == "http://gw:8000"


@patch("pyplc_ladder.cli.GatewayClient")
def test_read_command_float_json(mock_client_class: MagicMock, exports: dict[str, str]) -> None:
    mock_client = mock_gateway(mock_client_class)
    mock_client.read = AsyncMock(return_value=DeviceReadResult(device="D300:2", values=(0, 0x3FC0), success=True))

    result = runner.invoke(app, ["read", "D300", "-P", exports["program"], "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["dataType"] == "float"
    assert data["decoded"] == [1.5]
    assert data["values"] == [0, 0x3FC0]


@patch("pyplc_ladder.cli.GatewayClient")
def test_read_command_signed_word(mock_client_class: MagicMock) -> None:
    mock_client = mock_gateway(mock_client_class)
    mock_client.read = AsyncMock(return_value=DeviceReadResult(device="D7", values=(65535,), success=True))

    result = runner.invoke(app, ["read", "D7", "--signed"])

    assert result.exit_code == 0
    assert result.stdout.strip() == "-1"
    assert mock_client.read.call_args[0][0].spec == "D7"


@patch("pyplc_ladder.cli.GatewayClient")
def test_read_command_type_override(mock_client_class: MagicMock) -> None:
    mock_client = mock_gateway(mock_client_class)
    mock_client.read = AsyncMock(return_value=DeviceReadResult(device="D7:2", values=(0xE240, 1), success=True))

    result = runner.invoke(app, ["read", "D7", "--type", "double_word"])

    assert result.exit_code == 0
    assert mock_client.read.call_args[0][0].spec == "D7:2"
    assert result.stdout.strip() == "123456"


@patch("pyplc_ladder.cli.GatewayClient")
def test_read_command_gateway_failure(mock_client_class: MagicMock) -> None:
    mock_client = mock_gateway(mock_client_class)
    mock_client.read = AsyncMock(return_value=DeviceReadResult(device="D7", success=False, error="timed out"))

    result = runner.invoke(app, ["read", "D7"])

    assert result.exit_code == 3


def test_read_command_invalid_device() -> None:
    result = runner.invoke(app, ["read", "Q7"])
    assert result.exit_code == 2


@patch("pyplc_ladder.cli.GatewayClient")
def test_read_many_command(mock_client_class: MagicMock, exports: dict[str, str]) -> None:
    mock_client = mock_gateway(mock_client_class)
    mock_client.read_batch = AsyncMock(
        return_value=BatchReadResult(
            results=(
                DeviceReadResult(device="D100:2", values=(1, 0), success=True),
                DeviceReadResult(device="M10", values=(1,), success=True),
            )
        )
    )

    result = runner.invoke(app, ["read-many", "D100", "M10", "-P", exports["program"]])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert [r["device"] for r in data["results"]] == ["D100:2", "M10"]
    assert mock_client.read_batch.call_args[0][0].specs == ("D100:2", "M10")


@patch("pyplc_ladder.cli.GatewayClient")
def test_read_many_command_partial(mock_client_class: MagicMock) -> None:
    mock_client = mock_gateway(mock_client_class)
    mock_client.read_batch = AsyncMock(
        return_value=BatchReadResult(
            results=(
                DeviceReadResult(device="D1", values=(1,), success=True),
                DeviceReadResult(device="D2", success=False, error="timed out"),
            )
        )
    )

    assert runner.invoke(app, ["read-many", "D1", "D2"]).exit_code == 3
    assert runner.invoke(app, ["read-many", "D1", "D2", "--partial"]).exit_code == 0


def test_command_help() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("info", "search", "trace", "fb-list", "read", "read-many"):
        assert command in result.stdout


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "pyplc-ladder" in result.stdout
