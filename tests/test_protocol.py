import asyncio

import pytest

from ftplink import codes
from ftplink.errors import PassiveParseError, ProtocolError, StatusCodeError, TransportError, UsageError
from ftplink.protocol import (
    CRLF,
    Mode,
    Response,
    check_response_code,
    extract_data_port,
    format_command,
    read_response,
    resolve_mode,
)


def stream(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestCheckResponseCode:
    @pytest.mark.parametrize("actual", [200, 220, 226, 299])
    def test_single_digit_matches_class(self, actual):
        check_response_code(2, actual)

    @pytest.mark.parametrize("actual", [150, 199, 300, 331, 550])
    def test_single_digit_rejects_other_classes(self, actual):
        with pytest.raises(StatusCodeError):
            check_response_code(2, actual)

    @pytest.mark.parametrize("actual", [220, 221, 226, 229])
    def test_two_digits_match_prefix(self, actual):
        check_response_code(22, actual)

    @pytest.mark.parametrize("actual", [200, 230, 250, 122])
    def test_two_digits_reject_other_prefixes(self, actual):
        with pytest.raises(StatusCodeError):
            check_response_code(22, actual)

    def test_three_digits_need_exact_code(self):
        check_response_code(227, 227)
        with pytest.raises(StatusCodeError):
            check_response_code(227, 226)

    @pytest.mark.parametrize("expected", [0, -2, 1000])
    def test_out_of_range_pattern_never_matches(self, expected):
        with pytest.raises(StatusCodeError):
            check_response_code(expected, 200)

    def test_error_carries_both_codes(self):
        with pytest.raises(StatusCodeError) as info:
            check_response_code(2, 550, "550 No such file\r\n", step="RETR missing.txt")

        error = info.value
        assert error.expected == 2
        assert error.received == 550
        assert error.step == "RETR missing.txt"
        assert "Expected: 2, Got: 550" in str(error)
        assert codes[550] in str(error)
        assert "No such file" in str(error)


class TestExtractDataPort:
    def test_standard_reply(self):
        assert extract_data_port("227 Entering Passive Mode (192,168,1,5,17,36).") == 4388

    def test_reply_without_parentheses(self):
        assert extract_data_port("227 =127,0,0,1,10,0") == 2560

    def test_dotted_host_octets(self):
        assert extract_data_port("227 Entering Passive Mode (10.0.0.7,200,1)") == 200 * 256 + 1

    def test_missing_tuple_names_the_line(self):
        with pytest.raises(PassiveParseError) as info:
            extract_data_port("227 Entering Passive Mode")

        assert info.value.line == "227 Entering Passive Mode"
        assert "227 Entering Passive Mode" in str(info.value)

    def test_too_few_numbers(self):
        with pytest.raises(PassiveParseError):
            extract_data_port("227 Entering Passive Mode (127,0,0,1,10)")

    def test_port_octet_out_of_range(self):
        with pytest.raises(PassiveParseError):
            extract_data_port("227 Entering Passive Mode (127,0,0,1,256,0)")

    def test_port_zero(self):
        with pytest.raises(PassiveParseError):
            extract_data_port("227 Entering Passive Mode (127,0,0,1,0,0)")

    def test_is_a_protocol_error(self):
        assert issubclass(PassiveParseError, ProtocolError)


class TestFormatCommand:
    def test_with_argument(self):
        assert format_command("RETR", "pub/file.txt") == "RETR pub/file.txt\r\n"

    def test_without_argument_has_no_trailing_space(self):
        assert format_command("PASV") == "PASV" + CRLF

    @pytest.mark.parametrize("argument", ["a\r\nDELE b", "a\nb", "a\rb"])
    def test_rejects_line_breaks(self, argument):
        with pytest.raises(UsageError):
            format_command("RETR", argument)

    def test_rejects_blank_verb(self):
        with pytest.raises(UsageError):
            format_command("  ")


class TestMode:
    def test_image_is_binary(self):
        assert Mode.IMAGE is Mode.BINARY
        assert resolve_mode(Mode.IMAGE) == "I"

    @pytest.mark.parametrize("mode, letter", [("A", "A"), ("a", "A"), ("I", "I"), (Mode.ASCII, "A")])
    def test_resolve(self, mode, letter):
        assert resolve_mode(mode) == letter

    @pytest.mark.parametrize("mode", ["E", "", "binary", None])
    def test_unknown_mode(self, mode):
        with pytest.raises(UsageError):
            resolve_mode(mode)


@pytest.mark.asyncio
class TestReadResponse:
    async def test_single_line(self):
        response = await read_response(stream(b"200 Command okay\r\n"))

        assert response == Response(200, "200 Command okay\r\n")

    async def test_multi_line_reply_keeps_every_line(self):
        response = await read_response(stream(b"150-Opening data connection\r\n226 Transfer complete\r\n"))

        assert response.code == 226
        assert response.message == "150-Opening data connection\r\n226 Transfer complete\r\n"
        assert response.lines == ["150-Opening data connection", "226 Transfer complete"]

    async def test_free_text_continuation_lines(self):
        data = b"220-Welcome\r\n  running since 1999\r\n\r\n220-more\r\n220 Ready\r\n"
        response = await read_response(stream(data))

        assert response.code == 220
        assert response.message == data.decode()

    async def test_stops_at_first_terminator(self):
        reader = stream(b"211-Status\r\n211 End\r\n200 Next reply\r\n")

        first = await read_response(reader)
        second = await read_response(reader)

        assert first.code == 211
        assert "Next reply" not in first.message
        assert second == Response(200, "200 Next reply\r\n")

    async def test_long_banner_is_read_completely(self):
        banner = b"".join(b"220-" + b"x" * 70 + b"\r\n" for _ in range(40)) + b"220 Ready\r\n"
        assert len(banner) > 1024

        response = await read_response(stream(banner))

        assert response.code == 220
        assert response.message.encode() == banner

    async def test_bare_code_line_terminates(self):
        response = await read_response(stream(b"200\r\n"))

        assert response.code == 200

    async def test_stream_ends_before_terminator(self):
        with pytest.raises(TransportError):
            await read_response(stream(b"150-Opening data connection\r\n"))

    async def test_empty_stream(self):
        with pytest.raises(TransportError):
            await read_response(stream(b""))

    async def test_truncated_final_line(self):
        with pytest.raises(TransportError):
            await read_response(stream(b"220-Hello\r\n22"))

    async def test_reply_without_status_code(self):
        with pytest.raises(ProtocolError):
            await read_response(stream(b"hello there\r\n200 ok\r\n"))

    async def test_undecodable_reply(self):
        with pytest.raises(ProtocolError):
            await read_response(stream(b"200 \xff\xfe\r\n"))

    async def test_custom_encoding(self):
        response = await read_response(stream("257 \"/ünï\"\r\n".encode("latin-1")), encoding="latin-1")

        assert response.code == 257
        assert "/ünï" in response.message
