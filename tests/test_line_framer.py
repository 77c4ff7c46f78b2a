"""Tests for line framing."""

import pytest

from evsource.stream.line_framer import LineFramer, iter_lines


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


async def _collect(chunks):
    return [line async for line in iter_lines(_aiter(chunks))]


def _frame(chunks):
    framer = LineFramer()
    lines = []
    for chunk in chunks:
        lines.extend(framer.feed(chunk))
    lines.extend(framer.flush())
    return lines


class TestLineFramer:
    def test_single_chunk(self):
        framer = LineFramer()
        assert framer.feed("a\nb\n") == ["a", "b"]

    def test_keeps_incomplete_tail(self):
        framer = LineFramer()
        assert framer.feed("data: he") == []
        assert framer.feed("llo\nda") == ["data: hello"]
        assert framer.feed("ta: x\n") == ["data: x"]

    def test_all_newline_styles(self):
        assert _frame(["a\r\nb\rc\nd\n"]) == ["a", "b", "c", "d"]

    def test_blank_lines_preserved(self):
        assert _frame(["data: a\n\ndata: b\r\n\r\n"]) == ["data: a", "", "data: b", ""]

    def test_crlf_split_across_chunks(self):
        assert _frame(["data: a\r", "\ndata: b\r\n"]) == ["data: a", "data: b"]

    def test_crlf_split_then_blank_line(self):
        assert _frame(["data: a\r", "\n\r\n"]) == ["data: a", ""]

    def test_lone_cr_at_chunk_end_then_text(self):
        assert _frame(["a\r", "b\n"]) == ["a", "b"]

    def test_lone_cr_chunk(self):
        assert _frame(["a", "\r", "\n", "b\n"]) == ["a", "b"]

    def test_flush_yields_unterminated_line(self):
        framer = LineFramer()
        assert framer.feed("a\nlast") == ["a"]
        assert framer.flush() == ["last"]
        assert framer.flush() == []

    def test_flush_empty_when_terminated(self):
        framer = LineFramer()
        framer.feed("a\n")
        assert framer.flush() == []

    def test_empty_chunks_ignored(self):
        assert _frame(["", "a", "", "\n", ""]) == ["a"]

    def test_every_split_point_gives_same_lines(self):
        text = "event: x\r\ndata: 1\rdata: 2\n\r\n: c\ndata: tail"
        expected = _frame([text])
        assert expected == ["event: x", "data: 1", "data: 2", "", ": c", "data: tail"]
        for i in range(len(text) + 1):
            for j in range(i, len(text) + 1):
                assert _frame([text[:i], text[i:j], text[j:]]) == expected, (i, j)

    def test_one_char_chunks(self):
        text = "a\r\n\r\nb\rc\n"
        assert _frame(list(text)) == ["a", "", "b", "c"]


class TestIterLines:
    @pytest.mark.asyncio
    async def test_yields_lines_lazily(self):
        assert await _collect(["data: a\n", "\nda", "ta: b"]) == ["data: a", "", "data: b"]

    @pytest.mark.asyncio
    async def test_each_call_starts_fresh(self):
        assert await _collect(["partial"]) == ["partial"]
        assert await _collect(["next\n"]) == ["next"]

    @pytest.mark.asyncio
    async def test_error_skips_flush(self):
        async def failing():
            yield "a\nincomplete"
            raise ConnectionError("reset")

        seen = []
        with pytest.raises(ConnectionError):
            async for line in iter_lines(failing()):
                seen.append(line)
        assert seen == ["a"]
