"""
Scene File Tokenizer
====================
Line-oriented lexical scanner for the Metasequoia text format.

The format documentation describes a line-based grammar, but the modeler
itself accepts any token layout, so the reader works on a plain token stream:

* tokens are separated by whitespace (including the full-width space) and
  by parentheses;
* ``"quoted strings"`` form a single token, quotes included;
* ``{`` and ``}`` are always tokens of their own and move the nesting depth.
"""
from __future__ import annotations

import io
import logging
import os
import re
from typing import BinaryIO, Optional

from mqopipeline.config import DEFAULT_ENCODING
from mqopipeline.errors import FormatError, ResourceError

logger = logging.getLogger(__name__)

OPEN_BRACE = "{"
CLOSE_BRACE = "}"

# ASCII digits only, no digit separators, no nan or inf
INT_PATTERN = re.compile(r"[+-]?[0-9]+")
HEX_PATTERN = re.compile(r"(?:0[xX])?[0-9a-fA-F]+")
FLOAT_PATTERN = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def parse_int(token: str) -> Optional[int]:
    """Decimal integer value of ``token``, or None when it is not one."""
    if INT_PATTERN.fullmatch(token) is None:
        return None
    return int(token)


def parse_float(token: str) -> Optional[float]:
    """Value of a plain decimal number such as ``-1.5`` or ``2e-3``, or None."""
    if FLOAT_PATTERN.fullmatch(token) is None:
        return None
    return float(token)


def _has_undecodable(line: str) -> bool:
    return any("\udc80" <= c <= "\udcff" for c in line)


def split_line(line: str) -> list[str]:
    """
    Split one source line into tokens.

    Args:
        line: Decoded text line without the line terminator.

    Returns:
        The tokens of the line, in order.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_string = False

    for c in line:
        if in_string:
            current.append(c)
            if c == '"':
                tokens.append("".join(current))
                current.clear()
                in_string = False
        elif c.isspace() or c in "()":
            if current:
                tokens.append("".join(current))
                current.clear()
        elif c in "{}":
            if current:
                tokens.append("".join(current))
                current.clear()
            tokens.append(c)
        elif c == '"':
            current.append(c)
            in_string = True
        else:
            current.append(c)

    # an unterminated string runs to the end of the line
    if current:
        tokens.append("".join(current))

    return tokens


class Tokenizer:
    """
    Token stream over a scene file.

    Example:
        >>> with Tokenizer.from_text("translation 1.0 2.0 3.0") as t:
        ...     t.get_token(), t.get_vector3()
        ('translation', (1.0, 2.0, 3.0))
    """

    def __init__(self, stream: BinaryIO, encoding: str = DEFAULT_ENCODING, size: Optional[int] = None) -> None:
        """
        Args:
            stream: Binary stream positioned at the start of the file.
            encoding: Text encoding of the stream.
            size: Total byte count of the stream, used for progress reporting.
        """
        self._raw = stream
        # undecodable bytes survive as lone surrogates and are reported per line
        self._stream: Optional[io.TextIOWrapper] = io.TextIOWrapper(
            stream, encoding=encoding, errors="surrogateescape", newline=""
        )
        self._encoding = encoding
        self._size = size
        self._consumed = 0
        self._line_number = 0
        self._tokens: list[str] = []
        self._token_pos = 0
        self._depth = 0

    @classmethod
    def open(cls, path: str | os.PathLike, encoding: str = DEFAULT_ENCODING) -> Tokenizer:
        """Open a scene file for tokenizing."""
        try:
            size = os.path.getsize(path)
            stream = open(path, "rb")
        except OSError as e:
            raise ResourceError(f"Cannot open scene file '{path}': {e}") from e
        logger.debug(f"Opened '{path}' ({size} bytes, encoding {encoding})")
        try:
            return cls(stream, encoding=encoding, size=size)
        except LookupError:
            stream.close()
            raise

    @classmethod
    def from_text(cls, text: str, encoding: str = "utf-8") -> Tokenizer:
        """Tokenize an in-memory string."""
        data = text.encode(encoding)
        return cls(io.BytesIO(data), encoding=encoding, size=len(data))

    def __enter__(self) -> Tokenizer:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    @property
    def line_number(self) -> int:
        """Number of the line the last token came from (1-based)."""
        return self._line_number

    @property
    def depth(self) -> int:
        """Current ``{ }`` nesting depth."""
        return self._depth

    @property
    def progress(self) -> float:
        """Fraction of the input consumed so far (0..1)."""
        if not self._size:
            return 1.0 if self._stream is None else 0.0
        return min(1.0, self._consumed / self._size)

    def get_token(self) -> Optional[str]:
        """
        Return the next token, or None at the end of the input.

        Braces update the nesting depth as they are returned.
        """
        if self._token_pos >= len(self._tokens):
            if not self._read_line():
                return None

        token = self._tokens[self._token_pos]
        self._token_pos += 1

        if token == OPEN_BRACE:
            self._depth += 1
        elif token == CLOSE_BRACE:
            self._depth -= 1

        return token

    def ensure_tokens(self, *expected: str) -> bool:
        """
        Consume ``len(expected)`` tokens and compare them case-insensitively.

        Returns:
            True when every token matched. Consumption stops at the first
            mismatch.
        """
        for expected_token in expected:
            token = self.get_token()
            if token is None or token.lower() != expected_token.lower():
                return False
        return True

    def skip_chunk(self) -> None:
        """Skip ahead to the next ``{`` and discard the whole chunk."""
        while True:
            token = self.get_token()
            if token is None:
                raise FormatError("Unexpected end of file while looking for '{'", self._line_number)
            if token == OPEN_BRACE:
                break
        self.skip_tokens()

    def skip_tokens(self) -> None:
        """Discard tokens until the current chunk is closed."""
        target_depth = self._depth - 1
        while self._depth != target_depth:
            if self.get_token() is None:
                raise FormatError("Unexpected end of file inside a chunk", self._line_number)

    def get_int32(self) -> int:
        token = self._require_token()
        value = parse_int(token)
        if value is None:
            raise FormatError("Malformed integer", self._line_number, token)
        return value

    def get_hex32(self) -> int:
        """Read a hexadecimal integer (with or without a 0x prefix)."""
        token = self._require_token()
        if HEX_PATTERN.fullmatch(token) is None:
            raise FormatError("Malformed hexadecimal integer", self._line_number, token)
        return int(token, 16) & 0xFFFFFFFF

    def get_single(self) -> float:
        token = self._require_token()
        value = parse_float(token)
        if value is None:
            raise FormatError("Malformed number", self._line_number, token)
        return value

    def get_vector2(self) -> tuple[float, float]:
        return self.get_single(), self.get_single()

    def get_vector3(self) -> tuple[float, float, float]:
        return self.get_single(), self.get_single(), self.get_single()

    def get_vector4(self) -> tuple[float, float, float, float]:
        return self.get_single(), self.get_single(), self.get_single(), self.get_single()

    def get_color(self) -> tuple[float, float, float, float]:
        """
        Read a packed 32-bit RGBA color (red in the low byte).

        Returns:
            (r, g, b, a) in the 0..1 range.
        """
        value = self.get_int32() & 0xFFFFFFFF
        return (
            (value & 0xFF) / 255.0,
            ((value >> 8) & 0xFF) / 255.0,
            ((value >> 16) & 0xFF) / 255.0,
            ((value >> 24) & 0xFF) / 255.0,
        )

    def get_string(self) -> str:
        """Read a token and strip its surrounding quotes."""
        return self._require_token().strip('"')

    def _require_token(self) -> str:
        token = self.get_token()
        if token is None:
            raise FormatError("Unexpected end of file", self._line_number)
        return token

    def _read_line(self) -> bool:
        """Load the tokens of the next non-empty line. False at end of input."""
        while True:
            if self._stream is None:
                return False
            line = self._stream.readline()
            if not line:
                self._consumed = self._raw.tell()
                return False

            # position of the underlying stream, read ahead by the decoder buffer
            self._consumed = self._raw.tell()
            self._line_number += 1

            if _has_undecodable(line):
                raise FormatError(f"Cannot decode line as {self._encoding}", self._line_number)
            tokens = split_line(line.rstrip("\r\n"))
            if tokens:
                self._tokens = tokens
                self._token_pos = 0
                return True
