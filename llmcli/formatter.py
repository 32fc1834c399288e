# llmcli/formatter.py
"""
Streaming markdown code-block formatter.

The model's reply arrives in arbitrary fragments, so code fences and inline
code spans are detected one character at a time. Fenced code is syntax
highlighted line by line as soon as each line is complete; everything else
is written through untouched.
"""
from enum import Enum
from typing import Optional, Protocol, TextIO

from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound
from rich.console import Console
from rich.syntax import Syntax

from llmcli.errors import FormatError

ANSI_RESET = "\x1b[0m"
DEFAULT_THEME = "monokai"


class CodeBlockState(Enum):
    NORMAL = "normal"
    CODE_BLOCK = "code_block"
    INLINE_CODE = "inline_code"


class CodeBlockDetector:
    """Tracks backtick runs and decides when they open or close code."""

    def __init__(self):
        self.pending_backticks = 0
        self.last_run = 0
        self.state = CodeBlockState.NORMAL

    def handle_backtick(self):
        self.pending_backticks += 1

    def evaluate(self) -> Optional[CodeBlockState]:
        """
        Consumes the pending backtick run and returns the new state, or None
        when the run length (kept in `last_run`) does not open or close code.
        Only runs of exactly 1 or 3 backticks are significant.
        """
        run = self.pending_backticks
        self.pending_backticks = 0
        self.last_run = run

        new_state = None
        if self.state == CodeBlockState.NORMAL:
            if run == 1:
                new_state = CodeBlockState.INLINE_CODE
            elif run == 3:
                new_state = CodeBlockState.CODE_BLOCK
        elif (run, self.state) in ((1, CodeBlockState.INLINE_CODE), (3, CodeBlockState.CODE_BLOCK)):
            new_state = CodeBlockState.NORMAL

        if new_state is not None:
            self.state = new_state
        return new_state


class SyntaxHighlighting(Protocol):
    def highlight_code(self, content: str, language: Optional[str]) -> str: ...

    def is_valid_language(self, language: str) -> bool: ...

    def unset_code(self) -> str: ...


class RichSyntaxHighlighter:
    """Highlights code with rich/Pygments and renders it as 24-bit ANSI text."""

    def __init__(self, theme: Optional[str] = None):
        self.theme = theme or DEFAULT_THEME
        self._console = Console(force_terminal=True, color_system="truecolor", highlight=False)

    def highlight_code(self, content: str, language: Optional[str]) -> str:
        syntax = Syntax(content, language or "text", theme=self.theme, background_color="default")
        text = syntax.highlight(content)
        with self._console.capture() as capture:
            self._console.print(text, end="", soft_wrap=True)
        return capture.get()

    def is_valid_language(self, language: str) -> bool:
        if not language:
            return False
        try:
            get_lexer_by_name(language)
        except ClassNotFound:
            return False
        return True

    def unset_code(self) -> str:
        return ANSI_RESET


class Formatter:
    def __init__(self, highlighter: Optional[SyntaxHighlighting] = None, theme: Optional[str] = None):
        self.highlighter = highlighter if highlighter is not None else RichSyntaxHighlighter(theme)
        self.detector = CodeBlockDetector()
        self.text_buffer = ""
        self._reset_code_block()

    def _reset_code_block(self):
        self.code_language: Optional[str] = None
        self.code_buffer = ""
        self.is_first_line = True
        self.formatting_active = False

    def format_chunk(self, sink: TextIO, chunk: str):
        for char in chunk:
            if char == "`":
                self.detector.handle_backtick()
                continue

            new_state = self.detector.evaluate()
            if new_state == CodeBlockState.NORMAL:
                self._flush_code_block(sink)
            elif new_state is not None:
                self._flush_text(sink)
            else:
                self._append_backticks(self.detector.last_run)

            if self.detector.state == CodeBlockState.NORMAL:
                self.text_buffer += char
            else:
                self._write_code_char(sink, char)

        self._flush_text(sink)

    def finish(self, sink: TextIO):
        """
        Flushes whatever is still buffered once the stream has ended and
        leaves the formatter ready for the next reply.
        """
        if self.detector.pending_backticks:
            new_state = self.detector.evaluate()
            if new_state == CodeBlockState.NORMAL:
                self._flush_code_block(sink)
            elif new_state is None:
                self._append_backticks(self.detector.last_run)
            else:
                # An opening run with nothing after it is plain text.
                self.text_buffer += "`" * self.detector.last_run
        if self.code_buffer:
            self._highlight_and_write(sink)
        if self.formatting_active:
            self._unset_highlighting(sink)
        self._flush_text(sink)
        self.detector = CodeBlockDetector()
        self._reset_code_block()

    def _append_backticks(self, count: int):
        if count == 0:
            return
        if self.detector.state == CodeBlockState.NORMAL:
            self.text_buffer += "`" * count
        else:
            self.code_buffer += "`" * count

    def _write_code_char(self, sink: TextIO, char: str):
        self.code_buffer += char
        if char != "\n":
            return

        if self.is_first_line:
            self.is_first_line = False
            language = self.code_buffer.strip()
            if self.highlighter.is_valid_language(language):
                self.code_language = language
            else:
                self._highlight_and_write(sink)
        else:
            self._highlight_and_write(sink)
        self.code_buffer = ""

    def _highlight_and_write(self, sink: TextIO):
        self.formatting_active = True
        _write(sink, self.highlighter.highlight_code(self.code_buffer, self.code_language))

    def _unset_highlighting(self, sink: TextIO):
        self.formatting_active = False
        _write(sink, self.highlighter.unset_code())

    def _flush_code_block(self, sink: TextIO):
        if self.code_buffer:
            self._highlight_and_write(sink)
        self._unset_highlighting(sink)
        self._reset_code_block()

    def _flush_text(self, sink: TextIO):
        if self.text_buffer:
            _write(sink, self.text_buffer)
            self.text_buffer = ""


def _write(sink: TextIO, content: str):
    try:
        sink.write(content)
    except OSError as e:
        raise FormatError(f"Failed to write formatted output: {e}") from e
