"""
Diagnostics raised by the Kage front end and analyzer.

``TransformationError`` is a single positioned diagnostic. The analyzer
collects them and ``compile_source`` raises one ``CompileError`` carrying
the whole batch, rendered as ``line:col: message`` lines.
"""

from typing import List, Optional


class TransformationError(Exception):
    """Raised when the source cannot be turned into IR."""
    def __init__(self, message: str, location: Optional[tuple] = None):
        self.message = message
        self.location = location
        if location:
            line, col = location
            super().__init__(f"{message} at line {line+1}, column {col+1}")
        else:
            super().__init__(message)

    def diagnostic(self) -> str:
        """``line:col: message`` form, 1-based."""
        if self.location is None:
            return self.message
        line, col = self.location
        return f"{line+1}:{col+1}: {self.message}"


class CompileError(Exception):
    """A batch of diagnostics from one compilation."""
    def __init__(self, errors: List[TransformationError]):
        self.errors = list(errors)
        super().__init__('\n'.join(e.diagnostic() for e in self.errors))
