"""Exceptions raised by the export pipeline."""

from __future__ import annotations


class CargoMirrorError(Exception):
    """Base class for pipeline failures that should stop a stage."""


class MalformedExportError(CargoMirrorError):
    """An export document has no usable embedded state."""


class NoUsableStateError(CargoMirrorError):
    """None of the export documents yielded a state blob."""


class MissingInputError(CargoMirrorError):
    """A stage's required input file is absent."""

    def __init__(self, path, command: str) -> None:
        self.path = path
        self.command = command
        super().__init__(f"Required input not found: {path}. Run `{command}` first.")
