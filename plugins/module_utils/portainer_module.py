from __future__ import annotations

from ansible.module_utils.basic import AnsibleModule

from .portainer_client import PortainerClient
from .portainer_crud import PortainerCRUD, InvalidFileError


class PortainerModule(AnsibleModule):
    def __init__(self, *args, **kwargs):

        super(PortainerModule, self).__init__(*args, **kwargs)

        self.client = PortainerClient(self)
        self.crud = PortainerCRUD(self)

    @classmethod
    def generate_argspec(cls, **kwargs):
        spec = PortainerClient.ARGSPEC.copy()
        spec.update(**kwargs)

        return spec

    def read_text_file(self, filepath: str, description: str = "file") -> str:
        """Read a local text file, raising InvalidFileError if it is missing, empty or binary."""
        try:
            with open(filepath, "rb") as f:
                content = f.read()

        except FileNotFoundError as e:
            raise InvalidFileError(f"{description.capitalize()} not found: {filepath}") from e
        except PermissionError as e:
            raise InvalidFileError(f"Permission denied reading {description}: {filepath}") from e
        except IOError as e:
            raise InvalidFileError(f"Failed to read {description} {filepath}: {str(e)}") from e

        if not content:
            raise InvalidFileError(f"{description.capitalize()} is empty: {filepath}")

        self.validate_text_content(content, description, filepath=filepath)

        return content.decode("utf-8")

    def validate_text_content(
        self,
        content: bytes,
        description: str | None = None,
        filepath: str | None = None,
    ) -> None:
        """
        Validate that content is text, not binary.

        Args:
            content: bytes to validate
            description: human-readable description of the content (e.g., "stack file")
            filepath: path to the file (for error messages)

        Raises:
            InvalidFileError: the content is not valid UTF-8, holds null bytes
                or is mostly control characters
        """
        # Validate UTF-8 encoding
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidFileError(
                self._build_error_message("invalid UTF-8 encoding", description, filepath)
            ) from e

        # Check for null bytes
        if b"\x00" in content:
            raise InvalidFileError(
                self._build_error_message("null bytes detected", description, filepath)
            )

        if len(content) > 0:
            control_chars = sum(1 for b in content if b < 0x20 and b not in (0x09, 0x0A, 0x0D))
            if control_chars / len(content) > 0.30:
                raise InvalidFileError(
                    self._build_error_message("excessive control characters", description, filepath)
                )

    def _build_error_message(self, reason, description, filepath):
        """Build a consistent error message"""
        parts = []
        if description:
            parts.append(description.capitalize())
        else:
            parts.append("Content")

        parts.append(f"contains binary data ({reason})")

        if filepath:
            parts.append(f": {filepath}")

        return " ".join(parts)
