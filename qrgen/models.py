"""Render request model and query-parameter parsing."""

from collections.abc import Mapping
from dataclasses import dataclass

from qrgen.exceptions import InvalidRequestError

DEFAULT_SIZE = 512


@dataclass(frozen=True)
class RenderRequest:
    """Parameters of a single QR render. Immutable once built."""

    content: str
    size: int = DEFAULT_SIZE
    fg_color: str | None = None
    bg_color: str | None = None
    logo_url: str | None = None

    def __post_init__(self):
        if not isinstance(self.content, str) or not self.content:
            raise InvalidRequestError("content must be a non-empty string")
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size <= 0:
            raise InvalidRequestError(f"size must be a positive integer, got {self.size!r}")

    @classmethod
    def from_params(cls, params: Mapping[str, str], default_size: int = DEFAULT_SIZE,
                    max_size: int | None = None) -> "RenderRequest":
        """Build a request from query-style string parameters.

        Blank optional parameters are treated as absent. Colors are passed
        through untouched; malformed ones fall back to defaults at render time.
        """
        raw_size = _optional(params.get("size"))
        if raw_size is None:
            size = default_size
        else:
            try:
                size = int(raw_size)
            except ValueError:
                raise InvalidRequestError(f"size must be an integer, got {raw_size!r}") from None
        if max_size is not None and size > max_size:
            raise InvalidRequestError(f"size {size} exceeds maximum {max_size}")

        return cls(
            content=params.get("content") or "",
            size=size,
            fg_color=_optional(params.get("fg_color")),
            bg_color=_optional(params.get("bg_color")),
            logo_url=_optional(params.get("logo_url")),
        )


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None
