"""Declaration documents."""

from infralayer.declarations.loader import load_declarations, parse_declarations

__all__ = ["load_declarations", "parse_declarations"]
