"""E-book library helpers: MOBI/AZW editing, settings, text helpers and tags."""

__version__ = "0.1.0"
__all__ = ["mobi", "options", "tags", "textutil"]