from .loaders import LoadedPage, is_supported, load_document, sanitize_html

__all__ = ["LoadedPage", "is_supported", "load_document", "sanitize_html"]
